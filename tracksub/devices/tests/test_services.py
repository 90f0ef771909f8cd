"""
Tests for DeviceService.

The Traccar client is replaced with a mock; these tests cover:
- subscription and device-limit checks run before Traccar is called
- duplicate unique ids, including a row inserted concurrently
- soft delete tolerates Traccar failures
- list_devices degrades to "offline" per device
- trip reports and closing the Traccar client
"""

from datetime import timedelta
from unittest.mock import Mock
from unittest.mock import patch

import pytest
from django.utils import timezone

from tracksub.billing.constants import SubscriptionStatus
from tracksub.billing.exceptions import DeviceLimitError
from tracksub.billing.exceptions import SubscriptionInactiveError
from tracksub.billing.exceptions import SubscriptionNotFoundError
from tracksub.billing.tests.factories import PlanFactory
from tracksub.billing.tests.factories import SubscriptionFactory
from tracksub.devices.exceptions import DeviceNotFoundError
from tracksub.devices.exceptions import DuplicateDeviceError
from tracksub.devices.exceptions import TrackingServiceError
from tracksub.devices.models import Device
from tracksub.devices.services import DeviceService
from tracksub.devices.tests.factories import DeviceFactory
from tracksub.devices.traccar import TraccarClient

pytestmark = pytest.mark.django_db


@pytest.fixture
def traccar():
    client = Mock(spec=TraccarClient)
    client.create_device.return_value = {"id": 501, "name": "Van", "uniqueId": "X"}
    return client


@pytest.fixture
def service(traccar):
    return DeviceService(client=traccar)


class TestCreateDevice:
    def test_creates_remote_then_local(self, service, traccar, subscribed_user):
        device = service.create_device(subscribed_user, name="Van", unique_id="IMEI-1")

        traccar.create_device.assert_called_once_with(name="Van", unique_id="IMEI-1")
        assert device.traccar_id == 501  # noqa: PLR2004
        assert device.user == subscribed_user
        assert device.is_active

    def test_limit_reached(self, service, traccar, subscribed_user):
        DeviceFactory(user=subscribed_user)

        with pytest.raises(DeviceLimitError) as exc_info:
            service.create_device(subscribed_user, name="Van", unique_id="IMEI-2")

        assert "Free plan allows 1 devices" in exc_info.value.detail
        traccar.create_device.assert_not_called()

    def test_deleted_devices_do_not_count(self, service, subscribed_user):
        DeviceFactory(user=subscribed_user, is_active=False)

        device = service.create_device(subscribed_user, name="Van", unique_id="IMEI-2")

        assert device.pk is not None

    def test_unlimited_plan(self, service, user):
        plan = PlanFactory(name="Fleet", device_limit=-1)
        SubscriptionFactory(user=user, plan=plan)
        DeviceFactory.create_batch(3, user=user)

        device = service.create_device(user, name="Van", unique_id="IMEI-9")

        assert device.pk is not None

    def test_without_subscription(self, service, user):
        with pytest.raises(SubscriptionNotFoundError):
            service.create_device(user, name="Van", unique_id="IMEI-1")

    def test_cancelled_subscription(self, service, traccar, user, plans):
        SubscriptionFactory(
            user=user,
            plan=plans.basic,
            status=SubscriptionStatus.CANCELLED,
        )

        with pytest.raises(SubscriptionInactiveError):
            service.create_device(user, name="Van", unique_id="IMEI-1")
        traccar.create_device.assert_not_called()

    def test_active_but_past_end_date(self, service, user, plans):
        start = timezone.now() - timedelta(days=31)
        SubscriptionFactory(
            user=user,
            plan=plans.basic,
            start_date=start,
            end_date=start + timedelta(days=30),
        )

        with pytest.raises(SubscriptionInactiveError):
            service.create_device(user, name="Van", unique_id="IMEI-1")

    def test_duplicate_unique_id(self, service, traccar, subscribed_user):
        DeviceFactory(unique_id="IMEI-1")

        with pytest.raises(DuplicateDeviceError):
            service.create_device(subscribed_user, name="Van", unique_id="IMEI-1")
        traccar.create_device.assert_not_called()

    def test_unique_id_of_deleted_device_can_be_reused(self, service, subscribed_user):
        DeviceFactory(unique_id="IMEI-1", is_active=False)

        device = service.create_device(subscribed_user, name="Van", unique_id="IMEI-1")

        assert device.unique_id == "IMEI-1"

    def test_traccar_failure_writes_nothing(self, service, traccar, subscribed_user):
        traccar.create_device.side_effect = TrackingServiceError

        with pytest.raises(TrackingServiceError):
            service.create_device(subscribed_user, name="Van", unique_id="IMEI-1")
        assert not Device.objects.exists()

    def test_insert_conflict_removes_remote_device(
        self,
        service,
        traccar,
        subscribed_user,
    ):
        # Another row already holds the traccar id Traccar hands back.
        DeviceFactory(traccar_id=501, unique_id="OTHER")

        with pytest.raises(DuplicateDeviceError):
            service.create_device(subscribed_user, name="Van", unique_id="IMEI-1")

        traccar.delete_device.assert_called_once_with(501)
        assert not Device.objects.filter(unique_id="IMEI-1").exists()


class TestDeleteDevice:
    def test_soft_deletes(self, service, traccar, user):
        device = DeviceFactory(user=user)

        service.delete_device(user, device.pk)

        device.refresh_from_db()
        assert not device.is_active
        assert device.deleted_at is not None
        traccar.delete_device.assert_called_once_with(device.traccar_id)

    def test_traccar_failure_still_deactivates(self, service, traccar, user):
        traccar.delete_device.side_effect = TrackingServiceError
        device = DeviceFactory(user=user)

        service.delete_device(user, device.pk)

        device.refresh_from_db()
        assert not device.is_active

    def test_other_users_device(self, service, user):
        device = DeviceFactory()

        with pytest.raises(DeviceNotFoundError):
            service.delete_device(user, device.pk)

    def test_already_deleted(self, service, user):
        device = DeviceFactory(user=user, is_active=False)

        with pytest.raises(DeviceNotFoundError):
            service.delete_device(user, device.pk)


class TestListAndUpdate:
    def test_list_includes_live_data(self, service, traccar, user):
        device = DeviceFactory(user=user)
        traccar.get_device.return_value = {"id": device.traccar_id, "status": "online"}
        traccar.get_latest_position.return_value = {"latitude": 9.03}

        [snapshot] = service.list_devices(user)

        assert snapshot.device == device
        assert snapshot.online is True
        assert snapshot.position == {"latitude": 9.03}

    def test_list_marks_unreachable_devices_offline(self, service, traccar, user):
        DeviceFactory(user=user)
        traccar.get_device.side_effect = TrackingServiceError

        [snapshot] = service.list_devices(user)

        assert snapshot.online is False
        assert snapshot.position is None

    def test_rename(self, service, traccar, user):
        device = DeviceFactory(user=user)

        service.update_device(user, device.pk, name="Truck 7")

        traccar.update_device.assert_called_once_with(device.traccar_id, name="Truck 7")
        device.refresh_from_db()
        assert device.name == "Truck 7"

    def test_positions_use_traccar_id(self, service, traccar, user):
        device = DeviceFactory(user=user)
        traccar.get_positions.return_value = [{"id": 1}]

        assert service.positions(user, device.pk) == [{"id": 1}]
        traccar.get_positions.assert_called_once_with(device.traccar_id, None, None)

    def test_report_summarizes_and_trims_positions(self, service, traccar, user):
        device = DeviceFactory(user=user)
        traccar.get_positions.return_value = [
            {"latitude": 9.0, "longitude": 38.7, "speed": 0} for _ in range(1200)
        ]

        report = service.report(user, device.pk)

        assert report.device == device
        assert report.summary.position_count == 1000  # noqa: PLR2004
        assert len(report.positions) == 500  # noqa: PLR2004

    def test_report_for_other_users_device(self, service, user):
        with pytest.raises(DeviceNotFoundError):
            service.report(user, DeviceFactory().pk)


class TestClientLifetime:
    @patch("tracksub.devices.services.TraccarClient")
    def test_owned_client_is_closed(self, client_class):
        with DeviceService() as service:
            service.client.get_devices()

        client_class.return_value.close.assert_called_once_with()

    def test_passed_in_client_is_left_open(self, traccar):
        with DeviceService(client=traccar):
            pass

        traccar.close.assert_not_called()

"""
Tests for the device registry API.

Traccar is patched at the service layer; the views only map requests to
DeviceService and domain errors to responses.
"""

from unittest.mock import patch

import pytest
from django.urls import reverse
from rest_framework import status

from tracksub.devices.exceptions import TrackingServiceError
from tracksub.devices.models import Device
from tracksub.devices.tests.factories import DeviceFactory

pytestmark = pytest.mark.django_db


@pytest.fixture
def traccar():
    with patch("tracksub.devices.services.TraccarClient") as client_class:
        client = client_class.return_value
        client.create_device.return_value = {"id": 501}
        client.get_device.return_value = {"status": "offline"}
        client.get_latest_position.return_value = None
        yield client


class TestDeviceList:
    def test_requires_authentication(self, api_client):
        response = api_client.get(reverse("api:devices"))
        assert response.status_code in {
            status.HTTP_401_UNAUTHORIZED,
            status.HTTP_403_FORBIDDEN,
        }

    def test_lists_own_active_devices(self, auth_client, user, traccar):
        mine = DeviceFactory(user=user)
        DeviceFactory(user=user, is_active=False)
        DeviceFactory()

        response = auth_client.get(reverse("api:devices"))

        assert response.status_code == status.HTTP_200_OK
        [device] = response.json()["devices"]
        assert device["id"] == mine.pk
        assert device["uniqueId"] == mine.unique_id
        assert device["isOnline"] is False
        assert device["position"] is None


class TestDeviceCreate:
    def test_creates_device(self, auth_client, subscribed_user, traccar):
        response = auth_client.post(
            reverse("api:devices"),
            {"name": "Van", "uniqueId": "IMEI-1"},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["device"]["traccarId"] == 501  # noqa: PLR2004
        assert Device.objects.filter(user=subscribed_user, unique_id="IMEI-1").exists()

    def test_limit_is_403(self, auth_client, subscribed_user, traccar):
        DeviceFactory(user=subscribed_user)

        response = auth_client.post(
            reverse("api:devices"),
            {"name": "Van", "uniqueId": "IMEI-2"},
            format="json",
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["code"] == "device_limit_exceeded"
        traccar.create_device.assert_not_called()

    def test_duplicate_is_409(self, auth_client, subscribed_user, traccar):
        DeviceFactory(unique_id="IMEI-1")

        response = auth_client.post(
            reverse("api:devices"),
            {"name": "Van", "uniqueId": "IMEI-1"},
            format="json",
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["code"] == "duplicate_device"

    def test_traccar_down_is_502(self, auth_client, subscribed_user, traccar):
        traccar.create_device.side_effect = TrackingServiceError

        response = auth_client.post(
            reverse("api:devices"),
            {"name": "Van", "uniqueId": "IMEI-1"},
            format="json",
        )

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert not Device.objects.exists()

    def test_missing_fields(self, auth_client, subscribed_user, traccar):
        response = auth_client.post(reverse("api:devices"), {}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert set(response.json()) == {"name", "uniqueId"}


class TestDeviceDetail:
    def test_rename(self, auth_client, user, traccar):
        device = DeviceFactory(user=user)

        response = auth_client.patch(
            reverse("api:device-detail", args=[device.pk]),
            {"name": "Truck 7"},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["device"]["name"] == "Truck 7"

    def test_delete(self, auth_client, user, traccar):
        device = DeviceFactory(user=user)

        response = auth_client.delete(reverse("api:device-detail", args=[device.pk]))

        assert response.status_code == status.HTTP_200_OK
        device.refresh_from_db()
        assert not device.is_active

    def test_someone_elses_device_is_404(self, auth_client, traccar):
        device = DeviceFactory()

        response = auth_client.delete(reverse("api:device-detail", args=[device.pk]))

        assert response.status_code == status.HTTP_404_NOT_FOUND
        traccar.delete_device.assert_not_called()


class TestDevicePositions:
    def test_positions(self, auth_client, user, traccar):
        device = DeviceFactory(user=user)
        traccar.get_positions.return_value = [{"latitude": 9.0, "longitude": 38.7}]

        response = auth_client.get(
            reverse("api:device-positions", args=[device.pk]),
            {"from": "2026-10-18T00:00:00Z", "to": "2026-10-19T00:00:00Z"},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["positions"] == [{"latitude": 9.0, "longitude": 38.7}]
        traccar_id, start, end = traccar.get_positions.call_args.args
        assert traccar_id == device.traccar_id
        assert start < end

    def test_reversed_window_is_400(self, auth_client, user, traccar):
        device = DeviceFactory(user=user)

        response = auth_client.get(
            reverse("api:device-positions", args=[device.pk]),
            {"from": "2026-10-19T00:00:00Z", "to": "2026-10-18T00:00:00Z"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestDeviceReport:
    def test_report(self, auth_client, user, traccar):
        device = DeviceFactory(user=user, name="Van")
        traccar.get_positions.return_value = [
            {
                "latitude": 9.00,
                "longitude": 38.70,
                "speed": 20,
                "fixTime": "2026-10-19T08:00:00Z",
            },
            {
                "latitude": 9.05,
                "longitude": 38.70,
                "speed": 20,
                "fixTime": "2026-10-19T08:10:00Z",
            },
        ]

        response = auth_client.get(reverse("api:device-reports", args=[device.pk]))

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["device"] == {
            "id": device.pk,
            "name": "Van",
            "uniqueId": device.unique_id,
        }
        assert data["summary"]["positionCount"] == 2  # noqa: PLR2004
        assert data["summary"]["totalTime"] == 10  # noqa: PLR2004
        assert data["summary"]["movingTime"] == 10  # noqa: PLR2004
        assert data["summary"]["totalDistance"] > 5  # noqa: PLR2004
        assert len(data["positions"]) == 2  # noqa: PLR2004
        traccar.close.assert_called_once_with()

    def test_someone_elses_device_is_404(self, auth_client, traccar):
        device = DeviceFactory()

        response = auth_client.get(reverse("api:device-reports", args=[device.pk]))

        assert response.status_code == status.HTTP_404_NOT_FOUND

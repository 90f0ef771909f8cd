"""
Device registry service.

Devices live on the Traccar server; this service keeps the local registry
(owner, name, soft-delete flag) consistent with it and enforces the
subscription's device limit before anything is created remotely.

Create is remote-first: if Traccar refuses or times out, no local row is
written. Delete is local-always: a Traccar failure is logged and the local
row is soft-deleted anyway.

The device limit check is a count followed by an insert, so two
simultaneous creates by the same user can both pass it and exceed the
limit by one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field
from typing import TYPE_CHECKING

from django.db import IntegrityError
from django.db import transaction
from django.utils import timezone

from tracksub.billing.exceptions import DeviceLimitError
from tracksub.billing.exceptions import SubscriptionInactiveError
from tracksub.billing.services import SubscriptionService
from tracksub.devices.exceptions import DeviceNotFoundError
from tracksub.devices.exceptions import DuplicateDeviceError
from tracksub.devices.exceptions import TrackingServiceError
from tracksub.devices.models import Device
from tracksub.devices.reports import REPORT_POSITION_LIMIT
from tracksub.devices.reports import REPORT_POSITIONS_RETURNED
from tracksub.devices.reports import TripSummary
from tracksub.devices.reports import summarize_trip
from tracksub.devices.traccar import TraccarClient

if TYPE_CHECKING:
    from datetime import datetime

    from tracksub.users.models import User

logger = logging.getLogger(__name__)


@dataclass
class DeviceSnapshot:
    """A registered device plus what Traccar currently says about it."""

    device: Device
    online: bool = False
    position: dict | None = None
    traccar: dict | None = field(default=None, repr=False)


@dataclass
class DeviceReport:
    device: Device
    summary: TripSummary
    positions: list[dict]


class DeviceService:
    """
    Usage:
        with DeviceService() as service:
            device = service.create_device(
                request.user,
                name="Van",
                unique_id="8612...",
            )

    A Traccar client created by the service is closed on exit; one passed
    in belongs to the caller.
    """

    def __init__(
        self,
        client: TraccarClient | None = None,
        subscriptions: SubscriptionService | None = None,
    ):
        self._client = client
        self._owns_client = client is None
        self.subscriptions = subscriptions or SubscriptionService()

    @property
    def client(self) -> TraccarClient:
        if self._client is None:
            self._client = TraccarClient()
        return self._client

    def close(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> DeviceService:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def list_devices(self, user: User) -> list[DeviceSnapshot]:
        """
        Active devices for ``user`` with live status and latest position.

        A device Traccar cannot answer for is reported offline rather than
        failing the whole list.
        """
        snapshots = []
        for device in Device.objects.active().filter(user=user):
            try:
                remote = self.client.get_device(device.traccar_id)
                position = self.client.get_latest_position(device.traccar_id)
            except TrackingServiceError:
                logger.warning(
                    "Could not fetch Traccar data for device %s (traccar id %s)",
                    device.pk,
                    device.traccar_id,
                )
                snapshots.append(DeviceSnapshot(device=device))
                continue
            snapshots.append(
                DeviceSnapshot(
                    device=device,
                    online=remote.get("status") == "online",
                    position=position,
                    traccar=remote,
                ),
            )
        return snapshots

    def get_device(self, user: User, device_id) -> Device:
        device = Device.objects.active().filter(user=user, pk=device_id).first()
        if device is None:
            raise DeviceNotFoundError
        return device

    def create_device(self, user: User, *, name: str, unique_id: str) -> Device:
        """
        Register a device for ``user``.

        Raises:
            SubscriptionNotFoundError: the user has no subscription (404).
            SubscriptionInactiveError: subscription not ACTIVE or past its
                end date (403).
            DeviceLimitError: the plan's device limit is reached (403).
            DuplicateDeviceError: ``unique_id`` is already registered (409).
            TrackingServiceError: Traccar refused or timed out (502).
        """
        subscription = self.subscriptions.get_current(user)
        if not subscription.is_usable:
            raise SubscriptionInactiveError(
                "Subscription is not active.",
                status=subscription.status,
            )

        plan = subscription.plan
        device_count = Device.objects.active().filter(user=user).count()
        if not plan.allows_device_count(device_count + 1):
            raise DeviceLimitError(
                f"Device limit reached. Your {plan.name} plan allows "
                f"{plan.device_limit} devices.",
                limit=plan.device_limit,
            )

        if Device.objects.active().filter(unique_id=unique_id).exists():
            raise DuplicateDeviceError

        remote = self.client.create_device(name=name, unique_id=unique_id)

        try:
            with transaction.atomic():
                device = Device.objects.create(
                    user=user,
                    traccar_id=remote["id"],
                    name=name,
                    unique_id=unique_id,
                )
        except IntegrityError as e:
            logger.warning(
                "Device %s registered concurrently; removing Traccar device %s",
                unique_id,
                remote["id"],
            )
            try:
                self.client.delete_device(remote["id"])
            except TrackingServiceError:
                logger.exception(
                    "Orphaned Traccar device %s left behind for %s",
                    remote["id"],
                    unique_id,
                )
            raise DuplicateDeviceError from e

        logger.info(
            "User %s added device %s (%s), traccar id %s",
            user.pk,
            device.pk,
            unique_id,
            device.traccar_id,
        )
        return device

    def update_device(self, user: User, device_id, *, name: str) -> Device:
        device = self.get_device(user, device_id)
        self.client.update_device(device.traccar_id, name=name)
        device.name = name
        device.save(update_fields=["name", "modified"])
        return device

    def delete_device(self, user: User, device_id) -> Device:
        return self.deactivate(self.get_device(user, device_id))

    def deactivate(self, device: Device) -> Device:
        """Remove ``device`` from Traccar if possible and soft-delete it here."""
        try:
            self.client.delete_device(device.traccar_id)
        except TrackingServiceError:
            logger.warning(
                "Traccar delete failed for device %s (traccar id %s); "
                "deactivating locally anyway",
                device.pk,
                device.traccar_id,
            )

        device.is_active = False
        device.deleted_at = timezone.now()
        device.save(update_fields=["is_active", "deleted_at", "modified"])
        logger.info("Device %s deactivated", device.pk)
        return device

    def positions(
        self,
        user: User,
        device_id,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[dict]:
        device = self.get_device(user, device_id)
        return self.client.get_positions(device.traccar_id, start, end)

    def report(
        self,
        user: User,
        device_id,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> DeviceReport:
        """Trip summary over a window, by default the last 24 hours."""
        device = self.get_device(user, device_id)
        positions = self.client.get_positions(device.traccar_id, start, end)
        positions = positions[:REPORT_POSITION_LIMIT]
        return DeviceReport(
            device=device,
            summary=summarize_trip(positions),
            positions=positions[:REPORT_POSITIONS_RETURNED],
        )

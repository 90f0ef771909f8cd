"""
Live position sync from the Traccar WebSocket feed.

Traccar pushes JSON messages on ``/api/socket`` of the form::

    {"positions": [{"deviceId": 12, "latitude": ..., "fixTime": ...}],
     "devices": [{"id": 12, "status": "online", ...}]}

Position messages update the device's last-known location; device messages
update its online status and publish ``device_status_changed`` when the
status actually changes. Messages for devices we do not know (or that were
deleted) are ignored.

Run with ``manage.py sync_positions``. The connection is retried every
TRACCAR_RECONNECT_SECONDS after any failure; it never gives up on its own.
"""

from __future__ import annotations

import base64
import json
import logging
import time
from typing import Any

from django.conf import settings
from django.db import DatabaseError
from django.db import close_old_connections
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from websockets.exceptions import WebSocketException
from websockets.sync.client import connect

from tracksub.devices.events import DeviceStatusChanged
from tracksub.devices.events import publish
from tracksub.devices.models import Device
from tracksub.devices.models import DeviceStatus

logger = logging.getLogger(__name__)

POSITION_FIELDS = ("latitude", "longitude", "speed", "course")


def socket_url(base_url: str) -> str:
    """Turn ``http(s)://host`` into ``ws(s)://host/api/socket``."""
    base_url = base_url.rstrip("/")
    if base_url.startswith("https://"):
        base_url = "wss://" + base_url.removeprefix("https://")
    elif base_url.startswith("http://"):
        base_url = "ws://" + base_url.removeprefix("http://")
    return f"{base_url}/api/socket"


class PositionSyncService:
    """
    Usage:
        PositionSyncService().run_forever()
    """

    def __init__(self, *, reconnect_seconds: int | None = None, sleep=time.sleep):
        self.url = socket_url(settings.TRACCAR_URL)
        self.reconnect_seconds = (
            settings.TRACCAR_RECONNECT_SECONDS
            if reconnect_seconds is None
            else reconnect_seconds
        )
        self._sleep = sleep
        self._stopped = False

    def stop(self) -> None:
        self._stopped = True

    def _auth_headers(self) -> dict[str, str]:
        credentials = f"{settings.TRACCAR_USER}:{settings.TRACCAR_PASSWORD}"
        token = base64.b64encode(credentials.encode()).decode()
        return {"Authorization": f"Basic {token}"}

    def run_forever(self, max_connections: int | None = None) -> None:
        """
        Consume the feed, reconnecting after failures.

        ``max_connections`` bounds the number of connection attempts; None
        means run until ``stop()`` is called.
        """
        attempts = 0
        while not self._stopped:
            if max_connections is not None and attempts >= max_connections:
                return
            attempts += 1
            close_old_connections()
            try:
                self.consume_once()
            except (OSError, WebSocketException) as e:
                logger.warning("Traccar socket %s failed: %s", self.url, e)
            except DatabaseError:
                logger.exception("Database error while syncing Traccar positions")
            if self._stopped:
                return
            logger.info("Reconnecting to Traccar in %ss", self.reconnect_seconds)
            self._sleep(self.reconnect_seconds)

    def consume_once(self) -> None:
        """Hold one connection open and process messages until it closes."""
        logger.info("Connecting to Traccar socket %s", self.url)
        with connect(self.url, additional_headers=self._auth_headers()) as websocket:
            logger.info("Connected to Traccar socket")
            for raw in websocket:
                if self._stopped:
                    return
                try:
                    message = json.loads(raw)
                except ValueError:
                    logger.warning("Ignoring non-JSON Traccar message")
                    continue
                if isinstance(message, dict):
                    self.handle_message(message)
        logger.info("Traccar socket closed")

    def handle_message(self, message: dict[str, Any]) -> None:
        """
        Apply every position and device update in one message.

        A malformed entry is logged and skipped. Database errors propagate so
        the connection is dropped and retried.
        """
        for position in message.get("positions") or []:
            try:
                self.apply_position(position)
            except (TypeError, ValueError):
                logger.exception("Skipping malformed Traccar position %r", position)
        for remote in message.get("devices") or []:
            try:
                self.apply_device_status(remote)
            except (TypeError, ValueError):
                logger.exception("Skipping malformed Traccar device %r", remote)

    def apply_position(self, position: dict[str, Any]) -> Device | None:
        device = (
            Device.objects.active().filter(traccar_id=position.get("deviceId")).first()
        )
        if device is None:
            return None

        for name in POSITION_FIELDS:
            value = position.get(name)
            if value is not None:
                setattr(device, name, float(value))
        fix_time = position.get("fixTime") or position.get("deviceTime")
        fixed_at = parse_datetime(fix_time) if fix_time else None
        device.last_update = fixed_at or timezone.now()
        device.save(update_fields=[*POSITION_FIELDS, "last_update", "modified"])
        return device

    def apply_device_status(self, remote: dict[str, Any]) -> Device | None:
        device = Device.objects.active().filter(traccar_id=remote.get("id")).first()
        if device is None:
            return None

        status = remote.get("status")
        if status not in DeviceStatus.values:
            status = DeviceStatus.UNKNOWN
        if status == device.status:
            return device

        previous = device.status
        device.status = status
        device.save(update_fields=["status", "modified"])
        logger.info("Device %s is now %s (was %s)", device.pk, status, previous)
        publish(
            DeviceStatusChanged(
                user_id=device.user_id,
                device_id=device.pk,
                device_name=device.name,
                status=status,
                previous_status=previous,
                changed_at=timezone.now(),
            ),
        )
        return device

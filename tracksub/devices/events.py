"""
Device events.

``device_status_changed`` is sent with ``event=DeviceStatusChanged(...)``
whenever the position feed reports a different online status for a
device than the one we had stored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from django.dispatch import Signal

logger = logging.getLogger(__name__)

device_status_changed = Signal()


@dataclass(frozen=True)
class DeviceStatusChanged:
    user_id: int
    device_id: int
    device_name: str
    status: str
    previous_status: str
    changed_at: datetime


def publish(event: DeviceStatusChanged) -> None:
    for receiver, response in device_status_changed.send_robust(
        sender=DeviceStatusChanged,
        event=event,
    ):
        if isinstance(response, Exception):
            logger.error("Receiver %r failed for device event: %s", receiver, response)

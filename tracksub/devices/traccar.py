"""
REST client for the Traccar tracking server.

Traccar is the system of record for devices and positions; we call it with
the admin account configured in TRACCAR_USER / TRACCAR_PASSWORD. Every
call is bounded by TRACCAR_TIMEOUT_SECONDS and every transport or HTTP
failure surfaces as ``TrackingServiceError``.

Usage:
    client = TraccarClient()
    remote = client.create_device(name="Truck 4", unique_id="356938035643809")
    position = client.get_latest_position(remote["id"])
"""

from __future__ import annotations

import logging
from datetime import UTC
from datetime import datetime
from datetime import timedelta
from typing import Any

import httpx
from django.conf import settings

from tracksub.devices.exceptions import TrackingServiceError

logger = logging.getLogger(__name__)

DEFAULT_POSITION_WINDOW = timedelta(hours=24)


def _isoformat(value: datetime) -> str:
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


class TraccarClient:
    def __init__(
        self,
        *,
        base_url: str | None = None,
        username: str | None = None,
        password: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        base_url = (base_url or settings.TRACCAR_URL).rstrip("/")
        self._client = httpx.Client(
            base_url=f"{base_url}/api",
            auth=(
                username or settings.TRACCAR_USER,
                password or settings.TRACCAR_PASSWORD,
            ),
            timeout=timeout or settings.TRACCAR_TIMEOUT_SECONDS,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> TraccarClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.warning("Traccar %s %s timed out", method, path)
            raise TrackingServiceError(
                "Tracking service did not respond in time.",
                code="tracking_service_timeout",
            ) from e
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Traccar %s %s failed: HTTP %s %s",
                method,
                path,
                e.response.status_code,
                e.response.text[:200],
            )
            raise TrackingServiceError(
                f"Tracking service returned HTTP {e.response.status_code}.",
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Traccar %s %s failed: %s", method, path, e)
            raise TrackingServiceError from e

        if response.status_code == httpx.codes.NO_CONTENT or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TrackingServiceError("Tracking service returned invalid JSON.") from e

    # Devices

    def get_devices(self) -> list[dict]:
        return self._request("GET", "/devices") or []

    def get_device(self, traccar_id: int) -> dict:
        # /devices/{id} is not available on every Traccar version; the
        # filtered list endpoint is.
        devices = self._request("GET", "/devices", params={"id": traccar_id}) or []
        if not devices:
            raise TrackingServiceError(
                f"Device {traccar_id} not found on tracking service.",
                code="tracking_device_not_found",
            )
        return devices[0]

    def create_device(self, *, name: str, unique_id: str) -> dict:
        device = self._request(
            "POST",
            "/devices",
            json={"name": name, "uniqueId": unique_id},
        )
        if not isinstance(device, dict) or "id" not in device:
            raise TrackingServiceError("Tracking service did not return a device id.")
        logger.info("Created Traccar device %s (%s)", device["id"], unique_id)
        return device

    def update_device(self, traccar_id: int, **fields: Any) -> dict:
        current = self.get_device(traccar_id)
        return self._request(
            "PUT",
            f"/devices/{traccar_id}",
            json={**current, **fields},
        )

    def delete_device(self, traccar_id: int) -> None:
        self._request("DELETE", f"/devices/{traccar_id}")
        logger.info("Deleted Traccar device %s", traccar_id)

    # Positions

    def get_positions(
        self,
        traccar_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[dict]:
        """Positions for one device; defaults to the last 24 hours."""
        end = end or datetime.now(tz=UTC)
        start = start or end - DEFAULT_POSITION_WINDOW
        return (
            self._request(
                "GET",
                "/positions",
                params={
                    "deviceId": traccar_id,
                    "from": _isoformat(start),
                    "to": _isoformat(end),
                },
            )
            or []
        )

    def get_latest_position(self, traccar_id: int) -> dict | None:
        positions = self.get_positions(traccar_id)
        return positions[-1] if positions else None

    # Server

    def get_device_stats(self) -> dict[str, int]:
        """Counts of devices the tracking server knows, by online status."""
        devices = self.get_devices()
        online = sum(1 for device in devices if device.get("status") == "online")
        return {
            "total": len(devices),
            "online": online,
            "offline": len(devices) - online,
        }

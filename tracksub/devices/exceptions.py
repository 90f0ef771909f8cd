"""
Device registry exceptions.

Same shape as ``tracksub.billing.exceptions``: a ``detail``, a ``code`` and
the HTTP ``status_code`` the API answers with.
"""

from __future__ import annotations

from http import HTTPStatus


class DeviceError(Exception):
    """Base exception for device registry errors."""

    status_code = HTTPStatus.BAD_REQUEST

    def __init__(self, detail: str, code: str = "device_error"):
        self.detail = detail
        self.code = code
        super().__init__(detail)


class DuplicateDeviceError(DeviceError):
    status_code = HTTPStatus.CONFLICT

    def __init__(self, detail: str = "Device with this unique ID already exists."):
        super().__init__(detail, code="duplicate_device")


class DeviceNotFoundError(DeviceError):
    status_code = HTTPStatus.NOT_FOUND

    def __init__(self, detail: str = "Device not found."):
        super().__init__(detail, code="device_not_found")


class TrackingServiceError(DeviceError):
    """Raised when the tracking server cannot be reached or rejects a call."""

    status_code = HTTPStatus.BAD_GATEWAY

    def __init__(
        self,
        detail: str = "Tracking service is unavailable.",
        code: str = "tracking_service_error",
    ):
        super().__init__(detail, code=code)

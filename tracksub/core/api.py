"""
DRF exception handler for domain errors.

Billing and device services raise exceptions carrying ``detail``, ``code``
and ``status_code`` instead of returning HTTP responses. This handler turns
them into the same ``{"detail": ..., "code": ...}`` shape DRF uses for its
own errors, so views can let them propagate.

Configured via REST_FRAMEWORK["EXCEPTION_HANDLER"].
"""

from __future__ import annotations

import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from tracksub.billing.exceptions import BillingError
from tracksub.devices.exceptions import DeviceError

logger = logging.getLogger(__name__)

DOMAIN_ERRORS = (BillingError, DeviceError)


def exception_handler(exc, context):
    if isinstance(exc, DOMAIN_ERRORS):
        view = context.get("view")
        logger.info(
            "%s in %s: %s",
            type(exc).__name__,
            type(view).__name__ if view else "unknown view",
            exc.detail,
        )
        return Response(
            {"detail": exc.detail, "code": exc.code},
            status=exc.status_code,
        )
    return drf_exception_handler(exc, context)

"""
Order and invoice identifiers.

Order ids are the correlation key every gateway echoes back to us, so they
are generated locally and never depend on a gateway response. Invoice
numbers follow ``INV-YYYY-MM-NNNNNN`` with a counter that restarts each
month.
"""

from __future__ import annotations

import logging
import secrets
import time
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db import IntegrityError
from django.db import transaction
from django.utils import timezone

from tracksub.billing.models import InvoiceSequence
from tracksub.billing.models import Plan

if TYPE_CHECKING:
    from datetime import datetime

    from tracksub.billing.models import Payment
    from tracksub.users.models import User

logger = logging.getLogger(__name__)

INVOICE_PREFIX = "INV"
INVOICE_SEQUENCE_WIDTH = 6
CENTS = Decimal("0.01")


def generate_order_id(user: User) -> str:
    """
    Build a new order id: ``ORDER_<epoch-ms>_<user suffix>_<random hex>``.

    The random suffix keeps two orders created by the same user in the same
    millisecond apart; the unique constraint on Payment.order_id is the
    final guard.
    """
    millis = int(time.time() * 1000)
    user_suffix = str(user.pk)[-6:]
    return f"ORDER_{millis}_{user_suffix}_{secrets.token_hex(2).upper()}"


def next_invoice_number(now: datetime | None = None) -> str:
    """
    Allocate the next invoice number for the month containing ``now``.

    The month's counter row is locked for the duration of the increment.
    """
    now = now or timezone.now()
    period = now.strftime("%Y-%m")

    with transaction.atomic():
        sequence = _lock_sequence(period)
        sequence.last_value += 1
        sequence.save(update_fields=["last_value"])
        value = sequence.last_value

    return f"{INVOICE_PREFIX}-{period}-{value:0{INVOICE_SEQUENCE_WIDTH}d}"


def _lock_sequence(period: str) -> InvoiceSequence:
    try:
        return InvoiceSequence.objects.select_for_update().get(period=period)
    except InvoiceSequence.DoesNotExist:
        pass

    try:
        with transaction.atomic():
            return InvoiceSequence.objects.create(period=period)
    except IntegrityError:
        # Another request created the month's row first.
        logger.debug("Invoice sequence %s created concurrently, retrying", period)
        return InvoiceSequence.objects.select_for_update().get(period=period)


def format_amount(value: Decimal | None) -> str:
    """Render a money total with two decimals, whatever the database returned."""
    return str(Decimal(value or 0).quantize(CENTS))


def describe_order(plan: Plan) -> str:
    return f"{plan.name} Subscription"


def build_invoice(payment: Payment) -> dict:
    """
    Assemble the invoice document for a payment.

    The plan is looked up from the order metadata; a plan that has since
    been removed from the catalog leaves ``plan`` as None rather than
    failing the invoice.
    """
    plan = Plan.objects.lookup(payment.metadata_plan_id)

    user = payment.user
    return {
        "invoiceNumber": payment.invoice_number,
        "orderId": payment.order_id,
        "amount": str(payment.amount),
        "currency": payment.currency,
        "status": payment.status,
        "gateway": payment.gateway,
        "description": payment.description,
        "transactionId": payment.transaction_id or None,
        "createdAt": payment.created.isoformat(),
        "completedAt": (
            payment.completed_at.isoformat() if payment.completed_at else None
        ),
        "customer": {
            "id": user.pk,
            "name": user.name,
            "email": user.email,
        },
        "plan": (
            {
                "id": str(plan.pk),
                "name": plan.name,
                "deviceLimit": plan.device_limit,
                "durationDays": plan.duration_days,
            }
            if plan
            else None
        ),
        "metadata": payment.metadata,
    }

"""
Management command to delete old failed and cancelled payments.

PENDING and COMPLETED payments are never deleted; completed rows are the
invoice record.

Usage:
    python manage.py cleanup_payments
    python manage.py cleanup_payments --days 30
"""

from django.conf import settings
from django.core.management.base import BaseCommand

from tracksub.billing.services import PaymentService


class Command(BaseCommand):
    help = "Delete FAILED and CANCELLED payments older than the retention window."

    def add_arguments(self, parser):
        parser.add_argument(
            "--days",
            type=int,
            default=None,
            help="Retention window in days (default: PAYMENT_RETENTION_DAYS)",
        )

    def handle(self, *args, **options):
        days = options["days"]
        if days is None:
            days = settings.PAYMENT_RETENTION_DAYS

        deleted = PaymentService().cleanup_old_payments(days)
        if deleted == 0:
            self.stdout.write(self.style.SUCCESS("No old payments to delete."))
            return
        self.stdout.write(
            self.style.SUCCESS(f"Deleted {deleted} payment(s) older than {days} days."),
        )

"""
Management command to email users whose subscription ends soon.

Usage:
    python manage.py send_expiry_reminders
    python manage.py send_expiry_reminders --days 3
"""

from django.core.management.base import BaseCommand

from tracksub.notifications.services import send_expiry_reminders


class Command(BaseCommand):
    help = "Email subscribers whose ACTIVE subscription ends within N days."

    def add_arguments(self, parser):
        parser.add_argument(
            "--days",
            type=int,
            default=None,
            help="Reminder window in days (default: SUBSCRIPTION_REMINDER_DAYS)",
        )

    def handle(self, *args, **options):
        run = send_expiry_reminders(days=options["days"])
        message = (
            f"Sent {run.sent} reminder(s); {run.skipped} already reminded, "
            f"{run.failed} failed."
        )
        if run.failed:
            self.stdout.write(self.style.WARNING(message))
        else:
            self.stdout.write(self.style.SUCCESS(message))

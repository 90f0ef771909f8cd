"""
Management command to expire subscriptions whose end date has passed.

Moves ACTIVE subscriptions with end_date < now to EXPIRED and publishes
a subscription_changed event for each.

Usage:
    python manage.py expire_subscriptions
    python manage.py expire_subscriptions --dry-run
"""

from django.core.management.base import BaseCommand
from django.utils import timezone

from tracksub.billing.constants import SubscriptionStatus
from tracksub.billing.models import Subscription
from tracksub.billing.services import SubscriptionService


class Command(BaseCommand):
    help = "Mark overdue ACTIVE subscriptions as EXPIRED."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show how many would expire without changing anything",
        )

    def handle(self, *args, **options):
        if options["dry_run"]:
            count = Subscription.objects.filter(
                status=SubscriptionStatus.ACTIVE,
                end_date__lt=timezone.now(),
            ).count()
            self.stdout.write(
                self.style.WARNING(f"[DRY RUN] Would expire {count} subscription(s)."),
            )
            return

        count = SubscriptionService().expire_overdue()
        self.stdout.write(self.style.SUCCESS(f"Expired {count} subscription(s)."))

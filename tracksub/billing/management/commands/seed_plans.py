"""
Management command to seed the subscription plan catalog.

Creates the three plans (Free, Basic, Premium). Existing plans are left
alone unless ``--force`` is given.

Usage:
    python manage.py seed_plans
    python manage.py seed_plans --force      # Update existing plan limits
"""

from decimal import Decimal

from django.core.management.base import BaseCommand

from tracksub.billing.models import Plan

PLAN_CONFIG = {
    "Free": {
        "description": "Track a single device. Assigned to every new account.",
        "device_limit": 1,
        "duration_days": 30,
        "price": Decimal("0.00"),
    },
    "Basic": {
        "description": "For small fleets and families: up to 5 devices.",
        "device_limit": 5,
        "duration_days": 30,
        "price": Decimal("299.99"),
    },
    "Premium": {
        "description": "For businesses tracking up to 20 vehicles or assets.",
        "device_limit": 20,
        "duration_days": 30,
        "price": Decimal("799.99"),
    },
}


class Command(BaseCommand):
    help = "Seed subscription plans (Free, Basic, Premium)."

    def add_arguments(self, parser):
        parser.add_argument(
            "--force",
            action="store_true",
            help="Update existing plans with latest configuration",
        )

    def handle(self, *args, **options):
        force_update = options["force"]

        for name, config in PLAN_CONFIG.items():
            plan, created = Plan.objects.get_or_create(name=name, defaults=config)

            if created:
                self.stdout.write(self.style.SUCCESS(f"  Created: {plan.name}"))
            elif force_update:
                for field, value in config.items():
                    setattr(plan, field, value)
                plan.save()
                self.stdout.write(self.style.SUCCESS(f"  Updated: {plan.name}"))
            else:
                self.stdout.write(
                    f"  Exists: {plan.name} (use --force to update limits)",
                )

        self.stdout.write(f"{Plan.objects.active().count()} active plan(s).")

from __future__ import annotations

from django.conf import settings
from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from tracksub.billing.services import SubscriptionService


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def assign_free_subscription(sender, instance, created, **kwargs):
    if not created:
        return
    transaction.on_commit(
        lambda: SubscriptionService().create_initial_subscription(instance),
    )

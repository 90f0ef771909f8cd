from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _
from model_utils.models import TimeStampedModel


class NotificationKind(models.TextChoices):
    SUBSCRIPTION_UPDATE = "subscription_update", _("Subscription update")
    PAYMENT_UPDATE = "payment_update", _("Payment update")
    DEVICE_STATUS = "device_status", _("Device status")
    EXPIRY_REMINDER = "expiry_reminder", _("Expiry reminder")


class Notification(TimeStampedModel):
    """One entry in a user's notification feed."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
    )
    kind = models.CharField(max_length=32, choices=NotificationKind.choices)
    title = models.CharField(max_length=255)
    message = models.TextField(blank=True, default="")
    data = models.JSONField(default=dict, blank=True)
    read_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created"]
        indexes = [
            models.Index(
                fields=["user", "read_at"],
                name="notification_user_read_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.user}: {self.title}"

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def mark_read(self) -> None:
        if self.read_at is None:
            self.read_at = timezone.now()
            self.save(update_fields=["read_at", "modified"])

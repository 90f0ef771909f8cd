from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import CharField
from django.utils.translation import gettext_lazy as _


class User(AbstractUser):
    """
    Default custom user model for Tracksub.

    Accounts are created through the registration API, which uses the email
    address as the username. Every user owns at most one Subscription
    (``user.subscription``) and any number of Devices (``user.devices``).
    """

    # First and last name do not cover name patterns around the globe
    name = CharField(_("Name of User"), blank=True, max_length=255)
    email = models.EmailField(_("email address"), unique=True)

    def __str__(self) -> str:
        return self.email or self.username

from dataclasses import dataclass
from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from tracksub.billing.models import Plan
from tracksub.billing.tests.factories import FreePlanFactory
from tracksub.billing.tests.factories import PlanFactory
from tracksub.billing.tests.factories import SubscriptionFactory
from tracksub.users.models import User
from tracksub.users.tests.factories import StaffUserFactory
from tracksub.users.tests.factories import UserFactory


@dataclass
class Catalog:
    free: Plan
    basic: Plan
    premium: Plan


@pytest.fixture
def plans(db) -> Catalog:
    """The seeded catalog: Free (1 device), Basic (5), Premium (20)."""
    return Catalog(
        free=FreePlanFactory(),
        basic=PlanFactory(name="Basic", device_limit=5, price=Decimal("299.99")),
        premium=PlanFactory(name="Premium", device_limit=20, price=Decimal("799.99")),
    )


@pytest.fixture
def user(db) -> User:
    return UserFactory()


@pytest.fixture
def staff_user(db) -> User:
    return StaffUserFactory()


@pytest.fixture
def subscribed_user(plans, user) -> User:
    """A user on the Free plan, as registration leaves them."""
    SubscriptionFactory(user=user, plan=plans.free)
    return user


@pytest.fixture
def api_client() -> APIClient:
    return APIClient()


@pytest.fixture
def auth_client(api_client, user) -> APIClient:
    api_client.force_authenticate(user=user)
    return api_client


@pytest.fixture
def staff_client(staff_user) -> APIClient:
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client

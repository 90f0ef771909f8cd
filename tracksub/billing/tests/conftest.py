import pytest

from tracksub.billing.events import payment_updated
from tracksub.billing.events import subscription_changed


@pytest.fixture
def captured_events():
    """Collect every billing event published during the test."""
    events = []

    def receiver(sender, event, **kwargs):
        events.append(event)

    subscription_changed.connect(receiver, weak=False)
    payment_updated.connect(receiver, weak=False)
    yield events
    subscription_changed.disconnect(receiver)
    payment_updated.disconnect(receiver)

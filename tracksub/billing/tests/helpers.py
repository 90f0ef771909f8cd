"""Signing helpers shared by the gateway and callback tests."""

import hashlib
import hmac
import json
import time

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from tracksub.billing.gateways.telebirr import sign_fields

STRIPE_TEST_WEBHOOK_SECRET = "whsec_dummy_test_secret"


def stripe_signature(payload: bytes, secret: str = STRIPE_TEST_WEBHOOK_SECRET) -> str:
    """Build a Stripe-Signature header the way Stripe does."""
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def stripe_event(event_type: str, session: dict) -> bytes:
    return json.dumps(
        {
            "id": "evt_test",
            "object": "event",
            "type": event_type,
            "data": {"object": {"object": "checkout.session", **session}},
        },
    ).encode()


def generate_rsa_keypair() -> tuple[str, str]:
    """Return (private_pem, public_pem) for a fresh 2048-bit key."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    public_pem = (
        key.public_key()
        .public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode()
    )
    return private_pem, public_pem


TELEBIRR_PRIVATE_KEY, TELEBIRR_PUBLIC_KEY = generate_rsa_keypair()


def telebirr_notification(
    private_key: str = TELEBIRR_PRIVATE_KEY,
    **fields: str,
) -> bytes:
    """A signed Telebirr notify body (JSON)."""
    body = {
        "appid": "test-app-id",
        "merch_code": "test-merchant",
        "notify_time": "1760868000000",
        "trade_status": "Completed",
        "transaction_id": "TB123456",
        "total_amount": "299.99",
        **fields,
    }
    body["sign"] = sign_fields(body, private_key)
    body["sign_type"] = "SHA256WithRSA"
    return json.dumps(body).encode()

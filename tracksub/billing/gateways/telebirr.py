"""
Telebirr mobile-money checkout.

Payment flow:
    1. Exchange our app credentials for a fabric token.
    2. Create a preorder for the payment. The request fields are sorted by
       key, joined as ``k=v&k=v``, signed with our RSA private key
       (SHA256, PKCS#1 v1.5) and sent with the signature attached.
    3. Send the user to ``TELEBIRR_CHECKOUT_URL?prepay_id=...``.
    4. Telebirr POSTs the outcome to ``TELEBIRR_NOTIFY_URL``; the callback
       is signed the same way with Telebirr's key and verified here
       against ``TELEBIRR_PUBLIC_KEY`` before anything is applied.
"""

from __future__ import annotations

import base64
import json
import logging
import secrets
from decimal import Decimal
from decimal import InvalidOperation
from typing import TYPE_CHECKING
from typing import Any
from urllib.parse import parse_qsl
from urllib.parse import urlencode

import httpx
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import padding
from django.conf import settings
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import ValidationError

from tracksub.billing.constants import PaymentGatewayChoice
from tracksub.billing.exceptions import CallbackVerificationError
from tracksub.billing.exceptions import GatewayError
from tracksub.billing.exceptions import GatewayNotConfiguredError
from tracksub.billing.gateways.base import CheckoutSession
from tracksub.billing.gateways.base import GatewayCallback
from tracksub.billing.gateways.base import PaymentGateway

if TYPE_CHECKING:
    from collections.abc import Mapping

    from tracksub.billing.models import Payment
    from tracksub.billing.models import Plan

logger = logging.getLogger(__name__)

TOKEN_PATH = "/payment/v1/token"
PREORDER_PATH = "/payment/v1/merchant/preOrder"

SIGNATURE_FIELDS = frozenset({"sign", "sign_type"})
ACCEPTED_SIGN_TYPES = frozenset({"RSA", "SHA256WithRSA"})
SUCCESS_TRADE_STATUSES = frozenset({"TRADE_SUCCESS", "Completed"})

# Orders left unpaid at Telebirr expire after this long.
PREORDER_TIMEOUT = "30m"


class TelebirrCallback(BaseModel):
    """
    Notification body Telebirr posts to our notify URL.

    Uses ``extra="allow"`` because Telebirr signs every field it sends,
    including ones we do not read, and all of them go into the verified
    string.
    """

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    out_trade_no: str = ""
    trade_status: str = ""
    transaction_id: str = ""
    total_amount: str = ""
    sign: str = ""
    sign_type: str = ""


def build_sign_string(fields: Mapping[str, Any]) -> str:
    """Sort ``fields`` by key and join as ``k=v&...``, skipping signature fields."""
    return "&".join(
        f"{key}={fields[key]}"
        for key in sorted(fields)
        if key not in SIGNATURE_FIELDS
    )


def sign_fields(fields: Mapping[str, Any], private_key_pem: str) -> str:
    """Return the base64 RSA-SHA256 signature over ``fields``."""
    private_key = serialization.load_pem_private_key(
        private_key_pem.encode(),
        password=None,
    )
    signature = private_key.sign(
        build_sign_string(fields).encode(),
        padding.PKCS1v15(),
        hashes.SHA256(),
    )
    return base64.b64encode(signature).decode()


def verify_fields(
    fields: Mapping[str, Any],
    signature: str,
    public_key_pem: str,
) -> bool:
    """Check a base64 RSA-SHA256 ``signature`` over ``fields``."""
    try:
        public_key = serialization.load_pem_public_key(public_key_pem.encode())
        signature_bytes = base64.b64decode(signature, validate=True)
    except ValueError:
        logger.exception("Could not load Telebirr public key or decode signature")
        return False

    try:
        public_key.verify(
            signature_bytes,
            build_sign_string(fields).encode(),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
    except InvalidSignature:
        return False
    return True


def _field_text(value: Any, plain: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(plain, separators=(",", ":"), ensure_ascii=False)


def parse_callback_body(raw_body: bytes, content_type: str = "") -> dict[str, str]:
    """
    Decode a Telebirr callback body into a flat dict of strings.

    Top-level JSON numbers keep their exact textual form so the signed string
    matches what Telebirr signed. Booleans and nested values are rendered as
    compact JSON.
    """
    text = raw_body.decode("utf-8")
    if "json" in content_type or text.lstrip().startswith("{"):
        data = json.loads(text, parse_float=str, parse_int=str)
        if not isinstance(data, dict):
            msg = "Telebirr callback body is not an object"
            raise ValueError(msg)
        plain = json.loads(text)
        return {key: _field_text(value, plain[key]) for key, value in data.items()}
    return dict(parse_qsl(text, keep_blank_values=True))


class TelebirrGateway(PaymentGateway):
    name = PaymentGatewayChoice.TELEBIRR

    def __init__(self, transport: httpx.BaseTransport | None = None):
        self._transport = transport

    @property
    def base_url(self) -> str:
        if settings.TELEBIRR_MODE == "production":
            return settings.TELEBIRR_PRODUCTION_URL.rstrip("/")
        return settings.TELEBIRR_SANDBOX_URL.rstrip("/")

    def _http(self) -> httpx.Client:
        return httpx.Client(
            timeout=settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS,
            headers={"Content-Type": "application/json"},
            transport=self._transport,
        )

    def _post(
        self,
        client: httpx.Client,
        path: str,
        payload: dict,
        headers: dict | None = None,
    ) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = client.post(url, json=payload, headers=headers or {})
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            logger.warning("Telebirr request to %s timed out", path)
            raise GatewayError(
                "Telebirr did not respond in time.",
                code="gateway_timeout",
            ) from e
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Telebirr request to %s failed: HTTP %s",
                path,
                e.response.status_code,
            )
            status_code = e.response.status_code
            raise GatewayError(f"Telebirr returned HTTP {status_code}.") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Telebirr request to %s failed: %s", path, e)
            raise GatewayError("Could not reach Telebirr.") from e

    def _require_credentials(self) -> None:
        required = {
            "TELEBIRR_APP_ID": settings.TELEBIRR_APP_ID,
            "TELEBIRR_APP_KEY": settings.TELEBIRR_APP_KEY,
            "TELEBIRR_MERCHANT_ID": settings.TELEBIRR_MERCHANT_ID,
            "TELEBIRR_PRIVATE_KEY": settings.TELEBIRR_PRIVATE_KEY,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            logger.error("Telebirr is missing settings: %s", ", ".join(missing))
            raise GatewayNotConfiguredError("Telebirr is not configured.")

    def get_fabric_token(self, client: httpx.Client) -> str:
        data = self._post(
            client,
            TOKEN_PATH,
            {"appSecret": settings.TELEBIRR_APP_KEY},
            headers={"X-APP-Key": settings.TELEBIRR_APP_ID},
        )
        token = data.get("token") or data.get("fabricToken")
        if not token:
            logger.warning("Telebirr token response had no token: %s", data.get("msg"))
            raise GatewayError("Telebirr did not issue a fabric token.")
        return token

    def create_checkout_session(
        self,
        *,
        payment: Payment,
        plan: Plan,
        customer_email: str,
        return_url: str,
        cancel_url: str,
        embedded: bool = False,
    ) -> CheckoutSession:
        self._require_credentials()

        order = {
            "appid": settings.TELEBIRR_APP_ID,
            "merch_code": settings.TELEBIRR_MERCHANT_ID,
            "nonce_str": secrets.token_hex(16),
            "out_trade_no": payment.order_id,
            "subject": f"GPS Tracking Subscription - {plan.name}",
            "total_amount": f"{payment.amount:.2f}",
            "trans_currency": payment.currency,
            "notify_url": settings.TELEBIRR_NOTIFY_URL,
            "return_url": return_url,
            "cancel_url": cancel_url,
            "timeout_express": PREORDER_TIMEOUT,
        }
        request_body = {
            **order,
            "sign": sign_fields(order, settings.TELEBIRR_PRIVATE_KEY),
            "sign_type": "SHA256WithRSA",
        }

        with self._http() as client:
            fabric_token = self.get_fabric_token(client)
            data = self._post(
                client,
                PREORDER_PATH,
                request_body,
                headers={
                    "X-APP-Key": settings.TELEBIRR_APP_ID,
                    "Authorization": fabric_token,
                },
            )
        prepay_id = (data.get("biz_content") or {}).get("prepay_id")
        if not prepay_id:
            logger.warning(
                "Telebirr preorder for %s returned no prepay_id: %s",
                payment.order_id,
                data.get("msg"),
            )
            raise GatewayError("Telebirr did not accept the order.")

        query = urlencode({"prepay_id": prepay_id})
        checkout_url = f"{settings.TELEBIRR_CHECKOUT_URL}?{query}"
        logger.info(
            "Created Telebirr preorder %s for order %s",
            prepay_id,
            payment.order_id,
        )
        return CheckoutSession(session_id=prepay_id, checkout_url=checkout_url)

    def verify_callback(
        self,
        raw_body: bytes,
        headers: Mapping[str, str],
    ) -> GatewayCallback | None:
        public_key = settings.TELEBIRR_PUBLIC_KEY
        if not public_key:
            logger.error("Rejecting Telebirr callback: TELEBIRR_PUBLIC_KEY is not set")
            raise CallbackVerificationError("Telebirr public key is not configured.")

        try:
            fields = parse_callback_body(raw_body, headers.get("Content-Type", ""))
            callback = TelebirrCallback.model_validate(fields)
        except (UnicodeDecodeError, ValueError, ValidationError) as e:
            raise CallbackVerificationError("Invalid Telebirr payload.") from e

        if callback.sign_type not in ACCEPTED_SIGN_TYPES:
            raise CallbackVerificationError(
                f"Unsupported Telebirr sign_type {callback.sign_type!r}.",
            )
        if not callback.sign:
            raise CallbackVerificationError("Missing Telebirr signature.")
        if not verify_fields(fields, callback.sign, public_key):
            raise CallbackVerificationError("Invalid Telebirr signature.")

        try:
            amount = Decimal(callback.total_amount) if callback.total_amount else None
        except InvalidOperation:
            amount = None

        return GatewayCallback(
            gateway=self.name,
            order_id=callback.out_trade_no,
            succeeded=callback.trade_status in SUCCESS_TRADE_STATUSES,
            gateway_status=callback.trade_status,
            transaction_id=callback.transaction_id,
            plan_id=fields.get("plan_id", ""),
            amount=amount,
            payload=fields,
        )

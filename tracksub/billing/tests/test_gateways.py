"""
Tests for the payment gateway adapters.

Stripe webhooks are signed with the test webhook secret exactly as Stripe
signs them; Stripe's API is mocked. Telebirr callbacks are signed with a
key pair generated for the test run and Telebirr's API is served by an
httpx MockTransport.
"""

import json
from decimal import Decimal
from unittest.mock import MagicMock
from unittest.mock import patch

import httpx
import pytest
import stripe

from tracksub.billing.exceptions import BillingError
from tracksub.billing.exceptions import CallbackVerificationError
from tracksub.billing.exceptions import CheckoutCompletedError
from tracksub.billing.exceptions import GatewayError
from tracksub.billing.exceptions import GatewayNotConfiguredError
from tracksub.billing.gateways import get_gateway
from tracksub.billing.gateways.stripe_gateway import StripeGateway
from tracksub.billing.gateways.stripe_gateway import to_minor_units
from tracksub.billing.gateways.telebirr import PREORDER_PATH
from tracksub.billing.gateways.telebirr import TOKEN_PATH
from tracksub.billing.gateways.telebirr import TelebirrGateway
from tracksub.billing.gateways.telebirr import build_sign_string
from tracksub.billing.gateways.telebirr import parse_callback_body
from tracksub.billing.gateways.telebirr import sign_fields
from tracksub.billing.gateways.telebirr import verify_fields
from tracksub.billing.tests.factories import PaymentFactory
from tracksub.billing.tests.factories import PlanFactory
from tracksub.billing.tests.helpers import STRIPE_TEST_WEBHOOK_SECRET
from tracksub.billing.tests.helpers import TELEBIRR_PRIVATE_KEY
from tracksub.billing.tests.helpers import TELEBIRR_PUBLIC_KEY
from tracksub.billing.tests.helpers import generate_rsa_keypair
from tracksub.billing.tests.helpers import stripe_event
from tracksub.billing.tests.helpers import stripe_signature
from tracksub.billing.tests.helpers import telebirr_notification


def test_get_gateway_rejects_unknown_name():
    with pytest.raises(BillingError) as exc_info:
        get_gateway("paypal")
    assert exc_info.value.code == "unsupported_gateway"


def test_to_minor_units_rounds_half_up():
    assert to_minor_units(Decimal("299.99")) == 29999
    assert to_minor_units(Decimal("0.005")) == 1


# =============================================================================
# Stripe
# =============================================================================


@pytest.fixture
def stripe_settings(settings):
    settings.STRIPE_SECRET_KEY = "sk_test_dummy_test_key_for_testing"
    settings.STRIPE_WEBHOOK_SECRET = STRIPE_TEST_WEBHOOK_SECRET
    return settings


@pytest.mark.django_db
class TestStripeCheckout:
    @patch("stripe.checkout.Session.create")
    def test_hosted_checkout_returns_url(self, mock_create, stripe_settings):
        mock_create.return_value = MagicMock(
            id="cs_test_1",
            url="https://checkout.stripe.com/c/pay/cs_test_1",
        )
        plan = PlanFactory(name="Basic")
        payment = PaymentFactory(plan=plan)

        session = StripeGateway().create_checkout_session(
            payment=payment,
            plan=plan,
            customer_email="owner@example.com",
            return_url="http://frontend.testserver/payment/success",
            cancel_url="http://frontend.testserver/payment/cancel",
        )

        assert session.session_id == "cs_test_1"
        assert session.checkout_url == "https://checkout.stripe.com/c/pay/cs_test_1"
        params = mock_create.call_args.kwargs
        assert params["mode"] == "payment"
        assert params["client_reference_id"] == payment.order_id
        assert params["metadata"]["orderId"] == payment.order_id
        assert params["metadata"]["planId"] == str(plan.pk)
        assert params["line_items"][0]["price_data"]["unit_amount"] == 29999
        assert params["success_url"] == "http://frontend.testserver/payment/success"
        assert "ui_mode" not in params

    @patch("stripe.checkout.Session.create")
    def test_embedded_checkout_returns_client_secret(
        self,
        mock_create,
        stripe_settings,
    ):
        mock_create.return_value = MagicMock(id="cs_test_2", client_secret="cs_sec")
        plan = PlanFactory()
        payment = PaymentFactory(plan=plan)

        session = StripeGateway().create_checkout_session(
            payment=payment,
            plan=plan,
            customer_email="owner@example.com",
            return_url="http://frontend.testserver/payment/success",
            cancel_url="http://frontend.testserver/payment/cancel",
            embedded=True,
        )

        assert session.client_secret == "cs_sec"
        assert session.checkout_url == ""
        params = mock_create.call_args.kwargs
        assert params["ui_mode"] == "embedded"
        assert params["return_url"] == "http://frontend.testserver/payment/success"
        assert "success_url" not in params

    @patch("stripe.checkout.Session.create")
    def test_stripe_error_becomes_gateway_error(self, mock_create, stripe_settings):
        mock_create.side_effect = stripe.APIConnectionError("network down")
        plan = PlanFactory()

        with pytest.raises(GatewayError):
            StripeGateway().create_checkout_session(
                payment=PaymentFactory(plan=plan),
                plan=plan,
                customer_email="owner@example.com",
                return_url="http://frontend.testserver/ok",
                cancel_url="http://frontend.testserver/cancel",
            )

    def test_missing_secret_key(self, settings):
        settings.STRIPE_SECRET_KEY = ""
        plan = PlanFactory()
        with pytest.raises(GatewayNotConfiguredError):
            StripeGateway().create_checkout_session(
                payment=PaymentFactory(plan=plan),
                plan=plan,
                customer_email="owner@example.com",
                return_url="http://frontend.testserver/ok",
                cancel_url="http://frontend.testserver/cancel",
            )


class TestStripeSessionClose:
    @patch("stripe.checkout.Session.expire")
    def test_open_session_is_expired(self, mock_expire, stripe_settings):
        StripeGateway().close_checkout_session("cs_test_1")

        mock_expire.assert_called_once_with("cs_test_1")

    @patch("stripe.checkout.Session.retrieve")
    @patch("stripe.checkout.Session.expire")
    def test_paid_session_refuses_close(
        self,
        mock_expire,
        mock_retrieve,
        stripe_settings,
    ):
        mock_expire.side_effect = stripe.InvalidRequestError(
            "Only open sessions can be expired.",
            "session",
        )
        mock_retrieve.return_value = MagicMock(status="complete")

        with pytest.raises(CheckoutCompletedError):
            StripeGateway().close_checkout_session("cs_test_1")

    @patch("stripe.checkout.Session.retrieve")
    @patch("stripe.checkout.Session.expire")
    def test_already_expired_session_is_fine(
        self,
        mock_expire,
        mock_retrieve,
        stripe_settings,
    ):
        mock_expire.side_effect = stripe.InvalidRequestError(
            "Only open sessions can be expired.",
            "session",
        )
        mock_retrieve.return_value = MagicMock(status="expired")

        StripeGateway().close_checkout_session("cs_test_1")

        mock_retrieve.assert_called_once_with("cs_test_1")

    @patch("stripe.checkout.Session.expire")
    def test_network_error_becomes_gateway_error(self, mock_expire, stripe_settings):
        mock_expire.side_effect = stripe.APIConnectionError("network down")

        with pytest.raises(GatewayError):
            StripeGateway().close_checkout_session("cs_test_1")

    def test_telebirr_has_nothing_to_close(self):
        TelebirrGateway().close_checkout_session("tb_prepay_1")


class TestStripeWebhookVerification:
    def _verify(self, payload: bytes, signature: str | None = None):
        headers = {"Stripe-Signature": signature or stripe_signature(payload)}
        return StripeGateway().verify_callback(payload, headers)

    def test_paid_session_is_success(self, stripe_settings):
        payload = stripe_event(
            "checkout.session.completed",
            {
                "id": "cs_test_1",
                "payment_status": "paid",
                "payment_intent": "pi_123",
                "client_reference_id": "ORDER_1",
                "amount_total": 29999,
                "metadata": {"orderId": "ORDER_1", "planId": "plan-uuid"},
            },
        )

        callback = self._verify(payload)

        assert callback.succeeded
        assert callback.order_id == "ORDER_1"
        assert callback.transaction_id == "pi_123"
        assert callback.plan_id == "plan-uuid"
        assert callback.amount == Decimal("299.99")

    def test_order_id_falls_back_to_client_reference(self, stripe_settings):
        payload = stripe_event(
            "checkout.session.completed",
            {
                "id": "cs_test_1",
                "payment_status": "paid",
                "client_reference_id": "ORDER_2",
            },
        )
        callback = self._verify(payload)
        assert callback.order_id == "ORDER_2"
        assert callback.transaction_id == "cs_test_1"

    def test_unpaid_completed_session_is_ignored(self, stripe_settings):
        payload = stripe_event(
            "checkout.session.completed",
            {"id": "cs_test_1", "payment_status": "unpaid"},
        )
        assert self._verify(payload) is None

    @pytest.mark.parametrize(
        "event_type",
        ["checkout.session.expired", "checkout.session.async_payment_failed"],
    )
    def test_failure_events(self, stripe_settings, event_type):
        payload = stripe_event(
            event_type,
            {"id": "cs_test_1", "metadata": {"orderId": "ORDER_3"}},
        )
        callback = self._verify(payload)
        assert not callback.succeeded
        assert callback.gateway_status == event_type

    def test_unrelated_event_is_ignored(self, stripe_settings):
        payload = json.dumps(
            {"id": "evt_1", "type": "customer.created", "data": {"object": {}}},
        ).encode()
        assert self._verify(payload) is None

    def test_bad_signature_is_rejected(self, stripe_settings):
        payload = stripe_event("checkout.session.completed", {"id": "cs_test_1"})
        with pytest.raises(CallbackVerificationError):
            self._verify(payload, stripe_signature(payload, secret="whsec_wrong"))

    def test_tampered_body_is_rejected(self, stripe_settings):
        payload = stripe_event("checkout.session.completed", {"id": "cs_test_1"})
        signature = stripe_signature(payload)
        tampered = payload.replace(b"cs_test_1", b"cs_test_9")
        with pytest.raises(CallbackVerificationError):
            self._verify(tampered, signature)

    def test_missing_signature_header(self, stripe_settings):
        with pytest.raises(CallbackVerificationError):
            StripeGateway().verify_callback(b"{}", {})

    def test_missing_webhook_secret(self, stripe_settings):
        stripe_settings.STRIPE_WEBHOOK_SECRET = ""
        with pytest.raises(CallbackVerificationError):
            StripeGateway().verify_callback(b"{}", {"Stripe-Signature": "t=1,v1=x"})


# =============================================================================
# Telebirr
# =============================================================================


@pytest.fixture
def telebirr_settings(settings):
    settings.TELEBIRR_MODE = "sandbox"
    settings.TELEBIRR_SANDBOX_URL = "https://telebirr.testserver/apiaccess"
    settings.TELEBIRR_CHECKOUT_URL = "https://telebirr.testserver/checkout"
    settings.TELEBIRR_PRIVATE_KEY = TELEBIRR_PRIVATE_KEY
    settings.TELEBIRR_PUBLIC_KEY = TELEBIRR_PUBLIC_KEY
    return settings


class TestTelebirrSigning:
    def test_sign_string_sorts_keys_and_skips_signature_fields(self):
        fields = {"b": "2", "a": "1", "sign": "xyz", "sign_type": "RSA", "c": ""}
        assert build_sign_string(fields) == "a=1&b=2&c="

    def test_sign_and_verify_round_trip(self):
        fields = {"out_trade_no": "ORDER_1", "total_amount": "10.00"}
        signature = sign_fields(fields, TELEBIRR_PRIVATE_KEY)
        assert verify_fields(fields, signature, TELEBIRR_PUBLIC_KEY)

    def test_verify_fails_for_changed_field(self):
        fields = {"out_trade_no": "ORDER_1", "total_amount": "10.00"}
        signature = sign_fields(fields, TELEBIRR_PRIVATE_KEY)
        changed = {**fields, "total_amount": "1.00"}
        assert not verify_fields(changed, signature, TELEBIRR_PUBLIC_KEY)

    def test_verify_fails_for_garbage_signature(self):
        assert not verify_fields({"a": "1"}, "not base64!!", TELEBIRR_PUBLIC_KEY)

    def test_parse_json_keeps_number_text(self):
        fields = parse_callback_body(b'{"total_amount": 10.50, "n": 3}')
        assert fields == {"total_amount": "10.50", "n": "3"}

    def test_parse_json_booleans_and_nested_values(self):
        fields = parse_callback_body(
            b'{"is_test": true, "extra": {"a": 1, "b": [2.5]}, "note": null}',
        )
        assert fields == {"is_test": "true", "extra": '{"a":1,"b":[2.5]}', "note": ""}

    def test_parse_form_body(self):
        fields = parse_callback_body(
            b"out_trade_no=ORDER_1&trade_status=Completed",
            "application/x-www-form-urlencoded",
        )
        assert fields == {"out_trade_no": "ORDER_1", "trade_status": "Completed"}


class TestTelebirrCallbackVerification:
    def test_boolean_field_is_verified_as_json_text(self, telebirr_settings):
        signed = {
            "appid": "test-app-id",
            "out_trade_no": "ORDER_1",
            "trade_status": "Completed",
            "transaction_id": "TB123456",
            "is_test": "true",
        }
        body = {
            **signed,
            "is_test": True,
            "sign": sign_fields(signed, TELEBIRR_PRIVATE_KEY),
            "sign_type": "SHA256WithRSA",
        }

        callback = TelebirrGateway().verify_callback(json.dumps(body).encode(), {})

        assert callback.order_id == "ORDER_1"
        assert callback.succeeded

    def test_valid_success_callback(self, telebirr_settings):
        body = telebirr_notification(out_trade_no="ORDER_1", plan_id="plan-uuid")

        callback = TelebirrGateway().verify_callback(
            body,
            {"Content-Type": "application/json"},
        )

        assert callback.succeeded
        assert callback.order_id == "ORDER_1"
        assert callback.transaction_id == "TB123456"
        assert callback.plan_id == "plan-uuid"
        assert callback.amount == Decimal("299.99")

    def test_failed_trade_status(self, telebirr_settings):
        body = telebirr_notification(out_trade_no="ORDER_1", trade_status="Failure")
        callback = TelebirrGateway().verify_callback(body, {})
        assert not callback.succeeded
        assert callback.gateway_status == "Failure"

    def test_callback_signed_with_other_key_is_rejected(self, telebirr_settings):
        other_private, _ = generate_rsa_keypair()
        body = telebirr_notification(other_private, out_trade_no="ORDER_1")
        with pytest.raises(CallbackVerificationError):
            TelebirrGateway().verify_callback(body, {})

    def test_tampered_amount_is_rejected(self, telebirr_settings):
        body = json.loads(telebirr_notification(out_trade_no="ORDER_1"))
        body["total_amount"] = "1.00"
        with pytest.raises(CallbackVerificationError):
            TelebirrGateway().verify_callback(json.dumps(body).encode(), {})

    def test_unsupported_sign_type(self, telebirr_settings):
        body = json.loads(telebirr_notification(out_trade_no="ORDER_1"))
        body["sign_type"] = "MD5"
        with pytest.raises(CallbackVerificationError):
            TelebirrGateway().verify_callback(json.dumps(body).encode(), {})

    def test_missing_signature(self, telebirr_settings):
        body = json.loads(telebirr_notification(out_trade_no="ORDER_1"))
        body["sign"] = ""
        with pytest.raises(CallbackVerificationError):
            TelebirrGateway().verify_callback(json.dumps(body).encode(), {})

    def test_non_json_garbage_is_rejected(self, telebirr_settings):
        with pytest.raises(CallbackVerificationError):
            TelebirrGateway().verify_callback(b"{not json", {})

    def test_missing_public_key(self, telebirr_settings):
        telebirr_settings.TELEBIRR_PUBLIC_KEY = ""
        body = telebirr_notification(out_trade_no="ORDER_1")
        with pytest.raises(CallbackVerificationError):
            TelebirrGateway().verify_callback(body, {})


def _telebirr_transport(preorder_response: dict, requests: list):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path.endswith(TOKEN_PATH):
            return httpx.Response(200, json={"token": "Bearer fabric-token"})
        if request.url.path.endswith(PREORDER_PATH):
            return httpx.Response(200, json=preorder_response)
        return httpx.Response(404)

    return httpx.MockTransport(handler)


@pytest.mark.django_db
class TestTelebirrCheckout:
    def _checkout(self, transport):
        plan = PlanFactory(name="Basic")
        payment = PaymentFactory(plan=plan, gateway="telebirr")
        gateway = TelebirrGateway(transport=transport)
        session = gateway.create_checkout_session(
            payment=payment,
            plan=plan,
            customer_email="owner@example.com",
            return_url="http://frontend.testserver/payment/success",
            cancel_url="http://frontend.testserver/payment/cancel",
        )
        return payment, session

    def test_preorder_returns_checkout_url(self, telebirr_settings):
        requests = []
        transport = _telebirr_transport(
            {"code": "0", "biz_content": {"prepay_id": "prepay-42"}},
            requests,
        )

        payment, session = self._checkout(transport)

        assert session.session_id == "prepay-42"
        assert session.checkout_url == (
            "https://telebirr.testserver/checkout?prepay_id=prepay-42"
        )
        token_request, preorder_request = requests
        assert token_request.headers["X-APP-Key"] == "test-app-id"
        assert preorder_request.headers["Authorization"] == "Bearer fabric-token"

        sent = json.loads(preorder_request.content)
        assert sent["out_trade_no"] == payment.order_id
        assert sent["total_amount"] == "299.99"
        assert sent["sign_type"] == "SHA256WithRSA"
        assert verify_fields(sent, sent["sign"], TELEBIRR_PUBLIC_KEY)

    def test_preorder_without_prepay_id_fails(self, telebirr_settings):
        transport = _telebirr_transport({"code": "1", "msg": "rejected"}, [])
        with pytest.raises(GatewayError):
            self._checkout(transport)

    def test_http_error_becomes_gateway_error(self, telebirr_settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        with pytest.raises(GatewayError):
            self._checkout(transport)

    def test_timeout_becomes_gateway_error(self, telebirr_settings):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(GatewayError) as exc_info:
            self._checkout(httpx.MockTransport(handler))
        assert exc_info.value.code == "gateway_timeout"

    def test_missing_credentials(self, telebirr_settings):
        telebirr_settings.TELEBIRR_PRIVATE_KEY = ""
        with pytest.raises(GatewayNotConfiguredError):
            self._checkout(httpx.MockTransport(lambda request: httpx.Response(200)))

    def test_http_client_is_closed_after_checkout(self, telebirr_settings):
        transport = _telebirr_transport(
            {"code": "0", "biz_content": {"prepay_id": "prepay-43"}},
            [],
        )
        client = httpx.Client(transport=transport)

        with patch.object(TelebirrGateway, "_http", return_value=client):
            self._checkout(transport)

        assert client.is_closed

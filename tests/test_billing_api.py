import hashlib
import hmac
import json
import os
import tempfile
import time
import unittest
from dataclasses import replace
from types import SimpleNamespace
from unittest.mock import patch

import stripe
from fastapi.testclient import TestClient

from app.core.config import settings
from app.core.request_limiter import get_request_counter
from app.core.resume_store import SqliteResumeStore, set_resume_store
from app.core.security import AuthUser, reset_token_verifier, set_token_verifier
from app.main import app
from app.services.access import get_access_info

WEBHOOK_SECRET = "whsec_test_secret"
TEST_SETTINGS = replace(
    settings,
    site_url="https://resume.example.com",
    stripe_secret_key="sk_test_123",
    stripe_webhook_secret=WEBHOOK_SECRET,
    stripe_price_id_2d="price_2d",
    stripe_price_id_7d="price_7d",
    stripe_price_id_30d="price_30d",
)


def _signed(payload: bytes, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _checkout_event(event_id="evt_1", session_id="cs_1", tier="7D", payment_status="paid"):
    return {
        "id": event_id,
        "object": "event",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "payment_status": payment_status,
                "amount_total": 1000,
                "currency": "usd",
                "metadata": {"tier": tier, "userId": "user-1", "resumeId": "resume-1"},
            }
        },
    }


class BillingApiTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.client = TestClient(app)

    def setUp(self):
        get_request_counter().reset()
        self._tmp = tempfile.TemporaryDirectory()
        self.store = SqliteResumeStore(os.path.join(self._tmp.name, "resumes.db"))
        set_resume_store(self.store)
        set_token_verifier({"token-user-1": AuthUser(id="user-1")}.get)
        self._patches = [
            patch("app.services.billing_service.settings", TEST_SETTINGS),
            patch("app.services.access.settings", TEST_SETTINGS),
        ]
        for patcher in self._patches:
            patcher.start()

    def tearDown(self):
        for patcher in self._patches:
            patcher.stop()
        set_resume_store(None)
        reset_token_verifier()
        self._tmp.cleanup()

    def _post_event(self, event, signature=None):
        payload = json.dumps(event).encode("utf-8")
        headers = {"content-type": "application/json", "stripe-signature": signature or _signed(payload)}
        return self.client.post("/v1/stripe/webhook", content=payload, headers=headers)

    def test_tiers(self):
        response = self.client.get("/v1/stripe/tiers")
        self.assertEqual(response.status_code, 200)
        tiers = response.json()
        self.assertEqual([tier["tier"] for tier in tiers], ["2D", "7D", "30D"])
        self.assertEqual(tiers[1]["durationDays"], 7)
        self.assertTrue(tiers[1]["popular"])

    def test_checkout_requires_sign_in(self):
        response = self.client.post("/v1/stripe/create-checkout", json={"tier": "7D"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["message"], "Authentication required. Please sign in to purchase access.")

    def test_checkout_rejects_unknown_tier(self):
        response = self.client.post(
            "/v1/stripe/create-checkout",
            json={"tier": "90D", "userId": "user-1", "accessToken": "token-user-1"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Invalid tier or price not configured")

    def test_checkout_creates_session_with_metadata(self):
        fake_session = SimpleNamespace(id="cs_live_1", url="https://checkout.stripe.com/c/pay/cs_live_1")
        with patch("stripe.checkout.Session.create", return_value=fake_session) as create:
            response = self.client.post(
                "/v1/stripe/create-checkout",
                json={
                    "tier": "7D",
                    "resumeId": "resume-1",
                    "userId": "user-1",
                    "email": "jane@example.com",
                    "accessToken": "token-user-1",
                    "returnUrl": "https://evil.example.net/phish",
                },
            )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json(), {"url": fake_session.url, "sessionId": "cs_live_1"})
        params = create.call_args.kwargs
        self.assertEqual(params["mode"], "payment")
        self.assertEqual(params["line_items"], [{"price": "price_7d", "quantity": 1}])
        self.assertEqual(params["metadata"], {"tier": "7D", "resumeId": "resume-1", "userId": "user-1"})
        self.assertEqual(params["success_url"], "https://resume.example.com/success?session_id={CHECKOUT_SESSION_ID}")
        self.assertEqual(params["cancel_url"], "https://resume.example.com/")
        self.assertEqual(params["customer_email"], "jane@example.com")

    def test_checkout_stripe_failure_is_a_server_error(self):
        with patch("stripe.checkout.Session.create", side_effect=stripe.StripeError("card declined")):
            response = self.client.post(
                "/v1/stripe/create-checkout",
                json={"tier": "2D", "userId": "user-1", "accessToken": "token-user-1"},
            )
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["message"], "Failed to create checkout session")

    def test_webhook_grants_access_once(self):
        response = self._post_event(_checkout_event())
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json(), {"received": True})

        info = get_access_info("user-1", self.store)
        self.assertTrue(info["hasAccess"])
        self.assertEqual(info["tier"], "7D")

        self.assertEqual(self._post_event(_checkout_event()).status_code, 200)
        self.assertEqual(self._post_event(_checkout_event(event_id="evt_2")).status_code, 200)
        self.assertFalse(self.store.record_stripe_event("evt_1", "checkout.session.completed"))
        self.assertFalse(self.store.record_stripe_event("evt_2", "checkout.session.completed"))

    def test_store_outage_is_retried_by_stripe(self):
        with patch.object(self.store, "insert_access_grant", side_effect=RuntimeError("db down")):
            failed = self._post_event(_checkout_event())
        self.assertEqual(failed.status_code, 500)
        self.assertEqual(failed.json()["message"], "Webhook handler failed")
        self.assertFalse(get_access_info("user-1", self.store)["hasAccess"])

        replay = self._post_event(_checkout_event())
        self.assertEqual(replay.status_code, 200)
        self.assertEqual(get_access_info("user-1", self.store)["tier"], "7D")

    def test_unpaid_sessions_do_not_grant_access(self):
        self.assertEqual(self._post_event(_checkout_event(payment_status="unpaid")).status_code, 200)
        self.assertFalse(get_access_info("user-1", self.store)["hasAccess"])

    def test_webhook_signature_errors(self):
        event = _checkout_event()
        payload = json.dumps(event).encode("utf-8")
        missing = self.client.post("/v1/stripe/webhook", content=payload)
        self.assertEqual(missing.status_code, 400)
        self.assertEqual(missing.json()["message"], "Missing signature")

        forged = self._post_event(event, signature=_signed(payload, secret="whsec_wrong"))
        self.assertEqual(forged.status_code, 400)
        self.assertTrue(forged.json()["error"].startswith("Webhook signature verification failed"))
        self.assertFalse(get_access_info("user-1", self.store)["hasAccess"])

    def test_webhook_without_secret_is_a_server_error(self):
        with patch("app.services.billing_service.settings", replace(TEST_SETTINGS, stripe_webhook_secret=None)):
            response = self._post_event(_checkout_event())
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["message"], "Webhook secret not configured")

    def test_verify_payment(self):
        session = {"payment_status": "paid", "metadata": {"tier": "7D"}, "customer_email": "jane@example.com"}
        with patch("stripe.checkout.Session.retrieve", return_value=session):
            response = self.client.post("/v1/stripe/verify-payment", json={"sessionId": "cs_1"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {"paid": True, "status": "paid", "metadata": {"tier": "7D"}, "customer_email": "jane@example.com"},
        )

        with patch("stripe.checkout.Session.retrieve", return_value={"payment_status": "unpaid"}):
            unpaid = self.client.post("/v1/stripe/verify-payment", json={"sessionId": "cs_1"})
        self.assertEqual(unpaid.json(), {"paid": False, "status": "unpaid"})

        self.assertEqual(self.client.post("/v1/stripe/verify-payment", json={}).status_code, 400)

    def test_portal_session_finds_existing_customer(self):
        customers = SimpleNamespace(data=[SimpleNamespace(id="cus_1")])
        portal = SimpleNamespace(url="https://billing.stripe.com/p/session/1")
        with patch("stripe.Customer.list", return_value=customers) as list_customers, patch(
            "stripe.Customer.create"
        ) as create_customer, patch("stripe.billing_portal.Session.create", return_value=portal) as create_portal:
            response = self.client.post(
                "/v1/stripe/create-portal-session",
                json={"email": "jane@example.com"},
                headers={"Authorization": "Bearer token-user-1"},
            )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json(), {"url": portal.url})
        list_customers.assert_called_once_with(email="jane@example.com", limit=1)
        create_customer.assert_not_called()
        create_portal.assert_called_once_with(customer="cus_1", return_url="https://resume.example.com/profile")

    def test_portal_session_requires_auth_and_identity(self):
        anonymous = self.client.post("/v1/stripe/create-portal-session", json={"email": "jane@example.com"})
        self.assertEqual(anonymous.status_code, 401)
        empty = self.client.post(
            "/v1/stripe/create-portal-session",
            json={},
            headers={"Authorization": "Bearer token-user-1"},
        )
        self.assertEqual(empty.status_code, 400)
        self.assertEqual(empty.json()["message"], "customerId or email is required")

    def test_access_endpoint_requires_matching_user(self):
        self.assertEqual(self.client.get("/v1/stripe/access", params={"userId": "user-1"}).status_code, 401)
        response = self.client.get(
            "/v1/stripe/access",
            params={"userId": "user-1"},
            headers={"Authorization": "Bearer token-user-1"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["hasAccess"])


if __name__ == "__main__":
    unittest.main()

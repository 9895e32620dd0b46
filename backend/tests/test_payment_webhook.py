# Overview: Pytest coverage for the Stripe webhook reconciler and checkout session creation.

"""
Payment Webhook Tests

Verifies:
- Bad or missing signatures are rejected with 400 and change nothing
- checkout.session.completed grants plan credits + bonus with one audit row
- Redelivery of the same event id never grants twice
- Missing metadata is a 400; unknown/inactive plans are acknowledged with no grant
- Other event types are acknowledged and ignored
"""

import json

import pytest

from deliveryhub.models import Account, CreditAudit, ProcessedPaymentEvent
from deliveryhub.services import billing_service, plan_service
from deliveryhub.services.billing_service import OUTCOME_DUPLICATE, OUTCOME_GRANTED, OUTCOME_LIMIT_EXCEEDED
from deliveryhub.validation import MAX_CREDIT_BALANCE

from conftest import checkout_completed_event, set_balance, sign_payload


def _post_webhook(client, payload: str, signature: str | None = None):
    headers = {"Content-Type": "application/json"}
    headers["Stripe-Signature"] = signature if signature is not None else sign_payload(payload)
    return client.post("/api/billing/webhook", data=payload, headers=headers)


class TestSignature:

    def test_bad_signature_rejected(self, client, gateway, business, pro_plan, db_session):
        payload = checkout_completed_event("evt_bad", {"userId": business["id"], "planId": pro_plan.id})

        resp = _post_webhook(client, payload, signature=sign_payload(payload, secret="whsec_wrong"))

        assert resp.status_code == 400
        assert resp.json["code"] == "signature_invalid"
        assert resp.json["error"].startswith("Webhook Error:")
        assert db_session.get(Account, business["id"]).credits == 0
        assert db_session.query(ProcessedPaymentEvent).count() == 0

    def test_missing_signature_rejected(self, client, gateway, db_session):
        resp = client.post("/api/billing/webhook", data="{}", headers={"Content-Type": "application/json"})
        assert resp.status_code == 400
        assert resp.json["code"] == "signature_invalid"

    def test_tampered_body_rejected(self, client, gateway, business, pro_plan, db_session):
        payload = checkout_completed_event("evt_tamper", {"userId": business["id"], "planId": pro_plan.id})
        signature = sign_payload(payload)
        tampered = payload.replace(pro_plan.id, "price_enterprise")

        resp = _post_webhook(client, tampered, signature=signature)
        assert resp.status_code == 400

    def test_stale_timestamp_rejected(self, client, gateway, business, pro_plan, db_session):
        payload = checkout_completed_event("evt_old", {"userId": business["id"], "planId": pro_plan.id})

        resp = _post_webhook(client, payload, signature=sign_payload(payload, timestamp=1_000_000))
        assert resp.status_code == 400
        assert db_session.get(Account, business["id"]).credits == 0


class TestCheckoutCompleted:

    def test_grants_plan_credits_with_bonus(self, client, gateway, business, pro_plan, db_session):
        payload = checkout_completed_event(
            "evt_1", {"userId": business["id"], "planId": pro_plan.id}, session_id="cs_live_42"
        )

        resp = _post_webhook(client, payload)

        assert resp.status_code == 200
        assert resp.json == {"received": True}
        assert db_session.get(Account, business["id"]).credits == 550

        audit = db_session.query(CreditAudit).filter_by(account_id=business["id"]).one()
        assert audit.amount_added == 550
        assert audit.actor_id == "system:stripe"
        assert audit.event == "stripe_payment_completed"
        assert audit.plan_id == "price_pro_500"
        assert audit.checkout_session_id == "cs_live_42"
        assert audit.payment_event_id == "evt_1"
        assert audit.reason == "Payment for plan price_pro_500 via Stripe."

    def test_redelivery_grants_once(self, client, gateway, business, pro_plan, db_session):
        payload = checkout_completed_event("evt_dup", {"userId": business["id"], "planId": pro_plan.id})

        first = _post_webhook(client, payload)
        second = _post_webhook(client, payload)

        assert first.status_code == 200
        assert second.status_code == 200
        assert db_session.get(Account, business["id"]).credits == 550
        assert db_session.query(CreditAudit).count() == 1
        assert db_session.query(ProcessedPaymentEvent).count() == 1

    def test_distinct_events_both_grant(self, client, gateway, business, pro_plan, db_session):
        for event_id in ("evt_a", "evt_b"):
            payload = checkout_completed_event(event_id, {"userId": business["id"], "planId": pro_plan.id})
            assert _post_webhook(client, payload).status_code == 200

        assert db_session.get(Account, business["id"]).credits == 1100

    def test_missing_metadata_is_400(self, client, gateway, business, pro_plan, db_session):
        payload = checkout_completed_event("evt_nometa", None)

        resp = _post_webhook(client, payload)

        assert resp.status_code == 400
        assert resp.json["code"] == "malformed_event"
        assert db_session.get(Account, business["id"]).credits == 0

    def test_missing_plan_id_is_400(self, client, gateway, business, db_session):
        payload = checkout_completed_event("evt_noplan", {"userId": business["id"]})
        assert _post_webhook(client, payload).status_code == 400

    def test_unknown_plan_acknowledged_without_grant(self, client, gateway, business, db_session):
        payload = checkout_completed_event("evt_unknown", {"userId": business["id"], "planId": "price_gone"})

        resp = _post_webhook(client, payload)

        assert resp.status_code == 200
        assert db_session.get(Account, business["id"]).credits == 0
        assert db_session.query(CreditAudit).count() == 0
        assert db_session.query(ProcessedPaymentEvent).count() == 0

    def test_inactive_plan_grants_nothing(self, client, gateway, business, db_session):
        plan_service.upsert_plan("price_old", "Legacy", 100, is_active=False)
        payload = checkout_completed_event("evt_inactive", {"userId": business["id"], "planId": "price_old"})

        assert _post_webhook(client, payload).status_code == 200
        assert db_session.get(Account, business["id"]).credits == 0

    def test_unknown_account_acknowledged(self, client, gateway, pro_plan, db_session):
        payload = checkout_completed_event("evt_ghost", {"userId": "ghost", "planId": pro_plan.id})

        assert _post_webhook(client, payload).status_code == 200
        assert db_session.query(CreditAudit).count() == 0
        assert db_session.query(ProcessedPaymentEvent).count() == 0

    def test_other_event_types_ignored(self, client, gateway, business, db_session):
        payload = json.dumps({
            "id": "evt_other",
            "object": "event",
            "type": "payment_intent.created",
            "data": {"object": {"id": "pi_1"}},
        })

        resp = _post_webhook(client, payload)

        assert resp.status_code == 200
        assert db_session.get(Account, business["id"]).credits == 0


class TestProcessWebhookOutcomes:

    def test_outcomes_reported(self, app, gateway, business, pro_plan, db_session):
        payload = checkout_completed_event("evt_outcome", {"userId": business["id"], "planId": pro_plan.id})
        signature = sign_payload(payload)

        first = billing_service.process_webhook(payload.encode(), signature, gateway)
        second = billing_service.process_webhook(payload.encode(), signature, gateway)

        assert first.outcome == OUTCOME_GRANTED
        assert first.credits_granted == 550
        assert second.outcome == OUTCOME_DUPLICATE
        assert second.credits_granted == 0

    def test_balance_ceiling_leaves_event_unprocessed(self, app, gateway, business, pro_plan, db_session):
        set_balance(business["id"], MAX_CREDIT_BALANCE - 100)
        payload = checkout_completed_event("evt_full", {"userId": business["id"], "planId": pro_plan.id})

        result = billing_service.process_webhook(payload.encode(), sign_payload(payload), gateway)

        assert result.outcome == OUTCOME_LIMIT_EXCEEDED
        assert result.credits_granted == 0
        assert db_session.get(Account, business["id"]).credits == MAX_CREDIT_BALANCE - 100
        assert db_session.query(CreditAudit).count() == 0
        assert db_session.query(ProcessedPaymentEvent).count() == 0


class TestCheckoutSession:

    def test_creates_session_with_metadata(self, client, gateway, business, pro_plan, db_session):
        resp = client.post("/api/billing/checkout-session", json={
            "planId": pro_plan.id,
            "successUrl": "https://app.test/billing?ok=1",
            "cancelUrl": "https://app.test/billing",
        }, headers=business["headers"])

        assert resp.status_code == 200
        assert resp.json["sessionId"] == "cs_test_123"

        call = gateway.checkout_calls[0]
        assert call["price_id"] == "price_pro_500"
        assert call["metadata"] == {"userId": business["id"], "planId": "price_pro_500"}
        assert call["customer_email"] == business["email"]

    @pytest.mark.parametrize("body,field", [
        ({"planId": "price_missing", "successUrl": "https://a.test", "cancelUrl": "https://a.test"}, "planId"),
        ({"planId": "price_pro_500", "successUrl": "/relative", "cancelUrl": "https://a.test"}, "successUrl"),
        ({"planId": "price_pro_500", "successUrl": "https://a.test"}, "cancelUrl"),
    ])
    def test_invalid_request(self, client, gateway, business, pro_plan, db_session, body, field):
        resp = client.post("/api/billing/checkout-session", json=body, headers=business["headers"])

        assert resp.status_code == 400
        assert field in resp.json["fields"]
        assert gateway.checkout_calls == []

    def test_lists_active_plans(self, client, business, pro_plan, db_session):
        plan_service.upsert_plan("price_hidden", "Hidden", 10, is_active=False)

        resp = client.get("/api/billing/plans", headers=business["headers"])

        assert resp.status_code == 200
        assert [p["id"] for p in resp.json["plans"]] == ["price_pro_500"]
        assert resp.json["plans"][0]["total_credits"] == 550

# Overview: Pytest coverage for administrator credit grants and the credit audit trail.

"""
Admin Credit Tests

Verifies:
- Admin grants increment the balance and write exactly one audit row
- Non-admin callers are denied before any read or write, and the denial is logged
- Amount/reason/target validation, including the grant and balance ceilings
"""

import pytest

from deliveryhub.models import Account, CreditAudit, SecurityEvent
from deliveryhub.services import credit_service
from deliveryhub.services.credit_service import CreditLimitExceededError
from deliveryhub.services.permission_service import PermissionDeniedError
from deliveryhub.validation import MAX_CREDIT_BALANCE, MAX_CREDIT_GRANT, ValidationError

from conftest import set_balance


class TestAdminAddCredits:

    def test_admin_grant_increments_and_audits(self, client, admin, business, db_session):
        resp = client.post("/api/admin/credits", json={
            "targetAccountId": business["id"],
            "amount": 10,
            "reason": "Manual top-up, invoice 1042",
        }, headers=admin["headers"])

        assert resp.status_code == 200
        assert db_session.get(Account, business["id"]).credits == 10

        audits = db_session.query(CreditAudit).filter_by(account_id=business["id"]).all()
        assert len(audits) == 1
        audit = audits[0]
        assert audit.amount_added == 10
        assert audit.actor_id == admin["id"]
        assert audit.event == "admin_adjustment"
        assert audit.reason == "Manual top-up, invoice 1042"
        assert resp.json["audit"]["id"] == audit.id

    def test_business_id_alias(self, client, admin, business, db_session):
        resp = client.post("/api/admin/credits", json={
            "businessId": business["id"],
            "amount": "5",
            "reason": "Promo",
        }, headers=admin["headers"])

        assert resp.status_code == 200
        assert db_session.get(Account, business["id"]).credits == 5

    def test_grants_accumulate(self, client, admin, business, db_session):
        for amount in (3, 4):
            client.post("/api/admin/credits", json={
                "targetAccountId": business["id"], "amount": amount, "reason": "batch",
            }, headers=admin["headers"])

        assert db_session.get(Account, business["id"]).credits == 7
        assert db_session.query(CreditAudit).count() == 2

    def test_business_owner_denied(self, client, business, db_session):
        resp = client.post("/api/admin/credits", json={
            "targetAccountId": business["id"],
            "amount": 1000,
            "reason": "free credits",
        }, headers=business["headers"])

        assert resp.status_code == 403
        assert resp.json["code"] == "permission_denied"
        assert db_session.get(Account, business["id"]).credits == 0
        assert db_session.query(CreditAudit).count() == 0

        denial = db_session.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED").one()
        assert denial.user_id == business["id"]
        assert denial.action == "ADD_CREDITS"

    def test_denied_before_validation(self, client, business, db_session):
        resp = client.post("/api/admin/credits", json={}, headers=business["headers"])
        assert resp.status_code == 403

    @pytest.mark.parametrize("amount", [0, -5, 1.5, "2.5", "1e3", True, None, "ten", 2**63, "99999999999999999999", 1_000_001])
    def test_invalid_amount(self, client, admin, business, db_session, amount):
        resp = client.post("/api/admin/credits", json={
            "targetAccountId": business["id"], "amount": amount, "reason": "bad",
        }, headers=admin["headers"])

        assert resp.status_code == 400
        assert "amount" in resp.json["fields"]
        assert db_session.get(Account, business["id"]).credits == 0

    def test_largest_grant_accepted(self, client, admin, business, db_session):
        resp = client.post("/api/admin/credits", json={
            "targetAccountId": business["id"], "amount": MAX_CREDIT_GRANT, "reason": "bulk contract",
        }, headers=admin["headers"])

        assert resp.status_code == 200
        assert db_session.get(Account, business["id"]).credits == MAX_CREDIT_GRANT

    def test_grant_past_balance_ceiling_rejected(self, client, admin, business, db_session):
        set_balance(business["id"], MAX_CREDIT_BALANCE - 5)

        resp = client.post("/api/admin/credits", json={
            "targetAccountId": business["id"], "amount": 6, "reason": "one too many",
        }, headers=admin["headers"])

        assert resp.status_code == 400
        assert "amount" in resp.json["fields"]
        assert db_session.get(Account, business["id"]).credits == MAX_CREDIT_BALANCE - 5
        assert db_session.query(CreditAudit).count() == 0

    def test_reason_required(self, client, admin, business, db_session):
        resp = client.post("/api/admin/credits", json={
            "targetAccountId": business["id"], "amount": 1, "reason": "   ",
        }, headers=admin["headers"])

        assert resp.status_code == 400
        assert "reason" in resp.json["fields"]

    def test_unknown_account(self, client, admin, db_session):
        resp = client.post("/api/admin/credits", json={
            "targetAccountId": "doesnotexist", "amount": 1, "reason": "typo",
        }, headers=admin["headers"])

        assert resp.status_code == 400
        assert "targetAccountId" in resp.json["fields"]
        assert db_session.query(CreditAudit).count() == 0


class TestCreditServiceDirect:

    def test_string_true_claim_is_not_admin(self, business, db_session):
        with pytest.raises(PermissionDeniedError):
            credit_service.add_credits(
                actor_id="someone",
                actor_claims={"admin": "true"},
                account_id=business["id"],
                amount=1,
                reason="sneaky",
            )

    def test_apply_credit_grant_rejects_non_positive(self, business, db_session):
        with pytest.raises(ValueError):
            credit_service.apply_credit_grant(
                account_id=business["id"],
                amount=0,
                actor_id="system",
                event="admin_adjustment",
                reason="zero",
            )

    def test_apply_credit_grant_stops_at_ceiling(self, business, db_session):
        set_balance(business["id"], MAX_CREDIT_BALANCE)
        with pytest.raises(CreditLimitExceededError):
            credit_service.apply_credit_grant(
                account_id=business["id"],
                amount=1,
                actor_id="system",
                event="admin_adjustment",
                reason="full",
            )
        db_session.rollback()
        assert db_session.get(Account, business["id"]).credits == MAX_CREDIT_BALANCE

    def test_validation_error_lists_all_fields(self, db_session):
        with pytest.raises(ValidationError) as exc_info:
            credit_service.add_credits(
                actor_id="ops",
                actor_claims={"admin": True},
                account_id="",
                amount=-1,
                reason="",
            )
        assert set(exc_info.value.fields) == {"amount", "reason", "targetAccountId"}


class TestCreditAuditListing:

    def test_owner_sees_own_audits(self, client, admin, business, db_session):
        client.post("/api/admin/credits", json={
            "targetAccountId": business["id"], "amount": 2, "reason": "welcome",
        }, headers=admin["headers"])

        resp = client.get("/api/account/credit-audits", headers=business["headers"])
        assert resp.status_code == 200
        assert [a["amount_added"] for a in resp.json["credit_audits"]] == [2]

    def test_negative_limit_still_capped(self, client, admin, business, db_session):
        for amount in (1, 2):
            client.post("/api/admin/credits", json={
                "targetAccountId": business["id"], "amount": amount, "reason": "batch",
            }, headers=admin["headers"])

        resp = client.get("/api/account/credit-audits?limit=-1", headers=business["headers"])
        assert resp.status_code == 200
        assert len(resp.json["credit_audits"]) == 1

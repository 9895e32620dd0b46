# Overview: Pytest coverage for account profile reads/updates, health endpoints, and operator CLI commands.

from deliveryhub.models import Account, PaymentPlan, SessionToken, User
from deliveryhub.cli import create_admin, list_orders, set_plan, cleanup_sessions
from deliveryhub.services import session_service
from deliveryhub.time_utils import utcnow

from conftest import order_payload, set_balance


class TestProfile:

    def test_get_account(self, client, business):
        resp = client.get("/api/account", headers=business["headers"])
        assert resp.status_code == 200
        account = resp.json["account"]
        assert account["business_name"] == "Tacos Ana"
        assert account["default_pickup_address"]["description"] == "Av. Reforma 100, CDMX"

    def test_update_pickup_used_by_next_order(self, client, business, dispatch, db_session):
        resp = client.patch("/api/account", json={
            "businessName": "Tacos Ana Centro",
            "defaultPickupAddress": {"description": "Madero 5, CDMX", "lat": 19.434, "lng": -99.138},
        }, headers=business["headers"])
        assert resp.status_code == 200

        set_balance(business["id"], 1)
        client.post("/api/orders", json=order_payload(), headers=business["headers"])

        payload = dispatch.calls[0]
        assert payload["restaurantName"] == "Tacos Ana Centro"
        assert payload["restaurantAddress"] == "Madero 5, CDMX"

    def test_credits_not_writable(self, client, business, db_session):
        resp = client.patch("/api/account", json={"credits": 1000}, headers=business["headers"])

        assert resp.status_code == 400
        assert resp.json["fields"]["credits"] == "field not allowed"
        assert db_session.get(Account, business["id"]).credits == 0

    def test_email_not_writable(self, client, business, db_session):
        resp = client.patch("/api/account", json={"email": "new@x.test"}, headers=business["headers"])
        assert resp.status_code == 400

    def test_empty_patch_rejected(self, client, business):
        resp = client.patch("/api/account", json={}, headers=business["headers"])
        assert resp.status_code == 400

    def test_invalid_phone(self, client, business, db_session):
        resp = client.patch("/api/account", json={"contactPhone": "12345"}, headers=business["headers"])
        assert resp.status_code == 400
        assert db_session.get(Account, business["id"]).contact_phone == "5551234567"


class TestSystemEndpoints:

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert resp.json["database"]["details"]["orders_in_dispatch_error"] == 0
        assert resp.json["providers"]["payments"]["status"] == "configured"

    def test_version(self, client):
        resp = client.get("/version")
        assert resp.status_code == 200
        assert resp.json["name"] == "deliveryhub"


class TestCliCommands:

    def test_create_admin(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(create_admin, [
            "--email", "root@deliveryhub.test", "--password", "secret1", "--name", "Root",
        ])

        assert "PASS" in result.output
        user = db_session.query(User).filter_by(email="root@deliveryhub.test").one()
        assert user.custom_claims == {"admin": True}

    def test_set_plan(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(set_plan, ["price_starter", "--name", "Starter", "--credits", "50", "--bonus", "5"])

        assert "PASS" in result.output
        plan = db_session.get(PaymentPlan, "price_starter")
        assert plan.total_credits == 55
        assert plan.is_active is True

    def test_set_plan_rejects_negative(self, app, db_session):
        result = app.test_cli_runner().invoke(set_plan, ["price_bad", "--name", "Bad", "--credits", "-1"])
        assert "FAIL" in result.output
        assert db_session.get(PaymentPlan, "price_bad") is None

    def test_list_orders_bad_status(self, app, db_session):
        result = app.test_cli_runner().invoke(list_orders, ["--status", "lost"])
        assert "FAIL" in result.output

    def test_cleanup_sessions(self, app, business, db_session):
        session = db_session.query(SessionToken).filter_by(user_id=business["id"]).first()
        session.expires_at = utcnow()
        db_session.commit()

        result = app.test_cli_runner().invoke(cleanup_sessions)

        assert "Deleted 1" in result.output
        assert db_session.query(SessionToken).count() == 0
        assert session_service.validate_session("anything") is None

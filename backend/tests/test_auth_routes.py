# Overview: Pytest coverage for login, health, notifications and store settings routes.

"""
Auth and Account Route Tests

Covers login/logout/me, the health endpoint, the notification inbox and the
store payment processor settings.
"""

import pytest

from repairdesk.models import PaymentProcessorCredential, SecurityEvent
from repairdesk.services import notification_service, ticket_service

from conftest import TEST_PASSWORD, auth_headers, get_auth_token, make_user, token_for


class TestLogin:

    def test_login_success(self, client, db_session, store_a, admin_a):
        """Valid credentials return a token bound to the user's store."""
        response = client.post("/api/auth/login", json={"username": "admin_a", "password": TEST_PASSWORD})

        assert response.status_code == 200
        assert response.json["token"]
        assert response.json["store_id"] == store_a.id
        assert response.json["org_id"] == store_a.org_id
        assert response.json["user"]["username"] == "admin_a"

    def test_login_by_email(self, client, db_session, admin_a):
        token = get_auth_token(client, "admin_a@example.test")
        assert token is not None

    def test_wrong_password(self, client, db_session, admin_a):
        """Invalid credentials are rejected and logged."""
        response = client.post("/api/auth/login", json={"username": "admin_a", "password": "nope"})

        assert response.status_code == 401
        assert db_session.query(SecurityEvent).filter_by(event_type="LOGIN_FAILED").count() == 1

    def test_inactive_user(self, client, db_session, store_a):
        make_user(db_session, store_a, "gone", is_active=False)
        assert get_auth_token(client, "gone") is None

    def test_missing_fields(self, client, db_session):
        response = client.post("/api/auth/login", json={"username": "admin_a"})
        assert response.status_code == 400

    def test_token_works_then_logout_revokes(self, client, db_session, admin_a):
        token = get_auth_token(client, "admin_a")
        headers = auth_headers(token)

        me = client.get("/api/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.json["role"] == "admin"
        assert me.json["org_role"] == "org_admin"

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401


class TestHealth:

    def test_health(self, client, db_session):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json["status"] == "healthy"
        assert response.json["checks"]["database"]["status"] == "healthy"

    def test_degraded_without_encryption_key(self, app, client, db_session, store_a, monkeypatch):
        db_session.add(PaymentProcessorCredential(store_id=store_a.id, publishable_key="pk_test"))
        db_session.commit()
        monkeypatch.setitem(app.config, "CREDENTIALS_ENCRYPTION_KEY", None)

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json["status"] == "degraded"
        assert response.json["checks"]["credentials"]["status"] == "degraded"


class TestNotificationRoutes:

    def test_inbox_and_read(self, client, db_session, store_a, admin_a, ticket_a):
        ticket_service.set_status(ticket_a.id, store_a.id, "awaiting_approval")
        headers = auth_headers(token_for(admin_a))

        inbox = client.get("/api/notifications", headers=headers).json
        assert inbox["unread_count"] == 1
        note = inbox["notifications"][0]
        assert note["type"] == "approval_needed"
        assert note["ticket_number"] == ticket_a.ticket_number

        assert client.post(f"/api/notifications/{note['id']}/read", headers=headers).status_code == 200
        assert client.get("/api/notifications", headers=headers).json["unread_count"] == 0

    def test_cannot_read_someone_elses(self, client, db_session, store_a, admin_a, tech_a):
        note = notification_service.create_notification(store_a.id, admin_a.id, None, "status_change", "hello")
        db_session.commit()

        response = client.post(f"/api/notifications/{note.id}/read", headers=auth_headers(token_for(tech_a)))
        assert response.status_code == 404

    def test_read_all(self, client, db_session, store_a, admin_a):
        for i in range(3):
            notification_service.create_notification(store_a.id, admin_a.id, None, "status_change", f"n{i}")
        db_session.commit()

        response = client.post("/api/notifications/read-all", headers=auth_headers(token_for(admin_a)))
        assert response.json == {"success": True, "updated": 3}


class TestStoreSettings:

    def test_current_store(self, client, db_session, store_a, tech_a):
        response = client.get("/api/stores/current", headers=auth_headers(token_for(tech_a)))
        assert response.json["name"] == "Downtown"

    def test_processor_keys_never_returned(self, client, db_session, admin_a):
        headers = auth_headers(token_for(admin_a))
        response = client.put("/api/stores/current/payment-processor", headers=headers, json={
            "publishable_key": "pk_test_1",
            "secret_key": "sk_test_1",
            "webhook_secret": "whsec_1",
        })

        assert response.status_code == 200
        assert response.json["publishable_key"] == "pk_test_1"
        assert response.json["secret_key_configured"] is True
        assert response.json["webhook_secret_configured"] is True
        assert "sk_test_1" not in response.get_data(as_text=True)
        assert "whsec_1" not in response.get_data(as_text=True)

        stored = db_session.query(PaymentProcessorCredential).one()
        assert stored.secret_key_encrypted != "sk_test_1"

    def test_secret_requires_publishable_key(self, client, db_session, admin_a):
        response = client.put(
            "/api/stores/current/payment-processor",
            headers=auth_headers(token_for(admin_a)),
            json={"secret_key": "sk_test_1"},
        )
        assert response.status_code == 400

    @pytest.mark.parametrize("method", ["get", "put"])
    def test_processor_settings_admin_only(self, client, db_session, tech_a, method):
        response = getattr(client, method)(
            "/api/stores/current/payment-processor", headers=auth_headers(token_for(tech_a)), json={},
        )
        assert response.status_code == 403

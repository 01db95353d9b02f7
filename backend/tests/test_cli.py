# Overview: Pytest coverage for the Flask CLI commands.

from cryptography.fernet import Fernet

from repairdesk.models import Organization, Store, User
from repairdesk.services import credential_service


class TestCliCommands:

    def test_system_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["system", "init", "--org", "Fix Co", "--org-code", "FIXCO", "--store", "Main"])
        second = runner.invoke(args=["system", "init", "--org", "Fix Co", "--org-code", "FIXCO", "--store", "Main"])

        assert first.exit_code == 0, first.output
        assert second.exit_code == 0, second.output
        assert "already exists" in second.output
        assert db_session.query(Organization).filter_by(code="FIXCO").count() == 1
        store = db_session.query(Store).filter_by(name="Main").one()
        roles = {u.username: (u.role, u.org_role) for u in db_session.query(User).filter_by(store_id=store.id)}
        assert roles == {"admin": ("admin", "org_admin"), "tech": ("technician", None)}

    def test_set_payment_keys(self, app, db_session, store_a):
        runner = app.test_cli_runner()

        result = runner.invoke(args=[
            "stores", "set-payment-keys", "--store-id", str(store_a.id),
            "--publishable-key", "pk_cli", "--secret-key", "sk_cli", "--webhook-secret", "whsec_cli",
        ])

        assert result.exit_code == 0, result.output
        assert credential_service.get_secret_key(store_a.id) == "sk_cli"
        assert [c.store_id for c in credential_service.iter_webhook_secrets()] == [store_a.id]

    def test_set_payment_keys_unknown_store(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["stores", "set-payment-keys", "--store-id", "999", "--webhook-secret", "x"])
        assert result.exit_code != 0
        assert "Store not found" in result.output

    def test_generate_key(self, app):
        result = app.test_cli_runner().invoke(args=["security", "generate-key"])
        Fernet(result.output.strip().encode("ascii"))

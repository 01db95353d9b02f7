# Overview: Pytest coverage for ticket status changes and their side effects.

"""
Ticket Status Machine Tests

Verifies:
- completed_at is stamped when entering completed, and only then
- Permissive mode accepts any known status; strict mode follows the table
- Unknown statuses are rejected
- Status changes notify the assignee, admins and (optionally) the customer
"""

import pytest

from repairdesk.errors import StateConflict, ValidationError
from repairdesk.extensions import db
from repairdesk.models import EmailOutbox, Notification, Ticket
from repairdesk.services import ticket_service
from repairdesk.services.ticket_service import TicketStatus, is_valid_transition

from conftest import open_ticket


def _reload(ticket_id):
    ticket = db.session.get(Ticket, ticket_id)
    db.session.refresh(ticket)
    return ticket


# =============================================================================
# TRANSITION TABLE
# =============================================================================


class TestIsValidTransition:

    @pytest.mark.parametrize("current,new", [
        ("intake", "diagnosing"),
        ("diagnosing", "awaiting_approval"),
        ("awaiting_approval", "in_repair"),
        ("awaiting_approval", "diagnosing"),
        ("in_repair", "completed"),
        ("completed", "picked_up"),
        ("intake", "cancelled"),
        ("in_repair", "cancelled"),
        ("completed", "completed"),
    ])
    def test_allowed(self, current, new):
        assert is_valid_transition(current, new)

    @pytest.mark.parametrize("current,new", [
        ("intake", "completed"),
        ("diagnosing", "in_repair"),
        ("completed", "in_repair"),
        ("picked_up", "intake"),
        ("picked_up", "cancelled"),
        ("cancelled", "intake"),
    ])
    def test_refused(self, current, new):
        assert not is_valid_transition(current, new)

    def test_unknown_status_raises(self):
        with pytest.raises(ValueError):
            is_valid_transition("intake", "shipped")


# =============================================================================
# SET STATUS
# =============================================================================


class TestSetStatus:

    def test_new_ticket_starts_in_intake(self, db_session, ticket_a):
        assert ticket_a.status == TicketStatus.INTAKE.value
        assert ticket_a.completed_at is None

    def test_completed_stamps_once(self, db_session, store_a, ticket_a):
        ticket_service.set_status(ticket_a.id, store_a.id, "completed")
        stamped = _reload(ticket_a.id).completed_at
        assert stamped is not None

        # Re-saving the same status keeps the original stamp
        ticket_service.set_status(ticket_a.id, store_a.id, "completed")
        assert _reload(ticket_a.id).completed_at == stamped

        # Other moves keep it too
        ticket_service.set_status(ticket_a.id, store_a.id, "picked_up")
        assert _reload(ticket_a.id).completed_at == stamped

    def test_reentering_completed_restamps(self, db_session, store_a, ticket_a):
        ticket_service.set_status(ticket_a.id, store_a.id, "completed")
        ticket = _reload(ticket_a.id)
        ticket.completed_at = ticket.completed_at.replace(year=2000)
        db_session.commit()

        ticket_service.set_status(ticket_a.id, store_a.id, "in_repair")
        ticket_service.set_status(ticket_a.id, store_a.id, "completed")

        assert _reload(ticket_a.id).completed_at.year != 2000

    def test_invalid_status_rejected(self, db_session, store_a, ticket_a):
        with pytest.raises(ValidationError):
            ticket_service.set_status(ticket_a.id, store_a.id, "shipped")
        assert _reload(ticket_a.id).status == "intake"

    def test_permissive_mode_allows_any_known_status(self, db_session, store_a, ticket_a):
        ticket_service.set_status(ticket_a.id, store_a.id, "picked_up")
        assert _reload(ticket_a.id).status == "picked_up"

        ticket_service.set_status(ticket_a.id, store_a.id, "intake")
        assert _reload(ticket_a.id).status == "intake"

    def test_strict_mode_refuses_skips(self, app, db_session, store_a, ticket_a):
        app.config["TICKET_STRICT_TRANSITIONS"] = True

        with pytest.raises(StateConflict):
            ticket_service.set_status(ticket_a.id, store_a.id, "completed")
        assert _reload(ticket_a.id).status == "intake"

        for status in ("diagnosing", "awaiting_approval", "in_repair", "completed", "picked_up"):
            ticket_service.set_status(ticket_a.id, store_a.id, status)
        assert _reload(ticket_a.id).status == "picked_up"

    def test_update_ticket_applies_status(self, db_session, store_a, ticket_a):
        ticket_service.update_ticket(ticket_a.id, store_a.id, {
            "diagnosis": "Broken LCD", "status": "diagnosing", "final_cost": "999",
        })
        ticket = _reload(ticket_a.id)
        assert ticket.status == "diagnosing"
        assert ticket.diagnosis == "Broken LCD"
        assert ticket.final_cost == 0


# =============================================================================
# SIDE EFFECTS
# =============================================================================


class TestStatusSideEffects:

    def test_assignee_notified(self, db_session, store_a, customer_a, admin_a, tech_a):
        ticket = open_ticket(store_a, customer_a, created_by=admin_a, assigned_to=tech_a.id)

        ticket_service.set_status(ticket.id, store_a.id, "diagnosing", actor_user_id=admin_a.id)

        messages = [
            n.message for n in db_session.query(Notification)
            .filter_by(user_id=tech_a.id, type="status_change")
        ]
        assert messages == [f"Ticket #{ticket.ticket_number} moved to diagnosing"]

    def test_awaiting_approval_notifies_admins(self, db_session, store_a, ticket_a, admin_a, tech_a):
        ticket_service.set_status(ticket_a.id, store_a.id, "awaiting_approval")

        approval = db_session.query(Notification).filter_by(type="approval_needed").all()
        assert [n.user_id for n in approval] == [admin_a.id]

    def test_customer_email_queued(self, db_session, store_a, ticket_a):
        ticket_service.set_status(ticket_a.id, store_a.id, "awaiting_approval")

        email = db_session.query(EmailOutbox).one()
        assert email.recipient == "alice@example.test"
        assert email.template == "approval_needed"
        assert f"/track/{ticket_a.tracking_token}" in email.body
        assert email.body.count("https://track.example.test") == 1

    def test_status_change_email_template(self, db_session, store_a, ticket_a):
        ticket_service.set_status(ticket_a.id, store_a.id, "in_repair")

        email = db_session.query(EmailOutbox).one()
        assert email.template == "status_change"
        assert '"in repair"' in email.subject

    def test_no_email_when_opted_out(self, db_session, store_a, customer_a, admin_a):
        ticket = open_ticket(store_a, customer_a, created_by=admin_a, notify_customer=False)
        ticket_service.set_status(ticket.id, store_a.id, "completed")
        assert db_session.query(EmailOutbox).count() == 0

    def test_no_side_effects_without_change(self, db_session, store_a, ticket_a):
        ticket_service.set_status(ticket_a.id, store_a.id, "intake")
        assert db_session.query(EmailOutbox).count() == 0
        assert db_session.query(Notification).count() == 0

    def test_notification_failure_keeps_status(self, db_session, store_a, ticket_a, monkeypatch):
        def boom(event):
            raise RuntimeError("sink down")

        monkeypatch.setattr(ticket_service, "_queue_customer_email", boom)

        ticket_service.set_status(ticket_a.id, store_a.id, "completed")

        assert _reload(ticket_a.id).status == "completed"
        assert db_session.query(EmailOutbox).count() == 0

# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that cross-store access is denied for ticket data.

These tests create sister stores (same organization) and a store of a
different organization, then verify that:
1. A ticket of another store is reported as not found, never as forbidden
2. Cost and payment ledgers of another store cannot be read or written
3. Listings only contain the caller's store
4. Security events are logged for cross-tenant access attempts

Sister stores are isolated exactly like unrelated stores; only the
organization transfer crosses the boundary.
"""

import pytest

from repairdesk.errors import NotFound
from repairdesk.models import Payment, SecurityEvent, TicketCost
from repairdesk.services import cost_service, payment_service, ticket_service, warranty_service
from repairdesk.services.tenant_service import get_ticket_for_tenant

from conftest import auth_headers, token_for


def _cross_tenant_events(db_session):
    return db_session.query(SecurityEvent).filter_by(event_type="CROSS_TENANT_ACCESS_DENIED")


class TestTenantServiceHelpers:
    """Test tenant_service helper functions."""

    def test_own_ticket_loads(self, db_session, store_a, ticket_a):
        """Ticket in its own store passes validation."""
        assert get_ticket_for_tenant(ticket_a.id, store_a.id).id == ticket_a.id

    def test_sister_store_ticket_not_found(self, db_session, store_a, ticket_b):
        """Ticket of a sister store raises NotFound."""
        with pytest.raises(NotFound):
            get_ticket_for_tenant(ticket_b.id, store_a.id)

    def test_missing_ticket_not_found(self, db_session, store_a):
        """Non-existent ticket raises NotFound without a security event."""
        with pytest.raises(NotFound):
            get_ticket_for_tenant(99999, store_a.id)
        assert _cross_tenant_events(db_session).count() == 0

    def test_cross_tenant_access_logs_security_event(self, db_session, org, store_a, store_b, ticket_b):
        """Cross-tenant access attempt is logged with the caller's tenant."""
        with pytest.raises(NotFound):
            get_ticket_for_tenant(ticket_b.id, store_a.id)

        event = _cross_tenant_events(db_session).one()
        assert event.success is False
        assert event.store_id == store_a.id
        assert event.org_id == org.id
        assert event.resource == f"ticket:{ticket_b.id}"


class TestLedgerIsolation:
    """Cost and payment ledgers are scoped through the ticket's store."""

    def test_cannot_add_cost_to_foreign_ticket(self, db_session, store_a, ticket_b):
        with pytest.raises(NotFound):
            cost_service.add_cost(ticket_b.id, store_a.id, {
                "description": "Screen", "cost_type": "part", "amount": 45,
            })
        assert db_session.query(TicketCost).count() == 0

    def test_cannot_delete_foreign_cost(self, db_session, store_a, store_b, ticket_a, ticket_b):
        cost, _ = cost_service.add_cost(ticket_b.id, store_b.id, {
            "description": "Screen", "cost_type": "part", "amount": 45,
        })
        cost_id = cost.id

        cost_service.delete_cost(cost_id, ticket_a.id, store_a.id)

        assert db_session.query(TicketCost).filter_by(id=cost_id).count() == 1

    def test_cannot_read_foreign_payments(self, db_session, store_a, store_b, ticket_b):
        payment_service.add_payment(ticket_b.id, store_b.id, "20", "cash")
        with pytest.raises(NotFound):
            payment_service.get_payment_summary(ticket_b.id, store_a.id)

    def test_cannot_delete_foreign_payment(self, db_session, store_a, store_b, ticket_b):
        payment = payment_service.add_payment(ticket_b.id, store_b.id, "20", "cash")
        payment_id = payment.id

        with pytest.raises(NotFound):
            payment_service.delete_payment(payment_id, ticket_b.id, store_a.id)
        assert db_session.query(Payment).filter_by(id=payment_id).count() == 1

    def test_cannot_issue_foreign_warranty(self, db_session, store_a, store_b, ticket_b):
        ticket_service.set_status(ticket_b.id, store_b.id, "completed")
        with pytest.raises(NotFound):
            warranty_service.create_warranty(ticket_b.id, store_a.id, warranty_days=30)

    def test_listing_scoped_to_store(self, db_session, store_a, store_b, ticket_a, ticket_b):
        ids_a = [t["id"] for t in ticket_service.list_tickets(store_a.id)]
        ids_b = [t["id"] for t in ticket_service.list_tickets(store_b.id)]
        assert ids_a == [ticket_a.id]
        assert ids_b == [ticket_b.id]

    def test_ticket_numbers_per_store(self, db_session, ticket_a, ticket_b):
        """Each store numbers its tickets independently."""
        assert ticket_a.ticket_number == 1
        assert ticket_b.ticket_number == 1


class TestApiIsolation:
    """The HTTP layer uses the session's store, never a client-supplied one."""

    def test_foreign_ticket_is_404(self, client, db_session, admin_a, ticket_b):
        response = client.get(f"/api/tickets/{ticket_b.id}", headers=auth_headers(token_for(admin_a)))
        assert response.status_code == 404
        assert response.json == {"error": "Ticket not found"}

    def test_foreign_ticket_costs_are_404(self, client, db_session, admin_a, ticket_b):
        headers = auth_headers(token_for(admin_a))
        response = client.post(f"/api/tickets/{ticket_b.id}/costs", headers=headers, json={
            "description": "Screen", "cost_type": "part", "amount": 45,
        })
        assert response.status_code == 404
        assert db_session.query(TicketCost).count() == 0

    def test_other_org_ticket_is_404(self, client, db_session, admin_c, ticket_a):
        response = client.get(f"/api/tickets/{ticket_a.id}/payments", headers=auth_headers(token_for(admin_c)))
        assert response.status_code == 404
        assert _cross_tenant_events(db_session).count() == 1

    def test_store_id_in_body_ignored(self, client, db_session, store_a, store_b, admin_a, customer_a):
        headers = auth_headers(token_for(admin_a))
        response = client.post("/api/tickets", headers=headers, json={
            "customer_id": customer_a.id,
            "issue_description": "Battery swelling",
            "store_id": store_b.id,
        })
        assert response.status_code == 201
        assert response.json["store_id"] == store_a.id

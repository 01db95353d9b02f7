# Overview: Pytest coverage for warranty issuance, expiry and lookups.

"""
Warranty Tests

Verifies:
- Active status is derived from start_date + warranty_days at read time
- One warranty per ticket, only for completed or picked up tickets
- Updating the duration never resets start_date
- Store defaults apply when days/terms are omitted
- Returning-device lookups only match the same customer and device
"""

from datetime import timedelta

import pytest

from repairdesk.errors import NotFound, StateConflict, ValidationError
from repairdesk.models import Warranty
from repairdesk.services import ticket_service, warranty_service
from repairdesk.time_utils import as_naive_utc

from conftest import open_ticket


def _deliver(ticket, store, status="completed"):
    ticket_service.set_status(ticket.id, store.id, status)
    return ticket


@pytest.fixture
def completed_a(db_session, store_a, ticket_a):
    return _deliver(ticket_a, store_a)


class TestIsActive:

    @pytest.mark.parametrize("days", [1, 7, 30, 365])
    def test_active_until_expiry(self, db_session, store_a, completed_a, days):
        warranty = warranty_service.create_warranty(completed_a.id, store_a.id, warranty_days=days)
        start = as_naive_utc(warranty.start_date)

        assert warranty_service.is_active(warranty, now=start)
        assert warranty_service.is_active(warranty, now=start + timedelta(days=days - 1))
        assert warranty_service.is_active(warranty, now=start + timedelta(days=days))
        assert not warranty_service.is_active(warranty, now=start + timedelta(days=days + 1))

    def test_expires_at_is_start_plus_days(self, db_session, store_a, completed_a):
        warranty = warranty_service.create_warranty(completed_a.id, store_a.id, warranty_days=45)
        start = as_naive_utc(warranty.start_date)
        assert warranty_service.expires_at(warranty) == start + timedelta(days=45)


class TestCreateWarranty:

    def test_requires_delivered_ticket(self, db_session, store_a, ticket_a):
        with pytest.raises(StateConflict):
            warranty_service.create_warranty(ticket_a.id, store_a.id, warranty_days=30)
        assert db_session.query(Warranty).count() == 0

    def test_picked_up_ticket_allowed(self, db_session, store_a, ticket_a):
        _deliver(ticket_a, store_a, "picked_up")
        warranty = warranty_service.create_warranty(ticket_a.id, store_a.id, warranty_days=10)
        assert warranty.warranty_days == 10

    def test_one_per_ticket(self, db_session, store_a, completed_a):
        warranty_service.create_warranty(completed_a.id, store_a.id, warranty_days=30)
        with pytest.raises(StateConflict):
            warranty_service.create_warranty(completed_a.id, store_a.id, warranty_days=60)
        assert db_session.query(Warranty).count() == 1

    @pytest.mark.parametrize("days", [0, -3, "abc", "1.5", True])
    def test_days_must_be_positive_integer(self, db_session, store_a, completed_a, days):
        with pytest.raises(ValidationError):
            warranty_service.create_warranty(completed_a.id, store_a.id, warranty_days=days)
        assert db_session.query(Warranty).count() == 0

    def test_store_defaults_apply(self, db_session, store_b, ticket_b):
        _deliver(ticket_b, store_b)
        warranty = warranty_service.create_warranty(ticket_b.id, store_b.id)
        assert warranty.warranty_days == 90
        assert warranty.terms == "Parts and labor"

    def test_app_default_when_store_has_none(self, app, db_session, store_a, completed_a):
        warranty = warranty_service.create_warranty(completed_a.id, store_a.id)
        assert warranty.warranty_days == app.config["DEFAULT_WARRANTY_DAYS"]

    def test_foreign_ticket_not_found(self, db_session, store_a, store_b, ticket_b):
        _deliver(ticket_b, store_b)
        with pytest.raises(NotFound):
            warranty_service.create_warranty(ticket_b.id, store_a.id, warranty_days=30)


class TestUpdateWarranty:

    def test_update_keeps_start_date(self, db_session, store_a, completed_a):
        warranty = warranty_service.create_warranty(completed_a.id, store_a.id, warranty_days=30)
        original_start = as_naive_utc(warranty.start_date)

        updated = warranty_service.update_warranty(warranty.id, store_a.id, warranty_days=5, terms="Screen only")

        assert as_naive_utc(updated.start_date) == original_start
        assert updated.warranty_days == 5
        assert updated.terms == "Screen only"

    def test_shortening_can_expire(self, db_session, store_a, completed_a):
        warranty = warranty_service.create_warranty(completed_a.id, store_a.id, warranty_days=30)
        later = as_naive_utc(warranty.start_date) + timedelta(days=10)
        assert warranty_service.is_active(warranty, now=later)

        updated = warranty_service.update_warranty(warranty.id, store_a.id, warranty_days=5)
        assert not warranty_service.is_active(updated, now=later)

    def test_other_store_cannot_update(self, db_session, store_a, store_b, completed_a):
        warranty = warranty_service.create_warranty(completed_a.id, store_a.id, warranty_days=30)
        with pytest.raises(NotFound):
            warranty_service.update_warranty(warranty.id, store_b.id, warranty_days=365)


class TestLookups:

    def test_list_active_sorted_by_expiry(self, db_session, store_a, customer_a, admin_a, completed_a):
        second = _deliver(open_ticket(store_a, customer_a, created_by=admin_a), store_a)
        warranty_service.create_warranty(completed_a.id, store_a.id, warranty_days=60)
        warranty_service.create_warranty(second.id, store_a.id, warranty_days=7)

        active = warranty_service.list_active(store_a.id)

        assert [w["ticket_id"] for w in active] == [second.id, completed_a.id]
        assert all(w["active"] for w in active)
        assert active[0]["customer_name"] == "Alice Jones"

    def test_expired_not_listed(self, db_session, store_a, completed_a):
        warranty = warranty_service.create_warranty(completed_a.id, store_a.id, warranty_days=3)
        future = as_naive_utc(warranty.start_date) + timedelta(days=4)
        assert warranty_service.list_active(store_a.id, now=future) == []

    def test_check_return_matches_customer_and_device(self, db_session, store_a, customer_a, completed_a):
        warranty_service.create_warranty(completed_a.id, store_a.id, warranty_days=30)

        matches = warranty_service.check_warranty_return(store_a.id, customer_a.id, "Apple", "iPhone 13")
        assert [m["ticket_id"] for m in matches] == [completed_a.id]

        assert warranty_service.check_warranty_return(store_a.id, customer_a.id, "Apple", "iPhone 14") == []

    def test_check_return_scoped_to_store(self, db_session, store_a, store_b, customer_a, completed_a):
        warranty_service.create_warranty(completed_a.id, store_a.id, warranty_days=30)
        assert warranty_service.check_warranty_return(store_b.id, customer_a.id, "Apple", "iPhone 13") == []

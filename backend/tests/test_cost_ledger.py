# Overview: Pytest coverage for the ticket cost ledger and its denormalized totals.

"""
Cost Ledger Tests

Verifies:
- parts_cost / labor_cost / final_cost always equal the sums of the line items
- Labor amount derived from hours x hourly_rate only when amount is missing
- Invalid amounts and cost types are rejected without writing anything
- Deleting a missing or foreign cost is a no-op that still recomputes
- Part costs move stock through the inventory collaborator
"""

from decimal import Decimal

import pytest

from repairdesk.errors import NotFound, ValidationError
from repairdesk.extensions import db
from repairdesk.models import Part, PartStockMovement, Ticket, TicketCost
from repairdesk.services import cost_service

from conftest import open_ticket


def _totals(ticket_id):
    ticket = db.session.get(Ticket, ticket_id)
    db.session.refresh(ticket)
    return ticket.parts_cost, ticket.labor_cost, ticket.final_cost


# =============================================================================
# PURE AGGREGATION
# =============================================================================


class TestComputeTotals:

    def test_groups_by_type(self):
        totals = cost_service.compute_totals([
            ("part", Decimal("45.00")),
            ("labor", Decimal("120.00")),
            ("other", Decimal("5.50")),
            ("part", Decimal("10")),
        ])
        assert totals.parts == Decimal("55.00")
        assert totals.labor == Decimal("120.00")
        assert totals.other == Decimal("5.50")
        assert totals.final == Decimal("180.50")

    def test_empty_is_zero(self):
        totals = cost_service.compute_totals([])
        assert totals.final == Decimal("0.00")
        assert totals.to_dict() == {
            "parts_cost": "0.00",
            "labor_cost": "0.00",
            "other_cost": "0.00",
            "final_cost": "0.00",
        }


# =============================================================================
# ADD / DELETE
# =============================================================================


class TestAddCost:

    def test_example_scenario_totals(self, db_session, store_a, ticket_a):
        cost_service.add_cost(ticket_a.id, store_a.id, {
            "description": "Screen", "cost_type": "part", "amount": "45",
        })
        cost, totals = cost_service.add_cost(ticket_a.id, store_a.id, {
            "description": "Bench time", "cost_type": "labor", "hours": "2", "hourly_rate": "60",
        })

        assert cost.amount == Decimal("120.00")
        assert totals.final == Decimal("165.00")
        assert _totals(ticket_a.id) == (Decimal("45.00"), Decimal("120.00"), Decimal("165.00"))

    def test_supplied_labor_amount_is_stored_as_given(self, db_session, store_a, ticket_a):
        cost, _ = cost_service.add_cost(ticket_a.id, store_a.id, {
            "description": "Labor", "cost_type": "labor",
            "amount": "100", "hours": "2", "hourly_rate": "60",
        })
        assert cost.amount == Decimal("100.00")

    def test_other_costs_count_toward_final_only(self, db_session, store_a, ticket_a):
        cost_service.add_cost(ticket_a.id, store_a.id, {
            "description": "Shipping", "cost_type": "other", "amount": 12.5,
        })
        assert _totals(ticket_a.id) == (Decimal("0.00"), Decimal("0.00"), Decimal("12.50"))

    def test_zero_amount_allowed(self, db_session, store_a, ticket_a):
        cost, totals = cost_service.add_cost(ticket_a.id, store_a.id, {
            "description": "Free diagnosis", "cost_type": "labor", "amount": 0,
        })
        assert cost.amount == Decimal("0.00")
        assert totals.final == Decimal("0.00")

    @pytest.mark.parametrize("amount", [-1, "abc", None, "NaN", "Infinity", True])
    def test_invalid_amount_rejected(self, db_session, store_a, ticket_a, amount):
        with pytest.raises(ValidationError):
            cost_service.add_cost(ticket_a.id, store_a.id, {
                "description": "Bad", "cost_type": "part", "amount": amount,
            })
        assert db_session.query(TicketCost).count() == 0

    def test_invalid_cost_type_rejected(self, db_session, store_a, ticket_a):
        with pytest.raises(ValidationError):
            cost_service.add_cost(ticket_a.id, store_a.id, {
                "description": "Tax", "cost_type": "tax", "amount": 5,
            })

    def test_description_required(self, db_session, store_a, ticket_a):
        with pytest.raises(ValidationError):
            cost_service.add_cost(ticket_a.id, store_a.id, {"cost_type": "part", "amount": 5})

    def test_foreign_ticket_is_not_found(self, db_session, store_a, store_b, ticket_b):
        with pytest.raises(NotFound):
            cost_service.add_cost(ticket_b.id, store_a.id, {
                "description": "Screen", "cost_type": "part", "amount": 45,
            })
        assert db_session.query(TicketCost).count() == 0


class TestDeleteCost:

    def test_delete_recomputes(self, db_session, store_a, ticket_a):
        part_cost, _ = cost_service.add_cost(ticket_a.id, store_a.id, {
            "description": "Screen", "cost_type": "part", "amount": 45,
        })
        cost_service.add_cost(ticket_a.id, store_a.id, {
            "description": "Labor", "cost_type": "labor", "amount": 120,
        })

        totals = cost_service.delete_cost(part_cost.id, ticket_a.id, store_a.id)

        assert totals.final == Decimal("120.00")
        assert _totals(ticket_a.id) == (Decimal("0.00"), Decimal("120.00"), Decimal("120.00"))

    def test_missing_cost_is_noop(self, db_session, store_a, ticket_a):
        cost_service.add_cost(ticket_a.id, store_a.id, {
            "description": "Screen", "cost_type": "part", "amount": 45,
        })
        totals = cost_service.delete_cost(99999, ticket_a.id, store_a.id)
        assert totals.final == Decimal("45.00")
        assert db_session.query(TicketCost).count() == 1

    def test_cost_of_other_ticket_is_untouched(self, db_session, store_a, customer_a, admin_a, ticket_a):
        other = open_ticket(store_a, customer_a, created_by=admin_a)
        other_cost, _ = cost_service.add_cost(other.id, store_a.id, {
            "description": "Battery", "cost_type": "part", "amount": 30,
        })

        cost_service.delete_cost(other_cost.id, ticket_a.id, store_a.id)

        assert db.session.get(TicketCost, other_cost.id) is not None
        assert _totals(other.id)[2] == Decimal("30.00")

    def test_recompute_heals_drift(self, db_session, store_a, ticket_a):
        cost_service.add_cost(ticket_a.id, store_a.id, {
            "description": "Screen", "cost_type": "part", "amount": 45,
        })
        ticket = db.session.get(Ticket, ticket_a.id)
        ticket.final_cost = Decimal("999.00")
        db_session.commit()

        totals = cost_service.delete_cost(12345, ticket_a.id, store_a.id)

        assert totals.final == Decimal("45.00")
        assert _totals(ticket_a.id)[2] == Decimal("45.00")

    def test_totals_match_line_items_after_sequence(self, db_session, store_a, ticket_a):
        ids = []
        for amount, cost_type in [(10, "part"), (20, "labor"), (5, "other"), (7, "part")]:
            cost, _ = cost_service.add_cost(ticket_a.id, store_a.id, {
                "description": f"{cost_type} {amount}", "cost_type": cost_type, "amount": amount,
            })
            ids.append(cost.id)
        cost_service.delete_cost(ids[0], ticket_a.id, store_a.id)
        cost_service.delete_cost(ids[2], ticket_a.id, store_a.id)

        remaining = cost_service.list_costs(ticket_a.id, store_a.id)
        parts, labor, final = _totals(ticket_a.id)
        assert final == sum(c.amount for c in remaining)
        assert parts == sum(c.amount for c in remaining if c.cost_type == "part")
        assert labor == sum(c.amount for c in remaining if c.cost_type == "labor")


# =============================================================================
# INVENTORY COLLABORATOR
# =============================================================================


class TestPartStock:

    @pytest.fixture
    def part(self, db_session, store_a):
        part = Part(store_id=store_a.id, name="iPhone 13 screen", sku="SCR-13", quantity=3, min_quantity=1)
        db_session.add(part)
        db_session.commit()
        return part

    def test_part_cost_consumes_stock(self, db_session, store_a, ticket_a, part):
        cost_service.add_cost(ticket_a.id, store_a.id, {
            "description": "Screen", "cost_type": "part", "amount": 45,
            "part_id": part.id, "quantity": 2,
        })
        db_session.refresh(part)
        assert part.quantity == 1
        movement = db_session.query(PartStockMovement).filter_by(part_id=part.id).one()
        assert movement.quantity_change == -2
        assert movement.ticket_id == ticket_a.id

    def test_insufficient_stock_rolls_back(self, db_session, store_a, ticket_a, part):
        with pytest.raises(ValidationError, match="Insufficient stock"):
            cost_service.add_cost(ticket_a.id, store_a.id, {
                "description": "Screen", "cost_type": "part", "amount": 45,
                "part_id": part.id, "quantity": 5,
            })
        db_session.refresh(part)
        assert part.quantity == 3
        assert db_session.query(TicketCost).count() == 0
        assert _totals(ticket_a.id)[2] == Decimal("0.00")

    def test_delete_restores_stock(self, db_session, store_a, ticket_a, part):
        cost, _ = cost_service.add_cost(ticket_a.id, store_a.id, {
            "description": "Screen", "cost_type": "part", "amount": 45,
            "part_id": part.id, "quantity": 1,
        })
        cost_service.delete_cost(cost.id, ticket_a.id, store_a.id)
        db_session.refresh(part)
        assert part.quantity == 3

    def test_foreign_part_is_not_found(self, db_session, store_a, store_b, ticket_a):
        part_b = Part(store_id=store_b.id, name="Other screen", quantity=10)
        db_session.add(part_b)
        db_session.commit()

        with pytest.raises(NotFound):
            cost_service.add_cost(ticket_a.id, store_a.id, {
                "description": "Screen", "cost_type": "part", "amount": 45, "part_id": part_b.id,
            })
        db_session.refresh(part_b)
        assert part_b.quantity == 10

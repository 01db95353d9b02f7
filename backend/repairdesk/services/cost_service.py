# backend/repairdesk/services/cost_service.py
"""
Ticket cost ledger.

WHY: A ticket's parts_cost, labor_cost and final_cost are denormalized for
listing and invoicing. They are always recomputed from the full set of
ticket_costs rows, never adjusted incrementally, so any earlier drift heals
on the next mutation.

INVARIANT (after every add/delete):
    parts_cost == sum(amount where cost_type = part)
    labor_cost == sum(amount where cost_type = labor)
    final_cost == sum(amount of every line)

TRANSACTIONS: The ticket row is locked first, then the line item and the
totals are written and committed together.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from ..extensions import db
from ..errors import ValidationError
from ..models import Ticket, TicketCost
from ..models.tickets import COST_TYPE_LABOR, COST_TYPE_OTHER, COST_TYPE_PART, VALID_COST_TYPES
from repairdesk.money import MoneyError, ZERO, money, to_decimal, to_money_str
from repairdesk.time_utils import utcnow
from .concurrency import run_atomic
from .tenant_service import get_ticket_for_tenant
from . import inventory_service


@dataclass(frozen=True)
class CostTotals:
    parts: Decimal
    labor: Decimal
    other: Decimal
    final: Decimal

    def to_dict(self) -> dict:
        return {
            "parts_cost": to_money_str(self.parts),
            "labor_cost": to_money_str(self.labor),
            "other_cost": to_money_str(self.other),
            "final_cost": to_money_str(self.final),
        }


def compute_totals(lines: Iterable[tuple[str, Decimal]]) -> CostTotals:
    """
    Pure aggregation over (cost_type, amount) pairs.

    Unknown cost types count toward final only, so final always equals the
    sum of every line.
    """
    sums = {COST_TYPE_PART: ZERO, COST_TYPE_LABOR: ZERO, COST_TYPE_OTHER: ZERO}
    final = ZERO
    for cost_type, amount in lines:
        value = money(amount)
        final += value
        if cost_type in sums:
            sums[cost_type] += value
    return CostTotals(
        parts=sums[COST_TYPE_PART],
        labor=sums[COST_TYPE_LABOR],
        other=sums[COST_TYPE_OTHER],
        final=final,
    )


def recompute_totals(ticket: Ticket) -> CostTotals:
    """
    Re-sum the ticket's line items and write the aggregates onto the ticket.

    Call inside the mutating transaction with the ticket row locked. Does
    not commit.
    """
    db.session.flush()
    lines = (
        db.session.query(TicketCost.cost_type, TicketCost.amount)
        .filter(TicketCost.ticket_id == ticket.id)
        .all()
    )
    totals = compute_totals((row.cost_type, row.amount) for row in lines)

    ticket.parts_cost = totals.parts
    ticket.labor_cost = totals.labor
    ticket.final_cost = totals.final
    ticket.updated_at = utcnow()
    return totals


def _optional_decimal(value, field: str) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        parsed = to_decimal(value)
    except MoneyError:
        raise ValidationError(f"{field} must be a number")
    if parsed < 0:
        raise ValidationError(f"{field} must not be negative")
    return parsed


def _parse_cost(data: dict) -> dict:
    description = (data.get("description") or "").strip()
    if not description:
        raise ValidationError("Description is required")

    cost_type = data.get("cost_type")
    if cost_type not in VALID_COST_TYPES:
        raise ValidationError(f"Invalid cost type: {cost_type}. Must be part, labor or other")

    hours = _optional_decimal(data.get("hours"), "Hours")
    hourly_rate = _optional_decimal(data.get("hourly_rate"), "Hourly rate")

    raw_amount = data.get("amount")
    if (raw_amount is None or raw_amount == "") and cost_type == COST_TYPE_LABOR \
            and hours is not None and hourly_rate is not None:
        amount = money(hours * hourly_rate)
    else:
        try:
            amount = to_decimal(raw_amount)
        except MoneyError:
            raise ValidationError("Amount must be a number greater than or equal to 0")
        if amount < 0:
            raise ValidationError("Amount must be a number greater than or equal to 0")

    part_id = data.get("part_id")
    quantity = None
    if part_id is not None:
        try:
            part_id = int(part_id)
            quantity = int(data.get("quantity") or 1)
        except (TypeError, ValueError):
            raise ValidationError("part_id and quantity must be integers")
        if quantity <= 0:
            raise ValidationError("Quantity must be positive")

    return {
        "description": description,
        "cost_type": cost_type,
        "amount": amount,
        "hours": hours,
        "hourly_rate": hourly_rate,
        "part_id": part_id,
        "quantity": quantity,
    }


def add_cost(ticket_id: int, tenant_id: int, data: dict) -> tuple[TicketCost, CostTotals]:
    """
    Add a cost line item and recompute the ticket totals.

    Labor lines with hours and hourly_rate but no amount get
    amount = hours * hourly_rate. A supplied amount is stored as given.

    When part_id is set, stock is taken from the inventory in the same
    transaction (insufficient stock raises ValidationError).

    Raises:
        ValidationError: invalid amount, cost type or quantity
        NotFound: ticket or part not in this tenant
    """
    fields = _parse_cost(data)

    def _op():
        ticket = get_ticket_for_tenant(ticket_id, tenant_id, for_update=True)

        cost = TicketCost(ticket_id=ticket.id, **fields)
        db.session.add(cost)

        if fields["part_id"] is not None:
            inventory_service.consume_part(tenant_id, fields["part_id"], fields["quantity"], ticket_id=ticket.id)

        totals = recompute_totals(ticket)
        return cost, totals

    return run_atomic(_op)


def delete_cost(cost_id: int, ticket_id: int, tenant_id: int) -> CostTotals:
    """
    Delete a cost line item of this ticket and recompute totals.

    A cost that does not exist or belongs to another ticket is left alone;
    the totals are still recomputed.

    Raises:
        NotFound: ticket not in this tenant
    """
    def _op():
        ticket = get_ticket_for_tenant(ticket_id, tenant_id, for_update=True)

        cost = (
            db.session.query(TicketCost)
            .filter_by(id=cost_id, ticket_id=ticket.id)
            .first()
        )
        if cost is not None:
            if cost.part_id is not None:
                inventory_service.restore_part(tenant_id, cost.part_id, cost.quantity or 1, ticket_id=ticket.id)
            db.session.delete(cost)

        return recompute_totals(ticket)

    return run_atomic(_op)


def list_costs(ticket_id: int, tenant_id: int) -> list[TicketCost]:
    get_ticket_for_tenant(ticket_id, tenant_id)
    return (
        db.session.query(TicketCost)
        .filter_by(ticket_id=ticket_id)
        .order_by(TicketCost.created_at.asc(), TicketCost.id.asc())
        .all()
    )

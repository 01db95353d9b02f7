# backend/repairdesk/services/payment_service.py
"""
Ticket payment ledger.

WHY: Payments are recorded independently of costs. Balance is computed on
read (final_cost - sum of payments) and never stored, because processor
payments arrive asynchronously and an eagerly stored total would race with
them. A negative balance means the customer overpaid and is a valid state.

IDEMPOTENCY: Processor payments carry processor_session_id, which is unique.
A redelivered event hits the constraint and is surfaced as
DuplicatePaymentError instead of a second row.
"""
from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import StateConflict, ValidationError
from ..models import Payment, Ticket
from ..models.payments import VALID_PAYMENT_METHODS
from repairdesk.money import MoneyError, ZERO, money, to_decimal, to_money_str
from .concurrency import run_atomic
from .tenant_service import get_ticket_for_tenant


PAYMENT_STATUS_UNPAID = "unpaid"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_OVERPAID = "overpaid"


class DuplicatePaymentError(StateConflict):
    """Raised when a processor session id was already recorded."""
    pass


def add_payment(
    ticket_id: int,
    tenant_id: int,
    amount,
    method: str,
    note: str | None = None,
    created_by: int | None = None,
    processor_session_id: str | None = None,
    processor_payment_intent_id: str | None = None,
) -> Payment:
    """
    Record a payment against a ticket.

    Does not touch any ticket field.

    Raises:
        ValidationError: amount not > 0 or unknown method
        NotFound: ticket not in this tenant
        DuplicatePaymentError: processor_session_id already recorded
    """
    try:
        value = to_decimal(amount)
    except MoneyError:
        raise ValidationError("Amount must be a positive number")
    if value <= 0:
        raise ValidationError("Amount must be a positive number")
    if method not in VALID_PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method: {method}")

    def _op():
        ticket = get_ticket_for_tenant(ticket_id, tenant_id)
        payment = Payment(
            ticket_id=ticket.id,
            store_id=tenant_id,
            amount=value,
            method=method,
            note=note,
            created_by=created_by,
            processor_session_id=processor_session_id,
            processor_payment_intent_id=processor_payment_intent_id,
        )
        db.session.add(payment)
        db.session.flush()
        return payment

    try:
        return run_atomic(_op)
    except IntegrityError:
        if processor_session_id:
            raise DuplicatePaymentError(f"Payment for session {processor_session_id} already recorded")
        raise


def list_payments(ticket_id: int, tenant_id: int) -> list[Payment]:
    get_ticket_for_tenant(ticket_id, tenant_id)
    return (
        db.session.query(Payment)
        .filter_by(ticket_id=ticket_id, store_id=tenant_id)
        .order_by(Payment.created_at.asc(), Payment.id.asc())
        .all()
    )


def _sum_paid(ticket: Ticket) -> Decimal:
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(Payment.ticket_id == ticket.id, Payment.store_id == ticket.store_id)
        .scalar()
    )
    return money(total)


def get_total_paid(ticket_id: int, tenant_id: int) -> Decimal:
    return _sum_paid(get_ticket_for_tenant(ticket_id, tenant_id))


def balance_for(ticket: Ticket) -> tuple[Decimal, Decimal]:
    """(total_paid, balance) for an already tenant-checked ticket."""
    paid = _sum_paid(ticket)
    return paid, money(ticket.final_cost) - paid


def get_balance(ticket_id: int, tenant_id: int) -> Decimal:
    """final_cost - total paid. Negative means overpaid."""
    _, balance = balance_for(get_ticket_for_tenant(ticket_id, tenant_id))
    return balance


def payment_status(final_cost: Decimal, total_paid: Decimal) -> str:
    if total_paid <= 0:
        return PAYMENT_STATUS_UNPAID
    if total_paid < final_cost:
        return PAYMENT_STATUS_PARTIAL
    if total_paid == final_cost:
        return PAYMENT_STATUS_PAID
    return PAYMENT_STATUS_OVERPAID


def get_payment_summary(ticket_id: int, tenant_id: int) -> dict:
    ticket = get_ticket_for_tenant(ticket_id, tenant_id)
    payments = (
        db.session.query(Payment)
        .filter_by(ticket_id=ticket.id, store_id=tenant_id)
        .order_by(Payment.created_at.asc(), Payment.id.asc())
        .all()
    )
    total_paid = sum((money(p.amount) for p in payments), ZERO)
    final_cost = money(ticket.final_cost)
    balance = final_cost - total_paid
    return {
        "payments": [p.to_dict() for p in payments],
        "total_paid": to_money_str(total_paid),
        "final_cost": to_money_str(final_cost),
        "balance": to_money_str(balance),
        "status": payment_status(final_cost, total_paid),
    }


def delete_payment(payment_id: int, ticket_id: int, tenant_id: int) -> bool:
    """
    Hard-delete a payment of this ticket.

    Returns False (and changes nothing) when the payment does not exist or
    belongs to another ticket or tenant.

    Raises:
        NotFound: ticket not in this tenant
    """
    def _op():
        get_ticket_for_tenant(ticket_id, tenant_id)
        deleted = (
            db.session.query(Payment)
            .filter_by(id=payment_id, ticket_id=ticket_id, store_id=tenant_id)
            .delete(synchronize_session=False)
        )
        return bool(deleted)

    return run_atomic(_op)

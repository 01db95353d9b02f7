# backend/repairdesk/services/warranty_service.py
"""
Warranty tracking for delivered repairs.

WHY: A warranty starts when the work is handed over and runs for
warranty_days. Active/expired is derived on read and never stored, so an
admin changing the duration moves a warranty between active and expired
without any other bookkeeping.

One warranty per ticket, enforced here and by a unique constraint.
"""
from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import NotFound, StateConflict, ValidationError
from ..models import Customer, Store, Ticket, Warranty
from repairdesk.time_utils import utcnow
from .concurrency import run_atomic
from .tenant_service import get_ticket_for_tenant


DELIVERED_STATUSES = ("completed", "picked_up")


def expires_at(warranty: Warranty) -> datetime:
    return warranty.expires_at


def is_active(warranty: Warranty, now: datetime | None = None) -> bool:
    """now <= start_date + warranty_days. Pure; safe to call for display."""
    now = now or utcnow()
    return now <= warranty.expires_at


def _parse_days(value) -> int:
    if isinstance(value, bool):
        raise ValidationError("Warranty days must be a positive integer")
    try:
        days = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Warranty days must be a positive integer")
    if days <= 0 or str(days) != str(value).strip():
        raise ValidationError("Warranty days must be a positive integer")
    return days


def _store_defaults(store_id: int) -> tuple[int, str | None]:
    store = db.session.get(Store, store_id)
    days = store.default_warranty_days if store and store.default_warranty_days else None
    terms = store.default_warranty_terms if store else None
    return days or current_app.config.get("DEFAULT_WARRANTY_DAYS", 30), terms


def create_warranty(
    ticket_id: int,
    tenant_id: int,
    warranty_days=None,
    terms: str | None = None,
) -> Warranty:
    """
    Issue the warranty for a delivered ticket.

    Missing days/terms fall back to the store's warranty defaults.

    Raises:
        NotFound: ticket not in this tenant
        StateConflict: ticket not completed/picked up, or warranty exists
        ValidationError: days not a positive integer
    """
    def _op():
        ticket = get_ticket_for_tenant(ticket_id, tenant_id, for_update=True)
        if ticket.status not in DELIVERED_STATUSES:
            raise StateConflict("Warranty can only be created for completed or picked up tickets")

        existing = db.session.query(Warranty.id).filter_by(ticket_id=ticket.id).first()
        if existing:
            raise StateConflict("Warranty already exists for this ticket")

        default_days, default_terms = _store_defaults(tenant_id)
        days = _parse_days(warranty_days) if warranty_days is not None else default_days

        warranty = Warranty(
            ticket_id=ticket.id,
            store_id=tenant_id,
            start_date=utcnow(),
            warranty_days=days,
            terms=terms if terms is not None else default_terms,
        )
        db.session.add(warranty)
        db.session.flush()
        return warranty

    try:
        return run_atomic(_op)
    except IntegrityError:
        # Lost a race with a concurrent create for the same ticket
        raise StateConflict("Warranty already exists for this ticket")


def get_for_ticket(ticket_id: int, tenant_id: int) -> Warranty | None:
    get_ticket_for_tenant(ticket_id, tenant_id)
    return db.session.query(Warranty).filter_by(ticket_id=ticket_id).first()


def _get_warranty_for_tenant(warranty_id: int, tenant_id: int) -> Warranty:
    # Scoped through the ticket so a transferred ticket's warranty follows it
    warranty = (
        db.session.query(Warranty)
        .join(Ticket, Warranty.ticket_id == Ticket.id)
        .filter(Warranty.id == warranty_id, Ticket.store_id == tenant_id)
        .first()
    )
    if not warranty:
        raise NotFound("Warranty not found")
    return warranty


def update_warranty(
    warranty_id: int,
    tenant_id: int,
    warranty_days=None,
    terms: str | None = None,
) -> Warranty:
    """
    Change duration and/or terms. start_date is never reset, so a change
    in duration can move a warranty between active and expired.
    """
    def _op():
        warranty = _get_warranty_for_tenant(warranty_id, tenant_id)
        if warranty_days is not None:
            warranty.warranty_days = _parse_days(warranty_days)
        if terms is not None:
            warranty.terms = terms
        return warranty

    return run_atomic(_op)


def _describe(warranty: Warranty, ticket: Ticket, customer: Customer | None, now: datetime) -> dict:
    data = warranty.to_dict(now=now)
    data.update({
        "ticket_number": ticket.ticket_number,
        "device_brand": ticket.device_brand,
        "device_model": ticket.device_model,
        "issue_description": ticket.issue_description,
        "completed_at": ticket.to_dict()["completed_at"],
        "customer_name": customer.name if customer else None,
        "customer_phone": customer.phone if customer else None,
    })
    return data


def list_active(tenant_id: int, now: datetime | None = None) -> list[dict]:
    """Active warranties of the store, soonest expiry first."""
    now = now or utcnow()
    rows = (
        db.session.query(Warranty, Ticket, Customer)
        .join(Ticket, Warranty.ticket_id == Ticket.id)
        .outerjoin(Customer, Ticket.customer_id == Customer.id)
        .filter(Ticket.store_id == tenant_id)
        .all()
    )
    active = [
        (warranty, ticket, customer)
        for warranty, ticket, customer in rows
        if is_active(warranty, now)
    ]
    active.sort(key=lambda row: row[0].expires_at)
    return [_describe(w, t, c, now) for w, t, c in active]


def check_warranty_return(
    tenant_id: int,
    customer_id: int,
    device_brand: str,
    device_model: str,
    now: datetime | None = None,
) -> list[dict]:
    """
    Active warranties on delivered tickets for the same customer and device.

    Used at intake to flag a returning device that is still covered.
    """
    now = now or utcnow()
    rows = (
        db.session.query(Warranty, Ticket, Customer)
        .join(Ticket, Warranty.ticket_id == Ticket.id)
        .outerjoin(Customer, Ticket.customer_id == Customer.id)
        .filter(
            Ticket.store_id == tenant_id,
            Ticket.customer_id == customer_id,
            Ticket.device_brand == device_brand,
            Ticket.device_model == device_model,
            Ticket.status.in_(DELIVERED_STATUSES),
        )
        .all()
    )
    matches = [
        (warranty, ticket, customer)
        for warranty, ticket, customer in rows
        if is_active(warranty, now)
    ]
    matches.sort(key=lambda row: row[0].start_date, reverse=True)
    return [_describe(w, t, c, now) for w, t, c in matches]

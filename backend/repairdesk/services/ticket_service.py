# backend/repairdesk/services/ticket_service.py
"""
Ticket lifecycle and status machine.

LIFECYCLE:
1. intake: Device received, ticket created
2. diagnosing: Technician is looking at it
3. awaiting_approval: Estimate sent, waiting on the customer
4. in_repair: Customer approved, work in progress
5. completed: Work done (stamps completed_at)
6. picked_up: Handed back to the customer
cancelled is reachable from any non-terminal state.

PERMISSIVE BY DEFAULT: Staff may move a ticket to any known status (the UI
offers free-form status buttons). With TICKET_STRICT_TRANSITIONS enabled,
only the transitions in TRANSITIONS are accepted.

SIDE EFFECTS: A status change produces a StatusChangeEvent. After the change
is committed the event is delivered to the notification and email outbox
sinks; delivery failures are logged and never undo the status change.
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from flask import current_app
from sqlalchemy import String, cast, func, or_

from ..extensions import db
from ..errors import StateConflict, ValidationError
from ..models import Customer, Payment, Store, Ticket, User
from repairdesk.money import MoneyError, money, to_decimal, to_money_str
from repairdesk.time_utils import utcnow
from .concurrency import run_atomic
from .document_service import DOCUMENT_TYPE_TICKET, next_document_number
from .tenant_service import get_customer_for_tenant, get_ticket_for_tenant
from . import email_service, notification_service


class TicketStatus(str, Enum):
    INTAKE = "intake"
    DIAGNOSING = "diagnosing"
    AWAITING_APPROVAL = "awaiting_approval"
    IN_REPAIR = "in_repair"
    COMPLETED = "completed"
    PICKED_UP = "picked_up"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({TicketStatus.PICKED_UP, TicketStatus.CANCELLED})

TRANSITIONS = {
    TicketStatus.INTAKE: {TicketStatus.DIAGNOSING},
    TicketStatus.DIAGNOSING: {TicketStatus.AWAITING_APPROVAL},
    # Rejection sends the ticket back for a new diagnosis
    TicketStatus.AWAITING_APPROVAL: {TicketStatus.IN_REPAIR, TicketStatus.DIAGNOSING},
    TicketStatus.IN_REPAIR: {TicketStatus.COMPLETED},
    TicketStatus.COMPLETED: {TicketStatus.PICKED_UP},
    TicketStatus.PICKED_UP: set(),
    TicketStatus.CANCELLED: set(),
}

# Fields staff may change through update_ticket. Cost aggregates are derived
# and status goes through the status machine.
UPDATABLE_FIELDS = (
    "diagnosis",
    "estimated_cost",
    "assigned_to",
    "notify_customer",
    "accessories",
    "intake_signature",
    "pickup_signature",
    "device_type",
    "device_brand",
    "device_model",
    "serial_number",
    "issue_description",
)


def parse_status(value) -> TicketStatus:
    try:
        return TicketStatus(value)
    except ValueError:
        raise ValidationError(f"Invalid status: {value}")


def is_valid_transition(current, new) -> bool:
    """
    True when `new` may follow `current` in the strict transition table.

    Staying in the same status is always valid. cancelled may follow any
    non-terminal status.
    """
    current = TicketStatus(current)
    new = TicketStatus(new)
    if current == new:
        return True
    if current in TERMINAL_STATUSES:
        return False
    if new == TicketStatus.CANCELLED:
        return True
    return new in TRANSITIONS[current]


@dataclass(frozen=True)
class StatusChangeEvent:
    ticket_id: int
    store_id: int
    ticket_number: int
    old_status: str
    new_status: str
    actor_user_id: int | None
    assigned_to: int | None
    notify_customer: bool
    customer_id: int
    tracking_token: str


def _label(status: str) -> str:
    return status.replace("_", " ")


def apply_status(ticket: Ticket, new_status, actor_user_id: int | None = None,
                 *, enforce_transitions: bool | None = None) -> StatusChangeEvent | None:
    """
    Move a loaded ticket to new_status inside the caller's transaction.

    Returns the event to publish after commit, or None when the status did
    not change. completed_at is stamped only when entering completed from
    another status, so re-saving a completed ticket keeps the original time.
    """
    target = parse_status(new_status)
    if enforce_transitions is None:
        enforce_transitions = bool(current_app.config.get("TICKET_STRICT_TRANSITIONS", False))

    old_status = ticket.status
    if old_status == target.value:
        return None

    if enforce_transitions and not is_valid_transition(old_status, target):
        raise StateConflict(f"Cannot move ticket from {_label(old_status)} to {_label(target.value)}")

    now = utcnow()
    ticket.status = target.value
    ticket.updated_at = now
    if target == TicketStatus.COMPLETED:
        ticket.completed_at = now

    return StatusChangeEvent(
        ticket_id=ticket.id,
        store_id=ticket.store_id,
        ticket_number=ticket.ticket_number,
        old_status=old_status,
        new_status=target.value,
        actor_user_id=actor_user_id,
        assigned_to=ticket.assigned_to,
        notify_customer=bool(ticket.notify_customer),
        customer_id=ticket.customer_id,
        tracking_token=ticket.tracking_token,
    )


def _queue_status_notifications(event: StatusChangeEvent) -> None:
    label = _label(event.new_status)

    if event.assigned_to:
        notification_service.create_notification(
            event.store_id, event.assigned_to, event.ticket_id, "status_change",
            f"Ticket #{event.ticket_number} moved to {label}",
        )

    if event.new_status == TicketStatus.AWAITING_APPROVAL.value:
        notification_service.notify_role(
            event.store_id, "admin", event.ticket_id, "approval_needed",
            f"Ticket #{event.ticket_number} needs approval",
        )


def _queue_customer_email(event: StatusChangeEvent) -> None:
    if not event.notify_customer:
        return
    customer = db.session.get(Customer, event.customer_id)
    if not customer or not customer.email:
        return
    store = db.session.get(Store, event.store_id)

    template = (
        email_service.TEMPLATE_APPROVAL_NEEDED
        if event.new_status == TicketStatus.AWAITING_APPROVAL.value
        else email_service.TEMPLATE_STATUS_CHANGE
    )
    email_service.queue_email(
        event.store_id,
        event.ticket_id,
        customer.email,
        template,
        {
            "customer_name": customer.name,
            "ticket_number": event.ticket_number,
            "store_name": store.name if store else "",
            "status": event.new_status,
            "tracking_url": email_service.tracking_url(event.tracking_token),
        },
    )


def publish_status_change(event: StatusChangeEvent | None) -> None:
    """Deliver a committed status change to the notification and email sinks."""
    if event is None:
        return
    current_app.logger.info(
        "Ticket %s (store %s) %s -> %s by user %s",
        event.ticket_id, event.store_id, event.old_status, event.new_status, event.actor_user_id,
    )
    notification_service.deliver_after_commit(
        f"status notifications for ticket {event.ticket_id}",
        lambda: _queue_status_notifications(event),
    )
    notification_service.deliver_after_commit(
        f"customer email for ticket {event.ticket_id}",
        lambda: _queue_customer_email(event),
    )


def set_status(ticket_id: int, tenant_id: int, new_status, actor_user_id: int | None = None) -> Ticket:
    """
    Change a ticket's status.

    Raises:
        NotFound: ticket not in this tenant
        ValidationError: unknown status
        StateConflict: transition refused (strict mode only)
    """
    def _op():
        ticket = get_ticket_for_tenant(ticket_id, tenant_id, for_update=True)
        event = apply_status(ticket, new_status, actor_user_id)
        return ticket, event

    ticket, event = run_atomic(_op)
    publish_status_change(event)
    return ticket


def generate_tracking_token() -> str:
    return secrets.token_urlsafe(24)


def _optional_money(value, field: str) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        parsed = to_decimal(value)
    except MoneyError:
        raise ValidationError(f"{field} must be a number")
    if parsed < 0:
        raise ValidationError(f"{field} must not be negative")
    return parsed


def _validate_assignee(user_id, tenant_id: int) -> int | None:
    if user_id is None or user_id == "":
        return None
    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        raise ValidationError("assigned_to must be a user id")
    user = (
        db.session.query(User)
        .filter_by(id=user_id, store_id=tenant_id, is_active=True)
        .first()
    )
    if not user:
        raise ValidationError("Assigned user not found in this store")
    return user.id


def create_ticket(tenant_id: int, created_by: int | None, data: dict) -> Ticket:
    """
    Open a new ticket in status intake.

    Allocates the next per-store ticket number and a tracking token.

    Raises:
        ValidationError: missing issue description, bad assignee or amount
        NotFound: customer not in this tenant
    """
    issue = (data.get("issue_description") or "").strip()
    if not issue:
        raise ValidationError("Issue description is required")
    if data.get("customer_id") is None:
        raise ValidationError("customer_id is required")

    estimated_cost = _optional_money(data.get("estimated_cost"), "Estimated cost")

    def _op():
        customer = get_customer_for_tenant(data["customer_id"], tenant_id)
        assigned_to = _validate_assignee(data.get("assigned_to"), tenant_id)

        ticket = Ticket(
            store_id=tenant_id,
            customer_id=customer.id,
            ticket_number=next_document_number(store_id=tenant_id, document_type=DOCUMENT_TYPE_TICKET),
            tracking_token=generate_tracking_token(),
            device_type=data.get("device_type") or None,
            device_brand=data.get("device_brand") or None,
            device_model=data.get("device_model") or None,
            serial_number=data.get("serial_number") or None,
            issue_description=issue,
            estimated_cost=estimated_cost,
            assigned_to=assigned_to,
            notify_customer=bool(data.get("notify_customer", True)),
            accessories=data.get("accessories") or None,
            intake_signature=data.get("intake_signature") or None,
            status=TicketStatus.INTAKE.value,
            created_by=created_by,
        )
        db.session.add(ticket)
        db.session.flush()
        return ticket

    ticket = run_atomic(_op)
    current_app.logger.info("Created ticket #%s in store %s", ticket.ticket_number, tenant_id)

    if ticket.assigned_to and ticket.assigned_to != created_by:
        notification_service.deliver_after_commit(
            f"assignment notification for ticket {ticket.id}",
            lambda: notification_service.create_notification(
                tenant_id, ticket.assigned_to, ticket.id, "assignment",
                f"Ticket #{ticket.ticket_number} assigned to you",
            ),
        )
    return ticket


def get_ticket(ticket_id: int, tenant_id: int) -> Ticket:
    return get_ticket_for_tenant(ticket_id, tenant_id)


def ticket_detail(ticket: Ticket) -> dict:
    """Ticket dict with customer, assignee and computed payment position."""
    paid = (
        db.session.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(Payment.ticket_id == ticket.id, Payment.store_id == ticket.store_id)
        .scalar()
    )
    paid = money(paid)
    data = ticket.to_dict()
    data.update({
        "customer_name": ticket.customer.name if ticket.customer else None,
        "customer_email": ticket.customer.email if ticket.customer else None,
        "customer_phone": ticket.customer.phone if ticket.customer else None,
        "assigned_to_name": ticket.assignee.name if ticket.assignee else None,
        "store_name": ticket.store.name if ticket.store else None,
        "total_paid": to_money_str(paid),
        "balance": to_money_str(money(ticket.final_cost) - paid),
    })
    return data


def list_tickets(
    tenant_id: int,
    status: str | None = None,
    search: str | None = None,
    customer_id: int | None = None,
    assigned_to=None,
) -> list[dict]:
    """
    Tickets of one store, newest first, with total_paid and balance.

    assigned_to may be a user id or the string "unassigned".
    """
    paid_subq = (
        db.session.query(
            Payment.ticket_id.label("ticket_id"),
            func.sum(Payment.amount).label("total_paid"),
        )
        .filter(Payment.store_id == tenant_id)
        .group_by(Payment.ticket_id)
        .subquery()
    )

    query = (
        db.session.query(Ticket, Customer.name, paid_subq.c.total_paid)
        .join(Customer, Ticket.customer_id == Customer.id)
        .outerjoin(paid_subq, paid_subq.c.ticket_id == Ticket.id)
        .filter(Ticket.store_id == tenant_id)
    )

    if status:
        query = query.filter(Ticket.status == parse_status(status).value)
    if customer_id is not None:
        query = query.filter(Ticket.customer_id == customer_id)
    if assigned_to == "unassigned":
        query = query.filter(Ticket.assigned_to.is_(None))
    elif assigned_to not in (None, ""):
        try:
            assignee_id = int(assigned_to)
        except (TypeError, ValueError):
            raise ValidationError("assigned_to must be a user id or 'unassigned'")
        query = query.filter(Ticket.assigned_to == assignee_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Customer.name.ilike(pattern),
            Ticket.device_brand.ilike(pattern),
            Ticket.device_model.ilike(pattern),
            Ticket.issue_description.ilike(pattern),
            cast(Ticket.ticket_number, String).ilike(pattern),
        ))

    rows = query.order_by(Ticket.created_at.desc(), Ticket.id.desc()).all()

    result = []
    for ticket, customer_name, total_paid in rows:
        paid = money(total_paid)
        data = ticket.to_dict()
        data["customer_name"] = customer_name
        data["total_paid"] = to_money_str(paid)
        data["balance"] = to_money_str(money(ticket.final_cost) - paid)
        result.append(data)
    return result


def update_ticket(ticket_id: int, tenant_id: int, fields: dict, actor_user_id: int | None = None) -> Ticket:
    """
    Update editable ticket fields, and status when present.

    Unknown keys and derived cost fields (parts_cost, labor_cost,
    final_cost) are ignored. A status in the payload goes through the same
    rules as set_status. Assigning a different user notifies the new
    assignee after commit.
    """
    def _op():
        ticket = get_ticket_for_tenant(ticket_id, tenant_id, for_update=True)
        previous_assignee = ticket.assigned_to

        for key in UPDATABLE_FIELDS:
            if key not in fields:
                continue
            value = fields[key]
            if key == "estimated_cost":
                value = _optional_money(value, "Estimated cost")
            elif key == "assigned_to":
                value = _validate_assignee(value, tenant_id)
            elif key == "notify_customer":
                value = bool(value)
            elif key == "issue_description":
                value = (value or "").strip()
                if not value:
                    raise ValidationError("Issue description is required")
            setattr(ticket, key, value)

        event = None
        if fields.get("status") is not None:
            event = apply_status(ticket, fields["status"], actor_user_id)

        ticket.updated_at = utcnow()
        assignment_changed = (
            ticket.assigned_to is not None and ticket.assigned_to != previous_assignee
        )
        return ticket, event, assignment_changed

    ticket, event, assignment_changed = run_atomic(_op)
    publish_status_change(event)

    if assignment_changed:
        notification_service.deliver_after_commit(
            f"assignment notification for ticket {ticket.id}",
            lambda: notification_service.create_notification(
                tenant_id, ticket.assigned_to, ticket.id, "assignment",
                f"Ticket #{ticket.ticket_number} assigned to you",
            ),
        )
    return ticket


# backend/repairdesk/services/portal_service.py
"""
Public tracking portal.

WHY: Customers follow their repair through an opaque tracking link, approve
or reject the estimate, leave feedback and pay the balance online. There is
no session here: the tracking token is the only credential.

SECURITY:
- The token resolves to exactly one ticket; the tenant is that ticket's
  store. Nothing else in the request selects a store or ticket.
- Only customer-facing fields are returned (no internal notes, no
  technician assignment, no signatures).

APPROVAL: Allowed only while awaiting_approval. Approve moves the ticket to
in_repair, reject back to diagnosing. The status change and the
TicketApproval row commit together.
"""
from __future__ import annotations

import stripe
from flask import current_app

from ..extensions import db
from ..errors import NotFound, StateConflict, ValidationError
from ..models import Payment, Ticket, TicketApproval, TicketCost, TicketFeedback
from repairdesk.money import money, to_minor_units, to_money_str
from .concurrency import lock_for_update, run_atomic
from .credential_service import get_secret_key
from .payment_service import balance_for
from .ticket_service import TicketStatus, apply_status, publish_status_change
from . import notification_service


APPROVAL_APPROVED = "approved"
APPROVAL_REJECTED = "rejected"

FEEDBACK_STATUSES = (TicketStatus.COMPLETED.value, TicketStatus.PICKED_UP.value)

CHECKOUT_CURRENCY = "usd"


def _get_ticket_by_token(token: str, *, for_update: bool = False) -> Ticket:
    if not token or not isinstance(token, str):
        raise NotFound("Ticket not found")
    query = db.session.query(Ticket).filter_by(tracking_token=token)
    if for_update:
        query = lock_for_update(query)
    ticket = query.first()
    if not ticket:
        raise NotFound("Ticket not found")
    return ticket


def _public_ticket(ticket: Ticket) -> dict:
    data = ticket.to_dict()
    store = ticket.store
    return {
        "ticket_number": data["ticket_number"],
        "device_type": data["device_type"],
        "device_brand": data["device_brand"],
        "device_model": data["device_model"],
        "issue_description": data["issue_description"],
        "status": data["status"],
        "estimated_cost": data["estimated_cost"],
        "final_cost": data["final_cost"],
        "created_at": data["created_at"],
        "updated_at": data["updated_at"],
        "completed_at": data["completed_at"],
        "customer_name": ticket.customer.name if ticket.customer else None,
        "store_name": store.name if store else None,
        "store_phone": store.phone if store else None,
        "store_email": store.email if store else None,
    }


def get_tracking_view(token: str) -> dict:
    """Ticket, costs, payment position and feedback for the tracking page."""
    ticket = _get_ticket_by_token(token)

    costs = (
        db.session.query(TicketCost)
        .filter_by(ticket_id=ticket.id)
        .order_by(TicketCost.created_at.asc(), TicketCost.id.asc())
        .all()
    )
    feedback = db.session.query(TicketFeedback).filter_by(ticket_id=ticket.id).first()
    total_paid, balance = balance_for(ticket)

    return {
        "ticket": _public_ticket(ticket),
        "costs": [
            {
                "description": c.description,
                "cost_type": c.cost_type,
                "amount": to_money_str(c.amount),
            }
            for c in costs
        ],
        "total_paid": to_money_str(total_paid),
        "balance": to_money_str(balance),
        "feedback": feedback.to_dict() if feedback else None,
    }


def get_payments_by_token(token: str) -> dict:
    ticket = _get_ticket_by_token(token)
    payments = (
        db.session.query(Payment)
        .filter_by(ticket_id=ticket.id, store_id=ticket.store_id)
        .order_by(Payment.created_at.asc(), Payment.id.asc())
        .all()
    )
    total_paid, balance = balance_for(ticket)
    return {
        "payments": [
            {
                "id": p.id,
                "amount": to_money_str(p.amount),
                "method": p.method,
                "note": p.note,
                "created_at": p.to_dict()["created_at"],
            }
            for p in payments
        ],
        "total_paid": to_money_str(total_paid),
        "balance": to_money_str(balance),
    }


def _decide(token: str, action: str, reason: str | None) -> Ticket:
    target = TicketStatus.IN_REPAIR if action == APPROVAL_APPROVED else TicketStatus.DIAGNOSING

    def _op():
        ticket = _get_ticket_by_token(token, for_update=True)
        if ticket.status != TicketStatus.AWAITING_APPROVAL.value:
            raise StateConflict("Ticket is not awaiting approval")

        # The portal path is itself a valid transition, so strict mode is moot
        event = apply_status(ticket, target, None, enforce_transitions=False)
        db.session.add(TicketApproval(ticket_id=ticket.id, action=action, reason=reason or None))
        return ticket, event

    ticket, event = run_atomic(_op)
    publish_status_change(event)

    if action == APPROVAL_APPROVED:
        notification_type = "customer_approved"
        message = f"Customer approved Ticket #{ticket.ticket_number}"
    else:
        notification_type = "customer_rejected"
        message = f"Customer rejected Ticket #{ticket.ticket_number}"
        if reason:
            message = f"{message}: {reason}"

    notification_service.deliver_after_commit(
        f"{notification_type} notification for ticket {ticket.id}",
        lambda: notification_service.notify_role(
            ticket.store_id, "admin", ticket.id, notification_type, message
        ),
    )
    return ticket


def approve(token: str) -> Ticket:
    """Customer accepts the estimate. awaiting_approval -> in_repair."""
    return _decide(token, APPROVAL_APPROVED, None)


def reject(token: str, reason: str | None = None) -> Ticket:
    """Customer declines the estimate. awaiting_approval -> diagnosing."""
    return _decide(token, APPROVAL_REJECTED, reason)


def _parse_rating(value) -> int:
    if isinstance(value, bool):
        raise ValidationError("Rating must be between 1 and 5")
    try:
        rating = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Rating must be between 1 and 5")
    if rating < 1 or rating > 5 or str(rating) != str(value).strip():
        raise ValidationError("Rating must be between 1 and 5")
    return rating


def submit_feedback(token: str, rating, comment: str | None = None) -> TicketFeedback:
    """
    Record the customer's rating once the repair is done.

    Raises:
        ValidationError: rating not an integer 1..5
        NotFound: unknown token
        StateConflict: repair not completed, or feedback already submitted
    """
    rating = _parse_rating(rating)

    def _op():
        ticket = _get_ticket_by_token(token, for_update=True)
        if ticket.status not in FEEDBACK_STATUSES:
            raise StateConflict("Feedback can only be submitted for completed repairs")
        if db.session.query(TicketFeedback.id).filter_by(ticket_id=ticket.id).first():
            raise StateConflict("Feedback already submitted")

        feedback = TicketFeedback(
            ticket_id=ticket.id,
            store_id=ticket.store_id,
            rating=rating,
            comment=comment or None,
        )
        db.session.add(feedback)
        db.session.flush()
        return ticket, feedback

    ticket, feedback = run_atomic(_op)

    notification_service.deliver_after_commit(
        f"feedback notification for ticket {ticket.id}",
        lambda: notification_service.notify_role(
            ticket.store_id, "admin", ticket.id, "customer_feedback",
            f"Customer left {rating}-star review for Ticket #{ticket.ticket_number}",
        ),
    )
    return feedback


def create_checkout(token: str, success_url: str, cancel_url: str) -> dict:
    """
    Open a processor checkout session for the outstanding balance.

    The session metadata carries ticketId and storeId; the webhook only acts
    on them after the signature has verified against that store's secret.

    Raises:
        NotFound: unknown token
        StateConflict: nothing owed, or the store has no processor keys
    """
    ticket = _get_ticket_by_token(token)
    _, balance = balance_for(ticket)
    if balance <= 0:
        raise StateConflict("No balance due")

    secret_key = get_secret_key(ticket.store_id)
    if not secret_key:
        raise StateConflict("Online payment is not configured for this store")

    customer_name = ticket.customer.name if ticket.customer else ""

    session = stripe.checkout.Session.create(
        api_key=secret_key,
        payment_method_types=["card"],
        mode="payment",
        line_items=[
            {
                "price_data": {
                    "currency": CHECKOUT_CURRENCY,
                    "product_data": {
                        "name": f"Repair Ticket #{ticket.ticket_number}",
                        "description": f"Payment for repair services - {customer_name}",
                    },
                    "unit_amount": to_minor_units(balance),
                },
                "quantity": 1,
            }
        ],
        metadata={
            "ticketId": str(ticket.id),
            "storeId": str(ticket.store_id),
            "ticketNumber": str(ticket.ticket_number),
        },
        success_url=success_url,
        cancel_url=cancel_url,
    )
    current_app.logger.info(
        "Created checkout session %s for ticket %s (store %s, %s %s)",
        session.id, ticket.id, ticket.store_id, money(balance), CHECKOUT_CURRENCY,
    )
    return {"id": session.id, "url": session.url}

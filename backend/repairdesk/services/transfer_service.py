# backend/repairdesk/services/transfer_service.py
"""
Cross-store ticket transfer within an organization.

WHY: A ticket can be handed to a sister store (different bench, parts on
hand). This deliberately crosses the store tenant boundary, so it is gated by
the organization role and by both stores sharing an organization.

PRECONDITIONS (checked in order, first failure wins, nothing written):
1. Caller holds org_admin                      -> PermissionDenied
2. Source (caller's store) and destination exist -> NotFound
3. Both stores have the same non-null org      -> PermissionDenied

TRANSACTION:
1. UPDATE tickets SET store_id = :to WHERE id = :id AND store_id = :from
   (conditional write: a ticket already moved by a concurrent request is
   not moved twice)
2. Re-home the ticket's payments, warranty and feedback
3. INSERT ticket_transfers audit row
All commit or neither does. Notifying destination admins happens after
commit and a failure there is logged only; the transfer stands.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import case, func, update

from ..extensions import db
from ..errors import NotFound, PermissionDenied, StateConflict, ValidationError
from ..models import Payment, Store, Ticket, TicketFeedback, TicketTransfer, Warranty
from ..models.auth import ORG_ROLE_ADMIN, ORG_ROLE_VIEWER
from repairdesk.money import money, to_money_str
from repairdesk.time_utils import utcnow
from .concurrency import run_atomic
from .permission_service import has_org_role, log_security_event
from .tenant_service import Principal, get_org_store_ids, get_org_stores
from . import notification_service


OPEN_STATUSES_EXCLUDED = ("completed", "picked_up", "cancelled")
DELIVERED_STATUSES = ("completed", "picked_up")


def _deny(principal: Principal, reason: str, resource: str) -> None:
    log_security_event(
        user_id=principal.user_id,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=resource,
        action="TRANSFER_TICKET",
        reason=reason,
        org_id=principal.org_id,
        store_id=principal.store_id,
    )


def transfer_ticket(
    principal: Principal,
    ticket_id: int,
    to_store_id: int,
    reason: str | None = None,
) -> TicketTransfer:
    """
    Move a ticket from the caller's store to another store of the same
    organization and write one TicketTransfer row.

    Raises:
        PermissionDenied: not org_admin, or stores not in the same organization
        NotFound: a store or the ticket does not exist in the source store
        ValidationError: destination equals source
        StateConflict: ticket is no longer in the source store (moved concurrently)
    """
    resource = f"ticket:{ticket_id}"
    from_store_id = principal.store_id

    # Organization membership itself is checked against the stores below
    if principal.org_role != ORG_ROLE_ADMIN:
        _deny(principal, "Requires organization role: org_admin", resource)
        raise PermissionDenied("Organization admin access required")

    from_store = db.session.get(Store, from_store_id)
    to_store = db.session.get(Store, to_store_id)
    if not from_store or not to_store:
        raise NotFound("Store not found")

    if from_store.org_id is None or from_store.org_id != to_store.org_id:
        _deny(principal, f"Store {to_store_id} is outside organization {from_store.org_id}", resource)
        raise PermissionDenied("Cannot transfer to a store outside your organization")

    if from_store.id == to_store.id:
        raise ValidationError("Ticket is already in this store")

    org_id = from_store.org_id

    def _op():
        result = db.session.execute(
            update(Ticket)
            .where(Ticket.id == ticket_id, Ticket.store_id == from_store.id)
            .values(store_id=to_store.id, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current_store_id = db.session.query(Ticket.store_id).filter_by(id=ticket_id).scalar()
            if current_store_id is not None and current_store_id in get_org_store_ids(org_id):
                raise StateConflict("Ticket is no longer in the source store")
            raise NotFound("Ticket not found")

        # Ticket-owned rows carry store_id for tenant scoping and move with it
        for model in (Payment, Warranty, TicketFeedback):
            db.session.execute(
                update(model)
                .where(model.ticket_id == ticket_id, model.store_id == from_store.id)
                .values(store_id=to_store.id)
                .execution_options(synchronize_session=False)
            )

        transfer = TicketTransfer(
            ticket_id=ticket_id,
            from_store_id=from_store.id,
            to_store_id=to_store.id,
            transferred_by=principal.user_id,
            reason=reason or None,
        )
        db.session.add(transfer)
        db.session.flush()
        return transfer

    transfer = run_atomic(_op)

    # The bulk UPDATE bypassed the identity map
    ticket = db.session.get(Ticket, ticket_id, populate_existing=True)
    current_app.logger.info(
        "Transferred ticket %s from store %s to store %s by user %s",
        ticket_id, from_store.id, to_store.id, principal.user_id,
    )

    notification_service.deliver_after_commit(
        f"transfer notification for ticket {ticket_id}",
        lambda: notification_service.notify_role(
            to_store.id, "admin", ticket_id, "ticket_transfer",
            f"Ticket #{ticket.ticket_number} transferred to {to_store.name}",
        ),
    )
    return transfer


def _require_org(principal: Principal, *org_roles: str) -> int:
    if not has_org_role(principal, *org_roles):
        _deny(principal, f"Requires organization role: {', '.join(org_roles)}", "org")
        raise PermissionDenied("Organization access required")
    return principal.org_id


def list_transfers(principal: Principal, ticket_id: int | None = None, limit: int = 100) -> list[TicketTransfer]:
    """Transfer history touching any store of the caller's organization."""
    org_id = _require_org(principal, ORG_ROLE_ADMIN, ORG_ROLE_VIEWER)
    store_ids = get_org_store_ids(org_id)

    query = db.session.query(TicketTransfer).filter(
        db.or_(
            TicketTransfer.from_store_id.in_(store_ids),
            TicketTransfer.to_store_id.in_(store_ids),
        )
    )
    if ticket_id is not None:
        query = query.filter(TicketTransfer.ticket_id == ticket_id)

    return (
        query.order_by(TicketTransfer.created_at.desc(), TicketTransfer.id.desc())
        .limit(limit)
        .all()
    )


def list_org_stores(principal: Principal) -> list[dict]:
    """Stores of the caller's organization with ticket counts and revenue."""
    org_id = _require_org(principal, ORG_ROLE_ADMIN, ORG_ROLE_VIEWER)

    stats = {
        row.store_id: row
        for row in db.session.query(
            Ticket.store_id.label("store_id"),
            func.count(Ticket.id).label("total_tickets"),
            func.sum(case((~Ticket.status.in_(OPEN_STATUSES_EXCLUDED), 1), else_=0)).label("active_tickets"),
            func.sum(case((Ticket.status.in_(DELIVERED_STATUSES), Ticket.final_cost), else_=0)).label("total_revenue"),
        )
        .join(Store, Ticket.store_id == Store.id)
        .filter(Store.org_id == org_id)
        .group_by(Ticket.store_id)
        .all()
    }

    result = []
    for store in get_org_stores(org_id):
        row = stats.get(store.id)
        data = store.to_dict()
        data["total_tickets"] = row.total_tickets if row else 0
        data["active_tickets"] = int(row.active_tickets or 0) if row else 0
        data["total_revenue"] = to_money_str(money(row.total_revenue) if row else money(0))
        result.append(data)
    return result

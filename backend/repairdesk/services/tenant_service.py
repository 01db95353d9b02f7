"""
Multi-Tenant Service: Principal and Tenant Scoping Helpers

WHY: Centralize tenant validation logic for reuse across services and routes.
Every store-owned read and write is filtered by the tenant id, and that id
always comes from the authenticated principal, never from request input.

SECURITY INVARIANTS:
1. Every authenticated request has g.principal set by @require_auth
2. Services receive tenant_id as an explicit parameter (no ambient context)
3. A record that exists in another store is reported as NotFound
4. Cross-tenant lookups are logged as security events

USAGE:
    from repairdesk.services.tenant_service import get_ticket_for_tenant

    ticket = get_ticket_for_tenant(ticket_id, principal.store_id)
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..errors import NotFound
from ..models import Customer, Store, Ticket
from .concurrency import lock_for_update
from .permission_service import log_security_event


@dataclass(frozen=True)
class Principal:
    """
    Authenticated caller, as handed to every internal call.

    store_id is the tenant. org_id is the home store's organization (None
    for standalone stores). org_role is only meaningful when org_id is set.
    """
    user_id: int
    store_id: int
    role: str
    org_role: str | None = None
    org_id: int | None = None


def get_store(store_id: int) -> Store | None:
    return db.session.get(Store, store_id)


def get_org_stores(org_id: int) -> list[Store]:
    """All stores of an organization, ordered by name."""
    return (
        db.session.query(Store)
        .filter_by(org_id=org_id)
        .order_by(Store.name)
        .all()
    )


def get_org_store_ids(org_id: int) -> set[int]:
    rows = db.session.query(Store.id).filter_by(org_id=org_id).all()
    return {row.id for row in rows}


def get_ticket_for_tenant(ticket_id: int, tenant_id: int, *, for_update: bool = False) -> Ticket:
    """
    Load a ticket owned by tenant_id.

    SECURITY: This is the tenant isolation boundary for every ticket
    operation. A ticket that exists in another store raises NotFound, the
    same as a missing one, and the probe is logged.
    """
    query = db.session.query(Ticket).filter_by(id=ticket_id, store_id=tenant_id)
    if for_update:
        query = lock_for_update(query)
    ticket = query.first()
    if ticket:
        return ticket

    owner_store_id = db.session.query(Ticket.store_id).filter_by(id=ticket_id).scalar()
    if owner_store_id is not None:
        _log_cross_tenant_attempt(
            f"Ticket {ticket_id} belongs to store {owner_store_id}, not {tenant_id}",
            store_id=tenant_id,
            resource=f"ticket:{ticket_id}",
        )
    raise NotFound("Ticket not found")


def get_customer_for_tenant(customer_id: int, tenant_id: int) -> Customer:
    customer = (
        db.session.query(Customer)
        .filter_by(id=customer_id, store_id=tenant_id)
        .first()
    )
    if not customer:
        raise NotFound("Customer not found")
    return customer


def _log_cross_tenant_attempt(reason: str, store_id: int | None = None, resource: str | None = None) -> None:
    """
    Log cross-tenant access attempt as security event.

    Only called before any write of the current request, so committing the
    event here never commits partial work.
    """
    store = db.session.get(Store, store_id) if store_id else None
    log_security_event(
        user_id=None,
        event_type="CROSS_TENANT_ACCESS_DENIED",
        success=False,
        resource=resource,
        reason=reason,
        org_id=store.org_id if store else None,
        store_id=store_id,
    )

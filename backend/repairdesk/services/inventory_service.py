# Overview: Part stock adjustments triggered by ticket cost line items.

"""
Inventory Service

WHY: A part cost on a ticket consumes stock; deleting the cost puts it back.
Both directions write a PartStockMovement row next to the quantity change.

MULTI-TENANT: Parts are looked up by (part_id, tenant_id). A part of another
store is reported as not found.

TRANSACTIONS: Functions here run inside the caller's transaction and never
commit.
"""

from __future__ import annotations

from ..extensions import db
from ..errors import NotFound, ValidationError
from ..models import Part, PartStockMovement
from ..models.inventory import MOVEMENT_ADJUSTMENT, MOVEMENT_USED
from .concurrency import lock_for_update
from . import notification_service


def _get_part_for_update(part_id: int, tenant_id: int) -> Part:
    part = lock_for_update(
        db.session.query(Part).filter_by(id=part_id, store_id=tenant_id)
    ).first()
    if not part:
        raise NotFound("Part not found")
    return part


def consume_part(tenant_id: int, part_id: int, quantity: int, ticket_id: int | None = None) -> Part:
    """
    Take `quantity` units of a part out of stock for a ticket.

    Raises ValidationError when stock is insufficient.
    """
    if quantity <= 0:
        raise ValidationError("Quantity must be positive")

    part = _get_part_for_update(part_id, tenant_id)
    if part.quantity < quantity:
        raise ValidationError(
            f'Insufficient stock for "{part.name}". Available: {part.quantity}'
        )

    _apply(part, -quantity, MOVEMENT_USED, ticket_id, "Used on ticket")
    return part


def restore_part(tenant_id: int, part_id: int, quantity: int, ticket_id: int | None = None) -> Part | None:
    """
    Put stock back after a part cost is removed.

    A part that no longer exists in this store is skipped.
    """
    if quantity <= 0:
        return None

    part = lock_for_update(
        db.session.query(Part).filter_by(id=part_id, store_id=tenant_id)
    ).first()
    if not part:
        return None

    _apply(part, quantity, MOVEMENT_ADJUSTMENT, ticket_id, "Restored from deleted cost")
    return part


def _apply(part: Part, quantity_change: int, movement_type: str, ticket_id: int | None, note: str) -> None:
    part.quantity = max(0, part.quantity + quantity_change)
    db.session.add(PartStockMovement(
        part_id=part.id,
        store_id=part.store_id,
        ticket_id=ticket_id,
        quantity_change=quantity_change,
        type=movement_type,
        note=note,
    ))

    if quantity_change < 0 and part.min_quantity > 0 and part.quantity <= part.min_quantity:
        notification_service.notify_role(
            part.store_id,
            "admin",
            None,
            "low_stock",
            f'Low stock alert: "{part.name}" has {part.quantity} remaining (min: {part.min_quantity})',
        )

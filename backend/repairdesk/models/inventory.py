from __future__ import annotations

from ..extensions import db
from repairdesk.money import to_money_str
from repairdesk.time_utils import to_utc_z


MOVEMENT_USED = "used"
MOVEMENT_ADJUSTMENT = "adjustment"


class Part(db.Model):
    """
    Stocked repair part.

    MULTI-TENANT: Parts are scoped to a store. quantity is on-hand stock and
    only changes together with a PartStockMovement row.
    """
    __tablename__ = "parts"
    __table_args__ = (
        db.UniqueConstraint("store_id", "sku", name="uq_parts_store_sku"),
        db.CheckConstraint("quantity >= 0", name="ck_parts_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    # Low-stock alert threshold; 0 disables the alert
    min_quantity = db.Column(db.Integer, nullable=False, default=0)
    sell_price = db.Column(db.Numeric(10, 2), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "sku": self.sku,
            "quantity": self.quantity,
            "min_quantity": self.min_quantity,
            "sell_price": to_money_str(self.sell_price),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PartStockMovement(db.Model):
    """
    Append-only stock history for a part.

    quantity_change is negative when stock is consumed by a ticket cost and
    positive when it is put back.
    """
    __tablename__ = "part_stock_movements"
    __table_args__ = (
        db.Index("ix_part_stock_movements_part", "part_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    part_id = db.Column(db.Integer, db.ForeignKey("parts.id"), nullable=False)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id"), nullable=True, index=True)

    quantity_change = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(16), nullable=False)  # used, adjustment
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "part_id": self.part_id,
            "store_id": self.store_id,
            "ticket_id": self.ticket_id,
            "quantity_change": self.quantity_change,
            "type": self.type,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }

from __future__ import annotations

from ..extensions import db
from repairdesk.time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer contact record owned by a store.

    MULTI-TENANT: Customers are scoped to a store via store_id. A ticket can
    only reference a customer of its own store.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_store_name", "store_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    store = db.relationship("Store", backref=db.backref("customers", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "created_at": to_utc_z(self.created_at),
        }

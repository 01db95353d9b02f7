from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from repairdesk.time_utils import as_naive_utc, to_utc_z, utcnow


class Warranty(db.Model):
    """
    Warranty issued for delivered repair work. At most one per ticket.

    DERIVED: expires_at = start_date + warranty_days, active = now <= expires_at.
    Changing warranty_days never resets start_date.
    """
    __tablename__ = "warranties"
    __table_args__ = (
        db.UniqueConstraint("ticket_id", name="uq_warranties_ticket"),
        db.CheckConstraint("warranty_days > 0", name="ck_warranties_days_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id"), nullable=False)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    warranty_days = db.Column(db.Integer, nullable=False)
    terms = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    ticket = db.relationship("Ticket", backref=db.backref("warranty", uselist=False, lazy=True))

    @property
    def expires_at(self):
        return as_naive_utc(self.start_date) + timedelta(days=self.warranty_days)

    def to_dict(self, now=None) -> dict:
        now = now or utcnow()
        expires_at = self.expires_at
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "store_id": self.store_id,
            "start_date": to_utc_z(self.start_date),
            "warranty_days": self.warranty_days,
            "terms": self.terms,
            "expires_at": to_utc_z(expires_at),
            "active": now <= expires_at,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

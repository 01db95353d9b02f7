from __future__ import annotations

from ..extensions import db
from repairdesk.time_utils import to_utc_z


class TicketTransfer(db.Model):
    """
    Audit row for a ticket moved between stores of one organization.

    IMMUTABLE: Exactly one row per successful transfer, written in the same
    transaction as the ticket's store_id change. Never updated or deleted.
    """
    __tablename__ = "ticket_transfers"
    __table_args__ = (
        db.Index("ix_ticket_transfers_ticket", "ticket_id"),
        db.Index("ix_ticket_transfers_from_store", "from_store_id"),
        db.Index("ix_ticket_transfers_to_store", "to_store_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id"), nullable=False)
    from_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)
    to_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)
    transferred_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    reason = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    ticket = db.relationship("Ticket")
    from_store = db.relationship("Store", foreign_keys=[from_store_id])
    to_store = db.relationship("Store", foreign_keys=[to_store_id])
    user = db.relationship("User", foreign_keys=[transferred_by])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "ticket_number": self.ticket.ticket_number if self.ticket else None,
            "from_store_id": self.from_store_id,
            "from_store_name": self.from_store.name if self.from_store else None,
            "to_store_id": self.to_store_id,
            "to_store_name": self.to_store.name if self.to_store else None,
            "transferred_by": self.transferred_by,
            "transferred_by_name": self.user.name if self.user else None,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }

from __future__ import annotations

from ..extensions import db
from repairdesk.money import to_money_str
from repairdesk.time_utils import to_utc_z


PAYMENT_METHOD_CASH = "cash"
PAYMENT_METHOD_CARD = "card"
PAYMENT_METHOD_CHECK = "check"
PAYMENT_METHOD_OTHER = "other"
PAYMENT_METHOD_PROCESSOR = "stripe"
VALID_PAYMENT_METHODS = {
    PAYMENT_METHOD_CASH,
    PAYMENT_METHOD_CARD,
    PAYMENT_METHOD_CHECK,
    PAYMENT_METHOD_OTHER,
    PAYMENT_METHOD_PROCESSOR,
}


class Payment(db.Model):
    """
    Payment received against a ticket.

    WHY: Balance is always computed on read from these rows. Nothing on the
    ticket is updated when a payment is added or removed.

    IDEMPOTENCY: processor_session_id is unique, so a redelivered checkout
    event cannot create a second row.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.UniqueConstraint("processor_session_id", name="uq_payments_processor_session"),
        db.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        db.Index("ix_payments_store_ticket", "store_id", "ticket_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(10, 2), nullable=False)
    method = db.Column(db.String(16), nullable=False)
    note = db.Column(db.Text, nullable=True)

    # Null means the customer paid through the portal/processor
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    processor_session_id = db.Column(db.String(255), nullable=True)
    processor_payment_intent_id = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    creator = db.relationship("User", foreign_keys=[created_by])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "store_id": self.store_id,
            "amount": to_money_str(self.amount),
            "method": self.method,
            "note": self.note,
            "created_by": self.created_by,
            "created_by_name": self.creator.name if self.creator else None,
            "processor_session_id": self.processor_session_id,
            "processor_payment_intent_id": self.processor_payment_intent_id,
            "created_at": to_utc_z(self.created_at),
        }

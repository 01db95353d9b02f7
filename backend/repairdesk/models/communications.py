from __future__ import annotations

from ..extensions import db
from repairdesk.time_utils import to_utc_z


EMAIL_STATUS_PENDING = "pending"
EMAIL_STATUS_SENT = "sent"
EMAIL_STATUS_FAILED = "failed"


class Notification(db.Model):
    """
    In-app notification for one staff user.

    Clients poll; there is no push delivery.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "is_read"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id"), nullable=True, index=True)

    # status_change, approval_needed, assignment, ticket_transfer, payment_received, ...
    type = db.Column(db.String(32), nullable=False)
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "user_id": self.user_id,
            "ticket_id": self.ticket_id,
            "type": self.type,
            "message": self.message,
            "is_read": self.is_read,
            "created_at": to_utc_z(self.created_at),
        }


class EmailOutbox(db.Model):
    """
    Outbound customer email waiting for the delivery worker.

    WHY: Ticket operations only record that an email should go out. Delivery
    (SMTP, retries, bounces) is owned by whatever drains this table.
    """
    __tablename__ = "email_outbox"
    __table_args__ = (
        db.Index("ix_email_outbox_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id"), nullable=True, index=True)

    recipient = db.Column(db.String(255), nullable=False)
    template = db.Column(db.String(64), nullable=False)
    subject = db.Column(db.String(255), nullable=False)
    body = db.Column(db.Text, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=EMAIL_STATUS_PENDING)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "ticket_id": self.ticket_id,
            "recipient": self.recipient,
            "template": self.template,
            "subject": self.subject,
            "body": self.body,
            "status": self.status,
            "sent_at": to_utc_z(self.sent_at),
            "created_at": to_utc_z(self.created_at),
        }

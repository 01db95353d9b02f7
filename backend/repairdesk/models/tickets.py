from __future__ import annotations

from ..extensions import db
from repairdesk.money import to_money_str
from repairdesk.time_utils import to_utc_z


COST_TYPE_PART = "part"
COST_TYPE_LABOR = "labor"
COST_TYPE_OTHER = "other"
VALID_COST_TYPES = {COST_TYPE_PART, COST_TYPE_LABOR, COST_TYPE_OTHER}


class Ticket(db.Model):
    """
    Repair ticket: one repair job for one customer device.

    MULTI-TENANT: store_id is the current owning store. It only changes
    through an organization transfer, which leaves a TicketTransfer row.

    DERIVED FIELDS: parts_cost, labor_cost and final_cost are recomputed from
    ticket_costs on every cost mutation. They are never written from API input.

    Never hard-deleted.
    """
    __tablename__ = "tickets"
    __table_args__ = (
        db.Index("ix_tickets_store_status", "store_id", "status"),
        db.Index("ix_tickets_store_number", "store_id", "ticket_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    # Sequential per store at allocation time; kept as-is across transfers
    ticket_number = db.Column(db.Integer, nullable=False)
    # Opaque token for the public tracking portal
    tracking_token = db.Column(db.String(64), nullable=False, unique=True, index=True)

    device_type = db.Column(db.String(64), nullable=True)
    device_brand = db.Column(db.String(64), nullable=True)
    device_model = db.Column(db.String(128), nullable=True)
    serial_number = db.Column(db.String(128), nullable=True)

    issue_description = db.Column(db.Text, nullable=False)
    diagnosis = db.Column(db.Text, nullable=True)
    accessories = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(32), nullable=False, default="intake", index=True)

    estimated_cost = db.Column(db.Numeric(10, 2), nullable=True)
    parts_cost = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    labor_cost = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    final_cost = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    assigned_to = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    notify_customer = db.Column(db.Boolean, nullable=False, default=True)

    intake_signature = db.Column(db.Text, nullable=True)
    pickup_signature = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    store = db.relationship("Store", backref=db.backref("tickets", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("tickets", lazy=True))
    assignee = db.relationship("User", foreign_keys=[assigned_to])
    costs = db.relationship(
        "TicketCost",
        backref="ticket",
        lazy=True,
        order_by="TicketCost.id",
    )

    def __repr__(self) -> str:
        return f"<Ticket id={self.id} store_id={self.store_id} number={self.ticket_number} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "customer_id": self.customer_id,
            "ticket_number": self.ticket_number,
            "tracking_token": self.tracking_token,
            "device_type": self.device_type,
            "device_brand": self.device_brand,
            "device_model": self.device_model,
            "serial_number": self.serial_number,
            "issue_description": self.issue_description,
            "diagnosis": self.diagnosis,
            "accessories": self.accessories,
            "status": self.status,
            "estimated_cost": to_money_str(self.estimated_cost),
            "parts_cost": to_money_str(self.parts_cost),
            "labor_cost": to_money_str(self.labor_cost),
            "final_cost": to_money_str(self.final_cost),
            "assigned_to": self.assigned_to,
            "notify_customer": self.notify_customer,
            "intake_signature": self.intake_signature,
            "pickup_signature": self.pickup_signature,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "completed_at": to_utc_z(self.completed_at),
        }


class TicketCost(db.Model):
    """
    Cost line item on a ticket.

    WHY: Source of truth for the ticket's parts/labor/final totals.
    Line items are added or deleted, never edited in place.
    """
    __tablename__ = "ticket_costs"
    __table_args__ = (
        db.CheckConstraint("amount >= 0", name="ck_ticket_costs_amount_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id"), nullable=False, index=True)

    description = db.Column(db.String(255), nullable=False)
    cost_type = db.Column(db.String(16), nullable=False)  # part, labor, other
    amount = db.Column(db.Numeric(10, 2), nullable=False)

    # Labor detail
    hours = db.Column(db.Numeric(6, 2), nullable=True)
    hourly_rate = db.Column(db.Numeric(10, 2), nullable=True)

    # Inventory reference
    part_id = db.Column(db.Integer, db.ForeignKey("parts.id"), nullable=True, index=True)
    quantity = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "description": self.description,
            "cost_type": self.cost_type,
            "amount": to_money_str(self.amount),
            "hours": str(self.hours) if self.hours is not None else None,
            "hourly_rate": to_money_str(self.hourly_rate),
            "part_id": self.part_id,
            "quantity": self.quantity,
            "created_at": to_utc_z(self.created_at),
        }


class TicketApproval(db.Model):
    """
    Customer decision on an estimate, recorded from the tracking portal.

    IMMUTABLE: One row per decision. A ticket sent back to diagnosing and
    re-quoted can collect several.
    """
    __tablename__ = "ticket_approvals"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id"), nullable=False, index=True)
    action = db.Column(db.String(16), nullable=False)  # approved, rejected
    reason = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "action": self.action,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }


class TicketFeedback(db.Model):
    """Customer rating left after pickup. One per ticket."""
    __tablename__ = "ticket_feedback"
    __table_args__ = (
        db.UniqueConstraint("ticket_id", name="uq_ticket_feedback_ticket"),
        db.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_ticket_feedback_rating"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id"), nullable=False)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "rating": self.rating,
            "comment": self.comment,
            "created_at": to_utc_z(self.created_at),
        }

from __future__ import annotations

from ..extensions import db
from repairdesk.time_utils import to_utc_z


class Organization(db.Model):
    """
    Optional grouping of stores.

    WHY: Stores in the same organization may transfer tickets between each
    other and share org-level dashboards. A store without an organization is
    a standalone tenant.
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Store(db.Model):
    """
    Store: the tenant unit. One repair shop location.

    MULTI-TENANT: Every ticket, cost, payment and warranty is scoped to a
    store_id. A store belongs to at most one organization (org_id nullable).
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.Index("ix_stores_org_id", "org_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=True)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    # Defaults applied when a warranty is issued without explicit values
    default_warranty_days = db.Column(db.Integer, nullable=True)
    default_warranty_terms = db.Column(db.Text, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("stores", lazy=True))

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "default_warranty_days": self.default_warranty_days,
            "default_warranty_terms": self.default_warranty_terms,
            "created_at": to_utc_z(self.created_at),
        }


class PaymentProcessorCredential(db.Model):
    """
    Per-store payment processor keys.

    SECURITY: secret_key and webhook_secret are Fernet-encrypted before they
    reach this table (see credential_service). Only the publishable key is
    stored in plaintext because it is public by design.
    """
    __tablename__ = "payment_processor_credentials"
    __table_args__ = (
        db.UniqueConstraint("store_id", name="uq_processor_credentials_store"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    publishable_key = db.Column(db.String(255), nullable=True)
    secret_key_encrypted = db.Column(db.Text, nullable=True)
    webhook_secret_encrypted = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    store = db.relationship("Store", backref=db.backref("processor_credential", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        # Never serialize secrets, not even encrypted
        return {
            "store_id": self.store_id,
            "publishable_key": self.publishable_key,
            "secret_key_configured": bool(self.secret_key_encrypted),
            "webhook_secret_configured": bool(self.webhook_secret_encrypted),
            "updated_at": to_utc_z(self.updated_at),
        }

# Overview: Encrypted per-store payment processor credentials.

"""
Processor Credential Service

SECURITY: The processor secret key and webhook signing secret are encrypted
with Fernet (AES-128-CBC + HMAC-SHA256) using CREDENTIALS_ENCRYPTION_KEY
before they are written. Plaintext secrets exist only in memory while a
request needs them and are never serialized.

Generate a key with: flask security generate-key
"""

from __future__ import annotations

from dataclasses import dataclass

from cryptography.fernet import Fernet, InvalidToken
from flask import current_app

from ..extensions import db
from ..errors import NotFound, ValidationError
from ..models import PaymentProcessorCredential, Store
from .concurrency import run_atomic


class CredentialEncryptionError(Exception):
    """Raised when the encryption key is missing or a stored secret cannot be decrypted."""
    pass


@dataclass(frozen=True)
class WebhookSecretCandidate:
    store_id: int
    webhook_secret: str


def generate_key() -> str:
    return Fernet.generate_key().decode("ascii")


def _fernet() -> Fernet:
    key = current_app.config.get("CREDENTIALS_ENCRYPTION_KEY")
    if not key:
        raise CredentialEncryptionError("CREDENTIALS_ENCRYPTION_KEY is not configured")
    try:
        return Fernet(key.encode("ascii") if isinstance(key, str) else key)
    except ValueError as exc:
        raise CredentialEncryptionError("CREDENTIALS_ENCRYPTION_KEY is not a valid Fernet key") from exc


def encrypt_secret(plaintext: str) -> str:
    return _fernet().encrypt(plaintext.encode("utf-8")).decode("ascii")


def decrypt_secret(token: str) -> str:
    try:
        return _fernet().decrypt(token.encode("ascii")).decode("utf-8")
    except InvalidToken as exc:
        raise CredentialEncryptionError("Stored secret could not be decrypted") from exc


def set_credentials(
    store_id: int,
    publishable_key: str | None = None,
    secret_key: str | None = None,
    webhook_secret: str | None = None,
) -> PaymentProcessorCredential:
    """
    Create or update a store's processor credentials.

    None leaves a field unchanged. An empty string clears it, which also
    removes the store from webhook resolution when applied to webhook_secret.
    """
    def _op():
        if not db.session.get(Store, store_id):
            raise NotFound("Store not found")

        cred = db.session.query(PaymentProcessorCredential).filter_by(store_id=store_id).first()
        if cred is None:
            cred = PaymentProcessorCredential(store_id=store_id)
            db.session.add(cred)

        if publishable_key is not None:
            cred.publishable_key = publishable_key.strip() or None
        if secret_key is not None:
            stripped = secret_key.strip()
            cred.secret_key_encrypted = encrypt_secret(stripped) if stripped else None
        if webhook_secret is not None:
            stripped = webhook_secret.strip()
            cred.webhook_secret_encrypted = encrypt_secret(stripped) if stripped else None

        if cred.secret_key_encrypted and not cred.publishable_key:
            raise ValidationError("A publishable key is required together with the secret key")
        return cred

    cred = run_atomic(_op)
    current_app.logger.info("Updated payment processor credentials for store %s", store_id)
    return cred


def get_public_config(store_id: int) -> dict:
    cred = db.session.query(PaymentProcessorCredential).filter_by(store_id=store_id).first()
    if cred is None:
        return {
            "store_id": store_id,
            "publishable_key": None,
            "secret_key_configured": False,
            "webhook_secret_configured": False,
            "updated_at": None,
        }
    return cred.to_dict()


def get_secret_key(store_id: int) -> str | None:
    cred = db.session.query(PaymentProcessorCredential).filter_by(store_id=store_id).first()
    if cred is None or not cred.secret_key_encrypted:
        return None
    return decrypt_secret(cred.secret_key_encrypted)


def iter_webhook_secrets():
    """
    Yield a candidate for every store with a webhook secret, in storage order.

    A row whose secret cannot be decrypted is logged and skipped so one
    corrupted credential cannot block resolution for every other store.
    """
    rows = (
        db.session.query(PaymentProcessorCredential.store_id, PaymentProcessorCredential.webhook_secret_encrypted)
        .filter(PaymentProcessorCredential.webhook_secret_encrypted.isnot(None))
        .filter(PaymentProcessorCredential.webhook_secret_encrypted != "")
        .order_by(PaymentProcessorCredential.id)
        .all()
    )
    for store_id, encrypted in rows:
        try:
            secret = decrypt_secret(encrypted)
        except CredentialEncryptionError:
            current_app.logger.error("Skipping undecryptable webhook secret for store %s", store_id)
            continue
        if secret:
            yield WebhookSecretCandidate(store_id=store_id, webhook_secret=secret)

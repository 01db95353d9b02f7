# backend/repairdesk/services/webhook_service.py
"""
Inbound payment processor webhook: tenant resolution and handling.

WHY: The processor posts events to a single endpoint with a signature but no
store identifier we can trust. The store id inside the payload cannot be
believed until the signature is verified, and the signature can only be
verified with the right store's webhook secret. So every store with a
configured secret is tried in turn until one verifies.

SECURITY:
- The tenant is unknown until a signature verifies. Nothing in the payload
  is read before that.
- Each candidate verification is bounded by WEBHOOK_CANDIDATE_TIMEOUT_SECONDS.
- Candidates are tried in credential storage order. Two stores whose secrets
  both verify the same signature is treated as impossible; the first in
  storage order wins.
- No candidate verifying is a SignatureVerificationFailed (HTTP 400) with a
  security event and no other side effect, so the processor retries.

SCALE: This is an O(stores with secrets) scan per event, fine for tens to low
hundreds of stores.

IDEMPOTENCY: Only the unique processor_session_id on payments. A redelivered
checkout event is acknowledged without a second payment row.
"""
from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass

import stripe
from flask import current_app

from ..errors import NotFound, SignatureVerificationFailed
from ..extensions import db
from ..models import Ticket, TicketTransfer
from ..models.payments import PAYMENT_METHOD_PROCESSOR
from repairdesk.money import from_minor_units
from .credential_service import WebhookSecretCandidate, iter_webhook_secrets
from .permission_service import log_security_event
from . import notification_service, payment_service
from .tenant_service import get_store, get_ticket_for_tenant


EVENT_CHECKOUT_COMPLETED = "checkout.session.completed"

RESULT_RECORDED = "recorded"
RESULT_DUPLICATE = "duplicate"
RESULT_IGNORED = "ignored"


@dataclass(frozen=True)
class VerifiedEvent:
    """An event whose signature verified against store_id's secret."""
    store_id: int
    event: dict

    @property
    def type(self) -> str:
        return self.event.get("type", "")


def load_candidates() -> list[WebhookSecretCandidate]:
    """Every store with a non-empty webhook secret, in storage order."""
    return list(iter_webhook_secrets())


def _verify(payload: str, signature_header: str, secret: str, tolerance: int) -> None:
    # Raises stripe.SignatureVerificationError on mismatch or stale timestamp
    stripe.WebhookSignature.verify_header(payload, signature_header, secret, tolerance)


def resolve_event(
    payload: bytes | str,
    signature_header: str | None,
    candidates: list[WebhookSecretCandidate] | None = None,
) -> VerifiedEvent:
    """
    Find the store whose webhook secret verifies this signature.

    Returns the first match. Raises SignatureVerificationFailed when the
    header is missing or no candidate verifies.
    """
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError:
            _record_failure("Payload is not valid UTF-8")
            raise SignatureVerificationFailed("Webhook signature verification failed")

    if not signature_header:
        _record_failure("Missing signature header")
        raise SignatureVerificationFailed("Missing signature header")

    if candidates is None:
        candidates = load_candidates()

    timeout = float(current_app.config.get("WEBHOOK_CANDIDATE_TIMEOUT_SECONDS", 2.0))
    tolerance = int(current_app.config.get("WEBHOOK_SIGNATURE_TOLERANCE_SECONDS", 300))

    matched: WebhookSecretCandidate | None = None
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="webhook-verify")
    try:
        for candidate in candidates:
            future = executor.submit(_verify, payload, signature_header, candidate.webhook_secret, tolerance)
            try:
                future.result(timeout=timeout)
            except FutureTimeoutError:
                current_app.logger.warning(
                    "Webhook verification timed out for store %s", candidate.store_id
                )
                # A stuck worker must not hold up the remaining candidates
                executor.shutdown(wait=False, cancel_futures=True)
                executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="webhook-verify")
                continue
            except stripe.SignatureVerificationError:
                continue
            matched = candidate
            break
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    if matched is None:
        _record_failure(f"No store secret verified the signature ({len(candidates)} candidates)")
        raise SignatureVerificationFailed("Webhook signature verification failed")

    try:
        event = json.loads(payload)
    except ValueError:
        # Signed by a store secret but not JSON; nothing we can act on
        _record_failure("Verified payload is not valid JSON", store_id=matched.store_id)
        raise SignatureVerificationFailed("Invalid webhook payload")

    current_app.logger.info(
        "Webhook event %s resolved to store %s", event.get("id"), matched.store_id
    )
    return VerifiedEvent(store_id=matched.store_id, event=event)


def _record_failure(reason: str, store_id: int | None = None) -> None:
    current_app.logger.warning("Webhook rejected: %s", reason)
    log_security_event(
        user_id=None,
        event_type="WEBHOOK_SIGNATURE_FAILED",
        success=False,
        resource="webhook:payment-processor",
        action="VERIFY",
        reason=reason,
        store_id=store_id,
    )


def _ticket_for_checkout(ticket_id: int, verified_store_id: int, session_id: str | None) -> Ticket:
    """
    The ticket a checkout session paid for, wherever it lives now.

    A portal checkout carries the store that owned the ticket when the
    session was opened. If the ticket has since been transferred out of that
    store to another store of the same organization, the payment belongs to
    the current owner. Anything else goes through the tenant boundary, which
    raises NotFound and logs the attempt.
    """
    ticket = db.session.get(Ticket, ticket_id)
    if ticket is not None and ticket.store_id != verified_store_id:
        moved_out = (
            db.session.query(TicketTransfer.id)
            .filter_by(ticket_id=ticket.id, from_store_id=verified_store_id)
            .first()
        )
        source = get_store(verified_store_id)
        owner = get_store(ticket.store_id)
        if (
            moved_out is not None
            and source is not None
            and owner is not None
            and source.org_id is not None
            and source.org_id == owner.org_id
        ):
            current_app.logger.info(
                "Checkout session %s for ticket %s follows transfer from store %s to store %s",
                session_id, ticket.id, verified_store_id, ticket.store_id,
            )
            return ticket
    return get_ticket_for_tenant(ticket_id, verified_store_id)


def handle_event(verified: VerifiedEvent) -> str:
    """
    Act on a verified event. Returns one of recorded, duplicate, ignored.

    Only checkout.session.completed is acted on. Its metadata must name the
    verified store; otherwise it is logged and acknowledged so the processor
    does not keep retrying an event we will never accept.

    The payment is recorded against the ticket's current store, which differs
    from the verified store when the ticket was transferred after checkout.

    Raises:
        NotFound: the ticket neither belongs to the verified store nor was
            transferred out of it within its organization. The payment was
            taken, so this is not acknowledged.
    """
    if verified.type != EVENT_CHECKOUT_COMPLETED:
        current_app.logger.info("Ignoring webhook event type %s", verified.type)
        return RESULT_IGNORED

    session = (verified.event.get("data") or {}).get("object") or {}
    metadata = session.get("metadata") or {}
    ticket_id = metadata.get("ticketId")
    metadata_store_id = metadata.get("storeId")

    if not ticket_id or str(metadata_store_id) != str(verified.store_id):
        current_app.logger.warning(
            "Checkout session %s metadata store %s does not match verified store %s",
            session.get("id"), metadata_store_id, verified.store_id,
        )
        return RESULT_IGNORED

    try:
        ticket_id = int(ticket_id)
    except ValueError:
        current_app.logger.warning(
            "Checkout session %s has malformed ticket id %r", session.get("id"), ticket_id
        )
        return RESULT_IGNORED

    amount = from_minor_units(session.get("amount_total") or 0)
    if amount <= 0:
        current_app.logger.warning("Checkout session %s has no amount", session.get("id"))
        return RESULT_IGNORED

    try:
        ticket = _ticket_for_checkout(ticket_id, verified.store_id, session.get("id"))
    except NotFound:
        current_app.logger.error(
            "Checkout session %s paid for ticket %s, which store %s cannot account for",
            session.get("id"), ticket_id, verified.store_id,
        )
        raise

    owner_store_id = ticket.store_id
    ticket_number = ticket.ticket_number
    try:
        payment_service.add_payment(
            ticket.id,
            owner_store_id,
            amount,
            PAYMENT_METHOD_PROCESSOR,
            note="Online payment via payment processor",
            created_by=None,
            processor_session_id=session.get("id"),
            processor_payment_intent_id=session.get("payment_intent"),
        )
    except payment_service.DuplicatePaymentError:
        current_app.logger.info(
            "Checkout session %s already recorded; acknowledging duplicate", session.get("id")
        )
        return RESULT_DUPLICATE

    notification_service.deliver_after_commit(
        f"payment notification for ticket {ticket_id}",
        lambda: notification_service.notify_role(
            owner_store_id, "admin", ticket_id, "payment_received",
            f"Online payment of ${amount} received for Ticket #{ticket_number}",
        ),
    )
    current_app.logger.info(
        "Recorded processor payment %s for ticket %s (store %s)", amount, ticket_id, owner_store_id
    )
    return RESULT_RECORDED

# Overview: Inbound payment processor webhook endpoint.

# backend/repairdesk/routes/webhooks.py
"""
Payment processor webhook.

SECURITY: Unauthenticated by design. The raw body and the Stripe-Signature
header go to webhook_service, which finds the store whose secret verifies
the signature. Nothing from the body is trusted before that.

Responses:
    200: Verified (recorded, duplicate or ignored)
    400: No store secret verified the signature; the processor retries
    404: Verified checkout for a ticket the signing store cannot account for
    500: Unexpected failure; the processor retries
"""
from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..errors import ServiceError, SignatureVerificationFailed
from ..services import webhook_service


webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")

SIGNATURE_HEADER = "Stripe-Signature"


@webhooks_bp.post("/payment-processor")
def payment_processor_webhook():
    payload = request.get_data(cache=False)
    signature = request.headers.get(SIGNATURE_HEADER)

    try:
        verified = webhook_service.resolve_event(payload, signature)
    except SignatureVerificationFailed as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Webhook resolution failed")
        return jsonify({"error": "Internal server error"}), 500

    try:
        result = webhook_service.handle_event(verified)
    except ServiceError as e:
        # Verified but unaccountable; the processor keeps retrying
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Webhook handling failed for store %s event %s", verified.store_id, verified.event.get("id")
        )
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"received": True, "result": result}), 200

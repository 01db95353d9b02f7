# Overview: Flask API routes for the current store's settings; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request, g, current_app

from ..decorators import require_auth, require_role
from ..errors import ServiceError
from ..models.auth import ROLE_ADMIN
from ..services import credential_service
from ..services.tenant_service import get_store


stores_bp = Blueprint("stores", __name__, url_prefix="/api/stores")


@stores_bp.get("/current")
@require_auth
def get_current_store():
    store = get_store(g.principal.store_id)
    if not store:
        return jsonify({"error": "Store not found"}), 404
    return jsonify(store.to_dict()), 200


@stores_bp.get("/current/payment-processor")
@require_auth
@require_role(ROLE_ADMIN)
def get_payment_processor():
    """Publishable key and which secrets are configured. Secrets are never returned."""
    return jsonify(credential_service.get_public_config(g.principal.store_id)), 200


@stores_bp.put("/current/payment-processor")
@require_auth
@require_role(ROLE_ADMIN)
def set_payment_processor():
    """
    Request body (all optional; omitted keys are unchanged, "" clears):
    {
        "publishable_key": str,
        "secret_key": str,
        "webhook_secret": str
    }
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400
    try:
        credential_service.set_credentials(
            g.principal.store_id,
            publishable_key=data.get("publishable_key"),
            secret_key=data.get("secret_key"),
            webhook_secret=data.get("webhook_secret"),
        )
        return jsonify(credential_service.get_public_config(g.principal.store_id)), 200
    except ServiceError as exc:
        return jsonify({"error": str(exc)}), exc.status_code
    except credential_service.CredentialEncryptionError:
        current_app.logger.exception("Credential encryption is not configured")
        return jsonify({"error": "Credential encryption is not configured"}), 500

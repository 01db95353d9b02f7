# Overview: Flask API routes for warranty lookups and corrections.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_auth, require_role
from ..errors import ServiceError, ValidationError
from ..models.auth import ROLE_ADMIN
from ..services import warranty_service


warranties_bp = Blueprint("warranties", __name__, url_prefix="/api/warranties")


@warranties_bp.get("/active")
@require_auth
def list_active():
    """Active warranties of the current store, soonest expiry first."""
    try:
        return jsonify({"warranties": warranty_service.list_active(g.principal.store_id)}), 200
    except Exception:
        current_app.logger.exception("Failed to list active warranties")
        return jsonify({"error": "Internal server error"}), 500


@warranties_bp.get("/check")
@require_auth
def check_return():
    """
    Flag a returning device that is still under warranty.

    Query params: customer_id, device_brand, device_model
    """
    customer_id = request.args.get("customer_id", type=int)
    brand = request.args.get("device_brand")
    model = request.args.get("device_model")
    if not customer_id or not brand or not model:
        return jsonify({"error": "customer_id, device_brand and device_model are required"}), 400

    try:
        matches = warranty_service.check_warranty_return(g.principal.store_id, customer_id, brand, model)
        return jsonify({"under_warranty": bool(matches), "warranties": matches}), 200
    except Exception:
        current_app.logger.exception("Failed to check warranty return")
        return jsonify({"error": "Internal server error"}), 500


@warranties_bp.put("/<int:warranty_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_warranty(warranty_id: int):
    """
    Correct duration and/or terms. The start date never changes, so a new
    duration can move a warranty between active and expired.
    """
    data = request.get_json(silent=True) or {}
    try:
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        warranty = warranty_service.update_warranty(
            warranty_id,
            g.principal.store_id,
            warranty_days=data.get("warranty_days"),
            terms=data.get("terms"),
        )
        return jsonify({"warranty": warranty.to_dict()}), 200
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update warranty")
        return jsonify({"error": "Internal server error"}), 500

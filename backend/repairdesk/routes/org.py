# Overview: Flask API routes for organization-level operations across stores.

# backend/repairdesk/routes/org.py
"""
Organization API routes.

SECURITY: These routes deliberately cross the store tenant boundary. The
organization checks live in transfer_service so the same rules apply to
every caller; the routes only translate errors.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_auth
from ..errors import ServiceError
from ..services import transfer_service


org_bp = Blueprint("org", __name__, url_prefix="/api/org")


@org_bp.get("/stores")
@require_auth
def list_stores():
    """Stores of the caller's organization with ticket counts and revenue."""
    try:
        return jsonify({"stores": transfer_service.list_org_stores(g.principal)}), 200
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list organization stores")
        return jsonify({"error": "Internal server error"}), 500


@org_bp.post("/transfer/<int:ticket_id>")
@require_auth
def transfer_ticket(ticket_id: int):
    """
    Move a ticket from the caller's store to another store of the organization.

    Request body:
    {
        "to_store_id": int,
        "reason": str (optional)
    }

    Returns:
        201: Transfer recorded
        400: Invalid request
        403: Not org_admin, or destination outside the organization
        404: Store or ticket not found
        409: Ticket moved by a concurrent request
    """
    data = request.get_json(silent=True) or {}
    to_store_id = data.get("to_store_id") if isinstance(data, dict) else None
    if isinstance(to_store_id, bool) or not isinstance(to_store_id, int):
        return jsonify({"error": "to_store_id is required"}), 400

    try:
        transfer = transfer_service.transfer_ticket(
            g.principal,
            ticket_id,
            to_store_id,
            reason=data.get("reason"),
        )
        return jsonify({"transfer": transfer.to_dict()}), 201
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to transfer ticket")
        return jsonify({"error": "Internal server error"}), 500


@org_bp.get("/transfers")
@require_auth
def list_transfers():
    """Transfer history for the organization. Query params: ticket_id, limit"""
    try:
        transfers = transfer_service.list_transfers(
            g.principal,
            ticket_id=request.args.get("ticket_id", type=int),
            limit=min(request.args.get("limit", 100, type=int), 500),
        )
        return jsonify({"transfers": [t.to_dict() for t in transfers]}), 200
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list transfers")
        return jsonify({"error": "Internal server error"}), 500

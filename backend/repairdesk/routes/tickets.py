# Overview: Flask API routes for tickets, their cost and payment ledgers, warranty and status.

# backend/repairdesk/routes/tickets.py
"""
Ticket API routes.

MULTI-TENANT: The tenant is always g.principal.store_id. No store id is read
from the URL or the request body.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_auth, require_role
from ..errors import ServiceError, ValidationError
from ..models.auth import ROLE_ADMIN
from ..services import cost_service, payment_service, ticket_service, warranty_service


tickets_bp = Blueprint("tickets", __name__, url_prefix="/api/tickets")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _error(e: ServiceError):
    return jsonify({"error": str(e)}), e.status_code


def _internal_error(message: str):
    db.session.rollback()
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


@tickets_bp.get("")
@require_auth
def list_tickets():
    """
    List tickets of the current store.

    Query params: status, search, customer_id, assigned_to (user id or "unassigned")
    """
    try:
        tickets = ticket_service.list_tickets(
            g.principal.store_id,
            status=request.args.get("status"),
            search=request.args.get("search"),
            customer_id=request.args.get("customer_id", type=int),
            assigned_to=request.args.get("assigned_to"),
        )
        return jsonify({"tickets": tickets}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal_error("Failed to list tickets")


@tickets_bp.post("")
@require_auth
def create_ticket():
    """
    Open a ticket.

    Request body:
    {
        "customer_id": int,
        "issue_description": str,
        "device_type" / "device_brand" / "device_model" / "serial_number": str (optional),
        "estimated_cost": str|number (optional),
        "assigned_to": int (optional),
        "notify_customer": bool (optional, default true)
    }
    """
    try:
        ticket = ticket_service.create_ticket(
            g.principal.store_id,
            g.principal.user_id,
            _json_body(),
        )
        return jsonify(ticket_service.ticket_detail(ticket)), 201
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal_error("Failed to create ticket")


@tickets_bp.get("/<int:ticket_id>")
@require_auth
def get_ticket(ticket_id: int):
    try:
        ticket = ticket_service.get_ticket(ticket_id, g.principal.store_id)
        return jsonify(ticket_service.ticket_detail(ticket)), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal_error("Failed to load ticket")


@tickets_bp.put("/<int:ticket_id>")
@require_auth
def update_ticket(ticket_id: int):
    """
    Update editable fields. parts_cost, labor_cost and final_cost are derived
    from the cost ledger and ignored here.
    """
    try:
        ticket = ticket_service.update_ticket(
            ticket_id,
            g.principal.store_id,
            _json_body(),
            actor_user_id=g.principal.user_id,
        )
        return jsonify(ticket_service.ticket_detail(ticket)), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal_error("Failed to update ticket")


@tickets_bp.post("/<int:ticket_id>/status")
@require_auth
def set_status(ticket_id: int):
    """Request body: {"status": str}"""
    try:
        data = _json_body()
        if not data.get("status"):
            raise ValidationError("status is required")
        ticket = ticket_service.set_status(
            ticket_id,
            g.principal.store_id,
            data["status"],
            actor_user_id=g.principal.user_id,
        )
        return jsonify(ticket_service.ticket_detail(ticket)), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal_error("Failed to change ticket status")


# Cost ledger

@tickets_bp.get("/<int:ticket_id>/costs")
@require_auth
def list_costs(ticket_id: int):
    try:
        costs = cost_service.list_costs(ticket_id, g.principal.store_id)
        totals = cost_service.compute_totals((c.cost_type, c.amount) for c in costs)
        return jsonify({
            "costs": [c.to_dict() for c in costs],
            "totals": totals.to_dict(),
        }), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal_error("Failed to list costs")


@tickets_bp.post("/<int:ticket_id>/costs")
@require_auth
def add_cost(ticket_id: int):
    """
    Add a cost line.

    Request body:
    {
        "description": str,
        "cost_type": "part" | "labor" | "other",
        "amount": str|number (>= 0; labor may send hours + hourly_rate instead),
        "part_id": int (optional), "quantity": int (optional)
    }

    Returns the line and the recomputed ticket totals.
    """
    try:
        cost, totals = cost_service.add_cost(ticket_id, g.principal.store_id, _json_body())
        return jsonify({"cost": cost.to_dict(), "totals": totals.to_dict()}), 201
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal_error("Failed to add cost")


@tickets_bp.delete("/<int:ticket_id>/costs/<int:cost_id>")
@require_auth
def delete_cost(ticket_id: int, cost_id: int):
    """Deleting a missing cost still returns the recomputed totals."""
    try:
        totals = cost_service.delete_cost(cost_id, ticket_id, g.principal.store_id)
        return jsonify({"totals": totals.to_dict()}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal_error("Failed to delete cost")


# Payment ledger

@tickets_bp.get("/<int:ticket_id>/payments")
@require_auth
def list_payments(ticket_id: int):
    try:
        summary = payment_service.get_payment_summary(ticket_id, g.principal.store_id)
        return jsonify(summary), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal_error("Failed to list payments")


@tickets_bp.post("/<int:ticket_id>/payments")
@require_auth
def add_payment(ticket_id: int):
    """
    Record a payment.

    Request body:
    {
        "amount": str|number (> 0),
        "method": "cash" | "card" | "check" | "other",
        "note": str (optional)
    }
    """
    try:
        data = _json_body()
        payment = payment_service.add_payment(
            ticket_id,
            g.principal.store_id,
            data.get("amount"),
            data.get("method") or "",
            note=data.get("note"),
            created_by=g.principal.user_id,
        )
        summary = payment_service.get_payment_summary(ticket_id, g.principal.store_id)
        return jsonify({
            "payment": payment.to_dict(),
            "total_paid": summary["total_paid"],
            "balance": summary["balance"],
            "status": summary["status"],
        }), 201
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal_error("Failed to add payment")


@tickets_bp.delete("/<int:ticket_id>/payments/<int:payment_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_payment(ticket_id: int, payment_id: int):
    try:
        deleted = payment_service.delete_payment(payment_id, ticket_id, g.principal.store_id)
        balance = payment_service.get_balance(ticket_id, g.principal.store_id)
        return jsonify({"deleted": deleted, "balance": str(balance)}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal_error("Failed to delete payment")


# Warranty

@tickets_bp.get("/<int:ticket_id>/warranty")
@require_auth
def get_warranty(ticket_id: int):
    try:
        warranty = warranty_service.get_for_ticket(ticket_id, g.principal.store_id)
        return jsonify({"warranty": warranty.to_dict() if warranty else None}), 200
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal_error("Failed to load warranty")


@tickets_bp.post("/<int:ticket_id>/warranty")
@require_auth
def create_warranty(ticket_id: int):
    """
    Request body: {"warranty_days": int (optional), "terms": str (optional)}

    Missing values fall back to the store's warranty defaults.
    """
    try:
        data = _json_body()
        warranty = warranty_service.create_warranty(
            ticket_id,
            g.principal.store_id,
            warranty_days=data.get("warranty_days"),
            terms=data.get("terms"),
        )
        return jsonify({"warranty": warranty.to_dict()}), 201
    except ServiceError as e:
        return _error(e)
    except Exception:
        return _internal_error("Failed to create warranty")

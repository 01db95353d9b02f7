# Overview: Public customer tracking portal routes (no session; the tracking token is the credential).

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..errors import ServiceError
from ..services import portal_service
from ..services.email_service import tracking_url


public_bp = Blueprint("public", __name__, url_prefix="/api/public")


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _run(description: str, func):
    try:
        return func()
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Tracking portal: failed to %s", description)
        return jsonify({"error": "Internal server error"}), 500


@public_bp.get("/track/<token>")
def track(token: str):
    """Ticket, costs, payment position and feedback."""
    return _run(
        "load ticket",
        lambda: (jsonify(portal_service.get_tracking_view(token)), 200),
    )


@public_bp.get("/track/<token>/payments")
def track_payments(token: str):
    return _run(
        "load payments",
        lambda: (jsonify(portal_service.get_payments_by_token(token)), 200),
    )


@public_bp.post("/track/<token>/approve")
def approve(token: str):
    def _approve():
        ticket = portal_service.approve(token)
        return jsonify({"success": True, "status": ticket.status}), 200

    return _run("approve estimate", _approve)


@public_bp.post("/track/<token>/reject")
def reject(token: str):
    """Body: {"reason": str (optional)}"""
    def _reject():
        ticket = portal_service.reject(token, _body().get("reason"))
        return jsonify({"success": True, "status": ticket.status}), 200

    return _run("reject estimate", _reject)


@public_bp.post("/track/<token>/feedback")
def feedback(token: str):
    """Body: {"rating": int 1..5, "comment": str (optional)}"""
    def _feedback():
        data = _body()
        entry = portal_service.submit_feedback(token, data.get("rating"), data.get("comment"))
        return jsonify({"success": True, "feedback": entry.to_dict()}), 201

    return _run("submit feedback", _feedback)


@public_bp.post("/track/<token>/checkout")
def checkout(token: str):
    """
    Start an online payment for the outstanding balance.

    Return URLs are built from FRONTEND_URL, never from request headers.
    """
    def _checkout():
        base = tracking_url(token)
        session = portal_service.create_checkout(
            token,
            success_url=f"{base}?payment=success",
            cancel_url=f"{base}?payment=cancelled",
        )
        return jsonify(session), 200

    return _run("create checkout session", _checkout)

# Overview: Flask API routes for the polling notification inbox.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications():
    """Unread first, newest first. Query params: limit (max 200)"""
    limit = min(request.args.get("limit", 50, type=int), 200)
    principal = g.principal
    return jsonify({
        "notifications": notification_service.list_for_user(principal.user_id, principal.store_id, limit=limit),
        "unread_count": notification_service.count_unread(principal.user_id, principal.store_id),
    }), 200


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
def mark_read(notification_id: int):
    updated = notification_service.mark_read(notification_id, g.principal.user_id, g.principal.store_id)
    if not updated:
        return jsonify({"error": "Notification not found"}), 404
    return jsonify({"success": True}), 200


@notifications_bp.post("/read-all")
@require_auth
def mark_all_read():
    updated = notification_service.mark_all_read(g.principal.user_id, g.principal.store_id)
    return jsonify({"success": True, "updated": updated}), 200

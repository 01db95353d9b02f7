# Overview: In-app notification sink for staff users.

"""
Notification Service

WHY: Ticket events (status changes, approvals, transfers, processor
payments) leave a row per recipient. Clients poll; there is no push.

TRANSACTIONS: create_notification and notify_role only add rows to the
session. The caller decides whether they ride along with its own transaction
or are delivered after it via deliver_after_commit.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Notification, Ticket, User


def create_notification(
    store_id: int,
    user_id: int,
    ticket_id: int | None,
    type: str,
    message: str,
) -> Notification:
    notification = Notification(
        store_id=store_id,
        user_id=user_id,
        ticket_id=ticket_id,
        type=type,
        message=message,
        is_read=False,
    )
    db.session.add(notification)
    return notification


def notify_role(
    store_id: int,
    role: str,
    ticket_id: int | None,
    type: str,
    message: str,
) -> list[Notification]:
    """One notification per active user holding `role` in the store."""
    user_ids = [
        row.id
        for row in db.session.query(User.id)
        .filter_by(store_id=store_id, role=role, is_active=True)
        .order_by(User.id)
        .all()
    ]
    return [
        create_notification(store_id, user_id, ticket_id, type, message)
        for user_id in user_ids
    ]


def deliver_after_commit(description: str, func) -> bool:
    """
    Run a notification step after the main transaction has committed.

    Failures are logged and rolled back, never raised: the committed change
    is the fact of record and must not be reported as failed because a
    follow-up notification could not be written.
    """
    try:
        func()
        db.session.commit()
        return True
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Notification delivery failed: %s", description)
        return False


def list_for_user(user_id: int, store_id: int, limit: int = 50) -> list[dict]:
    rows = (
        db.session.query(Notification, Ticket.ticket_number)
        .outerjoin(Ticket, Notification.ticket_id == Ticket.id)
        .filter(Notification.user_id == user_id, Notification.store_id == store_id)
        .order_by(Notification.is_read.asc(), Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )
    result = []
    for notification, ticket_number in rows:
        data = notification.to_dict()
        data["ticket_number"] = ticket_number
        result.append(data)
    return result


def count_unread(user_id: int, store_id: int) -> int:
    return (
        db.session.query(Notification)
        .filter_by(user_id=user_id, store_id=store_id, is_read=False)
        .count()
    )


def mark_read(notification_id: int, user_id: int, store_id: int) -> bool:
    """Returns False when the notification is not this user's."""
    updated = (
        db.session.query(Notification)
        .filter_by(id=notification_id, user_id=user_id, store_id=store_id)
        .update({"is_read": True}, synchronize_session=False)
    )
    db.session.commit()
    return bool(updated)


def mark_all_read(user_id: int, store_id: int) -> int:
    updated = (
        db.session.query(Notification)
        .filter_by(user_id=user_id, store_id=store_id, is_read=False)
        .update({"is_read": True}, synchronize_session=False)
    )
    db.session.commit()
    return updated

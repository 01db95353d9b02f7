# Overview: Customer email triggers recorded in the outbox table.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import EmailOutbox


TEMPLATE_STATUS_CHANGE = "status_change"
TEMPLATE_APPROVAL_NEEDED = "approval_needed"


class EmailTemplateError(Exception):
    """Raised for an unknown template name."""
    pass


def _status_label(status: str) -> str:
    return status.replace("_", " ")


def render_status_change(ctx: dict) -> tuple[str, str]:
    label = _status_label(ctx["status"])
    subject = f'Repair Update: Ticket #{ctx["ticket_number"]} is now "{label}"'
    body = (
        f'Hi {ctx["customer_name"]},\n\n'
        f'Your repair at {ctx["store_name"]} has been updated.\n\n'
        f'Ticket #{ctx["ticket_number"]}: {label}\n\n'
        f'Track your repair: {ctx["tracking_url"]}\n'
    )
    return subject, body


def render_approval_needed(ctx: dict) -> tuple[str, str]:
    subject = f'Action Required: Approve Repair for Ticket #{ctx["ticket_number"]}'
    body = (
        f'Hi {ctx["customer_name"]},\n\n'
        f'{ctx["store_name"]} has diagnosed your device and needs your approval '
        f'before starting the repair.\n\n'
        f'Review the estimate and approve or decline here: {ctx["tracking_url"]}\n'
    )
    return subject, body


TEMPLATES = {
    TEMPLATE_STATUS_CHANGE: render_status_change,
    TEMPLATE_APPROVAL_NEEDED: render_approval_needed,
}


def tracking_url(tracking_token: str) -> str:
    base = current_app.config.get("FRONTEND_URL", "").rstrip("/")
    return f"{base}/track/{tracking_token}"


def queue_email(
    store_id: int,
    ticket_id: int | None,
    recipient: str,
    template: str,
    context: dict,
) -> EmailOutbox:
    """
    Render a template and add an outbox row to the session.

    Does not commit. Delivery is owned by whatever drains email_outbox.
    """
    renderer = TEMPLATES.get(template)
    if renderer is None:
        raise EmailTemplateError(f"Unknown email template: {template}")

    subject, body = renderer(context)
    row = EmailOutbox(
        store_id=store_id,
        ticket_id=ticket_id,
        recipient=recipient,
        template=template,
        subject=subject,
        body=body,
    )
    db.session.add(row)
    current_app.logger.info(
        "Queued %s email for ticket %s (store %s)", template, ticket_id, store_id
    )
    return row

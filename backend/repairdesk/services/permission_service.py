# Overview: Role checks and security event logging.

"""
Role Checking and Security Event Logging with Multi-Tenant Support

WHY: Enforce store roles (admin, technician) and organization roles
(org_admin, org_viewer) and keep an audit trail of denials.

MULTI-TENANT: Security events include org_id and store_id so they can be
filtered per tenant.

DESIGN PRINCIPLES:
- Fail closed: Deny unless the principal holds one of the required roles
- Log denials only: Grants are not logged
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import PermissionDenied
from ..models import SecurityEvent
from repairdesk.time_utils import utcnow


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    org_id: int | None = None,
    store_id: int | None = None
) -> SecurityEvent:
    """
    Log security event to audit trail with tenant context.

    The event is committed in its own transaction so it survives a rollback
    of the request that triggered it. Callers must not have uncommitted work
    pending on the session.

    event_type examples:
    - PERMISSION_DENIED
    - LOGIN_FAILED
    - CROSS_TENANT_ACCESS_DENIED
    - WEBHOOK_SIGNATURE_FAILED
    """
    event = SecurityEvent(
        user_id=user_id,
        org_id=org_id,
        store_id=store_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow()
    )

    db.session.add(event)
    db.session.commit()

    current_app.logger.warning(
        "security event %s user=%s store=%s resource=%s reason=%s",
        event_type, user_id, store_id, resource, reason,
    )

    return event


def has_role(principal, *roles: str) -> bool:
    return principal is not None and principal.role in roles


def has_org_role(principal, *org_roles: str) -> bool:
    # Organization roles only mean something when the home store has an org
    return (
        principal is not None
        and principal.org_id is not None
        and principal.org_role in org_roles
    )


def require_role(principal, *roles: str, resource: str | None = None, **client) -> None:
    """
    Raise PermissionDenied unless the principal holds one of `roles`.

    The denial is logged as a PERMISSION_DENIED security event.
    """
    if has_role(principal, *roles):
        return

    log_security_event(
        user_id=principal.user_id if principal else None,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=resource,
        action=f"ROLE:{','.join(roles)}",
        reason=f"Requires role: {', '.join(roles)}",
        org_id=principal.org_id if principal else None,
        store_id=principal.store_id if principal else None,
        **client,
    )
    raise PermissionDenied("Permission denied")


def require_org_role(principal, *org_roles: str, resource: str | None = None, **client) -> None:
    """Organization-level counterpart of require_role."""
    if has_org_role(principal, *org_roles):
        return

    log_security_event(
        user_id=principal.user_id if principal else None,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=resource,
        action=f"ORG_ROLE:{','.join(org_roles)}",
        reason=f"Requires organization role: {', '.join(org_roles)}",
        org_id=principal.org_id if principal else None,
        store_id=principal.store_id if principal else None,
        **client,
    )
    raise PermissionDenied("Organization admin access required")

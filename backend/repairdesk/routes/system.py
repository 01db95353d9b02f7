# backend/repairdesk/routes/system.py
"""
System health endpoint.

Checks database connectivity and whether the credential encryption key is
usable, since the webhook path cannot resolve any store without it.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import PaymentProcessorCredential, Store, Ticket
from ..services import credential_service
from repairdesk.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        store_count = db.session.query(Store).count()
        ticket_count = db.session.query(Ticket).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "stores": store_count,
                "tickets": ticket_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_credentials_health() -> dict:
    """
    Degraded when stores have processor secrets but no usable key to read them.
    """
    try:
        configured = db.session.query(PaymentProcessorCredential).count()
    except Exception:
        current_app.logger.exception("Credential health check failed")
        db.session.rollback()
        return {"status": "unhealthy", "error": "Database error"}

    if not configured:
        return {"status": "healthy", "details": {"stores_with_processor": 0}}

    try:
        credential_service.encrypt_secret("health-check")
    except credential_service.CredentialEncryptionError as e:
        return {
            "status": "degraded",
            "warning": str(e),
            "details": {"stores_with_processor": configured},
        }

    return {"status": "healthy", "details": {"stores_with_processor": configured}}


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    credentials_health = check_credentials_health()

    all_checks = [database_health, credentials_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "credentials": credentials_health,
        }
    }

    return response, http_status

# Overview: Service-layer error taxonomy shared by every ticket engine service.

"""
Service Errors

Every service raises one of these. Routes translate them into a JSON body
{"error": message} with the class status_code. Anything else is treated as an
internal error and reported generically.

NotFound is also used when a record exists but belongs to another tenant, so
callers cannot learn about other tenants' data.
"""


class ServiceError(Exception):
    """Base class for errors whose message is safe to show to the caller."""
    status_code = 400


class ValidationError(ServiceError):
    """Malformed or missing input."""
    status_code = 400


class NotFound(ServiceError):
    """Tenant-scoped lookup miss."""
    status_code = 404


class PermissionDenied(ServiceError):
    """Role or organization-role check failed."""
    status_code = 403


class StateConflict(ServiceError):
    """Operation is not allowed in the resource's current state."""
    status_code = 409


class SignatureVerificationFailed(ServiceError):
    """No configured webhook secret verified the inbound event."""
    status_code = 400

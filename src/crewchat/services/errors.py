"""Service-layer error taxonomy.

Learn: Services raise these instead of HTTPException so they stay
transport-agnostic. Each class carries the HTTP status the REST layer
maps it to; the realtime gateway never sees them.
"""


class ServiceError(Exception):
    """Base class for domain errors surfaced to callers."""

    status_code = 400


class BadRequestError(ServiceError):
    """The request is well-formed but invalid for the current state."""

    status_code = 400


class AuthenticationError(ServiceError):
    """Credentials (password, channel password) did not verify."""

    status_code = 401


class PermissionDeniedError(ServiceError):
    """Authenticated but not allowed to perform the action."""

    status_code = 403


class NotFoundError(ServiceError):
    """A referenced user, channel, or message does not exist."""

    status_code = 404


class ConflictError(ServiceError):
    """Uniqueness violation: duplicate name, email, or membership."""

    status_code = 409

"""
Service Exceptions

Structured exception hierarchy shared by every subsystem. Each exception
carries a stable error code and the HTTP status it is rendered with by the
application-level exception handler.
"""

from typing import Any


class BaseExceptionError(Exception):
    """Base class for all service errors."""

    code: str = 'SERVICE_ERROR'
    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
    ) -> None:
        self.message = message
        self.msg = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            'error': self.code,
            'message': self.message,
            'details': self.details,
        }


class UnauthenticatedError(BaseExceptionError):
    code = 'UNAUTHENTICATED'
    status_code = 401

    def __init__(self, message: str = 'Unauthorized.', **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class ForbiddenError(BaseExceptionError):
    code = 'FORBIDDEN'
    status_code = 403

    def __init__(self, message: str = 'Google sign-in is required.', **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class BadRequestError(BaseExceptionError):
    code = 'BAD_REQUEST'
    status_code = 400


class ServiceConfigError(BaseExceptionError):
    """A required collaborator (runner, identity provider) is not configured."""

    code = 'SERVICE_NOT_CONFIGURED'
    status_code = 500


class UpstreamTransportError(BaseExceptionError):
    """The job runner could not be reached."""

    code = 'UPSTREAM_TRANSPORT_ERROR'
    status_code = 502

    def __init__(self, message: str = 'Upstream request failed.', detail: str = '', **kwargs: Any) -> None:
        details = kwargs.pop('details', None) or {}
        if detail:
            details.setdefault('detail', detail)
        super().__init__(message, details=details, **kwargs)
        self.detail = detail


class UpstreamJobFailure(BaseExceptionError):
    """The job runner answered but reported a failed job."""

    code = 'UPSTREAM_JOB_FAILED'
    status_code = 502


class PollTimeoutError(BaseExceptionError):
    code = 'POLL_TIMEOUT'
    status_code = 504

    def __init__(self, message: str = 'Generation timed out.', attempts: int = 0, **kwargs: Any) -> None:
        details = kwargs.pop('details', None) or {}
        details.setdefault('attempts', attempts)
        super().__init__(message, details=details, **kwargs)
        self.attempts = attempts

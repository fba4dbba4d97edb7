"""
Billing Exceptions

Custom exception classes for ticket-related errors.
These provide structured error handling across the billing module.
"""

from typing import Any

from genmedia.common.exception.errors import BaseExceptionError


class BillingError(BaseExceptionError):
    """
    Base exception for all billing-related errors.

    All billing exceptions inherit from this class, allowing for
    broad exception handling when needed.
    """

    code = 'BILLING_ERROR'
    status_code = 500


class InsufficientTicketsError(BillingError):
    """
    Raised when a user doesn't have enough tickets for an operation.

    Attributes:
        required: Tickets required for the operation
        available: Tickets currently available
    """

    code = 'INSUFFICIENT_TICKETS'
    status_code = 402

    def __init__(
        self,
        message: str = 'Not enough tickets.',
        required: int = 0,
        available: int = 0,
    ) -> None:
        super().__init__(
            message=message,
            details={
                'required': required,
                'available': available,
                'shortfall': max(0, required - available),
            },
        )
        self.required = required
        self.available = available


class NoTicketAccountError(BillingError):
    code = 'NO_TICKET_ACCOUNT'
    status_code = 402

    def __init__(self, message: str = 'No tickets available.') -> None:
        super().__init__(message=message)


class MissingEmailError(BillingError):
    code = 'EMAIL_REQUIRED'
    status_code = 400

    def __init__(self, message: str = 'Email is required.') -> None:
        super().__init__(message=message)


class InvalidTicketRequestError(BillingError):
    """Raised for malformed ledger calls (bad cost, empty usage id)."""

    code = 'INVALID_TICKET_REQUEST'
    status_code = 400

    def __init__(self, message: str = 'Invalid ticket request.', details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, details=details)


class LedgerError(BillingError):
    """Raised when the ledger store fails; the store's message is surfaced."""

    code = 'LEDGER_ERROR'
    status_code = 500


class WorkflowError(BillingError):
    """Raised when a generation workflow cannot be built from the request."""

    code = 'WORKFLOW_ERROR'
    status_code = 400

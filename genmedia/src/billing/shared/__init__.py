from genmedia.src.billing.shared.exceptions import (
    BillingError,
    InsufficientTicketsError,
    InvalidTicketRequestError,
    LedgerError,
    MissingEmailError,
    NoTicketAccountError,
    WorkflowError,
)

__all__ = [
    'BillingError',
    'InsufficientTicketsError',
    'InvalidTicketRequestError',
    'LedgerError',
    'MissingEmailError',
    'NoTicketAccountError',
    'WorkflowError',
]

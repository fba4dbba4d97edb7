"""
Billing Configuration

Ticket reasons, usage-id namespaces and per-product pricing.

Usage:
    from genmedia.src.billing.shared.config import PRODUCTS, get_product

    product = get_product('wan_remix')
    print(product.reason)  # 'generate_video'
"""

from dataclasses import dataclass

from genmedia.core.conf import settings


# =============================================================================
# TICKET CONSTANTS
# =============================================================================
# Tickets granted once when an account is first created
SIGNUP_TICKET_GRANT: int = settings.TICKET_SIGNUP_GRANT

# Daily bonus amount and cooldown
DAILY_BONUS_TICKETS: int = settings.DAILY_BONUS_TICKETS
DAILY_BONUS_COOLDOWN_HOURS: int = settings.DAILY_BONUS_COOLDOWN_HOURS

# Upper bound on idempotency key length (matches ticket_events.usage_id)
USAGE_ID_MAX_LENGTH: int = 128

# Suffix appended to a charge usage id to key its refund
REFUND_SUFFIX: str = ':refund'


# =============================================================================
# EVENT REASONS
# =============================================================================
REASON_SIGNUP_BONUS = 'signup_bonus'
REASON_GENERATE = 'generate'
REASON_GENERATE_VIDEO = 'generate_video'
REASON_REFUND = 'refund'
REASON_DAILY_BONUS = 'daily_bonus'


# =============================================================================
# PRODUCT DEFINITION
# =============================================================================
@dataclass(frozen=True)
class Product:
    """
    A billable generation product.

    Attributes:
        namespace: Usage-id prefix for charges of this product
        reason: Ledger reason recorded on charge events
        charge_on_completion: Charge when the job is accepted/completed
            instead of before dispatch
    """
    namespace: str
    reason: str
    charge_on_completion: bool = False


PRODUCTS: dict[str, Product] = {
    'anima': Product(namespace='anima', reason=REASON_GENERATE),
    'wan_remix': Product(
        namespace='wan_remix',
        reason=REASON_GENERATE_VIDEO,
        charge_on_completion=True,
    ),
}


def get_product(name: str) -> Product:
    """Get a product by namespace; raises KeyError for unknown products."""
    return PRODUCTS[name]

"""
Endpoint Dependencies

Shared dependencies for billing and generation endpoints. Each getter can be
overridden in tests through ``app.dependency_overrides``.
"""

from typing import Annotated, Optional

from fastapi import Depends, Header

from genmedia.core.security.identity import AuthUser, IdentityGate, get_identity_gate
from genmedia.src.billing.settlement.engine import SettlementEngine, settlement_engine
from genmedia.src.billing.tickets.daily_bonus import DailyBonusService, daily_bonus_service
from genmedia.src.billing.tickets.ledger import TicketLedger, ticket_ledger


def get_gate() -> IdentityGate:
    return get_identity_gate()


async def get_current_user(
    authorization: Optional[str] = Header(None, alias='Authorization'),
    gate: IdentityGate = Depends(get_gate),
) -> AuthUser:
    """
    Verify the bearer token and return the caller.

    Raises UnauthenticatedError (401) without a valid token and
    ForbiddenError (403) for disallowed sign-in providers.
    """
    return await gate.require_user(authorization)


def get_ticket_ledger() -> TicketLedger:
    return ticket_ledger


def get_settlement_engine() -> SettlementEngine:
    return settlement_engine


def get_daily_bonus_service() -> DailyBonusService:
    return daily_bonus_service


CurrentUser = Annotated[AuthUser, Depends(get_current_user)]

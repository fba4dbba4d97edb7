"""
Balance Endpoint

Current ticket balance for the caller; the account is created with the
signup grant on first access.
"""

import logging

from typing import Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from genmedia.src.billing.endpoints.dependencies import CurrentUser, get_ticket_ledger
from genmedia.src.billing.tickets.ledger import TicketLedger

logger = logging.getLogger(__name__)

router = APIRouter(tags=['Tickets'])


class TicketBalance(BaseModel):
    """Caller's ticket balance."""
    tickets: int = Field(description='Current ticket balance')
    email: str
    user_id: Optional[str] = None
    created: bool = Field(False, description='Account was created by this request')


@router.get('/balance', response_model=TicketBalance)
async def get_ticket_balance(
    response: Response,
    user: CurrentUser,
    ledger: TicketLedger = Depends(get_ticket_ledger),
) -> TicketBalance:
    result = await ledger.ensure_account(user)
    if result.created:
        logger.info(f'[TICKETS] Granted signup tickets to {user.id}')
    response.headers['Cache-Control'] = 'no-store'
    return TicketBalance(
        tickets=result.account.tickets,
        email=result.account.email,
        user_id=result.account.user_id,
        created=result.created,
    )

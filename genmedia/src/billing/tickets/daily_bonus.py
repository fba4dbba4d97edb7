"""
Daily Bonus Service

Grants a small ticket bonus at most once per cooldown window.

- The first claim opens one cooldown after the account was created
- A successful claim moves eligibility to claim time plus one cooldown
- Eligibility only ever moves forward
"""

import logging

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from genmedia.core.security.identity import AuthUser
from genmedia.src.billing.domain.ticket_account import BonusClaim, DailyBonusStatus
from genmedia.src.billing.model import DailyBonusState
from genmedia.src.billing.shared.config import DAILY_BONUS_COOLDOWN_HOURS, DAILY_BONUS_TICKETS
from genmedia.src.billing.shared.exceptions import BillingError, LedgerError, MissingEmailError
from genmedia.src.billing.tickets.ledger import TicketLedger, ticket_ledger
from genmedia.src.billing.tickets.procedures import claim_daily_bonus
from genmedia.utils.timezone import timezone

logger = logging.getLogger(__name__)


class DailyBonusService:
    """
    Daily bonus status and claims.

    Usage:
        service = DailyBonusService()
        status = await service.get_status(user)
        claim = await service.claim(user)
    """

    def __init__(
        self,
        ledger: Optional[TicketLedger] = None,
        amount: int = DAILY_BONUS_TICKETS,
        cooldown_hours: int = DAILY_BONUS_COOLDOWN_HOURS,
    ) -> None:
        self.ledger = ledger or ticket_ledger
        self.amount = amount
        self.cooldown_hours = cooldown_hours

    async def get_status(self, user: AuthUser, now: Optional[datetime] = None) -> DailyBonusStatus:
        """Eligibility for the caller; creates the ticket account if needed."""
        now = timezone.aware(now) or timezone.now()
        account = (await self.ledger.ensure_account(user)).account

        async with self.ledger.session_factory() as session:
            result = await session.execute(select(DailyBonusState).where(DailyBonusState.ticket_id == account.id))
            state = result.scalar_one_or_none()

        if state is None:
            next_eligible_at = timezone.after(account.created_at, hours=self.cooldown_hours)
            last_claimed_at, claim_count = None, 0
        else:
            next_eligible_at = timezone.aware(state.next_eligible_at)
            last_claimed_at, claim_count = timezone.aware(state.last_claimed_at), state.claim_count

        return DailyBonusStatus(
            can_claim=now >= next_eligible_at,
            next_eligible_at=next_eligible_at,
            last_claimed_at=last_claimed_at,
            claim_count=claim_count,
            tickets=account.tickets,
        )

    async def claim(self, user: AuthUser, now: Optional[datetime] = None) -> BonusClaim:
        """
        Claim the daily bonus.

        Returns granted=False with the unchanged eligibility time when the
        cooldown has not elapsed.

        Raises:
            MissingEmailError: user has no email
            LedgerError: store failure
        """
        if not user.email:
            raise MissingEmailError()
        account = (await self.ledger.ensure_account(user)).account

        try:
            async with self.ledger.session_factory.begin() as session:
                result = await claim_daily_bonus(
                    session,
                    ticket_id=account.id,
                    account_created_at=account.created_at,
                    email=account.email,
                    user_id=user.id or account.user_id,
                    amount=self.amount,
                    cooldown_hours=self.cooldown_hours,
                    now=now,
                )
        except BillingError:
            raise
        except SQLAlchemyError as e:
            logger.error(f'[BONUS] Claim failed for {account.id}: {e}', exc_info=True)
            raise LedgerError(str(e))

        if result.granted:
            logger.info(f'[BONUS] Granted {self.amount} to {account.id}, balance {result.tickets_left}')
        else:
            logger.debug(f'[BONUS] Not eligible for {account.id} until {result.next_eligible_at}')
        return result


# Global instance
daily_bonus_service = DailyBonusService()

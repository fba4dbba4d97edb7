"""
Ticket Ledger

Account lifecycle and idempotent charge/refund operations:
- Lazy account creation with a one-time signup grant
- Pre-flight balance checks
- Charges and refunds keyed by usage id, applied at most once
- Owner-checked refunds

Every mutation runs in one transaction through the atomic procedures in
``procedures.py``. Store failures surface as LedgerError.
"""

import logging

from typing import Any, Optional

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from genmedia.core.security.identity import AuthUser
from genmedia.database.db import async_db_session, uuid4_str
from genmedia.src.billing.domain.ticket_account import (
    ChargeResult,
    EnsureResult,
    RefundResult,
    TicketAccount,
    TicketEventRecord,
)
from genmedia.src.billing.domain.usage import UsageId
from genmedia.src.billing.model import TicketEvent, UserTicket
from genmedia.src.billing.shared.config import (
    REASON_GENERATE,
    REASON_REFUND,
    REASON_SIGNUP_BONUS,
    SIGNUP_TICKET_GRANT,
)
from genmedia.src.billing.shared.exceptions import (
    BillingError,
    InsufficientTicketsError,
    LedgerError,
    MissingEmailError,
    NoTicketAccountError,
)
from genmedia.src.billing.tickets.procedures import consume_tickets, refund_tickets
from genmedia.utils.timezone import timezone

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    """Accounts are keyed by email case-insensitively."""
    return email.strip().lower()


class TicketLedger:
    """
    Manages ticket accounts and ledger events.

    Usage:
        ledger = TicketLedger()

        # Charge one ticket before dispatching a job
        usage_id = UsageId.mint('anima')
        result = await ledger.charge(user, usage_id, cost=1, reason='generate')

        # Refund it if the job failed (no-op when already refunded)
        await ledger.refund(user, usage_id)
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        signup_grant: int = SIGNUP_TICKET_GRANT,
    ) -> None:
        """
        Initialize TicketLedger.

        Args:
            session_factory: Session factory; defaults to the application database
            signup_grant: Tickets granted when an account is first created
        """
        self.session_factory = session_factory or async_db_session
        self.signup_grant = signup_grant

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def _fetch_row(self, session: AsyncSession, user: AuthUser) -> Optional[UserTicket]:
        if user.id:
            result = await session.execute(select(UserTicket).where(UserTicket.user_id == user.id))
            row = result.scalar_one_or_none()
            if row is not None:
                return row
        if user.email:
            email = normalize_email(user.email)
            result = await session.execute(select(UserTicket).where(func.lower(UserTicket.email) == email))
            return result.scalar_one_or_none()
        return None

    async def fetch_account(self, user: AuthUser) -> Optional[TicketAccount]:
        """Look up the account by user id, falling back to email."""
        async with self.session_factory() as session:
            row = await self._fetch_row(session, user)
        return TicketAccount.from_row(row) if row is not None else None

    async def ensure_account(self, user: AuthUser) -> EnsureResult:
        """
        Return the caller's account, creating it with the signup grant if missing.

        The account row and its signup_bonus event are written in one
        transaction. A unique-constraint conflict means a concurrent request
        created the account first; the existing row is returned instead.

        Raises:
            MissingEmailError: user has no email
        """
        if not user.email:
            raise MissingEmailError()

        async with self.session_factory() as session:
            existing = await self._fetch_row(session, user)
        if existing is not None:
            return EnsureResult(account=TicketAccount.from_row(existing), created=False)

        account = TicketAccount(
            id=uuid4_str(),
            email=normalize_email(user.email),
            tickets=self.signup_grant,
            created_at=timezone.now(),
            user_id=user.id or None,
        )
        events = TicketEvent.__table__
        try:
            async with self.session_factory.begin() as session:
                await session.execute(
                    insert(UserTicket).values(
                        id=account.id,
                        email=account.email,
                        user_id=account.user_id,
                        tickets=account.tickets,
                        created_at=account.created_at,
                    )
                )
                await session.execute(
                    insert(events).values({
                        events.c.usage_id: UsageId.mint(),
                        events.c.ticket_id: account.id,
                        events.c.email: account.email,
                        events.c.user_id: account.user_id,
                        events.c.delta: self.signup_grant,
                        events.c.reason: REASON_SIGNUP_BONUS,
                        events.c.metadata: {'source': 'auto_grant'},
                        events.c.created_at: account.created_at,
                    })
                )
        except IntegrityError:
            logger.info(f'[TICKETS] Account for {user.email} created concurrently, re-reading')
            async with self.session_factory() as session:
                existing = await self._fetch_row(session, user)
            if existing is None:
                raise LedgerError('Failed to create ticket account.')
            return EnsureResult(account=TicketAccount.from_row(existing), created=False)
        except SQLAlchemyError as e:
            logger.error(f'[TICKETS] Failed to create account for {user.email}: {e}', exc_info=True)
            raise LedgerError(str(e))

        logger.info(f'[TICKETS] Created account {account.id} for {user.email} with {self.signup_grant} tickets')
        return EnsureResult(account=account, created=True)

    async def _backfill_user_id(self, account: TicketAccount, user: AuthUser) -> TicketAccount:
        """Attach the caller's user id to an account created before it was known."""
        if account.user_id or not user.id:
            return account
        try:
            async with self.session_factory.begin() as session:
                await session.execute(
                    update(UserTicket)
                    .where(UserTicket.id == account.id, UserTicket.user_id.is_(None))
                    .values(user_id=user.id)
                    .execution_options(synchronize_session=False)
                )
        except IntegrityError:
            logger.warning(f'[TICKETS] User id {user.id} already linked to another account, not back-filling')
            return account
        account.user_id = user.id
        return account

    async def ensure_available(self, user: AuthUser, required_tickets: int = 1) -> TicketAccount:
        """
        Pre-flight check that the caller can afford ``required_tickets``.

        Raises:
            MissingEmailError: user has no email
            NoTicketAccountError: no account exists for the user
            InsufficientTicketsError: balance below the requirement
        """
        if not user.email:
            raise MissingEmailError()
        account = await self.fetch_account(user)
        if account is None:
            raise NoTicketAccountError()
        account = await self._backfill_user_id(account, user)
        if not account.can_afford(required_tickets):
            raise InsufficientTicketsError(required=required_tickets, available=account.tickets)
        return account

    async def get_balance(self, user: AuthUser) -> Optional[int]:
        account = await self.fetch_account(user)
        return account.tickets if account is not None else None

    async def get_event(self, usage_id: str) -> Optional[TicketEventRecord]:
        async with self.session_factory() as session:
            result = await session.execute(select(TicketEvent).where(TicketEvent.usage_id == usage_id))
            row = result.scalar_one_or_none()
        return TicketEventRecord.from_row(row) if row is not None else None

    # =========================================================================
    # CHARGE / REFUND
    # =========================================================================

    async def charge(
        self,
        user: AuthUser,
        usage_id: str,
        cost: int = 1,
        reason: str = REASON_GENERATE,
        metadata: Optional[dict[str, Any]] = None,
    ) -> ChargeResult:
        """
        Deduct ``cost`` tickets once for ``usage_id``.

        Repeating the call with the same usage id returns the current balance
        with already_consumed set and does not deduct again.

        Raises:
            MissingEmailError: user has no email
            InsufficientTicketsError: balance below cost; nothing recorded
            InvalidTicketRequestError: bad cost or usage id
            LedgerError: store failure
        """
        if not user.email:
            raise MissingEmailError()
        usage_id = UsageId(usage_id)
        account = (await self.ensure_account(user)).account
        account = await self._backfill_user_id(account, user)

        try:
            async with self.session_factory.begin() as session:
                result = await consume_tickets(
                    session,
                    ticket_id=account.id,
                    usage_id=usage_id,
                    cost=cost,
                    reason=reason,
                    email=account.email,
                    user_id=user.id or account.user_id,
                    metadata=metadata,
                )
        except BillingError:
            raise
        except SQLAlchemyError as e:
            logger.error(f'[TICKETS] Charge {usage_id} failed: {e}', exc_info=True)
            raise LedgerError(str(e))

        if result.already_consumed:
            logger.info(f'[TICKETS] Usage {usage_id} already charged, balance {result.tickets_left}')
        else:
            logger.info(f'[TICKETS] Charged {cost} for {usage_id} ({reason}), balance {result.tickets_left}')
        return result

    async def refund(
        self,
        user: AuthUser,
        usage_id: Optional[str],
        amount: Optional[int] = None,
        reason: str = REASON_REFUND,
        metadata: Optional[dict[str, Any]] = None,
    ) -> RefundResult:
        """
        Return the tickets charged for ``usage_id`` to the caller, at most once.

        The refund is skipped when there is no charge event for the usage id,
        or when the charge belongs to a different user. ``amount`` defaults to
        the charged cost and is capped at it.

        Raises:
            LedgerError: store failure
        """
        if not user.email or not usage_id:
            return RefundResult(skipped=True)
        usage_id = UsageId(usage_id)

        charge_event = await self.get_event(usage_id)
        if charge_event is None or charge_event.delta >= 0:
            logger.warning(f'[TICKETS] Refund skipped for {usage_id}: no charge event')
            return RefundResult(skipped=True)
        if not charge_event.belongs_to(user.id, user.email):
            logger.warning(
                f'[TICKETS] Refund skipped for {usage_id}: charge owned by another user (caller {user.id})'
            )
            return RefundResult(skipped=True)

        charged = -charge_event.delta
        amount = charged if amount is None else min(amount, charged)
        refund_metadata = {'original_usage_id': str(usage_id), **(metadata or {})}

        try:
            async with self.session_factory.begin() as session:
                result = await refund_tickets(
                    session,
                    ticket_id=charge_event.ticket_id,
                    refund_usage_id=usage_id.refund_id,
                    amount=amount,
                    email=charge_event.email,
                    user_id=user.id or charge_event.user_id,
                    reason=reason,
                    metadata=refund_metadata,
                )
        except BillingError:
            raise
        except SQLAlchemyError as e:
            logger.error(f'[TICKETS] Refund {usage_id} failed: {e}', exc_info=True)
            raise LedgerError(str(e))

        if result.already_refunded:
            logger.info(f'[TICKETS] Usage {usage_id} already refunded, balance {result.tickets_left}')
        else:
            logger.info(f'[TICKETS] Refunded {amount} for {usage_id}, balance {result.tickets_left}')
        return result


# Global instance
ticket_ledger = TicketLedger()

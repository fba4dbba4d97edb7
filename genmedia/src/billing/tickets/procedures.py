"""
Atomic Ticket Procedures

Each procedure runs inside a single transaction opened by the caller
(``async with session_factory.begin() as session``). Idempotency comes from
the unique index on ``ticket_events.usage_id``: the event row is inserted
first with ON CONFLICT DO NOTHING, and the balance only moves when that
insert actually wrote a row. Any exception raised here rolls the whole
transaction back, event row included.
"""

from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from genmedia.src.billing.domain.ticket_account import BonusClaim, ChargeResult, RefundResult
from genmedia.src.billing.model import DailyBonusState, TicketEvent, UserTicket
from genmedia.src.billing.shared.config import REASON_DAILY_BONUS, REASON_REFUND
from genmedia.src.billing.shared.exceptions import InsufficientTicketsError, InvalidTicketRequestError
from genmedia.utils.timezone import timezone


def _insert_for(session: AsyncSession, entity):
    """Dialect-specific INSERT supporting ON CONFLICT."""
    if session.get_bind().dialect.name == 'sqlite':
        return sqlite_insert(entity)
    return pg_insert(entity)


async def _insert_event(
    session: AsyncSession,
    *,
    usage_id: str,
    ticket_id: str,
    email: str,
    user_id: Optional[str],
    delta: int,
    reason: str,
    metadata: Optional[dict[str, Any]],
) -> bool:
    """Insert a ledger event unless its usage id exists; True when a row was written."""
    events = TicketEvent.__table__
    stmt = (
        _insert_for(session, events)
        .values({
            events.c.usage_id: usage_id,
            events.c.ticket_id: ticket_id,
            events.c.email: email,
            events.c.user_id: user_id,
            events.c.delta: delta,
            events.c.reason: reason,
            events.c.metadata: metadata or {},
            events.c.created_at: timezone.now(),
        })
        .on_conflict_do_nothing(index_elements=[events.c.usage_id])
        .returning(events.c.usage_id)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none() is not None


async def _current_balance(session: AsyncSession, ticket_id: str) -> int:
    result = await session.execute(select(UserTicket.tickets).where(UserTicket.id == ticket_id))
    return int(result.scalar_one_or_none() or 0)


async def _add_to_balance(session: AsyncSession, ticket_id: str, amount: int) -> Optional[int]:
    """Move the balance by ``amount``; negative moves never take it below zero."""
    stmt = (
        update(UserTicket)
        .where(UserTicket.id == ticket_id)
        .values(tickets=UserTicket.tickets + amount, updated_at=timezone.now())
        .returning(UserTicket.tickets)
        .execution_options(synchronize_session=False)
    )
    if amount < 0:
        stmt = stmt.where(UserTicket.tickets >= -amount)
    result = await session.execute(stmt)
    value = result.scalar_one_or_none()
    return int(value) if value is not None else None


async def consume_tickets(
    session: AsyncSession,
    *,
    ticket_id: str,
    usage_id: str,
    cost: int,
    reason: str,
    email: str,
    user_id: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> ChargeResult:
    """
    Deduct ``cost`` tickets at most once per usage id.

    Returns:
        ChargeResult; already_consumed is True when the usage id was charged before

    Raises:
        InvalidTicketRequestError: cost below one or empty usage id
        InsufficientTicketsError: balance below cost (nothing is written)
    """
    if not usage_id:
        raise InvalidTicketRequestError('Usage id is required.')
    if not isinstance(cost, int) or cost < 1:
        raise InvalidTicketRequestError('Ticket cost must be a positive integer.', details={'cost': cost})

    inserted = await _insert_event(
        session,
        usage_id=usage_id,
        ticket_id=ticket_id,
        email=email,
        user_id=user_id,
        delta=-cost,
        reason=reason,
        metadata=metadata,
    )
    if not inserted:
        return ChargeResult(tickets_left=await _current_balance(session, ticket_id), already_consumed=True)

    tickets_left = await _add_to_balance(session, ticket_id, -cost)
    if tickets_left is None:
        available = await _current_balance(session, ticket_id)
        raise InsufficientTicketsError(required=cost, available=available)
    return ChargeResult(tickets_left=tickets_left)


async def refund_tickets(
    session: AsyncSession,
    *,
    ticket_id: str,
    refund_usage_id: str,
    amount: int,
    email: str,
    user_id: Optional[str] = None,
    reason: str = REASON_REFUND,
    metadata: Optional[dict[str, Any]] = None,
) -> RefundResult:
    """Credit ``amount`` tickets at most once per refund usage id."""
    if not refund_usage_id:
        raise InvalidTicketRequestError('Usage id is required.')
    if not isinstance(amount, int) or amount < 1:
        raise InvalidTicketRequestError('Refund amount must be a positive integer.', details={'amount': amount})

    inserted = await _insert_event(
        session,
        usage_id=refund_usage_id,
        ticket_id=ticket_id,
        email=email,
        user_id=user_id,
        delta=amount,
        reason=reason,
        metadata=metadata,
    )
    if not inserted:
        return RefundResult(tickets_left=await _current_balance(session, ticket_id), already_refunded=True)

    tickets_left = await _add_to_balance(session, ticket_id, amount)
    return RefundResult(tickets_left=tickets_left)


async def claim_daily_bonus(
    session: AsyncSession,
    *,
    ticket_id: str,
    account_created_at: datetime,
    email: str,
    user_id: Optional[str],
    amount: int,
    cooldown_hours: int,
    now: Optional[datetime] = None,
) -> BonusClaim:
    """
    Grant the daily bonus if the cooldown has elapsed.

    The state row is seeded lazily with the first eligibility at account
    creation plus one cooldown. The claim itself is a conditional UPDATE on
    ``next_eligible_at``, so concurrent claims grant at most once.
    """
    now = timezone.aware(now) or timezone.now()
    cooldown = timedelta(hours=cooldown_hours)

    seed = (
        _insert_for(session, DailyBonusState.__table__)
        .values(
            ticket_id=ticket_id,
            next_eligible_at=timezone.aware(account_created_at) + cooldown,
            last_claimed_at=None,
            claim_count=0,
        )
        .on_conflict_do_nothing(index_elements=['ticket_id'])
    )
    await session.execute(seed)

    result = await session.execute(
        update(DailyBonusState)
        .where(DailyBonusState.ticket_id == ticket_id, DailyBonusState.next_eligible_at <= now)
        .values(
            next_eligible_at=now + cooldown,
            last_claimed_at=now,
            claim_count=DailyBonusState.claim_count + 1,
        )
        .returning(DailyBonusState.claim_count, DailyBonusState.next_eligible_at)
        .execution_options(synchronize_session=False)
    )
    claimed = result.first()

    if claimed is None:
        state = await session.execute(
            select(DailyBonusState.next_eligible_at).where(DailyBonusState.ticket_id == ticket_id)
        )
        return BonusClaim(
            granted=False,
            tickets_left=await _current_balance(session, ticket_id),
            next_eligible_at=timezone.aware(state.scalar_one()),
            message='Daily bonus is not available yet.',
        )

    claim_count, next_eligible_at = claimed
    inserted = await _insert_event(
        session,
        usage_id=f'{REASON_DAILY_BONUS}:{ticket_id}:{claim_count}',
        ticket_id=ticket_id,
        email=email,
        user_id=user_id,
        delta=amount,
        reason=REASON_DAILY_BONUS,
        metadata={'claim_count': claim_count},
    )
    tickets_left = await _add_to_balance(session, ticket_id, amount) if inserted else None
    if tickets_left is None:
        tickets_left = await _current_balance(session, ticket_id)
    return BonusClaim(
        granted=inserted,
        tickets_left=tickets_left,
        next_eligible_at=timezone.aware(next_eligible_at),
        message=f'Claimed {amount} bonus ticket{"s" if amount != 1 else ""}.' if inserted else '',
    )

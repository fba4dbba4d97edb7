"""Tests for the ticket ledger against a real SQLite database.

Tests cover:
- Lazy account creation with the signup grant
- Idempotent charges and refunds keyed by usage id
- Balance guard on charges
- Refund ownership checks
- Concurrent account creation
"""

import asyncio

import pytest

from sqlalchemy import func, select

from genmedia.core.security.identity import AuthUser
from genmedia.src.billing.domain.usage import UsageId
from genmedia.src.billing.model import TicketEvent, UserTicket
from genmedia.src.billing.shared.exceptions import (
    InsufficientTicketsError,
    InvalidTicketRequestError,
    MissingEmailError,
    NoTicketAccountError,
)


async def _events(ledger, **filters) -> list[TicketEvent]:
    async with ledger.session_factory() as session:
        stmt = select(TicketEvent).filter_by(**filters).order_by(TicketEvent.id)
        return list((await session.execute(stmt)).scalars())


class TestAccounts:
    """Tests for account creation."""

    @pytest.mark.asyncio
    async def test_first_access_grants_signup_tickets(self, ledger, user):
        result = await ledger.ensure_account(user)

        assert result.created
        assert result.account.tickets == 5
        events = await _events(ledger, ticket_id=result.account.id)
        assert [(e.delta, e.reason) for e in events] == [(5, 'signup_bonus')]
        assert events[0].event_metadata == {'source': 'auto_grant'}

    @pytest.mark.asyncio
    async def test_second_access_returns_existing(self, ledger, user):
        first = await ledger.ensure_account(user)
        second = await ledger.ensure_account(user)

        assert not second.created
        assert second.account.id == first.account.id

    @pytest.mark.asyncio
    async def test_email_is_required(self, ledger):
        with pytest.raises(MissingEmailError) as exc_info:
            await ledger.ensure_account(AuthUser(id='u9', email=None))

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_concurrent_creation_converges(self, ledger, user, monkeypatch):
        """The losing insert of a signup race re-reads the winner's row."""
        await ledger.ensure_account(user)
        original = ledger._fetch_row
        calls = 0

        async def racing_fetch(session, caller):
            nonlocal calls
            calls += 1
            if calls == 1:
                return None
            return await original(session, caller)

        monkeypatch.setattr(ledger, '_fetch_row', racing_fetch)
        result = await ledger.ensure_account(user)

        assert not result.created
        assert result.account.tickets == 5
        async with ledger.session_factory() as session:
            count = await session.scalar(select(func.count()).select_from(UserTicket))
        assert count == 1
        assert len(await _events(ledger, reason='signup_bonus')) == 1

    @pytest.mark.asyncio
    async def test_simultaneous_first_access_grants_once(self, ledger, user):
        results = await asyncio.gather(ledger.ensure_account(user), ledger.ensure_account(user))

        assert len({r.account.id for r in results}) == 1
        assert await ledger.get_balance(user) == 5
        async with ledger.session_factory() as session:
            count = await session.scalar(select(func.count()).select_from(UserTicket))
        assert count == 1
        assert len(await _events(ledger, reason='signup_bonus')) == 1

    @pytest.mark.asyncio
    async def test_email_lookup_ignores_case(self, ledger):
        first = await ledger.ensure_account(AuthUser(id='', email='Ada@Example.com'))
        second = await ledger.ensure_account(AuthUser(id='', email='ada@example.com'))

        assert first.created
        assert first.account.email == 'ada@example.com'
        assert not second.created
        assert second.account.id == first.account.id
        assert len(await _events(ledger, reason='signup_bonus')) == 1

    @pytest.mark.asyncio
    async def test_ensure_available(self, ledger, user):
        with pytest.raises(NoTicketAccountError):
            await ledger.ensure_available(user)

        await ledger.ensure_account(user)
        account = await ledger.ensure_available(user, required_tickets=5)
        assert account.tickets == 5

        with pytest.raises(InsufficientTicketsError) as exc_info:
            await ledger.ensure_available(user, required_tickets=6)
        assert exc_info.value.status_code == 402
        assert exc_info.value.details['shortfall'] == 1

    @pytest.mark.asyncio
    async def test_user_id_is_backfilled(self, ledger):
        await ledger.ensure_account(AuthUser(id='', email='ada@example.com'))

        await ledger.ensure_available(AuthUser(id='user-1', email='ada@example.com'))

        account = await ledger.fetch_account(AuthUser(id='user-1', email=None))
        assert account is not None
        assert account.user_id == 'user-1'


class TestCharge:
    """Tests for idempotent charges."""

    @pytest.mark.asyncio
    async def test_charge_is_applied_once(self, ledger, user):
        usage_id = UsageId.mint('anima')

        first = await ledger.charge(user, usage_id, cost=1)
        second = await ledger.charge(user, usage_id, cost=1)

        assert first.tickets_left == 4
        assert not first.already_consumed
        assert second.tickets_left == 4
        assert second.already_consumed
        assert len(await _events(ledger, usage_id=usage_id)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_charges_apply_once(self, ledger, user):
        await ledger.ensure_account(user)
        usage_id = UsageId.for_job('wan_remix', 'job-1')

        results = await asyncio.gather(*(ledger.charge(user, usage_id, cost=2) for _ in range(4)))

        assert sorted(r.already_consumed for r in results) == [False, True, True, True]
        assert await ledger.get_balance(user) == 3

    @pytest.mark.asyncio
    async def test_insufficient_balance_writes_nothing(self, ledger, user):
        await ledger.charge(user, UsageId.mint('anima'), cost=4)
        usage_id = UsageId.mint('wan_remix')

        with pytest.raises(InsufficientTicketsError) as exc_info:
            await ledger.charge(user, usage_id, cost=2)

        assert exc_info.value.details == {'required': 2, 'available': 1, 'shortfall': 1}
        assert await ledger.get_balance(user) == 1
        assert await ledger.get_event(usage_id) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize('cost', [0, -1])
    async def test_cost_must_be_positive(self, ledger, user, cost):
        with pytest.raises(InvalidTicketRequestError):
            await ledger.charge(user, UsageId.mint('anima'), cost=cost)

    @pytest.mark.asyncio
    async def test_charge_records_metadata(self, ledger, user):
        usage_id = UsageId.mint('anima')

        await ledger.charge(user, usage_id, cost=1, metadata={'width': 512})

        event = await ledger.get_event(usage_id)
        assert event.delta == -1
        assert event.reason == 'generate'
        assert event.metadata == {'width': 512}
        assert event.user_id == 'user-1'


class TestRefund:
    """Tests for idempotent, owner-checked refunds."""

    @pytest.mark.asyncio
    async def test_refund_restores_charge_once(self, ledger, user):
        usage_id = UsageId.mint('anima')
        await ledger.charge(user, usage_id, cost=1)

        first = await ledger.refund(user, usage_id)
        second = await ledger.refund(user, usage_id)

        assert first.tickets_left == 5
        assert not first.already_refunded
        assert second.tickets_left == 5
        assert second.already_refunded
        refund_event = await ledger.get_event(usage_id.refund_id)
        assert refund_event.delta == 1
        assert refund_event.metadata['original_usage_id'] == usage_id

    @pytest.mark.asyncio
    async def test_refund_amount_is_capped_at_charge(self, ledger, user):
        usage_id = UsageId.mint('wan_remix')
        await ledger.charge(user, usage_id, cost=2)

        result = await ledger.refund(user, usage_id, amount=10)

        assert result.tickets_left == 5

    @pytest.mark.asyncio
    async def test_refund_without_charge_is_skipped(self, ledger, user):
        await ledger.ensure_account(user)

        result = await ledger.refund(user, UsageId.mint('anima'))

        assert result.skipped
        assert await ledger.get_balance(user) == 5

    @pytest.mark.asyncio
    async def test_refund_of_another_users_charge_is_skipped(self, ledger, user, other_user):
        usage_id = UsageId.mint('anima')
        await ledger.charge(user, usage_id, cost=1)
        await ledger.ensure_account(other_user)

        result = await ledger.refund(other_user, usage_id)

        assert result.skipped
        assert await ledger.get_balance(user) == 4
        assert await ledger.get_balance(other_user) == 5
        assert await ledger.get_event(usage_id.refund_id) is None

    @pytest.mark.asyncio
    async def test_refund_without_usage_id_is_skipped(self, ledger, user):
        assert (await ledger.refund(user, None)).skipped

"""Tests for the daily bonus cooldown."""

from datetime import timedelta

import pytest

from genmedia.core.security.identity import AuthUser
from genmedia.src.billing.shared.exceptions import MissingEmailError


class TestDailyBonus:
    """Tests for status and claims."""

    @pytest.mark.asyncio
    async def test_new_account_waits_one_cooldown(self, bonus_service, ledger, user):
        account = (await ledger.ensure_account(user)).account

        status = await bonus_service.get_status(user, now=account.created_at + timedelta(hours=1))
        claim = await bonus_service.claim(user, now=account.created_at + timedelta(hours=1))

        assert not status.can_claim
        assert status.next_eligible_at == account.created_at + timedelta(hours=24)
        assert status.claim_count == 0
        assert not claim.granted
        assert claim.tickets_left == 5
        assert claim.message == 'Daily bonus is not available yet.'

    @pytest.mark.asyncio
    async def test_claim_after_cooldown(self, bonus_service, ledger, user):
        account = (await ledger.ensure_account(user)).account
        now = account.created_at + timedelta(hours=25)

        claim = await bonus_service.claim(user, now=now)

        assert claim.granted
        assert claim.tickets_left == 6
        assert claim.next_eligible_at == now + timedelta(hours=24)
        assert claim.message == 'Claimed 1 bonus ticket.'
        event = await ledger.get_event(f'daily_bonus:{account.id}:1')
        assert event.delta == 1

    @pytest.mark.asyncio
    async def test_second_claim_in_window_is_refused(self, bonus_service, ledger, user):
        account = (await ledger.ensure_account(user)).account
        now = account.created_at + timedelta(hours=25)
        await bonus_service.claim(user, now=now)

        again = await bonus_service.claim(user, now=now + timedelta(hours=23))
        status = await bonus_service.get_status(user, now=now + timedelta(hours=23))

        assert not again.granted
        assert again.tickets_left == 6
        assert again.next_eligible_at == now + timedelta(hours=24)
        assert not status.can_claim
        assert status.claim_count == 1
        assert status.last_claimed_at == now

    @pytest.mark.asyncio
    async def test_cooldown_restarts_from_claim_time(self, bonus_service, ledger, user):
        account = (await ledger.ensure_account(user)).account
        first = account.created_at + timedelta(hours=30)
        await bonus_service.claim(user, now=first)

        second = await bonus_service.claim(user, now=first + timedelta(hours=24))

        assert second.granted
        assert second.tickets_left == 7
        status = await bonus_service.get_status(user, now=first + timedelta(hours=24))
        assert status.claim_count == 2

    @pytest.mark.asyncio
    async def test_status_to_dict(self, bonus_service, ledger, user):
        account = (await ledger.ensure_account(user)).account

        data = (await bonus_service.get_status(user, now=account.created_at)).to_dict()

        assert set(data) == {'canClaim', 'nextEligibleAt', 'lastClaimedAt', 'claimCount', 'tickets'}
        assert data['lastClaimedAt'] is None
        assert data['tickets'] == 5

    @pytest.mark.asyncio
    async def test_claim_requires_email(self, bonus_service):
        with pytest.raises(MissingEmailError):
            await bonus_service.claim(AuthUser(id='u1', email=None))

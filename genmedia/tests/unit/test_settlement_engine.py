"""Tests for the settlement engine against a real ledger."""

from unittest.mock import AsyncMock

import pytest

from genmedia.src.billing.domain.usage import UsageId
from genmedia.src.billing.settlement.engine import SettlementAction
from genmedia.src.billing.shared.exceptions import InsufficientTicketsError, LedgerError

FAILED = {'id': 'job-1', 'status': 'FAILED', 'error': 'worker crashed'}
COMPLETED = {'id': 'job-1', 'status': 'COMPLETED', 'output': {'images': ['aGk=']}}
QUEUED = {'id': 'job-1', 'status': 'IN_QUEUE'}


class TestChargeBeforeDispatch:
    """Image flow: charged up front, refunded on failure."""

    @pytest.mark.asyncio
    async def test_charge_then_failure_refunds_once(self, engine, ledger, user):
        usage_id, charge = await engine.charge_before_dispatch(user, namespace='anima', cost=1)
        assert charge.tickets_left == 4
        assert usage_id.startswith('anima:')

        first = await engine.settle(user, usage_id, FAILED, charge_on_success=False)
        second = await engine.settle(user, usage_id, FAILED, charge_on_success=False)

        assert first.action is SettlementAction.REFUND
        assert first.tickets_left == 5
        assert second.refund.already_refunded
        assert await ledger.get_balance(user) == 5

    @pytest.mark.asyncio
    async def test_success_does_not_charge_again(self, engine, ledger, user):
        usage_id, _ = await engine.charge_before_dispatch(user, namespace='anima')

        result = await engine.settle(user, usage_id, COMPLETED, charge_on_success=False)

        assert result.action is SettlementAction.CHARGE
        assert result.charge is None
        assert await ledger.get_balance(user) == 4

    @pytest.mark.asyncio
    async def test_pending_is_a_no_op(self, engine, ledger, user):
        usage_id, _ = await engine.charge_before_dispatch(user, namespace='anima')

        result = await engine.settle(user, usage_id, QUEUED, charge_on_success=False)

        assert result.action is SettlementAction.NONE
        assert result.tickets_left is None

    @pytest.mark.asyncio
    async def test_precheck_blocks_before_minting(self, engine, ledger, user):
        await ledger.charge(user, UsageId.mint('anima'), cost=5)

        with pytest.raises(InsufficientTicketsError):
            await engine.charge_before_dispatch(user, namespace='anima')

    @pytest.mark.asyncio
    async def test_refund_quietly_reports_ledger_errors(self, engine, ledger, user, monkeypatch):
        monkeypatch.setattr(ledger, 'refund', AsyncMock(side_effect=LedgerError('db down')))

        result = await engine.refund_quietly(user, 'anima:x')

        assert result.error == 'db down'


class TestChargeOnCompletion:
    """Video flow: charged when accepted or completed, keyed by job id."""

    @pytest.mark.asyncio
    async def test_accepted_submission_is_charged_by_job_id(self, engine, ledger, user):
        result = await engine.settle_submission(
            user, namespace='wan_remix', accepted=True, payload=QUEUED, cost=2, reason='generate_video'
        )

        assert result.action is SettlementAction.CHARGE
        assert result.usage_id == 'wan_remix:job-1'
        assert result.tickets_left == 3

    @pytest.mark.asyncio
    async def test_rejected_submission_is_not_charged(self, engine, ledger, user):
        await ledger.ensure_account(user)

        failed = await engine.settle_submission(
            user, namespace='wan_remix', accepted=True, payload=FAILED, cost=2, reason='generate_video'
        )
        refused = await engine.settle_submission(
            user, namespace='wan_remix', accepted=False, payload={'error': 'bad input'}, cost=2, reason='generate_video'
        )
        no_job = await engine.settle_submission(
            user, namespace='wan_remix', accepted=True, payload={'status': 'IN_QUEUE'}, cost=2, reason='generate_video'
        )

        assert failed.action is refused.action is no_job.action is SettlementAction.NONE
        assert await ledger.get_balance(user) == 5

    @pytest.mark.asyncio
    async def test_synchronous_success_without_job_id(self, engine, ledger, user):
        result = await engine.settle_submission(
            user,
            namespace='wan_remix',
            accepted=True,
            payload={'status': 'COMPLETED', 'output': {'video': 'dmlk'}},
            cost=1,
            reason='generate_video',
        )

        assert result.usage_id.startswith('wan_remix:')
        assert result.tickets_left == 4

    @pytest.mark.asyncio
    async def test_poll_success_reuses_submit_charge(self, engine, ledger, user):
        await engine.settle_submission(
            user, namespace='wan_remix', accepted=True, payload=QUEUED, cost=2, reason='generate_video'
        )
        usage_id = UsageId.for_job('wan_remix', 'job-1')

        result = await engine.settle(user, usage_id, COMPLETED, charge_on_success=True, reason='generate_video')

        assert result.charge.already_consumed
        assert await ledger.get_balance(user) == 3

    @pytest.mark.asyncio
    async def test_poll_cost_falls_back_to_clip_length(self, engine, ledger, user):
        usage_id = UsageId.for_job('wan_remix', 'job-9')
        payload = {'id': 'job-9', 'status': 'COMPLETED', 'output': {'video': 'dmlk'}, 'input': {'seconds': 8}}

        result = await engine.settle(user, usage_id, payload, charge_on_success=True, reason='generate_video')

        assert result.charge.tickets_left == 3
        event = await ledger.get_event(usage_id)
        assert event.delta == -2
        assert event.metadata['ticket_cost'] == 2

    @pytest.mark.asyncio
    async def test_poll_failure_refunds_recorded_cost(self, engine, ledger, user):
        await engine.settle_submission(
            user, namespace='wan_remix', accepted=True, payload=QUEUED, cost=2, reason='generate_video'
        )
        usage_id = UsageId.for_job('wan_remix', 'job-1')

        result = await engine.settle(user, usage_id, FAILED, charge_on_success=True)
        again = await engine.settle(user, usage_id, FAILED, charge_on_success=True)

        assert result.tickets_left == 5
        assert again.refund.already_refunded
        assert await ledger.get_balance(user) == 5

    @pytest.mark.asyncio
    async def test_failure_before_any_charge_refunds_nothing(self, engine, ledger, user):
        await ledger.ensure_account(user)

        result = await engine.settle(user, UsageId.for_job('wan_remix', 'never'), FAILED, charge_on_success=True)

        assert result.refund.skipped
        assert await ledger.get_balance(user) == 5

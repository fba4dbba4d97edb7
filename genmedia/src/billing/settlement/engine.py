"""
Settlement Engine

Decides, from a runner payload, whether a generation job should be charged,
refunded or left alone, and applies that decision to the ticket ledger.

Two billing strategies are supported per product:

- charge-before-dispatch: the ticket is charged before the job is submitted
  and refunded when submission or the job fails
- charge-on-completion: the ticket is charged once the runner accepted or
  finished the job, keyed by the provider job id, and refunded on failure

Failure always wins: a payload with both a failure signal and assets is
refunded, never charged.
"""

import logging

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from genmedia.core.security.identity import AuthUser
from genmedia.src.billing.domain.ticket_account import ChargeResult, RefundResult, TicketAccount
from genmedia.src.billing.domain.usage import UsageId
from genmedia.src.billing.settlement.classifier import Classification, classify, extract_job_id
from genmedia.src.billing.shared.config import REASON_GENERATE, REASON_REFUND
from genmedia.src.billing.shared.exceptions import BillingError, InvalidTicketRequestError
from genmedia.src.billing.tickets.calculator import extract_seconds, ticket_cost_for_seconds, ticket_cost_from_delta
from genmedia.src.billing.tickets.ledger import TicketLedger, ticket_ledger

logger = logging.getLogger(__name__)


class SettlementAction(str, Enum):
    CHARGE = 'charge'
    REFUND = 'refund'
    NONE = 'none'


def decide(classification: Classification) -> SettlementAction:
    """Decision table: failed → refund, succeeded → charge, pending → nothing."""
    if classification.failed:
        return SettlementAction.REFUND
    if classification.succeeded:
        return SettlementAction.CHARGE
    return SettlementAction.NONE


@dataclass
class SettlementResult:
    action: SettlementAction
    classification: Classification
    usage_id: Optional[UsageId] = None
    charge: Optional[ChargeResult] = None
    refund: Optional[RefundResult] = None

    @property
    def tickets_left(self) -> Optional[int]:
        if self.refund is not None and self.refund.tickets_left is not None:
            return self.refund.tickets_left
        if self.charge is not None:
            return self.charge.tickets_left
        return None


class SettlementEngine:
    """
    Applies charge/refund decisions for generation jobs.

    Usage:
        engine = SettlementEngine()

        # charge-before-dispatch
        usage_id, charge = await engine.charge_before_dispatch(user, namespace='anima', cost=1)
        ...
        await engine.refund_quietly(user, usage_id, metadata={'reason': 'network_error'})

        # polling
        result = await engine.settle(user, usage_id, payload, charge_on_success=False)
    """

    def __init__(self, ledger: Optional[TicketLedger] = None) -> None:
        self.ledger = ledger or ticket_ledger

    async def precheck(self, user: AuthUser, cost: int = 1) -> TicketAccount:
        """Make sure the caller has an account and can afford ``cost``."""
        await self.ledger.ensure_account(user)
        return await self.ledger.ensure_available(user, required_tickets=cost)

    async def charge_before_dispatch(
        self,
        user: AuthUser,
        *,
        namespace: str,
        cost: int = 1,
        reason: str = REASON_GENERATE,
        metadata: Optional[dict[str, Any]] = None,
    ) -> tuple[UsageId, ChargeResult]:
        """Pre-check, mint a fresh usage id and charge it before the job is submitted."""
        await self.precheck(user, cost)
        usage_id = UsageId.mint(namespace)
        charge = await self.ledger.charge(
            user, usage_id, cost=cost, reason=reason, metadata={'usage_id': str(usage_id), **(metadata or {})}
        )
        return usage_id, charge

    async def refund_quietly(
        self,
        user: AuthUser,
        usage_id: Optional[str],
        amount: Optional[int] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> RefundResult:
        """Best-effort refund; ledger failures are logged and reported, never raised."""
        try:
            return await self.ledger.refund(user, usage_id, amount=amount, reason=REASON_REFUND, metadata=metadata)
        except BillingError as e:
            logger.error(f'[SETTLEMENT] Refund of {usage_id} failed: {e.message}')
            return RefundResult(error=e.message)

    async def resolve_cost(self, usage_id: str, payload: Any) -> int:
        """Cost already charged for ``usage_id``, else the cost implied by the payload's clip length."""
        event = await self.ledger.get_event(usage_id)
        if event is not None:
            cost = ticket_cost_from_delta(event.delta)
            if cost is not None:
                return cost
        return ticket_cost_for_seconds(extract_seconds(payload))

    async def settle(
        self,
        user: AuthUser,
        usage_id: Optional[str],
        payload: Any,
        *,
        charge_on_success: bool,
        cost: Optional[int] = None,
        reason: str = REASON_GENERATE,
        metadata: Optional[dict[str, Any]] = None,
    ) -> SettlementResult:
        """
        Classify a runner payload and apply the resulting ledger action.

        A refund failure is reported on the result rather than raised. A charge
        failure (for example insufficient tickets) propagates.
        """
        classification = classify(payload)
        action = decide(classification)
        usage_id = UsageId(usage_id) if usage_id else None
        result = SettlementResult(action=action, classification=classification, usage_id=usage_id)
        base_metadata = {'status': classification.status or None, **(metadata or {})}

        if action is SettlementAction.REFUND:
            if usage_id is None:
                return result
            logger.info(f'[SETTLEMENT] Job for {usage_id} failed ({classification.status or "error"}), refunding')
            result.refund = await self.refund_quietly(
                user, usage_id, amount=cost, metadata={**base_metadata, 'reason': 'failure'}
            )
        elif action is SettlementAction.CHARGE and charge_on_success:
            if usage_id is None:
                raise InvalidTicketRequestError('Usage id is required to settle a completed job.')
            if cost is None:
                cost = await self.resolve_cost(usage_id, payload)
            result.charge = await self.ledger.charge(
                user, usage_id, cost=cost, reason=reason, metadata={**base_metadata, 'ticket_cost': cost}
            )
        return result

    async def settle_submission(
        self,
        user: AuthUser,
        *,
        namespace: str,
        accepted: bool,
        payload: Any,
        cost: int,
        reason: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> SettlementResult:
        """
        Charge-on-completion at submit time.

        The job is charged under ``<namespace>:<job-id>`` when the runner
        accepted it (2xx, job id present, no failure signal). A synchronous
        success without a job id is charged under a freshly minted id. Nothing
        is charged otherwise.
        """
        classification = classify(payload)
        job_id = extract_job_id(payload)
        result = SettlementResult(action=SettlementAction.NONE, classification=classification)
        if classification.failed:
            return result
        if not ((accepted and job_id) or classification.succeeded):
            return result

        result.action = SettlementAction.CHARGE
        result.usage_id = UsageId.for_job(namespace, job_id) if job_id else UsageId.mint(namespace)
        result.charge = await self.ledger.charge(
            user,
            result.usage_id,
            cost=cost,
            reason=reason,
            metadata={
                **(metadata or {}),
                'job_id': job_id,
                'status': classification.status or None,
                'source': 'run',
            },
        )
        return result


# Global instance
settlement_engine = SettlementEngine()

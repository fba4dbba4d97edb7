"""
Usage Identifiers

A usage id is the idempotency key of every ledger mutation. Charges for the
same usage id apply at most once, and the refund of a charge is keyed by the
charge id plus a fixed suffix so it also applies at most once.
"""

import uuid

from genmedia.src.billing.shared.config import REFUND_SUFFIX, USAGE_ID_MAX_LENGTH
from genmedia.src.billing.shared.exceptions import InvalidTicketRequestError


class UsageId(str):
    """
    Idempotency key for ledger mutations.

    Usage:
        usage_id = UsageId.mint('anima')          # 'anima:<uuid4>'
        usage_id = UsageId.for_job('wan_remix', job_id)
        usage_id.refund_id                        # 'anima:<uuid4>:refund'
    """

    __slots__ = ()

    def __new__(cls, value: str) -> 'UsageId':
        if isinstance(value, UsageId):
            return value
        text = str(value or '').strip()
        if not text:
            raise InvalidTicketRequestError('Usage id is required.')
        if len(text) > USAGE_ID_MAX_LENGTH:
            raise InvalidTicketRequestError(
                'Usage id is too long.', details={'max_length': USAGE_ID_MAX_LENGTH, 'length': len(text)}
            )
        return super().__new__(cls, text)

    @classmethod
    def mint(cls, namespace: str | None = None) -> 'UsageId':
        """Mint a fresh, globally unique usage id."""
        token = str(uuid.uuid4())
        return cls(f'{namespace}:{token}' if namespace else token)

    @classmethod
    def for_job(cls, namespace: str, job_id: str) -> 'UsageId':
        """Derive the usage id of a job deterministically from its provider job id."""
        job_id = str(job_id or '').strip()
        if not job_id:
            raise InvalidTicketRequestError('Job id is required.')
        return cls(f'{namespace}:{job_id}')

    @classmethod
    def parse(cls, value: str | None) -> 'UsageId | None':
        """Parse an optional client-supplied usage id; blank values become None."""
        if value is None or not str(value).strip():
            return None
        return cls(value)

    @property
    def refund_id(self) -> 'UsageId':
        return UsageId(f'{self}{REFUND_SUFFIX}')

    @property
    def is_refund(self) -> bool:
        return self.endswith(REFUND_SUFFIX)

"""
Ticket Account Domain Entities

Plain dataclasses returned by the ticket ledger. They decouple callers from
the ORM rows and carry the idempotency flags of each ledger operation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from genmedia.utils.timezone import timezone


@dataclass
class TicketAccount:
    """
    A user's ticket balance.

    Attributes:
        id: Ticket account id
        email: Account email, unique
        user_id: Identity provider user id, back-filled when first seen
        tickets: Current balance, never negative
        created_at: Creation time, anchors the first daily bonus
    """
    id: str
    email: str
    tickets: int
    created_at: datetime
    user_id: Optional[str] = None

    def can_afford(self, cost: int) -> bool:
        return self.tickets >= cost

    @classmethod
    def from_row(cls, row) -> 'TicketAccount':
        return cls(
            id=row.id,
            email=row.email,
            tickets=int(row.tickets),
            created_at=timezone.aware(row.created_at),
            user_id=row.user_id,
        )


@dataclass
class TicketEventRecord:
    """A ledger event as read back from the store."""
    usage_id: str
    ticket_id: str
    email: str
    delta: int
    reason: str
    user_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> 'TicketEventRecord':
        return cls(
            usage_id=row.usage_id,
            ticket_id=row.ticket_id,
            email=row.email,
            delta=int(row.delta),
            reason=row.reason,
            user_id=row.user_id,
            metadata=dict(row.event_metadata or {}),
            created_at=timezone.aware(row.created_at),
        )

    def belongs_to(self, user_id: Optional[str], email: Optional[str]) -> bool:
        """Ownership check: same user id, or same email ignoring case."""
        if user_id and self.user_id and self.user_id == user_id:
            return True
        if email and self.email and self.email.lower() == email.lower():
            return True
        return False


@dataclass
class EnsureResult:
    account: TicketAccount
    created: bool = False


@dataclass
class ChargeResult:
    tickets_left: int
    already_consumed: bool = False


@dataclass
class RefundResult:
    """
    Outcome of a refund attempt.

    skipped is set when there was nothing to refund for this caller (no
    charge event, or the charge belongs to someone else). error carries the
    message of a best-effort refund that failed.
    """
    tickets_left: Optional[int] = None
    already_refunded: bool = False
    skipped: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            'ticketsLeft': self.tickets_left,
            'alreadyRefunded': self.already_refunded,
        }
        if self.skipped:
            data['skipped'] = True
        if self.error:
            data['error'] = self.error
        return data


@dataclass
class DailyBonusStatus:
    can_claim: bool
    next_eligible_at: datetime
    last_claimed_at: Optional[datetime]
    claim_count: int
    tickets: int

    def to_dict(self) -> dict:
        return {
            'canClaim': self.can_claim,
            'nextEligibleAt': timezone.to_iso(self.next_eligible_at),
            'lastClaimedAt': timezone.to_iso(self.last_claimed_at),
            'claimCount': self.claim_count,
            'tickets': self.tickets,
        }


@dataclass
class BonusClaim:
    granted: bool
    tickets_left: int
    next_eligible_at: datetime
    message: str = ''

    def to_dict(self) -> dict:
        return {
            'granted': self.granted,
            'ticketsLeft': self.tickets_left,
            'nextEligibleAt': timezone.to_iso(self.next_eligible_at),
            'message': self.message,
        }

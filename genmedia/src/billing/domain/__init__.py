from genmedia.src.billing.domain.ticket_account import (
    BonusClaim,
    ChargeResult,
    DailyBonusStatus,
    EnsureResult,
    RefundResult,
    TicketAccount,
    TicketEventRecord,
)
from genmedia.src.billing.domain.usage import UsageId

__all__ = [
    'BonusClaim',
    'ChargeResult',
    'DailyBonusStatus',
    'EnsureResult',
    'RefundResult',
    'TicketAccount',
    'TicketEventRecord',
    'UsageId',
]

"""
Settlement Module

Job outcome classification and the charge/refund decisions built on it.
"""

from genmedia.src.billing.settlement.classifier import (
    Classification,
    JobOutcome,
    classify,
    extract_job_id,
)
from genmedia.src.billing.settlement.engine import (
    SettlementAction,
    SettlementEngine,
    SettlementResult,
    decide,
    settlement_engine,
)

__all__ = [
    'Classification',
    'JobOutcome',
    'SettlementAction',
    'SettlementEngine',
    'SettlementResult',
    'classify',
    'decide',
    'extract_job_id',
    'settlement_engine',
]

"""
Tickets Module

Ticket accounts, atomic charge/refund procedures, pricing and the daily bonus.

Usage:
    from genmedia.src.billing.tickets import ticket_ledger, daily_bonus_service
"""

from genmedia.src.billing.tickets.calculator import (
    extract_seconds,
    normalize_seconds,
    ticket_cost_for_seconds,
)
from genmedia.src.billing.tickets.daily_bonus import DailyBonusService, daily_bonus_service
from genmedia.src.billing.tickets.ledger import TicketLedger, ticket_ledger

__all__ = [
    'DailyBonusService',
    'TicketLedger',
    'daily_bonus_service',
    'extract_seconds',
    'normalize_seconds',
    'ticket_cost_for_seconds',
    'ticket_ledger',
]

"""
Billing Endpoints Module

API routes for ticket operations.

Routers:
- balance: Caller's ticket balance
- bonus: Daily bonus status and claim

Usage:
    from genmedia.src.billing.endpoints import billing_router

    app.include_router(billing_router, prefix='/api/v1')
"""

from fastapi import APIRouter

from .balance import router as balance_router
from .bonus import router as bonus_router
from .dependencies import get_current_user

billing_router = APIRouter()

billing_router.include_router(balance_router)
billing_router.include_router(bonus_router)

__all__ = [
    'billing_router',
    'balance_router',
    'bonus_router',
    'get_current_user',
]

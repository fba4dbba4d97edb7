"""
Daily Bonus Endpoints

GET reports eligibility; POST claims the bonus when the cooldown has passed.
"""

from fastapi import APIRouter, Depends, Response

from genmedia.src.billing.endpoints.dependencies import CurrentUser, get_daily_bonus_service
from genmedia.src.billing.tickets.daily_bonus import DailyBonusService

router = APIRouter(tags=['Tickets'])


@router.get('/bonus')
async def get_daily_bonus(
    response: Response,
    user: CurrentUser,
    service: DailyBonusService = Depends(get_daily_bonus_service),
) -> dict:
    """
    Daily bonus status.

    Returns canClaim, nextEligibleAt, lastClaimedAt, claimCount and tickets.
    """
    status = await service.get_status(user)
    response.headers['Cache-Control'] = 'no-store'
    return status.to_dict()


@router.post('/bonus')
async def claim_daily_bonus(
    response: Response,
    user: CurrentUser,
    service: DailyBonusService = Depends(get_daily_bonus_service),
) -> dict:
    """Claim the daily bonus; granted is false while the cooldown is running."""
    claim = await service.claim(user)
    response.headers['Cache-Control'] = 'no-store'
    return claim.to_dict()

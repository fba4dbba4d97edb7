from fastapi import APIRouter

from genmedia.core.conf import settings
from genmedia.src.billing.endpoints import billing_router
from genmedia.src.generation.endpoints import generation_router

router = APIRouter()

router.include_router(generation_router, prefix=settings.FASTAPI_API_V1_PATH)
router.include_router(billing_router, prefix=settings.FASTAPI_API_V1_PATH, tags=['Billing'])

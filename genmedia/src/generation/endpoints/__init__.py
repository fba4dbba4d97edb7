"""
Generation Endpoints Module

API routes that submit and poll runner jobs and settle their tickets.

Routers:
- image: Image generation (charge before dispatch)
- video: Video generation (charge on completion)

Usage:
    from genmedia.src.generation.endpoints import generation_router

    app.include_router(generation_router, prefix='/api/v1')
"""

from fastapi import APIRouter

from .image import router as image_router
from .video import router as video_router

generation_router = APIRouter()

generation_router.include_router(image_router)
generation_router.include_router(video_router)

__all__ = [
    'generation_router',
    'image_router',
    'video_router',
]

"""
Generation Endpoint Dependencies

Runner clients are built per request from settings so configuration errors
surface as 500 responses instead of import-time failures.
"""

from typing import Any

from fastapi import Request

from genmedia.common.exception.errors import BadRequestError, ServiceConfigError
from genmedia.core.conf import settings
from genmedia.src.generation.runner import JobRunnerClient, normalize_endpoint

DEFAULT_IMAGE_ENDPOINT = 'https://api.runpod.ai/v2/r5iv3ydliscz0m'


def get_image_runner() -> JobRunnerClient:
    if not settings.RUNPOD_API_KEY:
        raise ServiceConfigError('RUNPOD_API_KEY is not set.')
    endpoint = normalize_endpoint(settings.RUNPOD_IMAGE_ENDPOINT_URL) or DEFAULT_IMAGE_ENDPOINT
    return JobRunnerClient(endpoint, settings.RUNPOD_API_KEY, timeout=settings.RUNPOD_TIMEOUT_SECONDS)


def get_video_runner() -> JobRunnerClient:
    if not settings.RUNPOD_API_KEY:
        raise ServiceConfigError('RUNPOD_API_KEY is not set.')
    endpoint = normalize_endpoint(settings.RUNPOD_VIDEO_ENDPOINT_URL)
    if not endpoint:
        raise ServiceConfigError('RUNPOD_VIDEO_ENDPOINT_URL is not set.')
    return JobRunnerClient(endpoint, settings.RUNPOD_API_KEY, timeout=settings.RUNPOD_TIMEOUT_SECONDS)


async def read_json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        raise BadRequestError('Invalid request body.')

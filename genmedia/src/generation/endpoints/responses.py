from typing import Any

from fastapi import Response
from fastapi.responses import JSONResponse

from genmedia.src.generation.runner import RunnerResponse


def runner_response(upstream: RunnerResponse, **extra: Any) -> Response:
    """
    Relay a runner response with the runner's status code.

    Object payloads get ``extra`` fields merged in (None values are dropped);
    anything else is relayed verbatim.
    """
    fields = {key: value for key, value in extra.items() if value is not None}
    if isinstance(upstream.payload, dict):
        return JSONResponse(upstream.enriched(**fields), status_code=upstream.status_code)
    return Response(content=upstream.raw, status_code=upstream.status_code, media_type='application/json')

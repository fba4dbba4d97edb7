"""
Job Runner Client

Thin async client for a RunPod-style serverless endpoint:

- ``POST {endpoint}/run`` with ``{"input": ...}`` submits a job
- ``GET {endpoint}/status/{job_id}`` polls it

Responses are returned as-is together with the decoded JSON payload (None
when the body is not JSON). Only transport failures raise.
"""

import json
import logging
import re

from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote, urlparse

import httpx

from genmedia.common.exception.errors import ServiceConfigError, UpstreamTransportError

logger = logging.getLogger(__name__)

_QUOTES = re.compile(r"^['\"]|['\"]$")


def normalize_endpoint(value: Optional[str]) -> str:
    """Strip quotes and trailing slashes; empty unless the result is an http(s) URL."""
    if not value:
        return ''
    trimmed = _QUOTES.sub('', value.strip())
    if not trimmed:
        return ''
    normalized = trimmed.rstrip('/')
    parsed = urlparse(normalized)
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        return ''
    return normalized


@dataclass
class RunnerResponse:
    status_code: int
    payload: Any
    raw: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def enriched(self, **extra: Any) -> Any:
        """Payload with extra top-level fields merged in; non-object payloads are returned unchanged."""
        if isinstance(self.payload, dict):
            return {**self.payload, **extra}
        return self.payload


class JobRunnerClient:
    """
    Submit and poll jobs on a serverless GPU endpoint.

    Usage:
        client = JobRunnerClient(endpoint_url, api_key)
        response = await client.submit({'workflow': workflow})
        status = await client.poll(job_id)
    """

    def __init__(
        self,
        endpoint_url: str,
        api_key: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.endpoint_url = normalize_endpoint(endpoint_url)
        if not self.endpoint_url:
            raise ServiceConfigError('Runner endpoint is not set.')
        if not api_key:
            raise ServiceConfigError('Runner API key is not set.')
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {'Authorization': f'Bearer {self.api_key}', 'Content-Type': 'application/json'}

    @staticmethod
    def _decode(response: httpx.Response) -> RunnerResponse:
        raw = response.text
        try:
            payload = json.loads(raw) if raw else None
        except ValueError:
            payload = None
        return RunnerResponse(status_code=response.status_code, payload=payload, raw=raw)

    async def _request(self, method: str, url: str, **kwargs: Any) -> RunnerResponse:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            logger.error(f'[RUNNER] {method} {url} failed: {e}')
            raise UpstreamTransportError('Runner request failed.', detail=str(e) or type(e).__name__)
        result = self._decode(response)
        if not result.ok:
            logger.warning(f'[RUNNER] {method} {url} returned {result.status_code}')
        return result

    async def submit(self, job_input: dict[str, Any]) -> RunnerResponse:
        return await self._request('POST', f'{self.endpoint_url}/run', json={'input': job_input})

    async def poll(self, job_id: str) -> RunnerResponse:
        return await self._request('GET', f'{self.endpoint_url}/status/{quote(str(job_id), safe="")}')

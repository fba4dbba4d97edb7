"""
Generation Client

Async client for the generation API that implements the polling side of a
job: submit, then poll the status endpoint with a bounded, linearly growing
delay until the job settles.

Each ``run_*`` call takes a new run id. Starting another run abandons the
polls of the previous one; the abandoned job keeps running server-side and
is settled by whoever polls it next.
"""

import asyncio
import logging

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

import httpx

from genmedia.common.exception.errors import PollTimeoutError, UpstreamJobFailure, UpstreamTransportError
from genmedia.core.conf import settings
from genmedia.src.billing.settlement.classifier import JobOutcome, classify, extract_job_id

logger = logging.getLogger(__name__)


def _failure_message(error: Any) -> str:
    if isinstance(error, dict):
        error = error.get('message') or error.get('error')
    return str(error) if error else 'Generation failed.'


@dataclass
class JobResult:
    job_id: Optional[str]
    status: str
    payload: dict[str, Any] = field(default_factory=dict)
    usage_id: Optional[str] = None
    tickets_left: Optional[int] = None
    abandoned: bool = False


class GenerationClient:
    """
    Usage:
        async with GenerationClient(base_url, access_token) as client:
            result = await client.run_image({'prompt': 'a lighthouse'})
    """

    def __init__(
        self,
        base_url: str,
        access_token: str,
        *,
        max_attempts: int = settings.POLL_MAX_ATTEMPTS,
        base_delay_ms: int = settings.POLL_BASE_DELAY_MS,
        delay_step_ms: int = settings.POLL_DELAY_STEP_MS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.delay_step_ms = delay_step_ms
        self._sleep = sleep
        self._run_id = 0
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip('/'),
            headers={'Authorization': f'Bearer {access_token}'},
            transport=transport,
            timeout=settings.RUNPOD_TIMEOUT_SECONDS,
        )

    async def __aenter__(self) -> 'GenerationClient':
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def current_run(self) -> int:
        return self._run_id

    def start_run(self) -> int:
        """Take a new run id; polls belonging to older runs stop at their next step."""
        self._run_id += 1
        return self._run_id

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before poll ``attempt`` (zero-based)."""
        return (self.base_delay_ms + attempt * self.delay_step_ms) / 1000

    async def _send(self, method: str, url: str, **kwargs: Any) -> tuple[int, Any]:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise UpstreamTransportError('Generation API request failed.', detail=str(e) or type(e).__name__)
        try:
            payload = response.json()
        except ValueError:
            payload = None
        return response.status_code, payload

    @staticmethod
    def _raise_for_status(status_code: int, payload: Any) -> None:
        if 200 <= status_code < 300:
            return
        message = 'Generation request failed.'
        if isinstance(payload, dict):
            message = str(payload.get('message') or payload.get('error') or message)
        raise UpstreamJobFailure(
            message, status_code=status_code if status_code >= 400 else None, details={'payload': payload}
        )

    async def poll_until_done(
        self,
        path: str,
        job_id: str,
        *,
        params: Optional[dict[str, str]] = None,
        run_id: Optional[int] = None,
    ) -> JobResult:
        """
        Poll ``path`` for ``job_id`` until it succeeds, fails or the budget runs out.

        Raises:
            UpstreamJobFailure: the job failed, was cancelled or the API returned an error
            PollTimeoutError: the job was still pending after ``max_attempts`` polls
        """
        run_id = self._run_id if run_id is None else run_id
        query = {'id': job_id, **(params or {})}
        tickets_left = None
        for attempt in range(self.max_attempts):
            await self._sleep(self.delay_for(attempt))
            if run_id != self._run_id:
                logger.info(f'[GENERATE] Run {run_id} superseded, abandoning job {job_id}')
                return JobResult(job_id=job_id, status='cancelled', tickets_left=tickets_left, abandoned=True)

            status_code, payload = await self._send('GET', path, params=query)
            self._raise_for_status(status_code, payload)
            if not isinstance(payload, dict):
                continue
            if isinstance(payload.get('ticketsLeft'), int):
                tickets_left = payload['ticketsLeft']

            classification = classify(payload)
            if classification.outcome is JobOutcome.FAILED:
                raise UpstreamJobFailure(
                    _failure_message(classification.error),
                    details={'status': classification.client_status, 'ticketsLeft': tickets_left},
                )
            if classification.outcome is JobOutcome.SUCCEEDED:
                return JobResult(
                    job_id=job_id,
                    status=classification.client_status,
                    payload=payload,
                    usage_id=query.get('usage_id'),
                    tickets_left=tickets_left,
                )
        raise PollTimeoutError(attempts=self.max_attempts)

    async def _run(self, path: str, body: dict[str, Any], *, with_usage_id: bool) -> JobResult:
        run_id = self.start_run()
        status_code, payload = await self._send('POST', path, json=body)
        self._raise_for_status(status_code, payload)
        if not isinstance(payload, dict):
            raise UpstreamJobFailure('Invalid generation response.')

        tickets_left = payload.get('ticketsLeft')
        usage_id = payload.get('usage_id') if with_usage_id else None
        classification = classify(payload)
        if classification.outcome is JobOutcome.FAILED:
            raise UpstreamJobFailure(
                _failure_message(classification.error),
                details={'status': classification.client_status, 'ticketsLeft': tickets_left},
            )
        if classification.outcome is JobOutcome.SUCCEEDED:
            return JobResult(
                job_id=extract_job_id(payload),
                status=classification.client_status,
                payload=payload,
                usage_id=usage_id,
                tickets_left=tickets_left,
            )

        job_id = extract_job_id(payload)
        if not job_id:
            raise UpstreamJobFailure('Generation response has no job id.', details={'payload': payload})
        result = await self.poll_until_done(
            path, job_id, params={'usage_id': usage_id} if usage_id else None, run_id=run_id
        )
        if result.tickets_left is None:
            result.tickets_left = tickets_left
        return result

    async def run_image(self, body: dict[str, Any]) -> JobResult:
        return await self._run(f'{settings.FASTAPI_API_V1_PATH}/generate', body, with_usage_id=True)

    async def run_video(self, body: dict[str, Any]) -> JobResult:
        return await self._run(f'{settings.FASTAPI_API_V1_PATH}/generate/video', body, with_usage_id=False)

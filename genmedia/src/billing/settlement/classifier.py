"""
Job Outcome Classifier

Classifies runner status payloads into failed, succeeded or pending. The
runner's payload shape varies by worker version, so every signal is read
through ordered extraction rules: each rule lists the paths to probe and the
predicate a value must satisfy. Supporting a new payload shape means adding
a path to a rule.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from genmedia.utils.payload import dig


def _non_empty_list(value: Any) -> bool:
    return isinstance(value, list) and len(value) > 0


def _non_blank_string(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ''


def _truthy(value: Any) -> bool:
    return bool(value)


def _identifier(value: Any) -> bool:
    return isinstance(value, (str, int)) and not isinstance(value, bool) and str(value).strip() != ''


@dataclass(frozen=True)
class ExtractionRule:
    """Ordered paths probed until one holds a value accepted by ``accept``."""

    name: str
    paths: tuple[str, ...]
    accept: Callable[[Any], bool] = _truthy

    def first_match(self, payload: Any) -> Any:
        for path in self.paths:
            value = dig(payload, path)
            if value is not None and self.accept(value):
                return value
        return None

    def matches(self, payload: Any) -> bool:
        return self.first_match(payload) is not None


def _nested(prefixes: Sequence[str], keys: Sequence[str]) -> tuple[str, ...]:
    return tuple(f'{prefix}.{key}' if prefix else key for prefix in prefixes for key in keys)


# Containers that may hold the generated assets
ASSET_CONTAINERS: tuple[str, ...] = ('', 'output', 'result', 'output.output', 'result.output')

ASSET_LIST_KEYS: tuple[str, ...] = (
    'images',
    'videos',
    'gifs',
    'outputs',
    'output_images',
    'output_videos',
    'data',
)
ASSET_STRING_KEYS: tuple[str, ...] = (
    'image',
    'video',
    'gif',
    'output_image',
    'output_video',
    'output_image_base64',
)

STATUS_RULE = ExtractionRule('status', ('status', 'state'), accept=_identifier)
ERROR_RULE = ExtractionRule(
    'error',
    ('error', 'output.error', 'result.error', 'output.output.error', 'result.output.error'),
)
ASSET_LIST_RULE = ExtractionRule('asset_list', _nested(ASSET_CONTAINERS, ASSET_LIST_KEYS), accept=_non_empty_list)
ASSET_STRING_RULE = ExtractionRule(
    'asset_string', _nested(ASSET_CONTAINERS, ASSET_STRING_KEYS), accept=_non_blank_string
)
JOB_ID_RULE = ExtractionRule('job_id', ('id', 'jobId', 'job_id', 'output.id'), accept=_identifier)

FAILURE_WORDS: tuple[str, ...] = ('fail', 'error', 'cancel')
SUCCESS_WORDS: tuple[str, ...] = ('complete', 'success', 'succeed', 'finished')


class JobOutcome(str, Enum):
    FAILED = 'failed'
    SUCCEEDED = 'succeeded'
    PENDING = 'pending'


@dataclass(frozen=True)
class Classification:
    outcome: JobOutcome
    status: str = ''
    error: Any = None
    has_assets: bool = False

    @property
    def failed(self) -> bool:
        return self.outcome is JobOutcome.FAILED

    @property
    def succeeded(self) -> bool:
        return self.outcome is JobOutcome.SUCCEEDED

    @property
    def client_status(self) -> str:
        """Status reported to polling clients: queued, running, done, error or cancelled."""
        if self.failed:
            return 'cancelled' if 'cancel' in self.status else 'error'
        if self.succeeded:
            return 'done'
        if 'queue' in self.status or not self.status:
            return 'queued'
        return 'running'


def extract_status(payload: Any) -> str:
    value = STATUS_RULE.first_match(payload)
    return str(value).lower() if value is not None else ''


def extract_error(payload: Any) -> Any:
    return ERROR_RULE.first_match(payload)


def has_assets(payload: Any) -> bool:
    return ASSET_LIST_RULE.matches(payload) or ASSET_STRING_RULE.matches(payload)


def extract_job_id(payload: Any) -> Optional[str]:
    value = JOB_ID_RULE.first_match(payload)
    return str(value).strip() if value is not None else None


def classify(payload: Any) -> Classification:
    """
    Classify a runner payload. Failure signals win over success signals.

    - failure: status mentions fail/error/cancel, or any error field is set
    - success: status mentions complete/success/succeed/finished, or assets exist
    - otherwise pending
    """
    status = extract_status(payload)
    error = extract_error(payload)
    assets = has_assets(payload)

    if error is not None or any(word in status for word in FAILURE_WORDS):
        outcome = JobOutcome.FAILED
    elif assets or any(word in status for word in SUCCESS_WORDS):
        outcome = JobOutcome.SUCCEEDED
    else:
        outcome = JobOutcome.PENDING
    return Classification(outcome=outcome, status=status, error=error, has_assets=assets)

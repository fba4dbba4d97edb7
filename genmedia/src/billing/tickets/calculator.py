"""
Ticket Calculator

Ticket pricing for generation jobs. Images cost a flat ticket; videos are
tiered by clip length: the eight-second mode costs two tickets, every other
length is normalized to the five-second mode and costs one.
"""

import math

from typing import Any

from genmedia.utils.payload import dig

IMAGE_TICKET_COST = 1
BASE_VIDEO_TICKET_COST = 1
EIGHT_SECOND_MODE_TICKET_COST = 2

DEFAULT_SECONDS = 5
EIGHT_SECOND_MODE_SECONDS = 8

# Where runners echo the requested clip length, in lookup order
SECONDS_PATHS: tuple[str, ...] = (
    'input.seconds',
    'seconds',
    'output.input.seconds',
    'output.seconds',
    'result.input.seconds',
    'result.seconds',
    'metadata.seconds',
    'output.metadata.seconds',
    'result.metadata.seconds',
)


def normalize_seconds(value: Any) -> int:
    """Map any requested length onto a supported mode (8, otherwise 5)."""
    try:
        parsed = math.floor(float(value))
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_SECONDS
    return EIGHT_SECOND_MODE_SECONDS if parsed == EIGHT_SECOND_MODE_SECONDS else DEFAULT_SECONDS


def ticket_cost_for_seconds(seconds: Any) -> int:
    if normalize_seconds(seconds) == EIGHT_SECOND_MODE_SECONDS:
        return EIGHT_SECOND_MODE_TICKET_COST
    return BASE_VIDEO_TICKET_COST


def extract_seconds(payload: Any) -> int:
    """First clip length found in a runner payload, normalized; defaults to five seconds."""
    for path in SECONDS_PATHS:
        value = dig(payload, path)
        if value is not None:
            return normalize_seconds(value)
    return DEFAULT_SECONDS


def ticket_cost_from_delta(delta: Any) -> int | None:
    """Cost recorded by an existing charge event, or None when the delta is not a charge."""
    try:
        value = float(delta)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value >= 0:
        return None
    return max(1, abs(math.floor(value)))

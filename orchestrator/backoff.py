"""Retry budget and exponential backoff for failed pipeline steps."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import NamedTuple, Optional

RETRY_BASE = timedelta(seconds=30)
RETRY_MAX = timedelta(hours=1)


def compute_backoff_delay(retry_count: int) -> timedelta:
    """Delay before retry ``retry_count`` (1-based): min(1h, 30s * 2^(n-1))."""
    exponent = max(0, int(retry_count) - 1)
    # 30s * 2^7 already exceeds the cap; timedelta overflows far above that
    if exponent >= 20:
        return RETRY_MAX
    return min(RETRY_MAX, RETRY_BASE * (2 ** exponent))


class RetryDecision(NamedTuple):
    retry_count: int
    terminal: bool
    next_attempt_at: Optional[datetime]


def plan_retry(current_retry_count: int, max_retries: int, now: datetime) -> RetryDecision:
    next_count = int(current_retry_count) + 1
    if next_count > int(max_retries):
        return RetryDecision(next_count, True, None)
    return RetryDecision(next_count, False, now + compute_backoff_delay(next_count))

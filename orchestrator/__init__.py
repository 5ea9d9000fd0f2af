"""Release state machine, retry policy and tick scheduling."""

from .backoff import RETRY_BASE, RETRY_MAX, RetryDecision, compute_backoff_delay, plan_retry
from .discovery import (
    INDICATOR_SYNONYMS,
    create_event_id,
    filter_indicator_rows,
    is_likely_indicator_event,
    normalize_event_row,
    resolve_event_key,
)
from .scheduler import TickScheduler
from .store import ReleaseStateStore, new_run_id
from .workflow import ReleaseWorkflow

__all__ = [
    "RETRY_BASE",
    "RETRY_MAX",
    "RetryDecision",
    "compute_backoff_delay",
    "plan_retry",
    "INDICATOR_SYNONYMS",
    "create_event_id",
    "filter_indicator_rows",
    "is_likely_indicator_event",
    "normalize_event_row",
    "resolve_event_key",
    "TickScheduler",
    "ReleaseStateStore",
    "new_run_id",
    "ReleaseWorkflow",
]

"""Lock-serialized JSON document store for release events, statuses and analysis runs."""

from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from core import (
    STORE_VERSION,
    AnalysisRun,
    AnalysisRunStatus,
    ReleaseEvent,
    ReleaseState,
    ReleaseStatus,
    StoreDocument,
)
from core.dates import parse_timestamp, utcnow
from utils.exceptions import StoreError

from .atomic import atomic_write_json, read_json_file

logger = logging.getLogger(__name__)

STORE_FILENAME = "state.json"

RowT = TypeVar("RowT", bound=BaseModel)
Mutator = Callable[[StoreDocument], Union[None, Awaitable[None]]]


# Rows without these keys cannot be matched to anything and are dropped.
IDENTITY_FIELDS: Dict[Type[BaseModel], Tuple[str, ...]] = {
    ReleaseEvent: ("id", "event_key"),
    ReleaseStatus: ("event_id",),
    AnalysisRun: ("run_id", "event_id"),
}

# Replacement values for fields whose stored value is unusable. An unknown
# state must never restart the pipeline, so it parks the event.
FIELD_FALLBACKS: Dict[Type[BaseModel], Dict[str, Any]] = {
    ReleaseStatus: {"state": ReleaseState.FAILED_TERMINAL.value},
    AnalysisRun: {"status": AnalysisRunStatus.FAILED.value},
}


def _field_lookup(model: Type[BaseModel]) -> Dict[str, str]:
    lookup: Dict[str, str] = {}
    for name, info in model.model_fields.items():
        lookup[name] = name
        lookup[info.alias or name] = name
    return lookup


def _repair_row(entry: Dict[str, Any], model: Type[RowT], stamp: datetime) -> Optional[RowT]:
    """Validate one row, resetting unusable fields instead of discarding the row."""
    lookup = _field_lookup(model)
    identity = IDENTITY_FIELDS.get(model, ())
    fallbacks = FIELD_FALLBACKS.get(model, {})
    row = dict(entry)
    for _ in range(len(model.model_fields) + 1):
        try:
            return model.model_validate(row)
        except ValidationError as exc:
            errors = exc.errors()
        handled = set()
        for error in errors:
            loc = error.get("loc") or ()
            name = lookup.get(str(loc[0])) if loc else None
            if name is None:
                return None
            if name in handled:
                continue
            handled.add(name)
            info = model.model_fields[name]
            alias = info.alias or name
            value = row.get(alias, row.get(name))
            row.pop(name, None)
            row.pop(alias, None)
            if name in identity:
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    row[alias] = str(value)
                    continue
                return None
            if name in fallbacks:
                row[alias] = fallbacks[name]
            elif info.is_required():
                if info.annotation is datetime:
                    row[alias] = stamp.isoformat()
                else:
                    return None
            logger.warning("reset malformed %s.%s (was %r)", model.__name__, alias, value)
    return None


def _coerce_rows(value: Any, model: Type[RowT], stamp: datetime) -> List[RowT]:
    if not isinstance(value, list):
        return []
    rows: List[RowT] = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        row = _repair_row(entry, model, stamp)
        if row is None:
            logger.warning("dropping %s row without identity: %r", model.__name__, entry)
            continue
        rows.append(row)
    return rows


def normalize_document(value: Any, *, now: Optional[datetime] = None) -> StoreDocument:
    """Build a schema-valid document from arbitrary JSON without raising.

    Rows are repaired field by field: missing stamps take the load time,
    unusable optional fields fall back to their defaults. Only rows missing
    their identity keys are discarded.
    """
    stamp = now or utcnow()
    if not isinstance(value, dict):
        return StoreDocument(updated_at=stamp)
    return StoreDocument(
        version=STORE_VERSION,
        updated_at=parse_timestamp(value.get("updatedAt")) or stamp,
        release_events=_coerce_rows(value.get("release_events"), ReleaseEvent, stamp),
        release_status=_coerce_rows(value.get("release_status"), ReleaseStatus, stamp),
        analysis_runs=_coerce_rows(value.get("analysis_runs"), AnalysisRun, stamp),
    )


class ReleaseStore:
    """Durable store backed by one JSON file.

    Every ``update`` re-reads the file inside the instance lock, applies the
    mutator and atomically replaces the file, so updates through one instance
    never lose each other's writes.
    """

    def __init__(self, path: Union[str, Path], *, lock: Optional[asyncio.Lock] = None) -> None:
        self.path = Path(path)
        self._lock = lock or asyncio.Lock()

    @classmethod
    def in_dir(cls, state_dir: Union[str, Path], **kwargs: Any) -> "ReleaseStore":
        return cls(Path(state_dir) / STORE_FILENAME, **kwargs)

    def _read_sync(self) -> StoreDocument:
        return normalize_document(read_json_file(self.path))

    def _write_sync(self, payload: Dict[str, Any]) -> None:
        atomic_write_json(self.path, payload, mode=0o600)

    async def read(self) -> StoreDocument:
        return await asyncio.to_thread(self._read_sync)

    async def update(self, mutator: Mutator, *, now: Optional[datetime] = None) -> StoreDocument:
        """Apply ``mutator`` to the freshest document and commit it atomically."""
        async with self._lock:
            current = await asyncio.to_thread(self._read_sync)
            result = mutator(current)
            if inspect.isawaitable(result):
                await result
            current.updated_at = now or utcnow()
            try:
                await asyncio.to_thread(self._write_sync, current.to_json_dict())
            except OSError as exc:
                raise StoreError("store write failed", {"path": str(self.path), "error": str(exc)}) from exc
            return current

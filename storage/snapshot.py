"""Per-(event, run) snapshot directory with a merged manifest for replay and audit."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Dict, Optional, Union

from core.dates import utcnow

from .atomic import atomic_write_json, atomic_write_text, read_json_file

MANIFEST_FILENAME = "manifest.json"


def _to_jsonable(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {str(k): _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def resolve_run_dir(base_dir: Union[str, Path], event_id: str, run_id: str) -> Path:
    return Path(base_dir) / "snapshots" / event_id / run_id


class RunSnapshot:
    """Scoped write surface for one run's artifacts."""

    def __init__(self, base_dir: Union[str, Path], event_id: str, run_id: str) -> None:
        self.event_id = event_id
        self.run_id = run_id
        self.run_dir = resolve_run_dir(base_dir, event_id, run_id)
        self._manifest_lock = asyncio.Lock()

    def path_for(self, name: str) -> Path:
        return self.run_dir / name

    async def write_json(self, name: str, payload: Any) -> str:
        path = self.path_for(name)
        # json artifacts keep default permissions so operators can read them
        await asyncio.to_thread(atomic_write_json, path, _to_jsonable(payload), mode=0o644)
        return str(path)

    async def write_text(self, name: str, content: str) -> str:
        path = self.path_for(name)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")

        await asyncio.to_thread(_write)
        return str(path)

    async def read_json(self, name: str) -> Optional[Dict[str, Any]]:
        value = await asyncio.to_thread(read_json_file, self.path_for(name))
        return value if isinstance(value, dict) else None

    async def read_text(self, name: str) -> Optional[str]:
        path = self.path_for(name)

        def _read() -> Optional[str]:
            try:
                return path.read_text(encoding="utf-8")
            except FileNotFoundError:
                return None

        return await asyncio.to_thread(_read)

    async def read_manifest(self) -> Dict[str, Any]:
        return await self.read_json(MANIFEST_FILENAME) or {}

    async def update_manifest(self, patch: Dict[str, Any]) -> Dict[str, Any]:
        """Merge ``patch`` into the manifest; later values win on shared keys."""
        async with self._manifest_lock:
            current = await self.read_manifest()
            merged = {
                **current,
                **_to_jsonable(dict(patch or {})),
                "eventId": self.event_id,
                "runId": self.run_id,
                "updatedAt": utcnow().isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            }
            await asyncio.to_thread(
                atomic_write_json, self.path_for(MANIFEST_FILENAME), merged, mode=0o644
            )
            return merged

from __future__ import annotations

import asyncio
import json

import pytest

from storage import MANIFEST_FILENAME, RunSnapshot, resolve_run_dir


def test_run_dir_layout(tmp_path) -> None:
    assert resolve_run_dir(tmp_path, "evt", "run-1") == tmp_path / "snapshots" / "evt" / "run-1"


@pytest.mark.asyncio
async def test_manifest_merges_across_steps(tmp_path) -> None:
    snapshot = RunSnapshot(tmp_path, "evt", "run-1")

    await snapshot.update_manifest({"step": "fetched_official", "officialArtifactHash": "abc"})
    merged = await snapshot.update_manifest({"step": "fetched_media", "mediaMode": "degraded"})

    assert merged["step"] == "fetched_media"
    assert merged["officialArtifactHash"] == "abc"
    assert merged["mediaMode"] == "degraded"
    assert merged["eventId"] == "evt"
    assert merged["runId"] == "run-1"
    assert merged["updatedAt"].endswith("Z")

    on_disk = json.loads(snapshot.path_for(MANIFEST_FILENAME).read_text(encoding="utf-8"))
    assert on_disk == merged


@pytest.mark.asyncio
async def test_concurrent_manifest_patches_all_land(tmp_path) -> None:
    snapshot = RunSnapshot(tmp_path, "evt", "run-1")
    await asyncio.gather(*(snapshot.update_manifest({f"k{i}": i}) for i in range(10)))
    manifest = await snapshot.read_manifest()
    assert all(manifest[f"k{i}"] == i for i in range(10))


@pytest.mark.asyncio
async def test_artifact_read_write(tmp_path) -> None:
    snapshot = RunSnapshot(tmp_path, "evt", "run-1")
    path = await snapshot.write_json("official_artifact.json", {"reportText": "x", "n": 1})
    assert path.endswith("snapshots/evt/run-1/official_artifact.json")
    assert await snapshot.read_json("official_artifact.json") == {"reportText": "x", "n": 1}
    assert await snapshot.read_json("missing.json") is None

    await snapshot.write_text("analysis_report.md", "## 1) Headline Surprise\n")
    assert await snapshot.read_text("analysis_report.md") == "## 1) Headline Surprise\n"
    assert await snapshot.read_text("nope.md") is None
    assert await RunSnapshot(tmp_path, "evt", "run-2").read_manifest() == {}

import asyncio
import os
from pathlib import Path

import pytest

from devloop.runtime.publisher import ArtifactPublisher
from devloop.utils.diagnostics import REBUILD_PHASE, PublishError


def _artifact(directory: Path, name: str, mtime: int, content: bytes = b"jar") -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_bytes(content)
    os.utime(path, ns=(mtime, mtime))
    return path


def test_select_artifact_prefers_newest_modification_time(tmp_path: Path):
    libs = tmp_path / "libs"
    _artifact(libs, "plugin-1.0.jar", mtime=2_000_000_000_000_000_000)
    newest = _artifact(libs, "plugin-0.9.jar", mtime=2_000_000_005_000_000_000)

    assert ArtifactPublisher().select_artifact(libs) == newest


def test_select_artifact_breaks_ties_by_last_filename(tmp_path: Path):
    libs = tmp_path / "libs"
    _artifact(libs, "alpha.jar", mtime=1_700_000_000_000_000_000)
    last = _artifact(libs, "beta.jar", mtime=1_700_000_000_000_000_000)

    assert ArtifactPublisher().select_artifact(libs) == last


def test_select_artifact_skips_sources_and_non_matching_files(tmp_path: Path):
    libs = tmp_path / "libs"
    plugin = _artifact(libs, "plugin.jar", mtime=1_700_000_000_000_000_000)
    _artifact(libs, "plugin-sources.jar", mtime=1_800_000_000_000_000_000)
    _artifact(libs, "plugin.pom", mtime=1_900_000_000_000_000_000)

    assert ArtifactPublisher().select_artifact(libs) == plugin


def test_select_artifact_missing_directory_returns_none(tmp_path: Path):
    assert ArtifactPublisher().select_artifact(tmp_path / "missing") is None


def test_publish_copies_into_created_publish_dir(tmp_path: Path):
    libs = tmp_path / "libs"
    _artifact(libs, "plugin.jar", mtime=1_700_000_000_000_000_000, content=b"compiled")
    mods = tmp_path / "run" / "mods"

    published = asyncio.run(ArtifactPublisher().publish(libs, mods))

    assert published == mods / "plugin.jar"
    assert published.read_bytes() == b"compiled"


def test_publish_overwrites_previous_copy(tmp_path: Path):
    libs = tmp_path / "libs"
    mods = tmp_path / "mods"
    mods.mkdir()
    (mods / "plugin.jar").write_bytes(b"old")
    _artifact(libs, "plugin.jar", mtime=1_700_000_000_000_000_000, content=b"new")

    asyncio.run(ArtifactPublisher().publish(libs, mods))

    assert (mods / "plugin.jar").read_bytes() == b"new"


def test_publish_without_artifact_raises(tmp_path: Path):
    libs = tmp_path / "libs"
    libs.mkdir()

    with pytest.raises(PublishError, match="No artifact") as exc_info:
        asyncio.run(ArtifactPublisher().publish(libs, tmp_path / "mods", phase=REBUILD_PHASE))

    assert exc_info.value.is_fatal is False


def test_publish_copy_failure_raises(tmp_path: Path):
    libs = tmp_path / "libs"
    _artifact(libs, "plugin.jar", mtime=1_700_000_000_000_000_000)
    blocker = tmp_path / "mods"
    blocker.write_text("a file where the directory should be")

    with pytest.raises(PublishError, match="Failed to copy") as exc_info:
        asyncio.run(ArtifactPublisher().publish(libs, blocker))

    assert exc_info.value.is_fatal is True


def test_find_artifact_wraps_filesystem_errors(tmp_path: Path, monkeypatch):
    publisher = ArtifactPublisher()

    def unreadable(build_output_dir):
        raise PermissionError(13, "Permission denied", str(build_output_dir))

    monkeypatch.setattr(publisher, "candidates", unreadable)

    with pytest.raises(PublishError, match="Could not read build output") as exc_info:
        publisher.find_artifact(tmp_path, phase=REBUILD_PHASE)

    assert exc_info.value.phase == REBUILD_PHASE

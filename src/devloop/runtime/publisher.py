from __future__ import annotations

import asyncio
import shutil
from fnmatch import fnmatch
from pathlib import Path
from typing import List, Optional

from devloop.utils.diagnostics import STARTUP_PHASE, PublishError


class ArtifactPublisher:
    """Selects the freshest build artifact and copies it into the publish directory.

    Selection policy:
    - the filename matches ``artifact_pattern`` and does not end in ``sources_suffix``
    - the newest modification time wins
    - equal modification times go to the lexicographically last filename
    """

    def __init__(self, artifact_pattern: str = "*.jar", sources_suffix: str = "-sources.jar") -> None:
        self.artifact_pattern = artifact_pattern
        self.sources_suffix = sources_suffix

    def candidates(self, build_output_dir: Path) -> List[Path]:
        if not build_output_dir.is_dir():
            return []

        return [
            path
            for path in build_output_dir.iterdir()
            if path.is_file()
            and fnmatch(path.name, self.artifact_pattern)
            and not path.name.endswith(self.sources_suffix)
        ]

    def select_artifact(self, build_output_dir: Path) -> Optional[Path]:
        """Return the artifact to publish, or None when the directory holds none."""
        candidates = self.candidates(build_output_dir)
        if not candidates:
            return None
        return max(candidates, key=lambda path: (path.stat().st_mtime_ns, path.name))

    def find_artifact(self, build_output_dir: Path, phase: str = STARTUP_PHASE) -> Optional[Path]:
        """Like select_artifact, but filesystem errors surface as PublishError."""
        try:
            return self.select_artifact(build_output_dir)
        except OSError as exc:
            raise PublishError(f"Could not read build output {build_output_dir}: {exc}", phase=phase) from exc

    async def publish(
        self,
        build_output_dir: Path,
        publish_dir: Path,
        phase: str = STARTUP_PHASE,
    ) -> Path:
        """Copy the selected artifact into ``publish_dir`` and return its new path."""
        artifact = self.find_artifact(build_output_dir, phase=phase)
        if artifact is None:
            raise PublishError(
                f"No artifact matching '{self.artifact_pattern}' found in {build_output_dir}",
                phase=phase,
            )

        destination = publish_dir / artifact.name
        try:
            await asyncio.to_thread(self._copy, artifact, publish_dir, destination)
        except OSError as exc:
            raise PublishError(
                f"Failed to copy {artifact.name} to {publish_dir}: {exc}",
                phase=phase,
            ) from exc

        return destination

    @staticmethod
    def _copy(artifact: Path, publish_dir: Path, destination: Path) -> None:
        publish_dir.mkdir(parents=True, exist_ok=True)
        shutil.copy2(artifact, destination)
        if not destination.is_file():
            raise OSError(f"{destination} missing after copy")

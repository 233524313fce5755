from __future__ import annotations

import asyncio
from fnmatch import fnmatch
from pathlib import Path
from typing import Callable, Dict, List, Optional

from devloop.runtime.contracts import ChangeEvent, ChangeKind, WatcherState
from devloop.utils.diagnostics import WatchError

ChangeCallback = Callable[[ChangeEvent], None]


class PollingWatcher:
    """Polling-based recursive file watcher with include/exclude filters.

    Debouncing is left to the consumer: every poll that finds differences calls
    ``on_change`` once per changed path. A watcher is started once and stopped
    once; it cannot be restarted afterwards.
    """

    def __init__(
        self,
        interval_ms: int = 500,
        include_patterns: Optional[List[str]] = None,
        exclude_patterns: Optional[List[str]] = None,
    ) -> None:
        self.interval_ms = interval_ms
        self.include_patterns = include_patterns or ["*"]
        self.exclude_patterns = exclude_patterns or []

        self.state: WatcherState = WatcherState.STOPPED
        self.root_dir: Optional[Path] = None
        self._snapshot: Dict[str, int] = {}
        self._on_change: Optional[ChangeCallback] = None
        self._task: Optional[asyncio.Task] = None

    def start(self, root_dir: Path, on_change: ChangeCallback) -> None:
        """Snapshot ``root_dir`` and begin polling on the running event loop."""
        if self.state != WatcherState.STOPPED:
            raise WatchError(f"Watcher cannot be started from state '{self.state.value}'.")

        if not root_dir.is_dir():
            raise WatchError(f"Watch directory not found: {root_dir}")

        self.root_dir = root_dir
        self._on_change = on_change
        self._snapshot = self._build_snapshot()
        self.state = WatcherState.WATCHING
        self._task = asyncio.get_running_loop().create_task(self._poll_loop())

    def stop(self) -> None:
        """Stop polling. No callback is delivered once this returns."""
        if self.state == WatcherState.WATCHING:
            self.state = WatcherState.CLOSED

        if self._task is not None and not self._task.done():
            self._task.cancel()

        self._task = None
        self._on_change = None

    @property
    def is_active(self) -> bool:
        return self.state == WatcherState.WATCHING

    def poll(self) -> List[ChangeEvent]:
        """Run one poll cycle and deliver the detected changes."""
        if self.state != WatcherState.WATCHING:
            return []

        current_snapshot = self._build_snapshot()
        events = self._detect_changes(self._snapshot, current_snapshot)
        self._snapshot = current_snapshot

        for event in events:
            # A callback may stop the watcher mid-batch.
            if self._on_change is None:
                break
            self._on_change(event)

        return events

    def tracked_paths(self) -> set[str]:
        """Return current tracked relative paths from the latest snapshot."""
        return set(self._snapshot.keys())

    async def _poll_loop(self) -> None:
        interval_seconds = max(self.interval_ms / 1000.0, 0.01)
        while self.state == WatcherState.WATCHING:
            await asyncio.sleep(interval_seconds)
            try:
                self.poll()
            except OSError:
                # Tree changed under the scan; the old snapshot stays and the next poll retries.
                continue

    def _build_snapshot(self) -> Dict[str, int]:
        snapshot: Dict[str, int] = {}
        if self.root_dir is None or not self.root_dir.exists():
            return snapshot

        for path in self.root_dir.rglob("*"):
            try:
                if not path.is_file():
                    continue
                relative = path.relative_to(self.root_dir).as_posix()
                if not self._is_tracked_path(relative, path.name):
                    continue
                snapshot[relative] = path.stat().st_mtime_ns
            except FileNotFoundError:
                # Removed between listing and stat; the next poll reports it.
                continue

        return snapshot

    def _is_tracked_path(self, relative_path: str, filename: str) -> bool:
        included = any(
            fnmatch(relative_path, pattern) or fnmatch(filename, pattern)
            for pattern in self.include_patterns
        )
        if not included:
            return False

        excluded = any(
            fnmatch(relative_path, pattern) or fnmatch(filename, pattern)
            for pattern in self.exclude_patterns
        )
        return not excluded

    @staticmethod
    def _detect_changes(previous: Dict[str, int], current: Dict[str, int]) -> List[ChangeEvent]:
        changes: Dict[str, ChangeKind] = {}

        previous_paths = set(previous.keys())
        current_paths = set(current.keys())

        for added in current_paths - previous_paths:
            changes[added] = ChangeKind.ADDED

        for removed in previous_paths - current_paths:
            changes[removed] = ChangeKind.DELETED

        for existing in previous_paths & current_paths:
            if previous[existing] != current[existing]:
                changes[existing] = ChangeKind.MODIFIED

        return [ChangeEvent(path=path, kind=changes[path]) for path in sorted(changes)]

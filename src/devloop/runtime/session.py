from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, TextIO

from devloop.core.models import DevloopConfig, LaunchSpec, ResolvedPaths
from devloop.runtime.build_invoker import BuildInvoker
from devloop.runtime.contracts import (
    BuildOutcome,
    ChangeEvent,
    SessionState,
    transition_session_state,
)
from devloop.runtime.polling_watcher import PollingWatcher
from devloop.runtime.publisher import ArtifactPublisher
from devloop.runtime.signals import TerminationChannel
from devloop.runtime.supervisor import ProcessHandle, ProcessSupervisor
from devloop.utils.diagnostics import (
    REBUILD_PHASE,
    STARTUP_PHASE,
    BuildError,
    DevloopDiagnostic,
    DevloopError,
    WatchError,
)

LogCallback = Callable[[str, str], None]

OUTPUT_TAIL_LINES = 20


def _discard(message: str, severity: str = "info") -> None:
    return None


def output_tail(text: str, lines: int = OUTPUT_TAIL_LINES) -> str:
    """Return the last ``lines`` non-empty lines of build output."""
    kept = [line for line in text.splitlines() if line.strip()]
    return "\n".join(kept[-lines:])


@dataclass
class RebuildResult:
    """What one watch-triggered rebuild produced."""

    outcome: Optional[BuildOutcome] = None
    published: Optional[Path] = None
    error: Optional[DevloopError] = None

    @property
    def success(self) -> bool:
        return self.error is None and self.published is not None


class SessionController:
    """Coordinates one development session.

    Startup runs build, publish and launch in that order. With watching on,
    change events are debounced into rebuilds that never overlap. Shutdown
    cancels the pending timer, stops the watcher, then stops the server.

    All mutable session fields (``pending_timer``, ``rebuild_in_flight`` and
    the supervisor's handle) are only touched from handlers running on the
    session's event loop.
    """

    def __init__(
        self,
        paths: ResolvedPaths,
        launch: LaunchSpec,
        builder: BuildInvoker,
        publisher: ArtifactPublisher,
        supervisor: ProcessSupervisor,
        watcher: Optional[PollingWatcher] = None,
        watch_enabled: bool = False,
        watch_required: bool = False,
        debounce_window: float = 5.0,
        initial_build: bool = True,
        termination: Optional[TerminationChannel] = None,
        log: Optional[LogCallback] = None,
        on_rebuild: Optional[Callable[[RebuildResult], None]] = None,
    ) -> None:
        self.paths = paths
        self.launch = launch
        self.builder = builder
        self.publisher = publisher
        self.supervisor = supervisor
        self.watch_enabled = watch_enabled
        self.watch_required = watch_required
        self.debounce_window = debounce_window
        self.initial_build = initial_build
        self.termination = termination or TerminationChannel()
        self.log = log or _discard
        self.on_rebuild = on_rebuild

        if watcher is None and watch_enabled:
            watcher = PollingWatcher()
        self.watcher = watcher

        if self.supervisor.on_exit is None:
            self.supervisor.on_exit = self._on_server_exit

        self.state = SessionState.IDLE
        self.pending_timer: Optional[asyncio.TimerHandle] = None
        self.rebuild_in_flight = False
        self.dropped_events = 0
        self.rebuild_results: List[RebuildResult] = []
        self.diagnostics: List[DevloopDiagnostic] = []
        self.fatal_error: Optional[DevloopError] = None

        self._timer_generation = 0
        self._rebuild_task: Optional[asyncio.Task] = None
        self._shutdown_task: Optional[asyncio.Task] = None

    @classmethod
    def from_config(
        cls,
        config: DevloopConfig,
        paths: ResolvedPaths,
        initial_build: bool = True,
        watch_enabled: Optional[bool] = None,
        watch_required: Optional[bool] = None,
        debounce_window: Optional[float] = None,
        input_stream: Optional[TextIO] = None,
        log: Optional[LogCallback] = None,
    ) -> "SessionController":
        """Wire a session from project settings; explicit arguments override them."""
        if watch_enabled is None:
            watch_enabled = config.watch.enabled
        if watch_required is None:
            watch_required = config.watch.required
        if debounce_window is None:
            debounce_window = config.watch.debounce_s

        return cls(
            paths=paths,
            launch=config.launch_spec(paths),
            builder=BuildInvoker(
                command=config.build.command,
                full_build_args=config.build.full_build_args,
                incremental_args=config.build.incremental_args,
            ),
            publisher=ArtifactPublisher(
                artifact_pattern=config.build.artifact_pattern,
                sources_suffix=config.build.sources_suffix,
            ),
            supervisor=ProcessSupervisor(
                grace_period=config.server.grace_period_s,
                kill_timeout=config.server.kill_timeout_s,
                restart_delay=config.server.restart_delay_s,
                stop_command=config.server.stop_command,
                input_stream=input_stream,
            ),
            watcher=PollingWatcher(
                interval_ms=config.watch.interval_ms,
                include_patterns=config.watch.include_patterns,
                exclude_patterns=config.watch.exclude_patterns,
            ),
            watch_enabled=watch_enabled,
            watch_required=watch_required,
            debounce_window=debounce_window,
            initial_build=initial_build,
            log=log,
        )

    async def run(self) -> int:
        """Run the session until a termination request; return the exit status."""
        startup = asyncio.create_task(self.start())
        waiter = asyncio.create_task(self.termination.wait())
        try:
            done, _ = await asyncio.wait({startup, waiter}, return_when=asyncio.FIRST_COMPLETED)
            if startup in done:
                startup.result()
                await waiter
            else:
                self.log("Termination requested during startup.", "warning")
                startup.cancel()
                await asyncio.gather(startup, return_exceptions=True)
        except DevloopError as exc:
            self.fatal_error = exc
            self.report_fatal(exc)
            await self.shutdown()
            return 1
        except BaseException:
            startup.cancel()
            await self.shutdown()
            raise
        finally:
            waiter.cancel()

        await self.shutdown()
        return 1 if self.fatal_error is not None else 0

    async def start(self) -> ProcessHandle:
        """Perform the startup phase: optional initial build, publish, launch, watch."""
        project_dir = self.paths.project_dir

        if self.initial_build:
            self._transition(SessionState.INITIAL_BUILD)
            self.log("Building plugin before starting server...", "info")
            outcome = await self.builder.invoke(project_dir, force_full=True, phase=STARTUP_PHASE)
            if not outcome.success:
                raise BuildError(
                    "Initial build failed. Fix the errors and try again.",
                    phase=STARTUP_PHASE,
                    output=outcome.diagnostic_text,
                )
            self.log("Build complete", "success")
            await self._publish(STARTUP_PHASE)
        elif self.publisher.find_artifact(self.paths.build_output_dir, phase=STARTUP_PHASE) is not None:
            await self._publish(STARTUP_PHASE)
        else:
            self.log("No build artifact found; starting with the plugins already published.", "warning")

        self.log("Starting server...", "info")
        handle = await self.supervisor.launch(
            self.launch.executable,
            self.launch.args,
            self.launch.working_dir,
        )
        self._transition(SessionState.RUNNING)
        self.log(f"Server started (pid {handle.pid})", "success")

        if self.watch_enabled:
            self._start_watching()
        else:
            self.log("Auto-rebuild disabled. Restart the session when you make changes.", "info")

        return handle

    def on_change(self, event: ChangeEvent) -> None:
        """Watcher callback: restart the debounce window or drop the event."""
        if self.rebuild_in_flight or self.state != SessionState.RUNNING:
            self.dropped_events += 1
            return

        self.log(f"{Path(event.path).name} {event.kind.value}", "info")
        self._cancel_pending_timer()
        self._timer_generation += 1
        self.pending_timer = asyncio.get_running_loop().call_later(
            self.debounce_window,
            self._on_debounce_elapsed,
            self._timer_generation,
        )

    def request_shutdown(self, reason: str = "requested") -> None:
        self.termination.request(reason)

    async def shutdown(self) -> SessionState:
        """Tear the session down. Repeated or concurrent calls share one shutdown."""
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.get_running_loop().create_task(self._shutdown())
        await asyncio.shield(self._shutdown_task)
        return self.state

    def report_fatal(self, exc: DevloopError) -> None:
        output = getattr(exc, "output", None)
        self.diagnostics.append(
            DevloopDiagnostic(
                step=type(exc).__name__,
                message=exc.message,
                severity="critical",
                detail=output,
            )
        )
        if output:
            self.log(output_tail(output), "output")
        self.log(exc.message, "error")

    async def _shutdown(self) -> None:
        self._transition(SessionState.SHUTTING_DOWN)
        self.log("Shutting down...", "info")

        self._cancel_pending_timer()
        if self._rebuild_task is not None:
            self._rebuild_task.cancel()
            await asyncio.gather(self._rebuild_task, return_exceptions=True)
            self._rebuild_task = None
        self.rebuild_in_flight = False

        if self.watcher is not None:
            self.watcher.stop()

        await self.supervisor.stop()

        self._transition(SessionState.TERMINATED)
        self.log("Development mode stopped", "success")

    def _start_watching(self) -> None:
        try:
            self.watcher.start(self.paths.source_dir, self.on_change)
        except WatchError as exc:
            if self.watch_required:
                raise
            self.log(f"{exc.message}. Continuing without auto-rebuild.", "warning")
            return

        self.log(f"Watching {self.paths.source_dir} for changes...", "info")
        self.log("Rebuilt plugins are published but the server must be restarted to load them.", "warning")

    def _on_debounce_elapsed(self, generation: int) -> None:
        # Stale if another event re-armed the timer or shutdown cancelled it.
        if generation != self._timer_generation or self.pending_timer is None:
            return

        self.pending_timer = None
        if self.state != SessionState.RUNNING or self.rebuild_in_flight:
            return

        self.rebuild_in_flight = True
        self._transition(SessionState.REBUILDING)
        self._rebuild_task = asyncio.get_running_loop().create_task(self._rebuild())

    async def _rebuild(self) -> None:
        result = RebuildResult()
        try:
            self.log("Building...", "info")
            outcome = await self.builder.invoke(
                self.paths.project_dir,
                force_full=False,
                phase=REBUILD_PHASE,
            )
            result.outcome = outcome
            if not outcome.success:
                raise BuildError(
                    f"build tool exited with code {outcome.exit_code}",
                    phase=REBUILD_PHASE,
                    output=outcome.diagnostic_text,
                )
            self.log("Build complete", "success")
            result.published = await self._publish(REBUILD_PHASE)
            self.log("Build successful! Restart the server to apply changes.", "success")
        except DevloopError as exc:
            result.error = exc
            if exc.is_fatal:
                self._abort(exc)
            else:
                self._report_rebuild_failure(exc)
        finally:
            self.rebuild_in_flight = False
            self._rebuild_task = None
            if self.state == SessionState.REBUILDING:
                self._transition(SessionState.RUNNING)

        self.rebuild_results.append(result)
        if self.on_rebuild is not None:
            self.on_rebuild(result)

    async def _publish(self, phase: str) -> Path:
        published = await self.publisher.publish(
            self.paths.build_output_dir,
            self.paths.publish_dir,
            phase=phase,
        )
        self.log(f"Copied {published.name} to {published.parent}", "success")
        return published

    def _abort(self, exc: DevloopError) -> None:
        self.fatal_error = exc
        self.report_fatal(exc)
        self.termination.request(type(exc).__name__)

    def _report_rebuild_failure(self, exc: DevloopError) -> None:
        output = getattr(exc, "output", None)
        self.diagnostics.append(
            DevloopDiagnostic(step=type(exc).__name__, message=exc.message, detail=output)
        )
        if output:
            self.log(output_tail(output), "output")
        self.log(f"Build failed: {exc.message}", "error")
        self.log("Fix the errors and save again.", "info")

    def _on_server_exit(self, handle: ProcessHandle) -> None:
        if handle.exit_code:
            self.log(f"Server exited with code {handle.exit_code}", "warning")
        else:
            self.log("Server exited.", "info")

    def _cancel_pending_timer(self) -> None:
        if self.pending_timer is not None:
            self.pending_timer.cancel()
            self.pending_timer = None

    def _transition(self, target: SessionState) -> None:
        self.state = transition_session_state(self.state, target)

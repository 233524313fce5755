from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, TextIO

from devloop.runtime.contracts import StopOutcome, StopPhase, advance_stop_phase
from devloop.utils.diagnostics import ProcessError


@dataclass
class ProcessHandle:
    """Wraps one supervised external process."""

    process: asyncio.subprocess.Process

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def exited(self) -> bool:
        return self.process.returncode is not None

    @property
    def exit_code(self) -> Optional[int]:
        return self.process.returncode

    @property
    def stdin_writable(self) -> bool:
        stdin = self.process.stdin
        return stdin is not None and not stdin.is_closing() and not self.exited


class ProcessSupervisor:
    """Owns the lifecycle of at most one long-running external process.

    Stopping is cooperative first: the stop command is written to the
    process's stdin. If the process is still alive after ``grace_period`` it is
    sent SIGTERM, and after a further ``kill_timeout`` SIGKILL. ``stop()``
    never raises; when it returns no process is attached to the supervisor.
    """

    def __init__(
        self,
        grace_period: float = 10.0,
        kill_timeout: float = 5.0,
        restart_delay: float = 2.0,
        stop_command: str = "stop",
        input_stream: Optional[TextIO] = None,
        on_exit: Optional[Callable[[ProcessHandle], None]] = None,
    ) -> None:
        self.grace_period = grace_period
        self.kill_timeout = kill_timeout
        self.restart_delay = restart_delay
        self.stop_command = stop_command
        self.input_stream = input_stream
        self.on_exit = on_exit

        self.handle: Optional[ProcessHandle] = None
        self.last_stop_phases: List[StopPhase] = []
        self._exit_task: Optional[asyncio.Task] = None
        self._stopping = False
        self._input_fd: Optional[int] = None

    def is_running(self) -> bool:
        return self.handle is not None and not self.handle.exited

    async def launch(self, executable: str, args: List[str], working_dir: Path) -> ProcessHandle:
        """Spawn the process with inherited stdout/stderr and return without waiting."""
        if self.handle is not None:
            await self.stop()

        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *args,
                cwd=working_dir,
                stdin=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ProcessError(f"Failed to launch '{executable}': {exc}") from exc

        handle = ProcessHandle(process=process)
        self.handle = handle
        self._exit_task = asyncio.get_running_loop().create_task(self._watch_exit(handle))
        self._start_input_forwarding(handle)
        return handle

    async def stop(self) -> StopOutcome:
        """Stop the supervised process, escalating to SIGTERM and SIGKILL as needed."""
        handle = self.handle
        if handle is None:
            return StopOutcome.NOT_RUNNING

        self._stopping = True
        self._stop_input_forwarding()
        outcome = StopOutcome.EXITED
        phase = StopPhase.GRACEFUL
        self.last_stop_phases = [phase]

        try:
            if not handle.exited:
                await self._send_stop_command(handle)

            while phase != StopPhase.STOPPED:
                timeout = self.grace_period if phase == StopPhase.GRACEFUL else self.kill_timeout
                exited = await self._wait_for_exit(handle, timeout)
                phase = advance_stop_phase(phase, exited)
                self.last_stop_phases.append(phase)

                if phase == StopPhase.TERMINATING:
                    self._send_signal(handle, kill=False)
                    outcome = StopOutcome.TERMINATED
                elif phase == StopPhase.KILLING:
                    self._send_signal(handle, kill=True)
                    outcome = StopOutcome.KILLED
        finally:
            if not handle.exited:
                self._send_signal(handle, kill=True)
            if self._exit_task is not None and not self._exit_task.done():
                self._exit_task.cancel()
            self._exit_task = None
            if self.handle is handle:
                self.handle = None
            self._stopping = False

        return outcome

    async def restart(self, executable: str, args: List[str], working_dir: Path) -> ProcessHandle:
        """Stop, pause briefly for OS resources to be released, then launch again."""
        await self.stop()
        await asyncio.sleep(self.restart_delay)
        return await self.launch(executable, args, working_dir)

    async def _send_stop_command(self, handle: ProcessHandle) -> None:
        if not handle.stdin_writable:
            return

        stdin = handle.process.stdin
        try:
            stdin.write(f"{self.stop_command}\n".encode())
            await asyncio.wait_for(stdin.drain(), timeout=self.grace_period)
        except (OSError, asyncio.TimeoutError):
            # Pipe already gone; the timed escalation still applies.
            pass

    @staticmethod
    async def _wait_for_exit(handle: ProcessHandle, timeout: float) -> bool:
        if handle.exited:
            return True
        try:
            await asyncio.wait_for(handle.process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    @staticmethod
    def _send_signal(handle: ProcessHandle, kill: bool) -> None:
        try:
            if kill:
                handle.process.kill()
            else:
                handle.process.terminate()
        except ProcessLookupError:
            pass

    async def _watch_exit(self, handle: ProcessHandle) -> None:
        await handle.process.wait()
        if self.handle is not handle or self._stopping:
            return

        self._stop_input_forwarding()
        self.handle = None
        if self.on_exit is not None:
            self.on_exit(handle)

    def _start_input_forwarding(self, handle: ProcessHandle) -> None:
        if self.input_stream is None:
            return

        loop = asyncio.get_running_loop()
        try:
            fd = self.input_stream.fileno()
            loop.add_reader(fd, self._forward_input, fd, handle)
        except (OSError, ValueError, NotImplementedError):
            # Console cannot be polled (regular file, closed stream, Windows loop).
            return
        self._input_fd = fd

    def _stop_input_forwarding(self) -> None:
        if self._input_fd is None:
            return
        try:
            asyncio.get_running_loop().remove_reader(self._input_fd)
        except (RuntimeError, ValueError, NotImplementedError):
            pass
        self._input_fd = None

    def _forward_input(self, fd: int, handle: ProcessHandle) -> None:
        try:
            data = os.read(fd, 4096)
        except OSError:
            data = b""

        if not data:
            self._stop_input_forwarding()
            return

        if handle.stdin_writable:
            handle.process.stdin.write(data)

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Dict, List, Optional

from devloop.runtime.contracts import BuildOutcome
from devloop.utils.diagnostics import STARTUP_PHASE, BuildError


def resolve_build_command(command: List[str], windows: Optional[bool] = None) -> List[str]:
    """Map a POSIX wrapper script such as ``./gradlew`` to its ``.bat`` twin on Windows."""
    if not command:
        raise BuildError("Build command is empty.")

    if windows is None:
        windows = os.name == "nt"

    executable = command[0]
    if windows and executable.startswith("./") and not Path(executable).suffix:
        executable = f"{executable}.bat"
    return [executable, *command[1:]]


def has_build_wrapper(project_dir: Path, command: List[str]) -> bool:
    """Return True when a project-relative build wrapper exists.

    Commands resolved through PATH (no directory component) are assumed present
    and only fail at launch time.
    """
    if not command:
        return False

    executable = command[0]
    if "/" not in executable and "\\" not in executable:
        return True
    return (project_dir / executable).is_file()


class BuildInvoker:
    """Runs the external build tool and classifies its exit status."""

    def __init__(
        self,
        command: List[str],
        full_build_args: Optional[List[str]] = None,
        incremental_args: Optional[List[str]] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> None:
        self.command = resolve_build_command(command)
        self.full_build_args = full_build_args or []
        self.incremental_args = incremental_args or []
        self.env = env

    def command_for(self, force_full: bool) -> List[str]:
        extra = self.full_build_args if force_full else self.incremental_args
        return [*self.command, *extra]

    async def invoke(
        self,
        project_dir: Path,
        force_full: bool,
        phase: str = STARTUP_PHASE,
    ) -> BuildOutcome:
        """Run one build in ``project_dir`` and wait for it to finish.

        Non-zero exit is reported as ``success=False``. A tool that cannot be
        started raises BuildError. Cancelling the caller kills the build.
        """
        argv = self.command_for(force_full)
        executable = argv[0]
        if executable.startswith("./") or executable.startswith(".\\"):
            executable = str(project_dir / executable[2:])

        env = None
        if self.env:
            env = os.environ.copy()
            env.update(self.env)

        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *argv[1:],
                cwd=project_dir,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                env=env,
            )
        except OSError as exc:
            raise BuildError(f"Could not start build tool '{argv[0]}': {exc}", phase=phase) from exc

        try:
            stdout, _ = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()
            raise

        return BuildOutcome(
            success=process.returncode == 0,
            diagnostic_text=(stdout or b"").decode(errors="replace"),
            exit_code=process.returncode,
        )

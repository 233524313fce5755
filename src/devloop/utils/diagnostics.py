from typing import Optional
from pydantic import BaseModel

STARTUP_PHASE = "startup"
REBUILD_PHASE = "rebuild"


class DevloopDiagnostic(BaseModel):
    """
    Standardized report entry for a failed session step.
    """
    step: str
    message: str
    severity: str = "error" # 'error', 'warning', 'critical'
    detail: Optional[str] = None

    def __str__(self) -> str:
        return f"[{self.step}] {self.message}"


class DevloopError(Exception):
    """
    Base class for orchestrator errors. `phase` records whether the error
    happened while the session was starting or during a watch-triggered rebuild.
    """
    def __init__(self, message: str, phase: str = STARTUP_PHASE):
        self.message = message
        self.phase = phase
        super().__init__(message)

    @property
    def is_fatal(self) -> bool:
        """Fatal errors end the session; the rest are reported and watching continues."""
        return self.phase == STARTUP_PHASE


class ConfigurationError(DevloopError):
    """Missing prerequisite setup or an unreadable devloop.yaml."""


class WatchError(DevloopError):
    """The change watcher could not observe its root directory."""


class BuildError(DevloopError):
    """The build tool could not be launched or the build failed."""

    def __init__(self, message: str, phase: str = STARTUP_PHASE, output: Optional[str] = None):
        self.output = output
        super().__init__(message, phase=phase)


class PublishError(DevloopError):
    """No artifact could be found or copied into the publish directory."""


class ProcessError(DevloopError):
    """The supervised process could not be launched."""

    @property
    def is_fatal(self) -> bool:
        return True

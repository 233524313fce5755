from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet


class SessionState(str, Enum):
    """Lifecycle states of one development session."""

    IDLE = "idle"
    INITIAL_BUILD = "initial_build"
    RUNNING = "running"
    REBUILDING = "rebuilding"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class WatcherState(str, Enum):
    """States for the change watcher lifecycle."""

    STOPPED = "stopped"
    WATCHING = "watching"
    CLOSED = "closed"


class ChangeKind(str, Enum):
    """Kind of filesystem change reported by the watcher."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


class StopOutcome(str, Enum):
    """How a supervised process ended when stop() was requested."""

    NOT_RUNNING = "not_running"
    EXITED = "exited"
    TERMINATED = "terminated"
    KILLED = "killed"


class StopPhase(str, Enum):
    """Phases of the graceful-then-forced stop sequence."""

    GRACEFUL = "graceful"
    TERMINATING = "terminating"
    KILLING = "killing"
    STOPPED = "stopped"


@dataclass(frozen=True)
class ChangeEvent:
    """One observed change below the watched root."""

    path: str
    kind: ChangeKind


@dataclass(frozen=True)
class BuildOutcome:
    """Result of one build tool invocation."""

    success: bool
    diagnostic_text: str = ""
    exit_code: int | None = None


SESSION_TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.IDLE: frozenset(
        {SessionState.INITIAL_BUILD, SessionState.RUNNING, SessionState.SHUTTING_DOWN}
    ),
    SessionState.INITIAL_BUILD: frozenset({SessionState.RUNNING, SessionState.SHUTTING_DOWN}),
    SessionState.RUNNING: frozenset({SessionState.REBUILDING, SessionState.SHUTTING_DOWN}),
    SessionState.REBUILDING: frozenset({SessionState.RUNNING, SessionState.SHUTTING_DOWN}),
    SessionState.SHUTTING_DOWN: frozenset({SessionState.TERMINATED}),
    SessionState.TERMINATED: frozenset(),
}


def transition_session_state(current: SessionState, target: SessionState) -> SessionState:
    """Validate a session state change and return the new state.

    Invalid transitions raise ValueError.
    """

    if target not in SESSION_TRANSITIONS[current]:
        raise ValueError(f"Invalid session transition: {current.value} -> {target.value}")
    return target


def advance_stop_phase(current: StopPhase, exited: bool) -> StopPhase:
    """Compute the next stop phase after a wait in `current` ends.

    `exited` tells whether the process exited during that wait. Exiting in any
    phase finishes the sequence; otherwise the sequence escalates one step.
    """

    if current == StopPhase.STOPPED:
        raise ValueError("Stop sequence already finished")

    if exited:
        return StopPhase.STOPPED

    if current == StopPhase.GRACEFUL:
        return StopPhase.TERMINATING
    if current == StopPhase.TERMINATING:
        return StopPhase.KILLING
    return StopPhase.STOPPED

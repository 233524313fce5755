"""Development session orchestration components."""

from devloop.runtime.build_invoker import BuildInvoker
from devloop.runtime.contracts import (
	BuildOutcome,
	ChangeEvent,
	ChangeKind,
	SessionState,
	StopOutcome,
	StopPhase,
)
from devloop.runtime.polling_watcher import PollingWatcher
from devloop.runtime.publisher import ArtifactPublisher
from devloop.runtime.session import RebuildResult, SessionController
from devloop.runtime.signals import SignalBridge, TerminationChannel
from devloop.runtime.supervisor import ProcessHandle, ProcessSupervisor

__all__ = [
	"ArtifactPublisher",
	"BuildInvoker",
	"BuildOutcome",
	"ChangeEvent",
	"ChangeKind",
	"PollingWatcher",
	"ProcessHandle",
	"ProcessSupervisor",
	"RebuildResult",
	"SessionController",
	"SessionState",
	"SignalBridge",
	"StopOutcome",
	"StopPhase",
	"TerminationChannel",
]

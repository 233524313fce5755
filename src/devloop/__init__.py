from devloop.runtime import SessionController, TerminationChannel
from devloop.utils.diagnostics import (
	BuildError,
	ConfigurationError,
	DevloopError,
	ProcessError,
	PublishError,
	WatchError,
)

__version__ = "0.1.0"

__all__ = [
	"BuildError",
	"ConfigurationError",
	"DevloopError",
	"ProcessError",
	"PublishError",
	"SessionController",
	"TerminationChannel",
	"WatchError",
]

"""
Termination requests for a development session.

OS signals are one source of termination requests; tests and embedding hosts
call ``TerminationChannel.request`` directly. The session only ever sees the
channel, never the signal machinery.
"""

from __future__ import annotations

import asyncio
import signal
from typing import Any, Dict, List, Optional

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class TerminationChannel:
    """One-shot termination request shared between signal handlers and a session."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reasons: List[str] = []

    def request(self, reason: str = "requested") -> None:
        self.reasons.append(reason)
        self._event.set()

    @property
    def requested(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class SignalBridge:
    """Routes SIGINT/SIGTERM into a TerminationChannel for the duration of a session."""

    def __init__(self, channel: TerminationChannel, signals: tuple = DEFAULT_SIGNALS) -> None:
        self.channel = channel
        self.signals = signals
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_handlers: List[int] = []
        self._original_handlers: Dict[int, Any] = {}

    def install(self) -> None:
        """Install handlers on the running loop, falling back to signal.signal."""
        self._loop = asyncio.get_running_loop()
        for signum in self.signals:
            try:
                self._loop.add_signal_handler(signum, self._on_signal, signum)
                self._loop_handlers.append(signum)
            except (NotImplementedError, RuntimeError):
                self._original_handlers[signum] = signal.signal(signum, self._threadsafe_handler)

    def uninstall(self) -> None:
        """Restore whatever handlers were in place before install()."""
        if self._loop is not None:
            for signum in self._loop_handlers:
                self._loop.remove_signal_handler(signum)
        for signum, handler in self._original_handlers.items():
            signal.signal(signum, handler)
        self._loop_handlers = []
        self._original_handlers = {}

    def _on_signal(self, signum: int) -> None:
        self.channel.request(signal.Signals(signum).name)

    def _threadsafe_handler(self, signum: int, frame: Any) -> None:
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._on_signal, signum)

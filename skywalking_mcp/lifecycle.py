# Copyright 2025 Liatrio
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Runner states, the admission gate and signal-driven shutdown."""

import asyncio
import signal
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, List, Optional

from .telemetry import get_logger

logger = get_logger("lifecycle")

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class RunnerState(str, Enum):
    """Lifecycle states shared by the transport runners."""

    CREATED = "created"
    LISTENING = "listening"
    SHUTTING_DOWN = "shutting_down"
    DRAINING = "draining"
    CRASHED = "crashed"
    STOPPED = "stopped"


class StateTracker:
    """Current runner state plus the ordered history of transitions."""

    def __init__(self, name: str):
        self.name = name
        self.state = RunnerState.CREATED
        self.history: List[RunnerState] = [RunnerState.CREATED]

    def transition(self, state: RunnerState) -> None:
        logger.debug(
            f"{self.name} runner: {self.state.value} -> {state.value}",
        )
        self.state = state
        self.history.append(state)


class AdmissionGate:
    """Thread-safe flag deciding whether new tool invocations are accepted."""

    def __init__(self):
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        self._closed.set()


@contextmanager
def shutdown_on_signals(
    event: asyncio.Event, loop: Optional[asyncio.AbstractEventLoop] = None
) -> Iterator[asyncio.Event]:
    """Set ``event`` when SIGINT or SIGTERM arrives.

    The handlers that were installed before are restored when the block exits.
    """
    loop = loop or asyncio.get_running_loop()
    installed = []
    previous = {}

    def _notify(signum: int) -> None:
        logger.info(f"Received {signal.Signals(signum).name}")
        event.set()

    for sig in SHUTDOWN_SIGNALS:
        previous[sig] = signal.getsignal(sig)
        try:
            loop.add_signal_handler(sig, _notify, sig)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no add_signal_handler
            signal.signal(
                sig,
                lambda signum, frame: loop.call_soon_threadsafe(_notify, signum),
            )
    try:
        yield event
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        # remove_signal_handler resets to the default, not to the previous handler
        for sig, handler in previous.items():
            if handler is not None:
                signal.signal(sig, handler)

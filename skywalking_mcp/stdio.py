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

"""Serve MCP as JSON-RPC lines over standard input and output."""

import asyncio
import concurrent.futures
import sys
import threading
from typing import Optional, TextIO, Tuple

import anyio
from fastmcp.server.context import reset_transport, set_transport
from mcp.server.stdio import stdio_server

from .config import StdioServerConfig
from .errors import TransportError
from .io_logger import IOLogger
from .lifecycle import RunnerState, StateTracker
from .server import new_stdio_server
from .telemetry import get_logger
from .tools import add_all_tools

logger = get_logger("stdio")

STARTUP_MESSAGE = "SkyWalking MCP Server running on stdio"


class StdioRunner:
    """Runs the server on stdin/stdout until EOF, a listener error or shutdown.

    The listen loop runs on a daemon thread with its own event loop. On
    shutdown the runner stops waiting for it instead of draining, and a read
    blocked on stdin never holds the process open.

    Args:
        config: Stdio server configuration
        stdin: Input stream; the process's stdin when omitted
        stdout: Output stream; the process's stdout when omitted
        stderr: Where the startup banner is printed
    """

    def __init__(
        self,
        config: StdioServerConfig,
        stdin: Optional[TextIO] = None,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ):
        self.config = config
        self.server = new_stdio_server(config)
        add_all_tools(self.server)

        self._stdin = stdin
        self._stdout = stdout
        self._stderr = stderr or sys.stderr
        self.states = StateTracker("stdio")

    @property
    def state(self) -> RunnerState:
        return self.states.state

    def _streams(self) -> Tuple[Optional[TextIO], Optional[TextIO]]:
        if not self.config.log_commands:
            return self._stdin, self._stdout
        logged = IOLogger(self._stdin or sys.stdin, self._stdout or sys.stdout)
        return logged, logged

    async def _serve(self, stdin: Optional[TextIO], stdout: Optional[TextIO]) -> None:
        mcp = self.server.mcp
        token = set_transport("stdio")
        try:
            async with mcp._lifespan_manager():
                async with stdio_server(
                    stdin=anyio.wrap_file(stdin) if stdin is not None else None,
                    stdout=anyio.wrap_file(stdout) if stdout is not None else None,
                ) as (read_stream, write_stream):
                    await mcp._mcp_server.run(
                        read_stream,
                        write_stream,
                        mcp._mcp_server.create_initialization_options(),
                    )
        finally:
            reset_transport(token)

    def _listen(
        self,
        done: concurrent.futures.Future,
        stdin: Optional[TextIO],
        stdout: Optional[TextIO],
    ) -> None:
        done.set_running_or_notify_cancel()
        try:
            anyio.run(self._serve, stdin, stdout)
        except Exception as e:
            done.set_exception(e)
        else:
            done.set_result(None)

    async def run(self, shutdown: asyncio.Event) -> None:
        """Serve until stdin closes or ``shutdown`` is set.

        Raises:
            TransportError: the listen loop failed
        """
        stdin, stdout = self._streams()
        done: concurrent.futures.Future = concurrent.futures.Future()
        thread = threading.Thread(
            target=self._listen,
            args=(done, stdin, stdout),
            name="skywalking-mcp-stdio",
            daemon=True,
        )
        thread.start()

        self.states.transition(RunnerState.LISTENING)
        logger.info(
            "Start a server that communicates via standard input/output streams "
            "using JSON-RPC messages."
        )
        print(STARTUP_MESSAGE, file=self._stderr, flush=True)

        listener = asyncio.wrap_future(done)
        signalled = asyncio.ensure_future(shutdown.wait())
        try:
            finished, _ = await asyncio.wait(
                {listener, signalled}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            signalled.cancel()

        if listener in finished:
            error = listener.exception()
            if error is not None:
                self.states.transition(RunnerState.CRASHED)
                self.states.transition(RunnerState.STOPPED)
                raise TransportError(f"error running server: {error}") from error
            logger.info("Input closed, stopping server")
            self.states.transition(RunnerState.STOPPED)
            return

        self.states.transition(RunnerState.SHUTTING_DOWN)
        self.server.gate.close()
        logger.info("shutting down server...")
        listener.cancel()
        self.states.transition(RunnerState.STOPPED)

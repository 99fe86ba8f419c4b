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

"""Serve MCP over HTTP server-sent events."""

import asyncio
import contextlib
import sys
from typing import Iterator, Optional, TextIO

import uvicorn
from fastmcp.server.http import create_sse_app
from starlette.applications import Starlette
from starlette.middleware import Middleware

from .config import SSEServerConfig
from .errors import ShutdownTimeoutError, TransportError
from .lifecycle import RunnerState, StateTracker
from .mcp_instrumentation_middleware import MCPInstrumentationMiddleware
from .network_utils import bind_listen_socket, bound_port, parse_listen_address
from .server import new_sse_server
from .telemetry import get_logger
from .tools import add_all_tools

logger = get_logger("sse")


class _SSEServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the runner."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


class SSERunner:
    """Runs the SSE server until shutdown is requested or it crashes.

    Shutdown drains in-flight requests for at most
    ``config.shutdown_timeout`` seconds, then waits the grace period. A
    drain that times out is recorded in :attr:`shutdown_error` and the
    server task is cancelled; it is not treated as a failure.

    Args:
        config: SSE server configuration
        stderr: Where shutdown progress is printed

    Raises:
        ConfigurationError: the listen address is malformed
    """

    def __init__(self, config: SSEServerConfig, stderr: Optional[TextIO] = None):
        self.config = config
        self.address = parse_listen_address(config.address)
        self.base_path = config.normalized_base_path

        self.server = new_sse_server(config)
        add_all_tools(self.server)
        self.server.install_probes(self.base_path)
        self.app = self.build_app()

        self.states = StateTracker("sse")
        self.shutdown_error: Optional[ShutdownTimeoutError] = None
        self.port: Optional[int] = None
        self._stderr = stderr or sys.stderr

    @property
    def state(self) -> RunnerState:
        return self.states.state

    @property
    def sse_path(self) -> str:
        return f"{self.base_path}/sse"

    @property
    def message_path(self) -> str:
        return f"{self.base_path}/messages/"

    @property
    def url(self) -> str:
        port = self.port if self.port is not None else self.address.port
        return f"http://{self.address.url_host}:{port}{self.sse_path}"

    def build_app(self) -> Starlette:
        return create_sse_app(
            server=self.server.mcp,
            message_path=self.message_path,
            sse_path=self.sse_path,
            middleware=[Middleware(MCPInstrumentationMiddleware)],
        )

    async def run(self, shutdown: asyncio.Event) -> None:
        """Serve until ``shutdown`` is set, then drain.

        Raises:
            TransportError: the address cannot be bound or the server
                stopped on its own
        """
        sock = bind_listen_socket(self.address)
        self.port = bound_port(sock)

        uv = _SSEServer(uvicorn.Config(self.app, log_config=None, lifespan="on"))
        serving = asyncio.ensure_future(uv.serve(sockets=[sock]))

        # Give the server a moment to start
        await asyncio.sleep(self.config.startup_delay)

        signalled = asyncio.ensure_future(shutdown.wait())
        if not serving.done():
            self.states.transition(RunnerState.LISTENING)
            logger.info(
                f"Starting SkyWalking MCP server using SSE transport listening on {self.url}"
            )
        try:
            finished, _ = await asyncio.wait(
                {serving, signalled}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            signalled.cancel()

        if serving in finished:
            self.states.transition(RunnerState.CRASHED)
            self.states.transition(RunnerState.STOPPED)
            sock.close()
            error = None if serving.cancelled() else serving.exception()
            if error is not None:
                raise TransportError(f"sse server error: {error}") from error
            raise TransportError("sse server error: server exited unexpectedly")

        await self._drain(uv, serving)

    async def _drain(self, uv: uvicorn.Server, serving: asyncio.Future) -> None:
        self.states.transition(RunnerState.DRAINING)
        print("Received shutdown signal, stopping server...", file=self._stderr, flush=True)
        self.server.gate.close()
        uv.should_exit = True

        timeout = self.config.shutdown_timeout
        try:
            await asyncio.wait_for(asyncio.shield(serving), timeout)
        except asyncio.TimeoutError:
            self.shutdown_error = ShutdownTimeoutError(timeout)
            logger.error(str(self.shutdown_error))
            uv.force_exit = True
            serving.cancel()
            await asyncio.wait({serving})
        except Exception as e:
            logger.error(f"Error shutting down SSE server: {e}", exc_info=True)

        # Give a small grace period for cleanup
        await asyncio.sleep(self.config.shutdown_grace_period)
        self.states.transition(RunnerState.STOPPED)
        if self.shutdown_error is None:
            print("SSE server stopped gracefully", file=self._stderr, flush=True)

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

"""The SkyWalking MCP server: tool registry, dispatch and HTTP probes.

:class:`SkyWalkingMCPServer` owns a :class:`fastmcp.FastMCP` instance and
keeps the registered :class:`ToolDescriptor` objects by name. Every
descriptor is bound into FastMCP as a :class:`BoundTool`; when the protocol
layer calls it, the server derives the :class:`RequestContext` for the
invocation from its context provider and runs the descriptor's adapter
inside a span.
"""

import time
from typing import Any, Callable, Dict, List, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.server.dependencies import get_http_headers
from fastmcp.tools import Tool as FastMCPTool
from fastmcp.tools import ToolResult
from starlette.requests import Request
from starlette.responses import JSONResponse

from . import SERVER_NAME, __version__
from .config import SSEServerConfig, StdioServerConfig
from .context import RequestContext, http_context_func, stdio_context_func
from .errors import ToolRegistrationError
from .lifecycle import AdmissionGate
from .telemetry import (
    MCPAttributes,
    SkyWalkingAttributes,
    add_span_attributes,
    get_logger,
    get_meter,
    get_tracer,
    set_span_error,
)
from .tools.base import ToolDescriptor

logger = get_logger("server")
tracer = get_tracer()
meter = get_meter()

tool_invocations = meter.create_counter(
    "mcp.tool.invocations",
    unit="1",
    description="Number of tool invocations by tool and outcome",
)
tool_duration = meter.create_histogram(
    "mcp.tool.duration",
    unit="s",
    description="Duration of tool invocations",
)

INSTRUCTIONS = (
    "Tools for querying an Apache SkyWalking OAP backend. "
    "Traces are looked up by their TraceId."
)

ContextProvider = Callable[[], RequestContext]


def stdio_context_provider(config: StdioServerConfig) -> ContextProvider:
    """A provider returning one context derived once from configuration."""
    ctx = stdio_context_func(config)(RequestContext())
    return lambda: ctx


def http_context_provider(config: SSEServerConfig) -> ContextProvider:
    """A provider deriving the context from the current HTTP request's headers.

    Outside an HTTP request no headers are visible and the configured URL
    applies.
    """
    enrich = http_context_func(config)

    def provide() -> RequestContext:
        return enrich(RequestContext(), get_http_headers(include_all=True))

    return provide


class BoundTool(FastMCPTool):
    """A FastMCP tool delegating execution to a :class:`ToolDescriptor`."""

    _descriptor: Any = None
    _server: Any = None

    @classmethod
    def from_descriptor(
        cls, descriptor: ToolDescriptor, server: "SkyWalkingMCPServer"
    ) -> "BoundTool":
        tool = cls(
            name=descriptor.name,
            title=descriptor.annotations.title,
            description=descriptor.description,
            parameters=descriptor.parameters,
            annotations=descriptor.annotations,
        )
        tool._descriptor = descriptor
        tool._server = server
        return tool

    async def run(self, arguments: Dict[str, Any]) -> ToolResult:
        return await self._server.invoke(self._descriptor, arguments)


class SkyWalkingMCPServer:
    """MCP server with a tool registry and per-invocation request contexts.

    Args:
        context_provider: Called once per invocation to obtain the
            :class:`RequestContext` handed to the tool handler
        read_only: Register only tools annotated read-only
        transport: Transport name recorded on invocation spans
    """

    def __init__(
        self,
        context_provider: ContextProvider,
        read_only: bool = False,
        transport: str = "stdio",
    ):
        self.context_provider = context_provider
        self.read_only = read_only
        self.transport = transport
        self.gate = AdmissionGate()
        self.mcp = FastMCP(
            name=SERVER_NAME,
            instructions=INSTRUCTIONS,
            version=__version__,
            on_duplicate="error",
        )
        self._descriptors: Dict[str, ToolDescriptor] = {}

    @property
    def tool_names(self) -> List[str]:
        return list(self._descriptors)

    def descriptor(self, name: str) -> Optional[ToolDescriptor]:
        return self._descriptors.get(name)

    def add_tool(self, descriptor: ToolDescriptor) -> bool:
        """Register ``descriptor`` and expose it over MCP.

        Returns False when the tool is skipped because the server is
        read-only and the tool is not annotated read-only.

        Raises:
            ToolRegistrationError: a tool with the same name already exists
        """
        if descriptor.name in self._descriptors:
            raise ToolRegistrationError(f"tool {descriptor.name!r} is already registered")

        if self.read_only and not descriptor.read_only:
            logger.info(
                f"Skipping tool {descriptor.name!r} in read-only mode",
                extra={"tool": descriptor.name},
            )
            return False

        self.mcp.add_tool(BoundTool.from_descriptor(descriptor, self))
        self._descriptors[descriptor.name] = descriptor
        logger.debug(f"Registered tool {descriptor.name!r}")
        return True

    async def invoke(
        self, descriptor: ToolDescriptor, arguments: Optional[Dict[str, Any]]
    ) -> ToolResult:
        """Run one tool invocation with a freshly derived context.

        Every failure is raised as :class:`ToolError` carrying the original
        message so it reaches the client as an error result.
        """
        name = descriptor.name
        if self.gate.closed:
            tool_invocations.add(1, {"tool": name, "outcome": "rejected"})
            raise ToolError("server is shutting down")

        ctx = self.context_provider()
        start_time = time.time()

        with tracer.start_as_current_span(f"mcp.tool.{name}") as span:
            add_span_attributes(
                span,
                **{
                    MCPAttributes.MCP_TOOL_NAME: name,
                    MCPAttributes.MCP_TRANSPORT: self.transport,
                    SkyWalkingAttributes.BACKEND_URL: ctx.backend_url,
                    SkyWalkingAttributes.BACKEND_INSECURE: ctx.insecure,
                },
            )
            span.add_event(
                "tool_execution_started",
                {"tool.name": name, "arguments.count": len(arguments or {})},
            )
            logger.info(
                f"Invoking tool {name!r}",
                extra={"tool": name, "backend_url": ctx.backend_url},
            )

            try:
                result = await descriptor.invoke(ctx, arguments)
            except Exception as e:
                set_span_error(span, e)
                span.set_attribute(MCPAttributes.MCP_TOOL_OUTCOME, "error")
                tool_invocations.add(1, {"tool": name, "outcome": "error"})
                tool_duration.record(time.time() - start_time, {"tool": name})
                logger.warning(
                    f"Tool {name!r} failed: {e}",
                    extra={"tool": name, "error_type": type(e).__name__},
                )
                raise ToolError(str(e)) from e

            outcome = "error" if result.is_error else "success"
            span.set_attribute(MCPAttributes.MCP_TOOL_OUTCOME, outcome)
            span.add_event(
                "tool_execution_completed",
                {"result.content_count": len(result.content)},
            )
            tool_invocations.add(1, {"tool": name, "outcome": outcome})
            tool_duration.record(time.time() - start_time, {"tool": name})
            return ToolResult.from_mcp_result(result)

    def install_probes(self, base_path: str = "") -> None:
        """Add ``{base_path}/health`` and ``{base_path}/ready`` HTTP routes."""

        @self.mcp.custom_route(f"{base_path}/health", methods=["GET"])
        async def health_check(request: Request) -> JSONResponse:
            return JSONResponse(
                {
                    "status": "healthy",
                    "service": SERVER_NAME,
                    "version": __version__,
                    "transport": self.transport,
                    "tools": self.tool_names,
                }
            )

        @self.mcp.custom_route(f"{base_path}/ready", methods=["GET"])
        async def readiness_check(request: Request) -> JSONResponse:
            if self.gate.closed:
                return JSONResponse(
                    {"status": "not_ready", "service": SERVER_NAME, "reason": "draining"},
                    status_code=503,
                )
            return JSONResponse({"status": "ready", "service": SERVER_NAME})


def new_stdio_server(config: StdioServerConfig) -> SkyWalkingMCPServer:
    """A server whose invocations share one context derived from ``config``."""
    return SkyWalkingMCPServer(
        stdio_context_provider(config), read_only=config.read_only, transport="stdio"
    )


def new_sse_server(config: SSEServerConfig) -> SkyWalkingMCPServer:
    """A server deriving each invocation's context from the request headers.

    The ``SW-URL`` header of a request overrides the configured backend.
    """
    return SkyWalkingMCPServer(
        http_context_provider(config), read_only=config.read_only, transport="sse"
    )

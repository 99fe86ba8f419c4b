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

"""Instrumentation middleware for the SSE transport.

Spans the SSE connection and message requests, recording the MCP session id
and whether the request overrides the SkyWalking backend through the
``SW-URL`` header. Written as a plain ASGI middleware so streaming
responses are passed through untouched.
"""

from typing import Optional

from opentelemetry.semconv.trace import SpanAttributes
from opentelemetry.trace import SpanKind, Status, StatusCode
from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .context import SW_URL_HEADER
from .telemetry import (
    MCPAttributes,
    SkyWalkingAttributes,
    add_span_attributes,
    get_logger,
    get_tracer,
)

logger = get_logger("http")
tracer = get_tracer()


class MCPInstrumentationMiddleware:
    """Selective span creation for MCP traffic over SSE.

    Probe endpoints (``/health`` and ``/ready``) are not traced.
    """

    def __init__(self, app: ASGIApp, excluded_suffixes: Optional[list] = None):
        self.app = app
        self.excluded_suffixes = excluded_suffixes or ["/health", "/ready"]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or self._should_exclude_path(scope["path"]):
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        operation_name = self._get_operation_name(request)
        status_code = None

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                span.set_attribute(SpanAttributes.HTTP_RESPONSE_STATUS_CODE, status_code)
            await send(message)

        with tracer.start_as_current_span(operation_name, kind=SpanKind.SERVER) as span:
            add_span_attributes(span, **self._build_span_attributes(request))
            try:
                await self.app(scope, receive, send_wrapper)
            except Exception as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                span.set_attribute("error.type", e.__class__.__name__)
                logger.error(
                    f"{operation_name} failed",
                    exc_info=True,
                    extra={"path": request.url.path},
                )
                raise

            if status_code is not None and status_code >= 400:
                span.set_status(Status(StatusCode.ERROR, f"HTTP {status_code}"))

    def _should_exclude_path(self, path: str) -> bool:
        return any(path.endswith(suffix) for suffix in self.excluded_suffixes)

    def _extract_session_id(self, request: Request) -> Optional[str]:
        # SSE message posts carry the session in the query string
        return request.query_params.get("session_id") or request.headers.get(
            "mcp-session-id"
        )

    def _get_operation_name(self, request: Request) -> str:
        if request.method == "GET" and request.url.path.endswith("/sse"):
            return "mcp.session.sse_connect"
        if request.method == "POST" and "/messages" in request.url.path:
            return "mcp.session.message"
        return f"{request.method} {request.url.path}"

    def _build_span_attributes(self, request: Request) -> dict:
        attributes = {
            SpanAttributes.HTTP_REQUEST_METHOD: request.method,
            SpanAttributes.URL_PATH: request.url.path,
            SpanAttributes.URL_SCHEME: request.url.scheme,
            SpanAttributes.SERVER_ADDRESS: request.url.hostname or "localhost",
            MCPAttributes.MCP_TRANSPORT: "sse",
            SkyWalkingAttributes.BACKEND_OVERRIDE: SW_URL_HEADER in request.headers,
        }
        if request.url.port:
            attributes[SpanAttributes.SERVER_PORT] = request.url.port
        if request.client:
            attributes[SpanAttributes.CLIENT_ADDRESS] = request.client.host

        session_id = self._extract_session_id(request)
        if session_id:
            attributes[MCPAttributes.MCP_SESSION_ID] = session_id
        return attributes

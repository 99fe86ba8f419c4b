"""Tests for the SSE instrumentation middleware."""

import httpx
import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import SpanKind, StatusCode
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.responses import PlainTextResponse
from starlette.routing import Route

import skywalking_mcp.mcp_instrumentation_middleware as middleware_module
from skywalking_mcp.mcp_instrumentation_middleware import MCPInstrumentationMiddleware


async def ok(request):
    return PlainTextResponse("ok")


async def accepted(request):
    return PlainTextResponse("Accepted", status_code=202)


async def missing_session(request):
    return PlainTextResponse("Could not find session", status_code=404)


async def boom(request):
    raise RuntimeError("handler exploded")


def build_app():
    return Starlette(
        routes=[
            Route("/sse", ok),
            Route("/messages/", accepted, methods=["POST"]),
            Route("/stale/messages/", missing_session, methods=["POST"]),
            Route("/health", ok),
            Route("/boom", boom),
        ],
        middleware=[Middleware(MCPInstrumentationMiddleware)],
    )


@pytest.fixture
def spans(monkeypatch):
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    monkeypatch.setattr(middleware_module, "tracer", provider.get_tracer(__name__))
    return exporter


@pytest.fixture
def client():
    transport = httpx.ASGITransport(app=build_app(), raise_app_exceptions=False)
    return httpx.AsyncClient(transport=transport, base_url="http://testserver")


class TestMCPInstrumentationMiddleware:
    @pytest.mark.asyncio
    async def test_sse_connect_span(self, client, spans):
        async with client:
            await client.get("/sse", headers={"SW-URL": "http://x/graphql"})

        (span,) = spans.get_finished_spans()
        assert span.name == "mcp.session.sse_connect"
        assert span.kind == SpanKind.SERVER
        assert span.attributes["mcp.transport"] == "sse"
        assert span.attributes["skywalking.backend.override"] is True
        assert span.attributes["http.response.status_code"] == 200

    @pytest.mark.asyncio
    async def test_message_span_records_session(self, client, spans):
        async with client:
            await client.post("/messages/?session_id=abc123", json={})

        (span,) = spans.get_finished_spans()
        assert span.name == "mcp.session.message"
        assert span.attributes["mcp.session.id"] == "abc123"
        assert span.attributes["skywalking.backend.override"] is False

    @pytest.mark.asyncio
    async def test_error_status(self, client, spans):
        async with client:
            await client.post("/stale/messages/?session_id=gone", json={})

        (span,) = spans.get_finished_spans()
        assert span.status.status_code == StatusCode.ERROR

    @pytest.mark.asyncio
    async def test_probes_not_traced(self, client, spans):
        async with client:
            response = await client.get("/health")

        assert response.status_code == 200
        assert spans.get_finished_spans() == ()

    @pytest.mark.asyncio
    async def test_exception_marks_span(self, client, spans):
        async with client:
            response = await client.get("/boom")

        assert response.status_code == 500
        (span,) = spans.get_finished_spans()
        assert span.name == "GET /boom"
        assert span.status.status_code == StatusCode.ERROR
        assert span.attributes["error.type"] == "RuntimeError"

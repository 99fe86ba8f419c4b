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

"""OpenTelemetry telemetry configuration and logging setup."""

import logging
import os
import sys
from typing import Optional

from opentelemetry import trace, metrics
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.semconv.resource import ResourceAttributes
from opentelemetry.trace import Status, StatusCode

from . import SERVER_NAME, __version__
from .errors import ConfigurationError

LOG_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - "
    "[trace_id=%(otelTraceID)s span_id=%(otelSpanID)s] - %(message)s"
)

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class TelemetryConfig:
    """Centralized OpenTelemetry configuration and setup.

    Spans and metrics are exported over OTLP only when
    ``OTEL_EXPORTER_OTLP_ENDPOINT`` is set; otherwise the providers are
    installed without exporters so instrumentation stays cheap.
    """

    def __init__(self):
        self.service_name = os.getenv("SERVICE_NAME", SERVER_NAME)
        self.service_instance_id = os.getenv("SERVICE_INSTANCE_ID", "local")
        self.otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")

        self._tracer: Optional[trace.Tracer] = None
        self._meter: Optional[metrics.Meter] = None
        self._initialized = False

    def initialize(self) -> None:
        """Initialize OpenTelemetry SDK with proper configuration."""
        if self._initialized:
            return

        resource = Resource.create(
            {
                ResourceAttributes.SERVICE_NAME: self.service_name,
                ResourceAttributes.SERVICE_VERSION: __version__,
                ResourceAttributes.SERVICE_INSTANCE_ID: self.service_instance_id,
                "service.namespace": "skywalking",
                "service.type": "mcp_server",
                "process.pid": os.getpid(),
            }
        )

        self._setup_tracing(resource)
        self._setup_metrics(resource)

        self._initialized = True

    def _setup_tracing(self, resource: Resource) -> None:
        tracer_provider = TracerProvider(resource=resource)

        if self.otlp_endpoint:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
                OTLPSpanExporter,
            )

            span_exporter = OTLPSpanExporter(endpoint=self.otlp_endpoint)
            tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))

        trace.set_tracer_provider(tracer_provider)
        self._tracer = trace.get_tracer(__name__)

    def _setup_metrics(self, resource: Resource) -> None:
        metric_readers = []
        if self.otlp_endpoint:
            from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
                OTLPMetricExporter,
            )

            metric_readers.append(
                PeriodicExportingMetricReader(
                    exporter=OTLPMetricExporter(endpoint=self.otlp_endpoint),
                    export_interval_millis=30000,  # Export every 30 seconds
                )
            )

        meter_provider = MeterProvider(
            resource=resource, metric_readers=metric_readers
        )
        metrics.set_meter_provider(meter_provider)
        self._meter = metrics.get_meter(__name__)

    @property
    def tracer(self) -> trace.Tracer:
        """Get the configured tracer."""
        if not self._initialized:
            self.initialize()
        return self._tracer

    @property
    def meter(self) -> metrics.Meter:
        """Get the configured meter."""
        if not self._initialized:
            self.initialize()
        return self._meter


# Global telemetry instance
telemetry = TelemetryConfig()


def get_tracer() -> trace.Tracer:
    """Get the global tracer instance."""
    return telemetry.tracer


def get_meter() -> metrics.Meter:
    """Get the global meter instance."""
    return telemetry.meter


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger below the service logger."""
    base = "skywalking_mcp"
    return logging.getLogger(f"{base}.{name}" if name else base)


class TraceContextFilter(logging.Filter):
    """Stamp records with the active span's trace and span ids."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = trace.get_current_span().get_span_context()
        if ctx.is_valid:
            record.otelTraceID = trace.format_trace_id(ctx.trace_id)
            record.otelSpanID = trace.format_span_id(ctx.span_id)
        else:
            record.otelTraceID = "0"
            record.otelSpanID = "0"
        return True


def parse_log_level(level: Optional[str]) -> int:
    """Map a level name to a ``logging`` level, defaulting to INFO."""
    if not level:
        return logging.INFO
    return _LOG_LEVELS.get(level.strip().lower(), logging.INFO)


def configure_logging(
    level: Optional[str] = "info", log_file_path: Optional[str] = None
) -> logging.Handler:
    """Configure root logging with trace correlation.

    Records go to ``log_file_path`` (opened for append) when given and to
    stderr otherwise. Standard output is never used because the stdio
    transport owns it.
    """
    if log_file_path:
        try:
            handler: logging.Handler = logging.FileHandler(
                log_file_path, mode="a", encoding="utf-8"
            )
        except OSError as e:
            raise ConfigurationError(f"failed to open log file: {e}") from e
    else:
        handler = logging.StreamHandler(sys.stderr)

    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(TraceContextFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(parse_log_level(level))
    return handler


def set_span_error(span: trace.Span, error: Exception) -> None:
    """Set span status to error and record exception details."""
    span.set_status(Status(StatusCode.ERROR, str(error)))
    span.record_exception(error)


def add_span_attributes(span: trace.Span, **attributes) -> None:
    """Add multiple attributes to a span safely."""
    for key, value in attributes.items():
        if value is not None:
            # Convert to string if not already
            if not isinstance(value, (str, int, float, bool)):
                value = str(value)
            span.set_attribute(key, value)


# MCP-specific semantic conventions
# Following OpenTelemetry naming conventions: https://opentelemetry.io/docs/specs/semconv/
class MCPAttributes:
    """MCP-specific span attributes following OpenTelemetry semantic conventions."""

    MCP_TOOL_NAME = "mcp.tool.name"
    MCP_TOOL_OUTCOME = "mcp.tool.outcome"
    MCP_TRANSPORT = "mcp.transport"
    MCP_SESSION_ID = "mcp.session.id"


class SkyWalkingAttributes:
    """Attributes describing the SkyWalking backend a request targets."""

    BACKEND_URL = "skywalking.backend.url"
    BACKEND_INSECURE = "skywalking.backend.insecure"
    BACKEND_OVERRIDE = "skywalking.backend.override"
    TRACE_ID = "skywalking.trace.id"

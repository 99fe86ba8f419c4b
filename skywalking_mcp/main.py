#!/usr/bin/env python3
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

"""SkyWalking MCP Server command line."""

import argparse
import asyncio
import sys
from typing import List, Optional, Union

from opentelemetry.semconv.trace import SpanAttributes

from . import __version__
from .config import (
    DEFAULT_LOG_LEVEL,
    DEFAULT_SSE_ADDRESS,
    DEFAULT_SW_URL,
    SSEServerConfig,
    StdioServerConfig,
    env_flag,
    env_setting,
)
from .errors import ConfigurationError, TransportError
from .lifecycle import shutdown_on_signals
from .sse import SSERunner
from .stdio import StdioRunner
from .telemetry import (
    MCPAttributes,
    add_span_attributes,
    configure_logging,
    get_logger,
    get_tracer,
    set_span_error,
    telemetry,
)

logger = get_logger("main")

Runner = Union[StdioRunner, SSERunner]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="skywalking-mcp",
        description="Model Context Protocol server for Apache SkyWalking.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--sw-url",
        help=f"SkyWalking OAP URL (env SW_URL); required for stdio, sse falls back to {DEFAULT_SW_URL}",
    )
    parser.add_argument(
        "--log-level",
        help=f"Logging level: debug, info, warn, error (env SW_LOG_LEVEL, default {DEFAULT_LOG_LEVEL})",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        default=None,
        help="Only register read-only tools (env SW_READ_ONLY)",
    )
    parser.add_argument(
        "--log-command",
        action="store_true",
        default=None,
        help="Log every line exchanged over stdio (env SW_LOG_COMMAND)",
    )
    parser.add_argument("--log-file", help="Append logs to this file (env SW_LOG_FILE)")

    subcommands = parser.add_subparsers(dest="transport", metavar="{stdio,sse}")
    subcommands.required = True
    subcommands.add_parser("stdio", help="Serve MCP over standard input/output")

    sse = subcommands.add_parser("sse", help="Serve MCP over HTTP server-sent events")
    sse.add_argument(
        "--sse-address",
        help=f"host:port to listen on (env SW_SSE_ADDRESS, default {DEFAULT_SSE_ADDRESS})",
    )
    sse.add_argument(
        "--base-path",
        help="Path prefix for every endpoint (env SW_BASE_PATH)",
    )
    return parser


def _pick(flag, env_name: str, default):
    if flag is not None:
        return flag
    return env_setting(env_name, default)


def _pick_flag(flag: Optional[bool], env_name: str) -> bool:
    if flag is not None:
        return flag
    return env_flag(env_name)


def resolve_stdio_config(args: argparse.Namespace) -> StdioServerConfig:
    """Stdio settings from flags, then ``SW_*`` variables, then defaults."""
    return StdioServerConfig(
        url=_pick(args.sw_url, "url", None),
        read_only=_pick_flag(args.read_only, "read_only"),
        log_file_path=_pick(args.log_file, "log_file", None),
        log_commands=_pick_flag(args.log_command, "log_command"),
        log_level=_pick(args.log_level, "log_level", DEFAULT_LOG_LEVEL),
    )


def resolve_sse_config(args: argparse.Namespace) -> SSEServerConfig:
    """SSE settings from flags, then ``SW_*`` variables, then defaults.

    Without a URL the per-request ``SW-URL`` header or the default applies.
    """
    return SSEServerConfig(
        url=_pick(args.sw_url, "url", None),
        address=_pick(args.sse_address, "sse_address", DEFAULT_SSE_ADDRESS),
        base_path=_pick(args.base_path, "base_path", ""),
        read_only=_pick_flag(args.read_only, "read_only"),
        log_file_path=_pick(args.log_file, "log_file", None),
        log_level=_pick(args.log_level, "log_level", DEFAULT_LOG_LEVEL),
    )


def build_runner(args: argparse.Namespace) -> Runner:
    """Resolve configuration, set up logging and construct the runner.

    Raises:
        ConfigurationError: a setting is missing or invalid
    """
    if args.transport == "stdio":
        config = resolve_stdio_config(args)
        configure_logging(config.log_level, config.log_file_path)
        return StdioRunner(config)

    config = resolve_sse_config(args)
    configure_logging(config.log_level, config.log_file_path)
    return SSERunner(config)


async def serve(runner: Runner) -> None:
    """Run ``runner`` until SIGINT/SIGTERM or until it stops on its own."""
    shutdown = asyncio.Event()
    with shutdown_on_signals(shutdown):
        await runner.run(shutdown)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the MCP server."""
    args = build_parser().parse_args(argv)
    telemetry.initialize()
    tracer = get_tracer()

    with tracer.start_as_current_span("mcp.server.main") as span:
        add_span_attributes(
            span,
            **{
                SpanAttributes.CODE_FUNCTION: "main",
                MCPAttributes.MCP_TRANSPORT: args.transport,
            },
        )
        try:
            runner = build_runner(args)
        except ConfigurationError as e:
            set_span_error(span, e)
            print(f"configuration error: {e}", file=sys.stderr)
            return 1

        span.add_event("server_starting", {"transport": args.transport})
        try:
            asyncio.run(serve(runner))
        except TransportError as e:
            set_span_error(span, e)
            logger.error(str(e), extra={"transport": args.transport})
            print(str(e), file=sys.stderr)
            return 1

        span.add_event("server_stopped", {"state": runner.state.value})
        logger.info("Server stopped", extra={"transport": args.transport})
        return 0


if __name__ == "__main__":
    sys.exit(main())

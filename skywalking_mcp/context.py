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

"""Request context and the enrichment chain that derives it.

Every tool invocation receives a :class:`RequestContext` telling it which
SkyWalking OAP GraphQL endpoint to query. The stdio transport derives it
once from static configuration; the SSE transport derives it for each
request, honouring the ``SW-URL`` header.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Union

from .config import DEFAULT_SW_URL, SSEServerConfig, StdioServerConfig

GRAPHQL_SUFFIX = "/graphql"
SW_URL_HEADER = "SW-URL"

ServerConfig = Union[StdioServerConfig, SSEServerConfig]


@dataclass(frozen=True)
class RequestContext:
    """Immutable per-request data handed to tool handlers."""

    backend_url: str = ""
    insecure: bool = False
    read_only: bool = False
    values: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def with_value(self, key: str, value: Any) -> "RequestContext":
        values = dict(self.values)
        values[key] = value
        return replace(self, values=MappingProxyType(values))

    def value(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)


StdioContextFunc = Callable[[RequestContext], RequestContext]
HTTPContextFunc = Callable[[RequestContext, Mapping[str, str]], RequestContext]


def ensure_graphql_suffix(url: str) -> str:
    """Return ``url`` ending in exactly one ``/graphql`` segment."""
    trimmed = url.rstrip("/")
    if trimmed.endswith(GRAPHQL_SUFFIX):
        return trimmed
    return trimmed + GRAPHQL_SUFFIX


def with_skywalking_url_and_insecure(
    ctx: RequestContext, url: str, read_only: bool = False
) -> RequestContext:
    """Attach the backend URL to ``ctx``; transport security stays enabled."""
    return replace(ctx, backend_url=url, insecure=False, read_only=read_only)


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        wanted = name.lower()
        for key, candidate in headers.items():
            if key.lower() == wanted:
                value = candidate
                break
    return value or None


def extract_url_from_config(config: ServerConfig) -> StdioContextFunc:
    """Enrichment step deriving the backend URL from static configuration."""

    def extract(ctx: RequestContext) -> RequestContext:
        url = config.url or DEFAULT_SW_URL
        return with_skywalking_url_and_insecure(
            ctx, ensure_graphql_suffix(url), read_only=config.read_only
        )

    return extract


def extract_url_from_headers(config: ServerConfig) -> HTTPContextFunc:
    """Enrichment step preferring the ``SW-URL`` header over configuration."""

    def extract(ctx: RequestContext, headers: Mapping[str, str]) -> RequestContext:
        url = _header(headers, SW_URL_HEADER) or config.url or DEFAULT_SW_URL
        return with_skywalking_url_and_insecure(
            ctx, ensure_graphql_suffix(url), read_only=config.read_only
        )

    return extract


def compose_stdio_context_funcs(*funcs: StdioContextFunc) -> StdioContextFunc:
    def composed(ctx: RequestContext) -> RequestContext:
        for func in funcs:
            ctx = func(ctx)
        return ctx

    return composed


def compose_http_context_funcs(*funcs: HTTPContextFunc) -> HTTPContextFunc:
    def composed(ctx: RequestContext, headers: Mapping[str, str]) -> RequestContext:
        for func in funcs:
            ctx = func(ctx, headers)
        return ctx

    return composed


def stdio_context_func(config: ServerConfig) -> StdioContextFunc:
    """The enrichment chain used by the stdio transport."""
    return compose_stdio_context_funcs(extract_url_from_config(config))


def http_context_func(config: ServerConfig) -> HTTPContextFunc:
    """The enrichment chain used by the SSE transport."""
    return compose_http_context_funcs(extract_url_from_headers(config))

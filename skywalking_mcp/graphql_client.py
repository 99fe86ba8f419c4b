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

"""
Minimal client for the SkyWalking OAP GraphQL query protocol.

Only the queries needed by the registered tools are implemented. The
endpoint and TLS verification come from the :class:`RequestContext` of the
invocation, never from process-wide state.
"""

from typing import Any, ClassVar, Dict, Optional

import httpx
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from . import SERVER_NAME, __version__
from .context import RequestContext
from .errors import BackendError
from .telemetry import get_logger

logger = get_logger("graphql")

TRACE_QUERY = """
query queryTrace($traceId: ID!) {
  result: queryTrace(traceId: $traceId) {
    spans {
      traceId
      segmentId
      spanId
      parentSpanId
      refs { traceId parentSegmentId parentSpanId type }
      serviceCode
      serviceInstanceName
      startTime
      endTime
      endpointName
      type
      peer
      component
      isError
      layer
      tags { key value }
      logs { time data { key value } }
    }
  }
}
"""


class GraphQLClient:
    """Async GraphQL client bound to one SkyWalking OAP endpoint."""

    _DEFAULT_TIMEOUT: ClassVar[float] = 30.0

    def __init__(
        self,
        url: str,
        insecure: bool = False,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not url:
            raise BackendError("no SkyWalking GraphQL endpoint configured")
        self.url = url
        self.insecure = insecure
        self._timeout = timeout or self._DEFAULT_TIMEOUT
        self._transport = transport

    @classmethod
    def from_context(
        cls, ctx: RequestContext, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "GraphQLClient":
        return cls(ctx.backend_url, insecure=ctx.insecure, transport=transport)

    async def execute(
        self, query: str, variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Run ``query`` and return its ``data`` object."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": f"{SERVER_NAME}/{__version__}",
        }
        payload = {"query": query, "variables": variables or {}}

        async with httpx.AsyncClient(
            timeout=self._timeout,
            verify=not self.insecure,
            transport=self._transport,
        ) as client:
            HTTPXClientInstrumentor.instrument_client(client)
            try:
                response = await client.post(self.url, json=payload, headers=headers)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise BackendError(
                    f"GraphQL request to {self.url} returned status {e.response.status_code}"
                ) from e
            except httpx.HTTPError as e:
                raise BackendError(
                    f"GraphQL request to {self.url} failed: {type(e).__name__}: {e}"
                ) from e

        try:
            body = response.json()
        except ValueError as e:
            raise BackendError(f"invalid JSON from {self.url}: {e}") from e

        if not isinstance(body, dict):
            raise BackendError(f"unexpected GraphQL response from {self.url}")

        errors = body.get("errors")
        if errors:
            messages = "; ".join(
                str(error.get("message", error)) if isinstance(error, dict) else str(error)
                for error in errors
            )
            raise BackendError(messages)

        data = body.get("data")
        if data is None:
            raise BackendError(f"GraphQL response from {self.url} has no data")
        return data

    async def query_trace(self, trace_id: str) -> Dict[str, Any]:
        """Fetch all spans of a trace."""
        logger.debug("Querying trace", extra={"trace_id": trace_id, "url": self.url})
        data = await self.execute(TRACE_QUERY, {"traceId": trace_id})
        return data.get("result") or {"spans": []}

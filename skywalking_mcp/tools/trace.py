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

"""Trace query tools."""

from typing import Any, Dict

from opentelemetry import trace
from pydantic import BaseModel, Field

from ..context import RequestContext
from ..errors import BackendError
from ..graphql_client import GraphQLClient
from ..telemetry import SkyWalkingAttributes
from .base import Tool


class TraceRequest(BaseModel):
    trace_id: str = Field(description="The TraceId to search for")


async def search_trace(ctx: RequestContext, req: TraceRequest) -> Dict[str, Any]:
    trace.get_current_span().set_attribute(SkyWalkingAttributes.TRACE_ID, req.trace_id)
    try:
        return await GraphQLClient.from_context(ctx).query_trace(req.trace_id)
    except BackendError as e:
        raise BackendError(f"search trace {req.trace_id} failed: {e}") from e


SEARCH_TRACE_TOOL: Tool[TraceRequest, Dict[str, Any]] = Tool(
    name="search_trace_by_trace_id",
    description="Search for traces by a single TraceId",
    handler=search_trace,
    args_type=TraceRequest,
    options={
        "title": "Search a trace by TraceId",
        "read_only_hint": True,
        "parameters": {"trace_id": {"required": True}},
    },
)


def add_trace_tools(server) -> None:
    SEARCH_TRACE_TOOL.register(server)

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

"""MCP tools exposed by the server."""

from .base import Tool, ToolDescriptor, convert_tool, encode_result
from .trace import add_trace_tools


def add_all_tools(server) -> None:
    """Register every tool shipped with the server."""
    add_trace_tools(server)


__all__ = [
    "Tool",
    "ToolDescriptor",
    "add_all_tools",
    "convert_tool",
    "encode_result",
]

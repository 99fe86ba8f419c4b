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

"""Exception hierarchy for the SkyWalking MCP server.

Startup and transport errors escape to the process and decide the exit
code. Binding, serialization and backend errors are confined to the single
tool invocation that raised them.
"""


class SkyWalkingMCPError(Exception):
    """Base class for all SkyWalking MCP server errors."""

    pass


class ConfigurationError(SkyWalkingMCPError):
    """A required setting is missing or invalid."""

    pass


class ToolRegistrationError(SkyWalkingMCPError):
    """A tool could not be converted or registered (programming error)."""

    pass


class BindingError(SkyWalkingMCPError):
    """Tool arguments do not satisfy the handler's argument type."""

    pass


class SerializationError(SkyWalkingMCPError):
    """A tool result could not be encoded for transport."""

    pass


class BackendError(SkyWalkingMCPError):
    """The SkyWalking GraphQL backend returned an error or an unusable payload."""

    pass


class TransportError(SkyWalkingMCPError):
    """The transport failed to start or crashed while serving."""

    pass


class ShutdownTimeoutError(SkyWalkingMCPError):
    """Graceful shutdown did not finish within the allotted window."""

    def __init__(self, timeout: float):
        super().__init__(f"shutdown timed out after {timeout:g}s")
        self.timeout = timeout

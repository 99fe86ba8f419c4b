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

"""Server configuration for the stdio and SSE transports."""

import os
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigurationError

DEFAULT_SW_URL = "http://localhost:12800"
DEFAULT_SSE_ADDRESS = "localhost:8000"
DEFAULT_LOG_LEVEL = "info"

DEFAULT_SHUTDOWN_TIMEOUT = 10.0
DEFAULT_SHUTDOWN_GRACE_PERIOD = 0.1
DEFAULT_STARTUP_DELAY = 0.1

ENV_PREFIX = "SW_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class StdioServerConfig:
    """Settings for a server speaking MCP over standard input/output."""

    url: str
    read_only: bool = False
    log_file_path: Optional[str] = None
    log_commands: bool = False
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self):
        if not self.url:
            raise ConfigurationError("SW_URL must be specified")


@dataclass(frozen=True)
class SSEServerConfig:
    """Settings for a server speaking MCP over HTTP server-sent events."""

    url: Optional[str] = None
    address: str = DEFAULT_SSE_ADDRESS
    base_path: str = ""
    read_only: bool = False
    log_file_path: Optional[str] = None
    log_level: str = DEFAULT_LOG_LEVEL
    shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT
    shutdown_grace_period: float = DEFAULT_SHUTDOWN_GRACE_PERIOD
    startup_delay: float = DEFAULT_STARTUP_DELAY

    def __post_init__(self):
        if not self.address:
            raise ConfigurationError("SSE listen address must not be empty")
        if self.base_path and not self.base_path.startswith("/"):
            raise ConfigurationError(
                f"base path must start with '/', got {self.base_path!r}"
            )
        if self.shutdown_timeout <= 0:
            raise ConfigurationError("shutdown timeout must be positive")

    @property
    def normalized_base_path(self) -> str:
        return self.base_path.rstrip("/")


def env_setting(name: str, default: Optional[str] = None) -> Optional[str]:
    """Read a ``SW_``-prefixed environment variable.

    Dots and dashes in ``name`` are replaced with underscores, so
    ``env_setting("log-file")`` reads ``SW_LOG_FILE``.
    """
    key = ENV_PREFIX + name.upper().replace(".", "_").replace("-", "_")
    return os.getenv(key, default)


def env_flag(name: str, default: bool = False) -> bool:
    """Read a boolean ``SW_``-prefixed environment variable."""
    raw = env_setting(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(
        f"{ENV_PREFIX}{name.upper().replace('-', '_')} must be a boolean, got {raw!r}"
    )

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

"""Logging wrapper for the stdio transport streams."""

import io
import logging
from typing import Optional, TextIO

from .telemetry import get_logger


class IOLogger(io.TextIOBase):
    """Text stream that logs every chunk read from ``reader`` or written to ``writer``.

    Data passes through unchanged, so one instance can stand in for both
    stdin and stdout.
    """

    def __init__(
        self, reader: TextIO, writer: TextIO, logger: Optional[logging.Logger] = None
    ):
        super().__init__()
        self._reader = reader
        self._writer = writer
        self._logger = logger or get_logger("stdio")

    def readable(self) -> bool:
        return True

    def writable(self) -> bool:
        return True

    def read(self, size: Optional[int] = -1) -> str:
        data = self._reader.read(size)
        self._log_received(data)
        return data

    def readline(self, size: Optional[int] = -1) -> str:
        line = self._reader.readline(size)
        self._log_received(line)
        return line

    def write(self, data: str) -> int:
        written = self._writer.write(data)
        if data:
            self._logger.info(
                "[stdout]: sending %d bytes: %s",
                len(data.encode("utf-8")),
                data.rstrip("\n"),
            )
        return written

    def flush(self) -> None:
        self._writer.flush()

    def _log_received(self, data: str) -> None:
        if data:
            self._logger.info(
                "[stdin]: received %d bytes: %s",
                len(data.encode("utf-8")),
                data.rstrip("\n"),
            )

"""Tests for the stdio logging stream wrapper."""

import io
import logging

from skywalking_mcp.io_logger import IOLogger


def make_logger(name="test.io"):
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    return logger


class TestIOLogger:
    def test_readline_passes_data_through(self, caplog):
        reader = io.StringIO('{"jsonrpc":"2.0"}\nsecond\n')
        stream = IOLogger(reader, io.StringIO(), make_logger())

        with caplog.at_level(logging.INFO, logger="test.io"):
            assert stream.readline() == '{"jsonrpc":"2.0"}\n'

        assert caplog.messages == ['[stdin]: received 18 bytes: {"jsonrpc":"2.0"}']

    def test_byte_count_is_utf8_length(self, caplog):
        stream = IOLogger(io.StringIO("é\n"), io.StringIO(), make_logger())

        with caplog.at_level(logging.INFO, logger="test.io"):
            stream.readline()

        assert caplog.messages == ["[stdin]: received 3 bytes: é"]

    def test_write_passes_data_through(self, caplog):
        writer = io.StringIO()
        stream = IOLogger(io.StringIO(), writer, make_logger())

        with caplog.at_level(logging.INFO, logger="test.io"):
            written = stream.write('{"id":1}\n')
            stream.flush()

        assert written == 9
        assert writer.getvalue() == '{"id":1}\n'
        assert caplog.messages == ['[stdout]: sending 9 bytes: {"id":1}']

    def test_eof_is_not_logged(self, caplog):
        stream = IOLogger(io.StringIO(""), io.StringIO(), make_logger())

        with caplog.at_level(logging.INFO, logger="test.io"):
            assert stream.readline() == ""
            assert stream.read() == ""

        assert caplog.messages == []

    def test_iteration_reads_lines(self):
        stream = IOLogger(io.StringIO("a\nb\n"), io.StringIO(), make_logger())
        assert list(stream) == ["a\n", "b\n"]

    def test_readable_and_writable(self):
        stream = IOLogger(io.StringIO(), io.StringIO(), make_logger())
        assert stream.readable() is True
        assert stream.writable() is True

    def test_default_logger(self):
        stream = IOLogger(io.StringIO(), io.StringIO())
        assert stream._logger.name == "skywalking_mcp.stdio"

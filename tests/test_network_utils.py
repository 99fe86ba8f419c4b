"""Tests for listen address parsing and socket binding."""

import socket
from unittest.mock import patch

import pytest

from skywalking_mcp.errors import ConfigurationError, TransportError
from skywalking_mcp.network_utils import (
    ListenAddress,
    bind_listen_socket,
    bound_port,
    default_wildcard_host,
    parse_listen_address,
)


class TestParseListenAddress:
    """Test ``host:port`` parsing."""

    def test_host_and_port(self):
        assert parse_listen_address("localhost:8000") == ListenAddress("localhost", 8000)

    def test_ipv4(self):
        address = parse_listen_address("127.0.0.1:9000")
        assert address.host == "127.0.0.1"
        assert address.port == 9000
        assert address.family == socket.AF_INET

    def test_bracketed_ipv6(self):
        address = parse_listen_address("[::1]:8000")
        assert address.host == "::1"
        assert address.family == socket.AF_INET6
        assert str(address) == "[::1]:8000"

    def test_missing_host_uses_wildcard(self):
        with patch(
            "skywalking_mcp.network_utils.default_wildcard_host", return_value="0.0.0.0"
        ):
            address = parse_listen_address(":8000")
        assert address == ListenAddress("0.0.0.0", 8000)
        assert address.is_wildcard is True

    @pytest.mark.parametrize(
        "address, message",
        [
            ("localhost", "missing port"),
            ("::1:8000", "must be bracketed"),
            ("localhost:http", "is not a number"),
            ("localhost:70000", "out of range"),
        ],
    )
    def test_invalid(self, address, message):
        with pytest.raises(ConfigurationError, match=message):
            parse_listen_address(address)


class TestListenAddress:
    def test_hostname_treated_as_ipv4(self):
        assert ListenAddress("localhost", 80).family == socket.AF_INET
        assert ListenAddress("localhost", 80).url_host == "localhost"

    def test_ipv6_url_host(self):
        assert ListenAddress("::", 80).url_host == "[::]"
        assert ListenAddress("::", 80).is_wildcard is True


class TestDefaultWildcardHost:
    def test_dual_stack(self):
        with patch("socket.has_ipv6", True), patch(
            "socket.has_dualstack_ipv6", return_value=True
        ):
            assert default_wildcard_host() == "::"

    def test_ipv4_only(self):
        with patch("socket.has_ipv6", False):
            assert default_wildcard_host() == "0.0.0.0"


class TestBindListenSocket:
    def test_binds_ephemeral_port(self):
        sock = bind_listen_socket(ListenAddress("127.0.0.1", 0))
        try:
            assert bound_port(sock) > 0
        finally:
            sock.close()

    def test_port_in_use(self):
        taken = socket.create_server(("127.0.0.1", 0))
        try:
            address = ListenAddress("127.0.0.1", bound_port(taken))
            with pytest.raises(TransportError, match="failed to listen on 127.0.0.1"):
                bind_listen_socket(address)
        finally:
            taken.close()

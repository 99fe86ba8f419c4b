"""Tests for the command line entry point."""

from unittest.mock import patch

import pytest

from skywalking_mcp import __version__
from skywalking_mcp import main as cli
from skywalking_mcp.config import DEFAULT_SSE_ADDRESS
from skywalking_mcp.errors import ConfigurationError, TransportError
from skywalking_mcp.lifecycle import RunnerState

URL = "http://oap:12800"

ENV_VARS = [
    "SW_URL",
    "SW_LOG_LEVEL",
    "SW_READ_ONLY",
    "SW_LOG_COMMAND",
    "SW_LOG_FILE",
    "SW_SSE_ADDRESS",
    "SW_BASE_PATH",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def no_logging_setup():
    with patch.object(cli, "configure_logging") as configure:
        yield configure


def parse(*argv):
    return cli.build_parser().parse_args(list(argv))


class TestParser:
    def test_transport_required(self):
        with pytest.raises(SystemExit):
            parse()

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            parse("--version")
        assert exc.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_sse_flags(self):
        args = parse("--sw-url", "http://x", "sse", "--sse-address", ":9000", "--base-path", "/mcp")
        assert args.transport == "sse"
        assert args.sw_url == "http://x"
        assert args.sse_address == ":9000"
        assert args.base_path == "/mcp"


class TestResolveConfig:
    def test_stdio_requires_url(self):
        with pytest.raises(ConfigurationError, match="SW_URL must be specified"):
            cli.resolve_stdio_config(parse("stdio"))

    def test_stdio_defaults(self):
        config = cli.resolve_stdio_config(parse("--sw-url", URL, "stdio"))

        assert config.url == URL
        assert config.read_only is False
        assert config.log_commands is False
        assert config.log_level == "info"
        assert config.log_file_path is None

    def test_sse_defaults(self):
        config = cli.resolve_sse_config(parse("sse"))

        assert config.url is None
        assert config.address == DEFAULT_SSE_ADDRESS
        assert config.base_path == ""

    def test_environment_seeds_settings(self, monkeypatch):
        monkeypatch.setenv("SW_URL", "http://env:12800")
        monkeypatch.setenv("SW_READ_ONLY", "true")
        monkeypatch.setenv("SW_LOG_COMMAND", "1")
        monkeypatch.setenv("SW_LOG_LEVEL", "debug")

        config = cli.resolve_stdio_config(parse("stdio"))

        assert config.url == "http://env:12800"
        assert config.read_only is True
        assert config.log_commands is True
        assert config.log_level == "debug"

    def test_flags_win_over_environment(self, monkeypatch):
        monkeypatch.setenv("SW_URL", "http://env:12800")
        monkeypatch.setenv("SW_SSE_ADDRESS", "0.0.0.0:1")
        monkeypatch.setenv("SW_BASE_PATH", "/env")

        config = cli.resolve_sse_config(
            parse("--sw-url", "http://flag", "sse", "--sse-address", ":2", "--base-path", "/flag")
        )

        assert config.url == "http://flag"
        assert config.address == ":2"
        assert config.base_path == "/flag"

    def test_read_only_flag(self, monkeypatch):
        monkeypatch.setenv("SW_READ_ONLY", "false")
        config = cli.resolve_sse_config(parse("--read-only", "sse"))
        assert config.read_only is True


class TestMain:
    def test_configuration_error_exits_1(self, no_logging_setup, capsys):
        assert cli.main(["sse", "--base-path", "no-slash"]) == 1
        assert "configuration error" in capsys.readouterr().err

    def test_missing_stdio_url_exits_1(self, no_logging_setup, capsys):
        assert cli.main(["stdio"]) == 1
        assert "SW_URL must be specified" in capsys.readouterr().err

    def test_invalid_address_exits_1(self, no_logging_setup):
        assert cli.main(["sse", "--sse-address", "nowhere"]) == 1

    def test_transport_error_exits_1(self, no_logging_setup, capsys):
        async def crash(runner):
            raise TransportError("sse server error: boom")

        with patch.object(cli, "serve", crash):
            assert cli.main(["--sw-url", URL, "stdio"]) == 1
        assert "boom" in capsys.readouterr().err

    def test_clean_shutdown_exits_0(self, no_logging_setup):
        async def stop(runner):
            runner.states.transition(RunnerState.STOPPED)

        with patch.object(cli, "serve", stop):
            assert cli.main(["--log-level", "debug", "--sw-url", URL, "stdio"]) == 0
        no_logging_setup.assert_called_once_with("debug", None)

    def test_build_runner_selects_transport(self, no_logging_setup):
        stdio = cli.build_runner(parse("--sw-url", URL, "stdio"))
        sse = cli.build_runner(parse("sse", "--sse-address", "127.0.0.1:0"))

        assert stdio.server.transport == "stdio"
        assert sse.server.transport == "sse"

"""Tests for the quickportal CLI."""

from unittest.mock import AsyncMock, patch

import pytest
from conftest import broker_transport, free_port
from typer.testing import CliRunner

from quickportal import __version__
from quickportal.api.assignment import AssignmentClient
from quickportal.cli.main import _run_tunnel, app
from quickportal.config import config
from quickportal.exceptions import AssignmentError
from quickportal.models.enums import LocalTransport, LogLevel
from quickportal.models.tunnel import TunnelOptions
from quickportal.tunnel.orchestrator import create_tunnel

runner = CliRunner()


def patched_run(return_value=0, **kwargs):
    return patch(
        "quickportal.cli.main._run_tunnel",
        new=AsyncMock(return_value=return_value, **kwargs),
    )


@pytest.fixture(autouse=True)
def no_logging_setup():
    with patch("quickportal.cli.main.configure_logging") as configure:
        yield configure


class TestArguments:
    """Tests for turning command line flags into tunnel options."""

    def test_port_and_subdomain(self) -> None:
        with patched_run(0) as run:
            result = runner.invoke(app, ["8000", "foo"])

        assert result.exit_code == 0
        options, open_browser, print_requests = run.call_args.args
        assert options.port == 8000
        assert options.subdomain == "foo"
        assert options.host == config.HOST
        assert open_browser is False
        assert print_requests is False

    def test_host_header_untouched_without_alias(self) -> None:
        """Test no alias is set unless given, so Host is forwarded as is."""
        with patched_run(0) as run:
            result = runner.invoke(app, ["8000"])

        assert result.exit_code == 0
        options = run.call_args.args[0]
        assert options.local_alias is None

    def test_local_https_flags(self) -> None:
        with patched_run(0) as run:
            result = runner.invoke(
                app,
                [
                    "8443",
                    "--local-https",
                    "--allow-invalid-cert",
                    "--local-alias",
                    "127.0.0.1",
                    "--open",
                    "--print-requests",
                ],
            )

        assert result.exit_code == 0
        options, open_browser, print_requests = run.call_args.args
        assert options.local_transport == LocalTransport.TLS_NO_VERIFY
        assert options.local_alias == "127.0.0.1"
        assert open_browser is True
        assert print_requests is True

    def test_host_from_environment(self) -> None:
        with patched_run(0) as run:
            result = runner.invoke(
                app, ["8000"], env={"QUICKPORTAL_HOST": "https://broker.test"}
            )

        assert result.exit_code == 0
        assert run.call_args.args[0].host == "https://broker.test"
        assert config.HOST == "https://broker.test"

    def test_log_level(self, no_logging_setup) -> None:
        with patched_run(0):
            result = runner.invoke(app, ["8000", "--log-level", "debug"])

        assert result.exit_code == 0
        no_logging_setup.assert_called_once_with(LogLevel.DEBUG)

    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output


class TestFailures:
    """Tests for exit codes on bad input and broker errors."""

    def test_non_integer_port(self) -> None:
        result = runner.invoke(app, ["eighty"])
        assert result.exit_code == 2

    def test_out_of_range_port(self) -> None:
        with patched_run() as run:
            result = runner.invoke(app, ["0"])

        assert result.exit_code == 1
        run.assert_not_called()

    def test_cert_without_key(self) -> None:
        result = runner.invoke(app, ["8443", "--local-https", "--local-cert", "c.pem"])

        assert result.exit_code == 1
        assert "together" in result.output

    def test_assignment_error(self) -> None:
        error = AssignmentError("subdomain foo is taken")
        with patched_run(side_effect=error):
            result = runner.invoke(app, ["8000", "foo"])

        assert result.exit_code == 1
        assert "subdomain foo is taken" in result.output

    def test_tunnel_failure_exit_code(self) -> None:
        with patched_run(1):
            result = runner.invoke(app, ["8000"])

        assert result.exit_code == 1


class TestRunTunnel:
    """Tests for the long-running part of the command."""

    @pytest.mark.asyncio
    async def test_relay_error_closes_tunnel(self, local_target) -> None:
        """Test an unreachable relay port ends the run with a failure code."""
        config.LOCAL_ALIAS = "127.0.0.1"
        client = AssignmentClient(
            "https://broker.test", transport=broker_transport(free_port(), 1)
        )

        async def fake_create_tunnel(options):
            return await create_tunnel(options, assignment_client=client)

        options = TunnelOptions(port=local_target.port, host="https://broker.test")
        with patch("quickportal.cli.main.create_tunnel", new=fake_create_tunnel):
            exit_code = await _run_tunnel(options, False, False)

        assert exit_code == 1

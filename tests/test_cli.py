"""Tests for the command-line interface."""

from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from shadow_agent.cli import cli
from shadow_agent.config import load_config
from shadow_agent.errors import EnrollmentError
from shadow_agent.osquery import HostIdentifier
from shadow_agent.version import __version__

CLEAN_ENV = {
    "SHADOW_ORG_TOKEN": None,
    "SHADOW_SERVER_HOST": None,
    "SHADOW_CA_CERT": None,
    "SHADOW_DATA_DIR": None,
    "OSQUERYD_PATH": None,
    "SHADOW_VERBOSE": None,
    "SHADOW_HOST_IDENTIFIER": None,
}


@pytest.fixture
def runner():
    return CliRunner(env=CLEAN_ENV)


def test_version_option(runner):
    result = runner.invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_version_command(runner):
    result = runner.invoke(cli, ["version"])

    assert result.exit_code == 0
    assert "osquery Version: 5.20.0" in result.output
    assert "osqueryd:" in result.output


def test_configure_writes_file(runner, tmp_path):
    config_file = tmp_path / "agent.yaml"

    result = runner.invoke(cli, [
        "configure",
        "--server", "shadow.example.com",
        "--org-token", "tok",
        "--host-identifier", "instance",
        "--config-file", str(config_file),
    ])

    assert result.exit_code == 0, result.output
    config = load_config(config_file)
    assert config.server == "shadow.example.com"
    assert config.org_token == "tok"
    assert config.host_identifier is HostIdentifier.INSTANCE


def test_start_requires_org_token(runner, tmp_path):
    result = runner.invoke(cli, [
        "start",
        "--data-dir", str(tmp_path / "data"),
        "--config-file", str(tmp_path / "absent.yaml"),
    ])

    assert result.exit_code == 1
    assert "Organization token is required" in result.output


def test_start_merges_options_and_exits_with_osqueryd_status(runner, tmp_path):
    config_file = tmp_path / "agent.yaml"
    config_file.write_text("server:\n  host: from-file.example.com\n  org_token: file-token\n")

    with patch("shadow_agent.cli.ShadowAgent") as agent_cls:
        agent_cls.return_value.start = AsyncMock(return_value=3)
        result = runner.invoke(
            cli,
            ["start", "--server", "cli.example.com", "--config-file", str(config_file)],
            env={"SHADOW_HOST_IDENTIFIER": "instance"},
        )

    assert result.exit_code == 3
    config = agent_cls.call_args.args[0]
    assert config.server == "cli.example.com"
    assert config.org_token == "file-token"
    assert config.host_identifier is HostIdentifier.INSTANCE


def test_start_reports_agent_errors(runner, tmp_path):
    with patch("shadow_agent.cli.ShadowAgent") as agent_cls:
        agent_cls.return_value.start = AsyncMock(side_effect=EnrollmentError("Enrollment failed (403): invalid token"))
        result = runner.invoke(cli, [
            "start",
            "--org-token", "bad",
            "--config-file", str(tmp_path / "absent.yaml"),
        ])

    assert result.exit_code == 1
    assert "Error: Enrollment failed (403): invalid token" in result.output


def test_invalid_config_file(runner, tmp_path):
    config_file = tmp_path / "agent.yaml"
    config_file.write_text("agent:\n  distributed_interval: -1\n")

    result = runner.invoke(cli, ["provision", "--config-file", str(config_file)])

    assert result.exit_code == 1
    assert "distributed_interval" in result.output


def test_provision_prints_path(runner, tmp_path):
    with patch("shadow_agent.cli.ShadowAgent") as agent_cls:
        agent_cls.return_value.provision = AsyncMock(return_value=tmp_path / "bin" / "osqueryd")
        result = runner.invoke(cli, [
            "provision",
            "--skip-verify",
            "--data-dir", str(tmp_path),
            "--config-file", str(tmp_path / "absent.yaml"),
        ])

    assert result.exit_code == 0, result.output
    assert str(tmp_path / "bin" / "osqueryd") in result.output
    config = agent_cls.call_args.args[0]
    assert config.skip_verify


def test_configure_unwritable_path(runner, tmp_path):
    result = runner.invoke(cli, [
        "configure",
        "--server", "shadow.example.com",
        "--org-token", "tok",
        "--config-file", str(tmp_path),
    ])

    assert result.exit_code == 1
    assert "Error: Failed to write config file" in result.output


def test_unopenable_log_file(runner, tmp_path):
    config_file = tmp_path / "agent.yaml"
    config_file.write_text(f"logging:\n  file: {tmp_path}\n")

    with patch("shadow_agent.cli.ShadowAgent") as agent_cls:
        result = runner.invoke(cli, ["provision", "--config-file", str(config_file)])

    assert result.exit_code == 1
    assert "Error: Cannot open log file" in result.output
    agent_cls.assert_not_called()

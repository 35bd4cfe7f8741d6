"""Tests for the agent pipeline."""

from unittest.mock import AsyncMock, patch

import pytest

from shadow_agent.agent import ShadowAgent
from shadow_agent.commands import CommandResult
from shadow_agent.config import AgentConfig
from shadow_agent.errors import ConfigError, EnrollmentError
from shadow_agent.launcher import OsqueryLauncher
from shadow_agent.osquery import HostIdentifier


@pytest.fixture
def osqueryd(tmp_path):
    path = tmp_path / "osqueryd"
    path.write_bytes(b"binary")
    return path


def make_agent(data_dir, osqueryd, fake_runner, **overrides):
    config = AgentConfig().merge(
        org_token="tok",
        server="shadow.example.com",
        data_dir=data_dir,
        osqueryd_path=osqueryd,
        **overrides,
    )
    return ShadowAgent(config, runner=fake_runner)


@pytest.mark.asyncio
async def test_start_runs_pipeline_in_order(data_dir, osqueryd, fake_runner):
    fake_runner.handlers["osqueryd"] = lambda args: CommandResult(args, 0, '[{"instance_id": "i-1"}]')
    agent = make_agent(data_dir, osqueryd, fake_runner, host_identifier="instance")

    with patch("shadow_agent.agent.EnrollmentClient") as client_cls, \
            patch.object(OsqueryLauncher, "run", new=AsyncMock(return_value=0)) as run:
        client_cls.return_value.enroll = AsyncMock(return_value="secret")
        returncode = await agent.start()

    assert returncode == 0
    client_cls.return_value.enroll.assert_awaited_once_with("i-1", "tok")
    run.assert_awaited_once()
    assert fake_runner.calls[0][0] == str(osqueryd)
    assert (data_dir / "osquery_logs").is_dir()


@pytest.mark.asyncio
async def test_launcher_matches_enrolled_mode(data_dir, osqueryd, fake_runner):
    fake_runner.handlers["osqueryd"] = lambda args: CommandResult(args, 0, '[{"instance_id": "i-1"}]')
    agent = make_agent(data_dir, osqueryd, fake_runner, host_identifier="instance")

    identity = await agent.identify(osqueryd)
    launcher = agent.launcher(osqueryd, identity, "secret")

    args = launcher.build_args()
    assert args[args.index("--host_identifier") + 1] == "instance"
    assert identity.mode is HostIdentifier.INSTANCE


@pytest.mark.asyncio
async def test_enrollment_failure_never_launches(data_dir, osqueryd, fake_runner):
    fake_runner.handlers["osqueryd"] = lambda args: CommandResult(args, 0, '[{"uuid": "U-1"}]')
    agent = make_agent(data_dir, osqueryd, fake_runner)

    with patch("shadow_agent.agent.EnrollmentClient") as client_cls, \
            patch.object(OsqueryLauncher, "run", new=AsyncMock()) as run:
        client_cls.return_value.enroll = AsyncMock(side_effect=EnrollmentError("Enrollment failed (403): no"))
        with pytest.raises(EnrollmentError):
            await agent.start()

    run.assert_not_called()


@pytest.mark.asyncio
async def test_missing_user_binary(data_dir, tmp_path, fake_runner):
    agent = make_agent(data_dir, tmp_path / "nowhere", fake_runner)

    with pytest.raises(ConfigError):
        await agent.provision()

    assert fake_runner.calls == []


@pytest.mark.asyncio
async def test_org_token_required_before_any_work(data_dir, osqueryd, fake_runner):
    config = AgentConfig().merge(data_dir=data_dir, osqueryd_path=osqueryd)

    with pytest.raises(ConfigError):
        await ShadowAgent(config, runner=fake_runner).start()

    assert fake_runner.calls == []

import pytest
from click.testing import CliRunner

from wstack.CLI.main import cli


@pytest.fixture
def world(tmp_path, monkeypatch, engine):
    config_file = tmp_path / "world.yaml"
    config_file.write_text("cardinal:\n  CARDINAL_NAMESPACE: demo\n")
    monkeypatch.setenv("WORLD_CLI_CONFIG_FILE", str(config_file))
    monkeypatch.setattr("wstack.CLI.main.EngineClient.from_env", lambda: engine)
    return engine


def test_cli_help():
    runner = CliRunner()
    result = runner.invoke(cli, ['--help'])
    assert result.exit_code == 0
    for command in ('build', 'start', 'stop', 'restart', 'purge', 'exec'):
        assert command in result.output


def test_cli_start_help():
    result = CliRunner().invoke(cli, ['start', '--help'])
    assert result.exit_code == 0
    assert '--detach' in result.output


def test_cli_missing_config(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("WORLD_CLI_CONFIG_FILE", raising=False)
    result = CliRunner().invoke(cli, ['stop'])
    assert result.exit_code == 1
    assert 'no config file found' in result.output


def test_cli_stop(world):
    world.containers["demo-cardinal"] = "running"
    result = CliRunner().invoke(cli, ['--plain', 'stop'])
    assert result.exit_code == 0, result.output
    assert 'Stack stopped.' in result.output
    assert world.called("stop") == [("stop", "demo-cardinal")]
    assert world.closed


def test_cli_start_detached(world):
    world.images.update({
        "demo", "redis:latest", "cockroachdb/cockroach:latest-v23.1",
        "ghcr.io/argus-labs/world-engine-nakama:latest",
        "golang:1.23-bookworm", "gcr.io/distroless/base-debian12",
    })
    result = CliRunner().invoke(cli, ['--plain', 'start', '--detach'])
    assert result.exit_code == 0, result.output
    assert set(world.containers) == {"demo-nakama-db", "demo-redis", "demo-cardinal", "demo-nakama"}
    assert world.called("pull") == []


def test_cli_build_without_token(world, monkeypatch):
    monkeypatch.delenv("ARGUS_WEV2_GITHUB_TOKEN", raising=False)
    world.images.update({"golang:1.23-bookworm", "gcr.io/distroless/base-debian12"})
    result = CliRunner().invoke(cli, ['--plain', 'build'])
    assert result.exit_code == 1
    assert 'ARGUS_WEV2_GITHUB_TOKEN' in result.output


def test_cli_exec_service_name(world):
    world.containers["demo-cardinal"] = "running"
    world.exec_results["demo-cardinal"] = (0, "pong\n")
    result = CliRunner().invoke(cli, ['--plain', 'exec', 'cardinal', 'ping', '-c', '1'])
    assert result.exit_code == 0, result.output
    assert result.output == "pong\n"
    assert world.called("exec") == [("exec", "demo-cardinal", ["ping", "-c", "1"])]


def test_cli_exec_not_running(world):
    result = CliRunner().invoke(cli, ['--plain', 'exec', 'demo-redis', 'ls'])
    assert result.exit_code == 1
    assert 'demo-redis: container does not exist' in result.output


def test_cli_purge_requires_confirmation(world):
    result = CliRunner().invoke(cli, ['--plain', 'purge'], input='n\n')
    assert result.exit_code == 1
    assert world.calls == []

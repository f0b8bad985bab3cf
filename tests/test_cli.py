"""End-to-end CLI behaviour with fake runners and probes."""
import json
from unittest.mock import patch

import pytest

from tickstack import cli
from tickstack.errors import CommandError, ReadinessTimeout
from tickstack.readiness import ProbeResult
from conftest import FakeRunner


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)


def _args(recipe_dir, *rest):
    return [
        "--compose-file", str(recipe_dir / "docker-compose.yml"),
        "--collector-config", str(recipe_dir / "telegraf" / "telegraf.conf"),
        *rest,
    ]


def test_no_arguments_runs_up(recipe_dir):
    runner = FakeRunner()
    assert cli.main(_args(recipe_dir), runner=runner) == 0
    assert runner.calls == [["docker-compose", "-f", str((recipe_dir / "docker-compose.yml").resolve()), "up", "-d"]]


def test_validate_json(recipe_dir, capsys):
    assert cli.main(_args(recipe_dir, "validate", "--json")) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["passed"] is True
    assert all(check["passed"] for check in report["checks"])


def test_validate_reports_failures(recipe_dir, write_compose, capsys):
    compose = recipe_dir / "docker-compose.yml"
    write_compose(compose.read_text().replace('"3001:3000"', '"8086:3000"'))

    assert cli.main(_args(recipe_dir, "validate")) == 1
    assert "Host ports unique" in capsys.readouterr().out


def test_up_refuses_inconsistent_configuration(recipe_dir, write_compose):
    compose = recipe_dir / "docker-compose.yml"
    write_compose(compose.read_text().replace("http://influxdb:8086", "http://influxdb:9999"))
    runner = FakeRunner()

    assert cli.main(_args(recipe_dir, "up"), runner=runner) == 2
    assert runner.calls == []


def test_up_returns_failing_command_status(recipe_dir):
    runner = FakeRunner(present=set(), fail_on=lambda argv: argv[-1] == "update")
    assert cli.main(_args(recipe_dir, "up"), runner=runner) == 100


def test_unreadable_manifest_is_configuration_error(tmp_path):
    args = ["--compose-file", str(tmp_path / "missing.yml"), "validate"]
    assert cli.main(args) == 2


def test_up_wait_times_out(recipe_dir, capsys):
    pending = [ProbeResult("influxdb", "http://127.0.0.1:8086/ping", False, None, "unreachable")]

    with patch.object(cli.StackMonitor, "wait_until_ready", side_effect=ReadinessTimeout("not ready", pending)):
        code = cli.main(_args(recipe_dir, "up", "--wait", "--timeout", "1"), runner=FakeRunner())

    assert code == 1
    assert "Stack not ready" in capsys.readouterr().out


def test_status_json(recipe_dir, capsys):
    results = [
        ProbeResult("influxdb", "http://127.0.0.1:8086/ping", True, 204, "ready"),
        ProbeResult("kapacitor", "http://127.0.0.1:9092/kapacitor/v1/ping", True, 204, "ready"),
        ProbeResult("grafana", "http://127.0.0.1:3001/api/health", True, 200, "ready"),
    ]
    with patch.object(cli.StackMonitor, "check_once", return_value=results), \
            patch.object(cli.StackMonitor, "collector_reporting", return_value=True) as reporting:
        code = cli.main(_args(recipe_dir, "status", "--json"))

    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["ready"] is True
    assert payload["collector_reporting"] is True
    assert payload["database"] == "telegraf"
    reporting.assert_called_once_with("telegraf")


def test_status_not_ready(recipe_dir):
    results = [ProbeResult("grafana", "http://127.0.0.1:3001/api/health", False, 502, "unexpected HTTP 502")]
    with patch.object(cli.StackMonitor, "check_once", return_value=results), \
            patch.object(cli.StackMonitor, "collector_reporting", return_value=False):
        assert cli.main(_args(recipe_dir, "status")) == 1


@pytest.mark.parametrize("password", ["a: b: c", "pass #1"])
def test_up_with_yaml_syntax_in_admin_password(recipe_dir, monkeypatch, password):
    monkeypatch.setenv("GRAFANA_ADMIN_PASSWORD", password)
    runner = FakeRunner()

    assert cli.main(_args(recipe_dir, "up"), runner=runner) == 0
    assert runner.calls == [["docker-compose", "-f", str((recipe_dir / "docker-compose.yml").resolve()), "up", "-d"]]


def test_up_killed_command_exits_with_shell_status(recipe_dir):
    class KilledRunner(FakeRunner):
        def run(self, argv, check=True):
            raise CommandError([str(a) for a in argv], -9)

    code = cli.main(_args(recipe_dir, "up"), runner=KilledRunner())

    assert code == 137
    assert 0 < code < 256


def test_status_without_health_endpoints_is_not_ready(recipe_dir, capsys):
    with patch.object(cli.StackMonitor, "check_once", return_value=[]), \
            patch.object(cli.StackMonitor, "collector_reporting", return_value=False):
        code = cli.main(_args(recipe_dir, "status", "--json"))

    assert code == 1
    assert json.loads(capsys.readouterr().out)["ready"] is False

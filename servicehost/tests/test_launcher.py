import json
import logging

import httpx
import psutil
import pytest
from typer.testing import CliRunner

from servicehost import launcher
from servicehost.launcher import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def quiet_root_logger(monkeypatch):
    """Keep console handlers installed by other tests out of the command output."""
    monkeypatch.setattr(logging.getLogger(), "handlers", [])


def first_json(output):
    lines = output.splitlines()
    return json.loads(lines[0].strip()) if lines else None


def _not_running():
    raise psutil.NoSuchProcess(0, msg="Daemon not running.")


def test_status_when_not_running(monkeypatch):
    monkeypatch.setattr(launcher, "_find_daemon_pid", _not_running)
    result = runner.invoke(app, ['status'])
    assert result.exit_code == 0
    assert "not running" in result.output.lower()


def test_default_command_is_status(monkeypatch):
    monkeypatch.setattr(launcher, "_find_daemon_pid", _not_running)
    result = runner.invoke(app, [])
    assert result.exit_code == 0
    assert "not running" in result.output.lower()
    assert "Tip:" in result.output


def test_status_reports_health(monkeypatch):
    monkeypatch.setattr(launcher, "_find_daemon_pid", lambda: 4242)
    monkeypatch.setattr(launcher, "_get_listening_port_of_pid", lambda pid: 8173)

    def fake_get(url, timeout):
        assert url == "http://127.0.0.1:8173/health"
        return httpx.Response(200, json={"status": "ok", "services": []})

    monkeypatch.setattr(launcher.httpx, "get", fake_get)
    result = runner.invoke(app, ['status'])
    assert result.exit_code == 0
    data = first_json(result.output)
    assert data["running"] is True
    assert data["pid"] == 4242
    assert data["health"]["status"] == "ok"


def test_status_when_health_unreachable(monkeypatch):
    monkeypatch.setattr(launcher, "_find_daemon_pid", lambda: 4242)
    monkeypatch.setattr(launcher, "_get_listening_port_of_pid", lambda pid: 8173)

    def refused(url, timeout):
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(launcher.httpx, "get", refused)
    result = runner.invoke(app, ['status'])
    assert result.exit_code == 0
    assert "Error checking daemon status" in result.output


def test_start_refuses_second_instance(monkeypatch):
    monkeypatch.setattr(launcher, "_find_daemon_pid", lambda: 4242)
    monkeypatch.setattr(launcher, "_get_listening_port_of_pid", lambda pid: 8173)
    monkeypatch.setattr(launcher, "_start_daemon", lambda port: (_ for _ in ()).throw(AssertionError("must not start")))
    result = runner.invoke(app, ['start'])
    assert result.exit_code == 1
    assert 'already' in result.output.lower()


def test_start_spawns_daemon(monkeypatch):
    class Proc:
        pid = 5151

    monkeypatch.setattr(launcher, "_find_daemon_pid", _not_running)
    monkeypatch.setattr(launcher, "_start_daemon", lambda port: Proc())
    result = runner.invoke(app, ['start', '--port', '9100'])
    assert result.exit_code == 0
    data = first_json(result.output)
    assert data == {"returncode": 0, "msg": "Started daemon", "pid": 5151, "port": 9100}


def test_stop_sends_sigterm(monkeypatch):
    sent = []
    monkeypatch.setattr(launcher, "_find_daemon_pid", lambda: 4242)
    monkeypatch.setattr(launcher.os, "kill", lambda pid, sig: sent.append((pid, sig)))
    monkeypatch.setattr(launcher, "_wait_for_exit", lambda pid, timeout: True)
    result = runner.invoke(app, ['stop'])
    assert result.exit_code == 0
    assert sent == [(4242, launcher.signal.SIGTERM)]
    assert "via SIGTERM" in result.output


def test_stop_timeout(monkeypatch):
    monkeypatch.setattr(launcher, "_find_daemon_pid", lambda: 4242)
    monkeypatch.setattr(launcher.os, "kill", lambda pid, sig: None)
    monkeypatch.setattr(launcher, "_wait_for_exit", lambda pid, timeout: False)
    result = runner.invoke(app, ['stop', '--timeout', '0.1'])
    assert result.exit_code == 1
    assert "still running" in result.output


def test_stop_kill_when_not_running(monkeypatch):
    monkeypatch.setattr(launcher, "_find_daemon_pid", _not_running)
    result = runner.invoke(app, ['stop'])
    assert result.exit_code == 1
    assert "not running" in result.output.lower()
    result = runner.invoke(app, ['kill'])
    assert result.exit_code == 1


def test_invalid_command():
    result = runner.invoke(app, ['notacommand'])
    assert result.exit_code != 0


def test_invalid_argument():
    result = runner.invoke(app, ['start', '--port', 'notaport'])
    assert result.exit_code != 0


def test_help_output():
    result = runner.invoke(app, ['--help'])
    assert result.exit_code == 0
    assert 'Usage' in result.output and 'start' in result.output and 'stop' in result.output

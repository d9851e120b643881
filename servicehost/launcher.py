"""
launcher.py
-----------
A CLI to manage the servicehost daemon in the background.

Using Python subprocess (cross-platform, WSL-friendly).
Finds the daemon process using psutil, no PID file needed.
Stopping sends SIGTERM, which the daemon turns into a coordinated
shutdown of every service it started.
"""

import json
import os
import signal
import subprocess
import sys
import time

import httpx
import psutil
import typer

from common.app_setup import (
    monkeypatch_print,
    print_and_log,
    print_error,
    setup_logging,
)

DAEMON_MODULE = "servicehost.daemon"
STOP_TIMEOUT = 10.0

app = typer.Typer(add_completion=False, help="Manage the servicehost daemon. If no command is given, status is shown.")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    if ctx.invoked_subcommand is None:
        try:
            ctx.invoke(status)
        finally:
            print("[bold yellow]Tip:[/bold yellow] Use [green]--help[/green] to see all available commands.")


def _start_daemon(port=None):
    """Start the daemon, optionally with a specific port. Returns the Popen object."""
    cmd = [sys.executable, '-m', DAEMON_MODULE]
    if port is not None:
        cmd += ['--port', str(port)]
    proc = subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, close_fds=True)
    time.sleep(1.0)
    if proc.poll() is not None:
        print_error(f"Failed to start daemon. Process exited with code {proc.returncode}.")
        raise typer.Exit(1)
    return proc


@app.command()
def start(port: int | None = typer.Option(None, help="Port for the health server (PORT or 8173 if not set)")):
    """Start the servicehost daemon as a background process.
    If already running: return error.
    returns json in any case.
    """
    try:
        daemon_pid = _find_daemon_pid()
        running_port = _get_listening_port_of_pid(daemon_pid)
        result = {"returncode": 1, "msg": "A servicehost daemon is already running", "pid": daemon_pid, "port": running_port or "unknown"}
        exit_code = 1
    except psutil.NoSuchProcess:
        proc = _start_daemon(port)
        used_port = port or _get_listening_port_of_pid(proc.pid)
        result = {"returncode": 0, "msg": "Started daemon", "pid": proc.pid, "port": used_port or "unknown"}
        exit_code = 0
    print(json.dumps(result))
    raise typer.Exit(exit_code)


@app.command()
def stop(timeout: float = typer.Option(STOP_TIMEOUT, help="Seconds to wait for services to stop")):
    """Stop the daemon with SIGTERM and wait for its coordinated shutdown."""
    try:
        pid = _find_daemon_pid()
    except psutil.NoSuchProcess:
        print_and_log(json.dumps({"returncode": 1, "msg": "Daemon not running."}))
        raise typer.Exit(1)
    os.kill(pid, signal.SIGTERM)
    if _wait_for_exit(pid, timeout):
        print_and_log(json.dumps({"returncode": 0, "msg": f"Stopped daemon (PID {pid}) via SIGTERM"}))
        return
    print_and_log(json.dumps({"returncode": 1, "msg": f"Daemon (PID {pid}) still running after {timeout}s"}))
    raise typer.Exit(1)


@app.command()
def kill():
    """Forcefully kill the servicehost daemon. Services are not stopped."""
    try:
        pid = _find_daemon_pid()
    except psutil.NoSuchProcess:
        print_and_log(json.dumps({"returncode": 1, "msg": "Daemon not running."}))
        raise typer.Exit(1)
    os.kill(pid, signal.SIGKILL)
    if _wait_for_exit(pid, 1.0):
        print_and_log(json.dumps({"returncode": 0, "msg": f"Killed daemon with PID {pid}"}))
    else:
        print_and_log(json.dumps({"returncode": 1, "msg": f"Failed to kill daemon with PID {pid}."}))
        raise typer.Exit(1)


@app.command()
def status():
    """Show the status of the daemon by finding its process and querying /health."""
    result = {
        "returncode": 1,
        "msg": "Daemon not running.",
        "running": False,
        "pid": None,
        "port": None,
        "health": None,
    }
    try:
        pid = _find_daemon_pid()
        port = _get_listening_port_of_pid(pid)
        result["pid"] = pid
        result["port"] = port or "unknown"
        if port is None:
            result["msg"] = f"Daemon running with PID {pid}, but not listening yet"
        else:
            resp = httpx.get(f"http://127.0.0.1:{port}/health", timeout=2)
            if resp.status_code == 200:
                result["health"] = resp.json()
                result["msg"] = f"Daemon running with PID {pid}"
                result["running"] = True
                result["returncode"] = 0
            else:
                result["health"] = {"error": resp.text}
                result["msg"] = f"Daemon running with PID {pid}, but health check failed"
    except psutil.NoSuchProcess:
        pass
    except httpx.HTTPError as e:
        result["msg"] = f"Error checking daemon status: {e}"
        result["health"] = {"error": str(e)}
    print_and_log(json.dumps(result))


def _pid_running(pid):
    try:
        proc = psutil.Process(pid)
        return proc.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False


def _wait_for_exit(pid, timeout):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not _pid_running(pid):
            return True
        time.sleep(0.1)
    return not _pid_running(pid)


def _find_daemon_pid():
    for proc in psutil.process_iter(['pid', 'name', 'cmdline']):
        try:
            if proc.info['cmdline'] and DAEMON_MODULE in ' '.join(proc.info['cmdline']):
                return proc.pid
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    logger.debug("Daemon not running.")
    raise psutil.NoSuchProcess(0, msg="Daemon not running.")


def _get_listening_port_of_pid(pid: int | None) -> int | None:
    try:
        proc = psutil.Process(pid)
        for c in proc.net_connections(kind='inet'):
            if c.status == psutil.CONN_LISTEN:
                return c.laddr.port
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        pass
    return None


# Assign logger globally
logger = setup_logging(
    app_name="servicehost-launcher",
    logfile=os.path.expanduser("~/.servicehost/launcher.log"),
    console=False,
)
monkeypatch_print()

if __name__ == "__main__":
    app()

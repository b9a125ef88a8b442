import signal

import pytest

import config
import tunnel
from bootstrap import installer
from bootstrap.errors import InstallError, RetriesExhausted, ServerStartError, WorkdirNotFound
from bootstrap.launcher import Attempt, TunnelSession

URL = "https://brave-otter-1234.trycloudflare.com"


@pytest.fixture
def swarm_dir(tmp_path):
    d = tmp_path / "rl-swarm"
    d.mkdir()
    return d


@pytest.fixture
def stubbed(monkeypatch, swarm_dir, tmp_path, fake_proc):
    """Everything main() touches outside the process, with a ready-made session."""
    calls = {}
    monkeypatch.setattr(config, "SHOW_QR", False)
    monkeypatch.setattr(config, "SKIP_INSTALL", False)
    monkeypatch.setattr(tunnel, "find_swarm_dir", lambda name: swarm_dir)
    monkeypatch.setattr(installer, "detect_arch", lambda: "amd64")
    monkeypatch.setattr(installer, "ensure_cloudflared", lambda arch, binary, skip_install: "/usr/bin/cloudflared")
    monkeypatch.setattr(installer, "ensure_python", lambda binary, skip_install: "/usr/bin/python3")

    scratch = tmp_path / "scratch"
    scratch.mkdir()
    attempt = Attempt(1, 8000, scratch / "s.log", scratch / "t.log",
                      server=fake_proc(), tunnel=fake_proc(), url=URL)
    session = TunnelSession(attempt, scratch)

    def fake_launch(settings, workdir):
        calls["settings"] = settings
        calls["workdir"] = workdir
        return session

    monkeypatch.setattr(tunnel, "launch", fake_launch)
    calls["session"] = session
    return calls


def test_interrupt_after_success_exits_zero_and_stops_children(stubbed, swarm_dir, monkeypatch, capsys):
    def wait(self, **kwargs):
        raise KeyboardInterrupt

    monkeypatch.setattr(TunnelSession, "wait", wait)
    assert tunnel.main() == 0

    session = stubbed["session"]
    assert session.closed
    assert session.attempt.server.terminate_calls == 1
    assert session.attempt.tunnel.terminate_calls == 1
    assert stubbed["workdir"] == swarm_dir
    assert stubbed["settings"].python_bin == "/usr/bin/python3"
    assert stubbed["settings"].cloudflared_bin == "/usr/bin/cloudflared"
    assert stubbed["settings"].start_port == 8000

    out = capsys.readouterr().out
    assert f"wget -O swarm.pem {URL}/swarm.pem" in out
    assert "Server running at http://localhost:8000" in out
    assert "Stopping servers..." in out
    assert "Servers stopped." in out


def test_child_exiting_on_its_own_shuts_down(stubbed, monkeypatch, capsys):
    monkeypatch.setattr(TunnelSession, "wait", lambda self, **kw: "tunnel")
    assert tunnel.main() == 0
    assert "The tunnel process exited on its own" in capsys.readouterr().out
    assert stubbed["session"].attempt.server.terminate_calls == 1


def test_sigterm_while_serving_stops_children(stubbed, monkeypatch, capsys):
    before = signal.getsignal(signal.SIGTERM)

    def wait(self, **kwargs):
        signal.raise_signal(signal.SIGTERM)

    monkeypatch.setattr(TunnelSession, "wait", wait)
    assert tunnel.main() == 0

    session = stubbed["session"]
    assert session.closed
    assert session.attempt.server.terminate_calls == 1
    assert session.attempt.tunnel.terminate_calls == 1
    assert signal.getsignal(signal.SIGTERM) is before
    assert "Servers stopped." in capsys.readouterr().out


@pytest.mark.parametrize("error", [
    WorkdirNotFound("rl-swarm directory not found in current directory or HOME."),
    InstallError("Failed to install cloudflared. Please install it manually."),
    RetriesExhausted(10),
])
def test_fatal_errors_exit_one(stubbed, monkeypatch, capsys, error):
    def boom(*args, **kwargs):
        raise error

    monkeypatch.setattr(tunnel, "launch", boom)
    assert tunnel.main() == 1
    assert f"[ERROR] {error}" in capsys.readouterr().out


def test_server_failure_prints_its_log(stubbed, monkeypatch, capsys):
    def boom(settings, workdir):
        raise ServerStartError(8000, "PermissionError: [Errno 13] Permission denied\n")

    monkeypatch.setattr(tunnel, "launch", boom)
    assert tunnel.main() == 1
    out = capsys.readouterr().out
    assert "[ERROR] Failed to start HTTP server on port 8000. Error log:" in out
    assert "Permission denied" in out


def test_bad_config_exits_before_any_step(stubbed, monkeypatch, capsys):
    monkeypatch.setattr(config, "START_PORT", "nope")
    assert tunnel.main() == 1
    out = capsys.readouterr().out
    assert "START_PORT must be an integer" in out
    assert "CHECKING" not in out
    assert "workdir" not in stubbed

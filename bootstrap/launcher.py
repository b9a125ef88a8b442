"""
Port-acquiring tunnel launcher.

Starts a static file server on the first usable port from the start port,
points a cloudflared quick tunnel at it and reads the public URL back out of
the tunnel's own log. Port conflicts and a tunnel that never reports its URL
move on to the next port; a server that dies for any other reason stops the
whole run.
"""
import re
import shutil
import signal
import socket
import subprocess
import tempfile
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from bootstrap import console
from bootstrap.errors import RetriesExhausted, ServerStartError

# cloudflared also logs https://api.trycloudflare.com when a quick tunnel request fails
TUNNEL_URL_PATTERN = re.compile(r"https://(?!api\.)[a-zA-Z0-9-]+\.trycloudflare\.com")
ADDRESS_IN_USE = "Address already in use"


@dataclass
class LaunchSettings:
    start_port: int = 8000
    max_retries: int = 10
    # poll intervals in seconds
    server_wait: float = 2
    tunnel_wait: float = 5
    tunnel_extended_wait: float = 10
    python_bin: str = "python3"
    cloudflared_bin: str = "cloudflared"
    check_host: str = "127.0.0.1"

    def server_command(self, port: int) -> list[str]:
        return [self.python_bin, "-m", "http.server", str(port)]

    def tunnel_command(self, port: int) -> list[str]:
        return [self.cloudflared_bin, "tunnel", "--url", f"http://localhost:{port}"]


@dataclass
class RetryBudget:
    max: int = 10
    count: int = 0

    @property
    def exhausted(self) -> bool:
        return self.count >= self.max

    def spend(self) -> None:
        self.count += 1


@dataclass
class Attempt:
    ordinal: int
    port: int
    server_log: Path
    tunnel_log: Path
    server: subprocess.Popen | None = None
    tunnel: subprocess.Popen | None = None
    url: str | None = None

    def read_server_log(self) -> str:
        return _read_text(self.server_log)

    def read_url(self) -> str | None:
        """First trycloudflare.com URL in the tunnel log, or None."""
        match = TUNNEL_URL_PATTERN.search(_read_text(self.tunnel_log))
        return match.group(0) if match else None

    def discard(self) -> None:
        stop_process(self.tunnel)
        stop_process(self.server)


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="ignore")
    except FileNotFoundError:
        return ""


def is_port_in_use(port: int, host: str = "127.0.0.1") -> bool:
    """Best-effort check: anything accepting a connection counts as in use."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.settimeout(1)
        return s.connect_ex((host, port)) == 0


def spawn(cmd: list[str], log_path: Path, cwd: Path | None = None) -> subprocess.Popen:
    """Start cmd in the background with stdout and stderr going to log_path."""
    with open(log_path, "wb") as log:
        return subprocess.Popen(
            cmd,
            cwd=str(cwd) if cwd else None,
            stdin=subprocess.DEVNULL,
            stdout=log,
            stderr=subprocess.STDOUT,
            # Ctrl+C reaches only us; TunnelSession.close() stops the children
            start_new_session=True,
        )


def _signums(*names: str) -> list[int]:
    # SIGHUP does not exist on Windows
    return [getattr(signal, name) for name in names if hasattr(signal, name)]


def _raise_interrupt(signum, frame):
    raise KeyboardInterrupt


@contextmanager
def termination_as_interrupt():
    """
    Turn SIGTERM and SIGHUP into KeyboardInterrupt while the block runs, so a
    killed parent or a closed terminal unwinds TunnelSession like Ctrl+C does.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = {signum: signal.signal(signum, _raise_interrupt) for signum in _signums("SIGTERM", "SIGHUP")}
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


@contextmanager
def _interrupts_ignored():
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = {signum: signal.signal(signum, signal.SIG_IGN) for signum in _signums("SIGINT", "SIGTERM", "SIGHUP")}
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def stop_process(proc: subprocess.Popen | None, timeout: float = 5) -> None:
    if proc is None or proc.poll() is not None:
        return
    proc.terminate()
    try:
        proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()


class TunnelSession:
    """
    Owns the server and tunnel of a successful attempt.
    Use as a context manager; both children are stopped on every exit path,
    and close() only ever stops them once.
    """

    def __init__(self, attempt: Attempt, scratch_dir: Path):
        self.attempt = attempt
        self.scratch_dir = scratch_dir
        self._closed = False

    @property
    def url(self) -> str:
        return self.attempt.url

    @property
    def port(self) -> int:
        return self.attempt.port

    @property
    def closed(self) -> bool:
        return self._closed

    def wait(self, poll_interval: float = 1.0, sleep=time.sleep) -> str:
        """Block until one of the children exits; returns "server" or "tunnel"."""
        while True:
            if self.attempt.server.poll() is not None:
                return "server"
            if self.attempt.tunnel.poll() is not None:
                return "tunnel"
            sleep(poll_interval)

    def close(self) -> None:
        with _interrupts_ignored():
            if self._closed:
                return
            self.attempt.discard()
            self._closed = True
        shutil.rmtree(self.scratch_dir, ignore_errors=True)

    def __enter__(self) -> "TunnelSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _run_attempt(attempt: Attempt, settings: LaunchSettings, workdir: Path, sleep) -> bool:
    """
    One server + tunnel cycle on attempt.port.
    Returns True with attempt.url set on success, False when the next port should be tried.
    Raises ServerStartError when the server dies for a reason other than the port being taken.
    """
    try:
        attempt.server = spawn(settings.server_command(attempt.port), attempt.server_log, cwd=workdir)
        sleep(settings.server_wait)

        if attempt.server.poll() is not None:
            log_text = attempt.read_server_log()
            if ADDRESS_IN_USE in log_text:
                console.warning(f"Port {attempt.port} is already in use.")
                return False
            raise ServerStartError(attempt.port, log_text)
        console.success(f"HTTP server started successfully on port {attempt.port}.")

        console.info(f"Starting cloudflared tunnel to http://localhost:{attempt.port}...")
        attempt.tunnel = spawn(settings.tunnel_command(attempt.port), attempt.tunnel_log, cwd=workdir)
        sleep(settings.tunnel_wait)

        attempt.url = attempt.read_url()
        if attempt.url is None:
            console.warning("Cloudflared tunnel not established yet. Waiting longer...")
            sleep(settings.tunnel_extended_wait)
            attempt.url = attempt.read_url()

        if attempt.url is None:
            console.error("Failed to establish cloudflared tunnel. Stopping services and trying another port.")
            attempt.discard()
            return False

        console.success(f"Cloudflare tunnel established at: {attempt.url}")
        return True
    except BaseException:
        attempt.discard()
        raise


def launch(settings: LaunchSettings, workdir: Path, sleep=time.sleep) -> TunnelSession:
    """
    Walk ports upward from settings.start_port until a server and a tunnel are both up.
    Every failed port costs one unit of the retry budget.
    """
    budget = RetryBudget(max=settings.max_retries)
    scratch_dir = Path(tempfile.mkdtemp(prefix="swarm-tunnel-"))
    port = settings.start_port

    try:
        while not budget.exhausted:
            console.info(f"Attempting to start HTTP server on port {port}...")

            if is_port_in_use(port, settings.check_host):
                console.warning(f"Port {port} is already in use. Trying next port.")
            else:
                ordinal = budget.count + 1
                attempt = Attempt(
                    ordinal=ordinal,
                    port=port,
                    server_log=scratch_dir / f"http_server_{ordinal}_{port}.log",
                    tunnel_log=scratch_dir / f"cloudflared_{ordinal}_{port}.log",
                )
                if _run_attempt(attempt, settings, workdir, sleep):
                    return TunnelSession(attempt, scratch_dir)

            port += 1
            budget.spend()
    except BaseException:
        shutil.rmtree(scratch_dir, ignore_errors=True)
        raise

    shutil.rmtree(scratch_dir, ignore_errors=True)
    raise RetriesExhausted(budget.max)

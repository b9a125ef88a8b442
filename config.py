import os
from pathlib import Path
from dotenv import load_dotenv

from bootstrap.errors import ConfigError

load_dotenv(Path(__file__).parent / ".env")


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() == "true"


SWARM_DIR_NAME: str = os.getenv("SWARM_DIR_NAME", "").strip() or "rl-swarm"
START_PORT: str = os.getenv("START_PORT", "8000").strip()
MAX_RETRIES: str = os.getenv("MAX_RETRIES", "10").strip()
SERVER_WAIT: str = os.getenv("SERVER_WAIT", "2").strip()
TUNNEL_WAIT: str = os.getenv("TUNNEL_WAIT", "5").strip()
TUNNEL_EXTENDED_WAIT: str = os.getenv("TUNNEL_EXTENDED_WAIT", "10").strip()
CLOUDFLARED_BIN: str = os.getenv("CLOUDFLARED_BIN", "").strip() or "cloudflared"
PYTHON_BIN: str = os.getenv("PYTHON_BIN", "").strip() or "python3"
SKIP_INSTALL: bool = _env_bool("SKIP_INSTALL")
SHOW_QR: bool = _env_bool("SHOW_QR")


def _as_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _as_seconds(name: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number of seconds, got {raw!r}")
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {raw!r}")
    return value


def validate_config() -> dict:
    """Parse the numeric settings once at startup - called from tunnel.run()."""
    start_port = _as_int("START_PORT", START_PORT)
    max_retries = _as_int("MAX_RETRIES", MAX_RETRIES)
    if not 1 <= start_port <= 65535:
        raise ConfigError(f"START_PORT out of range (1-65535): {start_port}")
    if max_retries < 1:
        raise ConfigError(f"MAX_RETRIES must be at least 1, got {max_retries}")
    if start_port + max_retries - 1 > 65535:
        raise ConfigError(
            f"START_PORT {start_port} + MAX_RETRIES {max_retries} runs past port 65535"
        )
    return {
        "start_port": start_port,
        "max_retries": max_retries,
        "server_wait": _as_seconds("SERVER_WAIT", SERVER_WAIT),
        "tunnel_wait": _as_seconds("TUNNEL_WAIT", TUNNEL_WAIT),
        "tunnel_extended_wait": _as_seconds("TUNNEL_EXTENDED_WAIT", TUNNEL_EXTENDED_WAIT),
    }

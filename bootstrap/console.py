"""Tagged console output: [INFO], [SUCCESS], [WARNING], [ERROR] and section headers."""
import os
import sys

RED = "\033[1;31m"
GREEN = "\033[1;32m"
YELLOW = "\033[1;33m"
BLUE = "\033[1;34m"
PURPLE = "\033[1;35m"
RESET = "\033[0m"


def _use_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def paint(text: str, color: str) -> str:
    if not _use_color():
        return text
    return f"{color}{text}{RESET}"


def info(msg: str) -> None:
    print(f"{paint('[INFO]', BLUE)} {msg}", flush=True)


def success(msg: str) -> None:
    print(f"{paint('[SUCCESS]', GREEN)} {msg}", flush=True)


def warning(msg: str) -> None:
    print(f"{paint('[WARNING]', YELLOW)} {msg}", flush=True)


def error(msg: str) -> None:
    print(f"{paint('[ERROR]', RED)} {msg}", flush=True)


def header(title: str) -> None:
    print(paint(f"====== {title} ======", PURPLE), flush=True)

from pathlib import Path

from bootstrap import console
from bootstrap.errors import WorkdirNotFound


def find_swarm_dir(dir_name: str, cwd: Path | None = None, home: Path | None = None) -> Path:
    """
    Return the swarm checkout to serve from.
    The current directory wins when it is the checkout itself, otherwise <home>/<dir_name>.
    """
    cwd = Path.cwd() if cwd is None else Path(cwd)
    home = Path.home() if home is None else Path(home)

    if cwd.name == dir_name:
        console.success(f"Currently in {dir_name} directory.")
        return cwd

    console.warning(f"Not in {dir_name} directory. Checking HOME directory...")
    candidate = home / dir_name
    if candidate.is_dir():
        console.success(f"Found {dir_name} directory in HOME.")
        return candidate

    raise WorkdirNotFound(f"{dir_name} directory not found in current directory or HOME.")

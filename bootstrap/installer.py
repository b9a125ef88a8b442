"""
Make sure cloudflared and python3 are on PATH, installing them when missing.
Linux goes through dpkg/apt with a bare-binary fallback, macOS through Homebrew
with a release-tarball fallback.
"""
import platform
import shutil
import stat
import subprocess
import tarfile
import tempfile
import urllib.request
from pathlib import Path

from bootstrap import console
from bootstrap.errors import InstallError, UnsupportedPlatform

RELEASE_URL = "https://github.com/cloudflare/cloudflared/releases/latest/download"
INSTALL_DIR = "/usr/local/bin"

_ARCH_MAP = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}


def detect_arch(machine: str | None = None) -> str:
    """uname -m → cloudflared release suffix (amd64 / arm64)."""
    machine = machine if machine is not None else platform.machine()
    arch = _ARCH_MAP.get(machine.lower())
    if not arch:
        raise UnsupportedPlatform(f"Unsupported architecture: {machine}")
    return arch


def detect_os(system: str | None = None) -> str:
    system = system if system is not None else platform.system()
    os_name = system.lower()
    if os_name not in ("linux", "darwin"):
        raise UnsupportedPlatform(f"Unsupported operating system: {system}")
    return os_name


def run(cmd: list[str]) -> int:
    print(f"[RUN] {' '.join(cmd)}", flush=True)
    try:
        return subprocess.run(cmd, check=False).returncode
    except FileNotFoundError:
        console.warning(f"{cmd[0]} not found")
        return 127


def download(url: str, dest: Path) -> Path:
    console.info(f"Downloading {url}")
    req = urllib.request.Request(url, headers={"User-Agent": "swarm-tunnel"})
    try:
        with urllib.request.urlopen(req, timeout=60) as resp, dest.open("wb") as out:
            shutil.copyfileobj(resp, out)
    except OSError as e:
        raise InstallError(f"Download failed: {url} ({e})")
    return dest


def _make_executable(path: Path) -> None:
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def _move_into_path(binary: Path) -> None:
    _make_executable(binary)
    run(["sudo", "mv", str(binary), f"{INSTALL_DIR}/"])


def extract(archive: Path, dest: Path) -> None:
    with tarfile.open(archive, "r:gz") as tar:
        # extraction filters arrived in 3.10.12 / 3.11.4
        if hasattr(tarfile, "data_filter"):
            tar.extractall(dest, filter="data")
        else:
            tar.extractall(dest)


def _install_cloudflared_linux(arch: str, workdir: Path) -> None:
    deb = download(f"{RELEASE_URL}/cloudflared-linux-{arch}.deb", workdir / "cloudflared.deb")
    if run(["sudo", "dpkg", "-i", str(deb)]) != 0:
        run(["sudo", "apt-get", "install", "-f", "-y"])

    if shutil.which("cloudflared") is None:
        console.warning("Package install did not provide cloudflared. Trying the standalone binary...")
        binary = download(f"{RELEASE_URL}/cloudflared-linux-{arch}", workdir / "cloudflared")
        _move_into_path(binary)


def _install_cloudflared_darwin(arch: str, workdir: Path) -> None:
    if shutil.which("brew"):
        run(["brew", "install", "cloudflared"])
        return
    archive = download(f"{RELEASE_URL}/cloudflared-darwin-{arch}.tgz", workdir / "cloudflared.tgz")
    extract(archive, workdir)
    binary = workdir / "cloudflared"
    if not binary.exists():
        raise InstallError("Downloaded cloudflared archive did not contain a cloudflared binary.")
    _move_into_path(binary)


def ensure_cloudflared(arch: str, binary: str = "cloudflared", skip_install: bool = False) -> str:
    """Return the path of the cloudflared binary, installing it first if needed."""
    found = shutil.which(binary)
    if found:
        console.success("cloudflared is already installed.")
        return found
    if skip_install:
        raise InstallError(f"{binary} not found on PATH and SKIP_INSTALL is set.")

    console.info(f"Installing cloudflared for {arch} architecture...")
    os_name = detect_os()
    with tempfile.TemporaryDirectory(prefix="cloudflared-install-") as tmp:
        if os_name == "linux":
            _install_cloudflared_linux(arch, Path(tmp))
        else:
            _install_cloudflared_darwin(arch, Path(tmp))

    found = shutil.which(binary)
    if not found:
        raise InstallError("Failed to install cloudflared. Please install it manually.")
    console.success("cloudflared installation completed successfully.")
    return found


def ensure_python(binary: str = "python3", skip_install: bool = False) -> str:
    found = shutil.which(binary)
    if found:
        console.success("python3 is already installed.")
        return found
    if skip_install:
        raise InstallError(f"{binary} not found on PATH and SKIP_INSTALL is set.")

    console.info("Installing python3...")
    os_name = detect_os()
    if os_name == "linux":
        run(["sudo", "apt-get", "update"])
        run(["sudo", "apt-get", "install", "-y", "python3", "python3-pip"])
    elif shutil.which("brew"):
        run(["brew", "install", "python"])
    else:
        raise InstallError("Homebrew not found. Please install python3 manually.")

    found = shutil.which(binary)
    if not found:
        raise InstallError("Failed to install python3. Please install it manually.")
    console.success("python3 installation completed successfully.")
    return found

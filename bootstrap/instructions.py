from pathlib import Path, PurePosixPath

import qrcode

from bootstrap import console

# Paths relative to the swarm checkout, as served by the file server
CREDENTIAL_FILES = (
    "swarm.pem",
    "modal-login/temp-data/userData.json",
    "modal-login/temp-data/userApiKey.json",
)


def download_commands(url: str, files=CREDENTIAL_FILES) -> list[str]:
    base = url.rstrip("/")
    return [f"wget -O {PurePosixPath(rel).name} {base}/{rel}" for rel in files]


def missing_files(swarm_dir: Path, files=CREDENTIAL_FILES) -> list[str]:
    return [rel for rel in files if not (Path(swarm_dir) / rel).is_file()]


def print_qr(url: str) -> None:
    qr = qrcode.QRCode(border=2)
    qr.add_data(url)
    qr.make(fit=True)
    qr.print_ascii(invert=True)


def print_instructions(url: str, swarm_dir: Path | None = None, show_qr: bool = False) -> None:
    console.header("DOWNLOAD INSTRUCTIONS")

    commands = download_commands(url)
    pem_cmd, json_cmds = commands[0], commands[1:]
    print(console.paint("Download your swarm.pem file using this command:", console.GREEN))
    print(pem_cmd)
    print()
    print(console.paint("Similar for these 2 files as well:", console.GREEN))
    for cmd in json_cmds:
        print(cmd)

    if swarm_dir is not None:
        for rel in missing_files(swarm_dir):
            console.warning(f"{rel} does not exist yet in {swarm_dir}; its download will 404 until it does.")

    if show_qr:
        print()
        print_qr(url)
        print(f"\n  Scan the QR code above to open {url}\n")

"""
rl-swarm credential tunnel.
Serves the swarm checkout over a Cloudflare Quick Tunnel so swarm.pem and the
modal-login JSON files can be fetched from another machine.
Stop with Ctrl+C.
"""
import sys

import config
from bootstrap import console, installer
from bootstrap.errors import BootstrapError, ServerStartError
from bootstrap.instructions import print_instructions
from bootstrap.launcher import LaunchSettings, launch, termination_as_interrupt
from bootstrap.workdir import find_swarm_dir


def run() -> None:
    settings_values = config.validate_config()

    console.header(f"CHECKING {config.SWARM_DIR_NAME.upper()} DIRECTORY")
    swarm_dir = find_swarm_dir(config.SWARM_DIR_NAME)
    console.info(f"Serving files from {swarm_dir}")

    console.header("CHECKING CLOUDFLARED")
    arch = installer.detect_arch()
    cloudflared_bin = installer.ensure_cloudflared(
        arch, binary=config.CLOUDFLARED_BIN, skip_install=config.SKIP_INSTALL
    )

    console.header("CHECKING PYTHON3")
    python_bin = installer.ensure_python(binary=config.PYTHON_BIN, skip_install=config.SKIP_INSTALL)

    console.header("STARTING HTTP SERVER")
    settings = LaunchSettings(python_bin=python_bin, cloudflared_bin=cloudflared_bin, **settings_values)

    with termination_as_interrupt(), launch(settings, swarm_dir) as session:
        print_instructions(session.url, swarm_dir=swarm_dir, show_qr=config.SHOW_QR)

        console.header("SETUP COMPLETE")
        console.success(f"Server running at http://localhost:{session.port}")
        console.success("Press Ctrl+C to stop the server when you're done.")

        try:
            exited = session.wait()
            console.warning(f"The {exited} process exited on its own. Shutting down.")
        except KeyboardInterrupt:
            print()
        print(console.paint("Stopping servers...", console.YELLOW))
    print(console.paint("Servers stopped.", console.GREEN))


def main() -> int:
    try:
        run()
    except ServerStartError as e:
        console.error(f"{e} Error log:")
        print(e.log_text.rstrip())
        return 1
    except BootstrapError as e:
        console.error(str(e))
        return 1
    except KeyboardInterrupt:
        console.warning("Interrupted.")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

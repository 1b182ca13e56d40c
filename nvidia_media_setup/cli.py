"""NVIDIA Media Setup - Command Line Interface

Entry point for the nvidia-media-setup command and python3 -m nvidia_media_setup.
"""

import sys
import traceback

from nvidia_media_setup.config import SetupConfig
from nvidia_media_setup.context import RunContext
from nvidia_media_setup.errors import FatalError
from nvidia_media_setup.orchestrator import Orchestrator
from nvidia_media_setup.utils.logging import log_error, log_info, log_warn


def show_banner() -> None:
    """Display application banner."""
    banner = """
╔══════════════════════════════════════════════════════════════╗
║  NVIDIA Driver and Media Server Setup                        ║
╚══════════════════════════════════════════════════════════════╝
"""
    print(banner)
    log_info("This tool will configure NVIDIA drivers and Docker support,")
    log_info("optimized for Plex and FFmpeg hardware acceleration.")
    print()


def perform_reboot(ctx) -> None:
    log_info("Rebooting system...")
    ctx.runner.run("reboot")


def run_setup(ctx) -> int:
    """Run one full setup and return the process exit code."""
    show_banner()

    if not ctx.prompt.confirm("Ready to begin?", default=True):
        log_info("Setup cancelled.")
        return 0

    try:
        reboot = Orchestrator(ctx).run()
    except FatalError:
        if ctx.report.outcomes:
            log_warn("Steps completed before the failure:")
            for line in ctx.report.render():
                print(line)
        raise

    # Always the very last action of a run.
    if reboot is not None:
        perform_reboot(ctx)
    return 0


def main() -> None:
    """Main installation process."""
    try:
        ctx = RunContext.create(SetupConfig.from_env())
        code = run_setup(ctx)
    except FatalError as e:
        log_error(f"Setup aborted: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print()
        log_info("Cancelled.")
        sys.exit(1)
    except Exception as e:
        log_error(f"Installation failed: {str(e)}")
        log_error(f"Traceback: {traceback.format_exc()}")
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()

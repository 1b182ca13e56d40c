"""System utilities for command execution and package management"""

import os
import platform
import shlex
import subprocess
import sys
import tempfile
import time
from dataclasses import dataclass

from ..errors import CommandError, InstallError
from .logging import log_info, log_error, log_warn

TIMEOUT_RETURNCODE = 124
NOT_FOUND_RETURNCODE = 127


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command."""
    command: str
    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def describe_command(cmd) -> str:
    """Render a command (shell string or argv list) for logs."""
    if isinstance(cmd, str):
        return cmd
    return shlex.join(cmd)


class CommandRunner:
    """Runs external commands one at a time and reports their result.

    Shell strings go through the shell, argv lists do not. A failing command
    never raises from run(); callers decide whether a failure matters.
    No retries are performed.
    """

    SPINNER_FRAMES = "|/-\\"
    POLL_INTERVAL = 0.1
    FAILURE_TAIL_LINES = 10

    def run(self, cmd, *, quiet=False, progress=False, timeout=None, cwd=None, env=None) -> CommandResult:
        """
        Execute a system command

        Args:
            cmd: Command to execute (string or list)
            quiet: Capture stdout/stderr into the result instead of the terminal
            progress: Show a spinner while the command runs (output is captured)
            timeout: Seconds before the command is killed
            cwd: Working directory
            env: Extra environment variables

        Returns:
            CommandResult
        """
        display = describe_command(cmd)
        shell = isinstance(cmd, str)
        full_env = None
        if env:
            full_env = os.environ.copy()
            full_env.update(env)

        if not quiet:
            log_info(f"Running: {display}")

        try:
            if progress:
                returncode, output = self._run_with_progress(cmd, shell, timeout, cwd, full_env)
            elif quiet:
                proc = subprocess.run(cmd, shell=shell, stdout=subprocess.PIPE,
                                      stderr=subprocess.STDOUT, stdin=subprocess.DEVNULL,
                                      text=True, timeout=timeout, cwd=cwd, env=full_env)
                returncode, output = proc.returncode, (proc.stdout or "").strip()
            else:
                proc = subprocess.run(cmd, shell=shell, stdin=subprocess.DEVNULL,
                                      timeout=timeout, cwd=cwd, env=full_env)
                returncode, output = proc.returncode, ""
        except subprocess.TimeoutExpired:
            log_warn(f"Command timed out after {timeout}s: {display}")
            return CommandResult(display, TIMEOUT_RETURNCODE, "timed out")
        except FileNotFoundError as exc:
            if not quiet:
                log_error(f"Command not found: {display}")
            return CommandResult(display, NOT_FOUND_RETURNCODE, str(exc))

        result = CommandResult(display, returncode, output)
        if not result.ok:
            if not quiet:
                log_error(f"Command failed: {display}")
            if progress and output:
                self._log_output_tail(output)
        return result

    def check(self, cmd, **kwargs) -> CommandResult:
        """Run a command and raise CommandError if it fails."""
        result = self.run(cmd, **kwargs)
        if not result.ok:
            raise CommandError(result)
        return result

    def _run_with_progress(self, cmd, shell, timeout, cwd, env):
        with tempfile.TemporaryFile(mode="w+") as sink:
            proc = subprocess.Popen(cmd, shell=shell, stdout=sink, stderr=subprocess.STDOUT,
                                    stdin=subprocess.DEVNULL, text=True, cwd=cwd, env=env)
            started = time.monotonic()
            frame = 0
            try:
                while proc.poll() is None:
                    if timeout is not None and time.monotonic() - started > timeout:
                        proc.kill()
                        proc.wait()
                        raise subprocess.TimeoutExpired(cmd, timeout)
                    self._draw_spinner(frame)
                    frame += 1
                    time.sleep(self.POLL_INTERVAL)
            finally:
                self._clear_spinner()
            sink.seek(0)
            return proc.returncode, sink.read().strip()

    def _log_output_tail(self, output):
        lines = output.splitlines()[-self.FAILURE_TAIL_LINES:]
        log_warn("Last output lines:")
        for line in lines:
            print(f"    {line}")

    def _draw_spinner(self, frame):
        if sys.stdout.isatty():
            glyph = self.SPINNER_FRAMES[frame % len(self.SPINNER_FRAMES)]
            sys.stdout.write(f"\r  {glyph} working...")
            sys.stdout.flush()

    def _clear_spinner(self):
        if sys.stdout.isatty():
            sys.stdout.write("\r" + " " * 20 + "\r")
            sys.stdout.flush()


class AptManager:
    """Manages apt operations for a single run.

    The package index is refreshed at most once per instance no matter how
    many times install() is called. The orchestrator owns one instance per run.
    """

    def __init__(self, runner: CommandRunner):
        self.runner = runner
        self._update_done = False

    @property
    def update_done(self) -> bool:
        return self._update_done

    def update(self, force: bool = False) -> None:
        """Update apt cache if not already done

        Args:
            force: Refresh again, e.g. after a new repository was added.
                The run-scoped flag is left as it is.
        """
        if self._update_done and not force:
            return
        self.runner.check("apt-get update")
        self._update_done = True

    def install(self, *packages) -> None:
        """Install packages using apt, raising InstallError on failure"""
        if not packages:
            return
        try:
            self.update()
        except CommandError as exc:
            raise InstallError(packages, exc.result) from exc

        result = self.runner.run(
            f"apt-get install -y {' '.join(packages)}",
            env={"DEBIAN_FRONTEND": "noninteractive"},
        )
        if not result.ok:
            raise InstallError(packages, result)

    def is_installed(self, package: str) -> bool:
        """Check dpkg for an installed package"""
        result = self.runner.run(["dpkg-query", "-W", "-f=${Status}", package], quiet=True)
        return result.ok and "install ok installed" in result.output

    def purge_pattern(self, pattern: str) -> CommandResult:
        """Purge every package whose name matches an apt regex such as ``^nvidia-.*``.

        The pattern is handed to apt as a single argument so the shell never
        expands it.
        """
        return self.runner.check(
            ["apt-get", "remove", "--purge", "-y", pattern],
            env={"DEBIAN_FRONTEND": "noninteractive"},
        )

    def autoremove(self, purge: bool = False) -> CommandResult:
        """Remove unnecessary packages"""
        flag = " --purge" if purge else ""
        return self.runner.check(
            f"apt-get autoremove{flag} -y",
            env={"DEBIAN_FRONTEND": "noninteractive"},
        )


def cleanup_nvidia_repos(paths) -> list[str]:
    """Remove stale NVIDIA repository and keyring files.

    Returns the paths that were actually removed.
    """
    log_info("Cleaning up NVIDIA repository files...")
    removed: list[str] = []
    for path in paths:
        if not os.path.lexists(path):
            continue
        try:
            os.remove(path)
            removed.append(path)
            log_info(f"  removed: {path}")
        except OSError as exc:
            log_warn(f"  failed to remove {path}: {exc}")
    if not removed:
        log_info("No stale NVIDIA repository files found")
    return removed


def get_os_info(path="/etc/os-release"):
    """Get OS information from /etc/os-release"""
    try:
        with open(path, 'r') as f:
            lines = f.readlines()
    except OSError:
        return {}

    info = {}
    for line in lines:
        if '=' in line:
            key, value = line.strip().split('=', 1)
            info[key] = value.strip('"')
    return info


def check_internet(runner: CommandRunner, host: str = "8.8.8.8") -> bool:
    """Check internet connectivity with a single ping"""
    return runner.run(f"ping -c 1 {host}", quiet=True, timeout=10).ok


def find_nvidia_devices(runner: CommandRunner) -> list[str]:
    """Return the lspci lines that mention NVIDIA (case-insensitive)."""
    result = runner.run("lspci", quiet=True)
    if not result.ok:
        return []
    return [line.strip() for line in result.output.splitlines() if "nvidia" in line.lower()]


def get_kernel_release(runner: CommandRunner) -> str:
    """Get current kernel version"""
    result = runner.run("uname -r", quiet=True)
    if result.ok and result.output:
        return result.output.strip()
    return platform.release()

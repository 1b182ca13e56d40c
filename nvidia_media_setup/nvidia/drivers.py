"""NVIDIA driver detection, repair and installation"""

import re
from dataclasses import dataclass
from enum import Enum

from ..context import VersionSpec
from ..errors import CommandError, FatalError, InstallError
from ..steps import Decision, ProvisioningStep
from ..utils.detection import DRIVER_VERSION_MISMATCH, SECURE_BOOT_ENABLED
from ..utils.logging import log_info, log_warn, log_error
from ..utils.system import get_kernel_release

# Regex that matches a valid NVIDIA driver version string (e.g. 580.126.09)
_VERSION_PATTERN = re.compile(r'^[0-9]+\.[0-9]+')
_VERSION_MAJOR = re.compile(r'^[0-9]+$')
_RECOMMENDED_PATTERN = re.compile(r'nvidia-driver-([0-9]+)')
_AVAILABLE_PATTERN = re.compile(r'^nvidia-driver-([0-9]+)\b')

MISMATCH_FATAL_MESSAGE = "NVIDIA driver version mismatch must be fixed to continue"


class DriverState(Enum):
    NOT_INSTALLED = "not_installed"
    INSTALLED_WORKING = "installed_working"
    INSTALLED_MISMATCHED = "installed_mismatched"


@dataclass(frozen=True)
class DriverStatus:
    state: DriverState
    version: str | None = None
    output: str = ""


def detect_driver_state(runner) -> DriverStatus:
    """Classify the installed driver from nvidia-smi.

    The mismatch diagnostic wins over everything else, including a zero exit.
    """
    result = runner.run("nvidia-smi", quiet=True)
    if DRIVER_VERSION_MISMATCH.matches(result.output):
        return DriverStatus(DriverState.INSTALLED_MISMATCHED, output=result.output)
    if result.ok:
        return DriverStatus(DriverState.INSTALLED_WORKING, _query_driver_version(runner), result.output)
    return DriverStatus(DriverState.NOT_INSTALLED, output=result.output)


def _query_driver_version(runner) -> str | None:
    result = runner.run("nvidia-smi --query-gpu=driver_version --format=csv,noheader", quiet=True)
    if not result.ok or not result.output:
        return None
    first = result.output.splitlines()[0].strip()
    return first if _VERSION_PATTERN.match(first) else None


def parse_recommended_driver(output: str) -> str | None:
    """Pull the major version from the 'recommended' line of ubuntu-drivers devices."""
    for line in output.splitlines():
        if "recommended" not in line:
            continue
        match = _RECOMMENDED_PATTERN.search(line)
        if match:
            return match.group(1)
    return None


def parse_available_drivers(output: str) -> list[str]:
    """Return available nvidia-driver-N majors from apt-cache search, sorted ascending."""
    majors = set()
    for line in output.splitlines():
        if "Transitional package" in line:
            continue
        match = _AVAILABLE_PATTERN.match(line.strip())
        if match:
            majors.add(match.group(1))
    return sorted(majors, key=int)


class DriverProvisioner:
    """Converges the host to a working NVIDIA driver.

    NOT_INSTALLED installs, INSTALLED_WORKING offers a reinstall and
    INSTALLED_MISMATCHED must be repaired (purge, autoremove, initramfs)
    before anything else happens. A failed install is reported but does not
    stop the run.
    """

    step_id = "nvidia-driver"

    def as_step(self) -> ProvisioningStep:
        return ProvisioningStep(
            step_id=self.step_id,
            title="Selecting NVIDIA driver version...",
            detect=self.detect,
            decide=self.decide,
            apply=self.apply,
            fatal=False,
        )

    def detect(self, ctx) -> DriverStatus:
        status = detect_driver_state(ctx.runner)
        if status.state is DriverState.INSTALLED_WORKING:
            log_info(f"Current NVIDIA driver version: {status.version or 'unknown'}")
        return status

    def decide(self, ctx, status: DriverStatus) -> Decision:
        if status.state is DriverState.INSTALLED_MISMATCHED:
            log_warn("Detected NVIDIA driver/library version mismatch.")
            if ctx.prompt.confirm(
                "Purge all NVIDIA driver packages and repair the installation?", default=True
            ):
                return Decision.REPAIR
            log_error(MISMATCH_FATAL_MESSAGE)
            raise FatalError(MISMATCH_FATAL_MESSAGE)

        if status.state is DriverState.INSTALLED_WORKING:
            if status.output:
                print("\nCurrent NVIDIA installation:")
                print(status.output)
            if ctx.prompt.confirm(
                "NVIDIA driver is already installed. Would you like to reinstall/update it?",
                default=False,
            ):
                return Decision.INSTALL
            log_info("Keeping current driver installation")
            return Decision.SKIP

        log_info("No NVIDIA driver detected. Installing new driver...")
        return Decision.INSTALL

    def apply(self, ctx, decision: Decision, status: DriverStatus) -> None:
        if decision is Decision.REPAIR:
            self._repair_mismatch(ctx)

        self._install_driver_prerequisites(ctx)
        recommended = self._get_recommended_driver(ctx)

        if ctx.prompt.confirm(
            f"Install recommended NVIDIA driver ({recommended}) automatically?", default=True
        ):
            self._install_automatic_driver(ctx, recommended)
        else:
            self._install_manual_driver(ctx, recommended)

        self._post_install_checks(ctx)

    def _repair_mismatch(self, ctx):
        """Purge every NVIDIA package and rebuild the boot image."""
        log_warn("Cleaning up mismatched NVIDIA driver packages...")
        try:
            ctx.apt.purge_pattern(ctx.config.driver_purge_pattern)
            ctx.apt.autoremove(purge=True)
            ctx.runner.check("update-initramfs -u")
        except CommandError as exc:
            raise FatalError(f"Driver repair failed: {exc}") from exc

    def _install_driver_prerequisites(self, ctx):
        log_info("Installing driver prerequisites...")
        kernel = get_kernel_release(ctx.runner)
        packages = list(ctx.config.driver_prerequisites)
        packages.insert(2, f"linux-headers-{kernel}")
        ctx.apt.install(*packages)

    def _get_recommended_driver(self, ctx) -> VersionSpec:
        log_info("Detecting NVIDIA hardware...")
        result = ctx.runner.run("ubuntu-drivers devices", quiet=True)
        recommended = None
        if result.ok:
            for line in result.output.splitlines():
                if "nvidia" in line.lower():
                    print(f"  {line.strip()}")
            recommended = parse_recommended_driver(result.output)

        if recommended:
            log_info(f"Recommended driver version: {recommended}")
            return VersionSpec(recommended, "recommended")

        fallback = ctx.config.default_driver_version
        log_warn(f"Could not detect a recommended driver, defaulting to {fallback}")
        return VersionSpec(fallback, "default")

    def _install_automatic_driver(self, ctx, recommended: VersionSpec):
        log_info("Installing recommended driver using ubuntu-drivers...")
        result = ctx.runner.run("ubuntu-drivers autoinstall", progress=True)
        if result.ok:
            ctx.resolve_driver_version(VersionSpec(recommended.value, "auto"))
            log_info("✓ Automatic driver installation completed")
            return

        log_warn("Autoinstall failed, attempting manual installation...")
        self._install_specific_driver(ctx, recommended)

    def _install_manual_driver(self, ctx, recommended: VersionSpec):
        available = self._show_available_drivers(ctx)
        answer = ctx.prompt.ask(
            "Enter desired driver version number", default=recommended.value
        ).strip()

        if not _VERSION_MAJOR.match(answer):
            log_error(f"Invalid driver version: {answer or '(empty)'}")
            raise InstallError([f"nvidia-driver-{answer}"] if answer else [])

        if available and answer not in available:
            log_warn(f"nvidia-driver-{answer} is not in the available list, trying anyway")

        source = "recommended" if answer == recommended.value else "operator"
        self._install_specific_driver(ctx, VersionSpec(answer, source))

    def _show_available_drivers(self, ctx) -> list[str]:
        log_info("Finding available driver versions...")
        result = ctx.runner.run("apt-cache search nvidia-driver-", quiet=True)
        available = parse_available_drivers(result.output) if result.ok else []
        if available:
            log_info(f"Available NVIDIA driver versions: {', '.join(available)}")
        else:
            log_warn("Could not list available drivers")
        return available

    def _install_specific_driver(self, ctx, version: VersionSpec):
        package_name = f"nvidia-driver-{version.value}"
        log_info(f"Installing NVIDIA driver version {version}...")
        try:
            ctx.apt.install(package_name)
        except InstallError:
            log_error(f"Failed to install {package_name}")
            raise
        ctx.resolve_driver_version(version)
        log_info(f"Successfully installed {package_name}")

    def _post_install_checks(self, ctx):
        """Post-installation checks and module loading"""
        if not ctx.runner.run("modprobe nvidia", quiet=True).ok:
            log_warn("Could not load nvidia module (normal before reboot)")

        if ctx.runner.run("nvidia-smi", quiet=True).ok:
            log_info("NVIDIA drivers successfully installed!")
        else:
            log_warn("nvidia-smi not working yet - you may need to reboot")

        self._check_common_issues(ctx)

    def _check_common_issues(self, ctx):
        """Check for common driver installation issues"""
        sb_state = ctx.runner.run("mokutil --sb-state", quiet=True)
        if SECURE_BOOT_ENABLED.matches(sb_state.output):
            log_warn("Secure Boot is enabled - you may need to disable it or sign the driver")

        lsmod = ctx.runner.run("lsmod", quiet=True)
        if lsmod.ok and any(line.startswith("nouveau") for line in lsmod.output.splitlines()):
            log_warn("Nouveau driver detected - may conflict with NVIDIA driver")
            log_info("Consider blacklisting nouveau if you experience issues")

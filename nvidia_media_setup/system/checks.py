"""System checks and validation run before anything is installed"""

import os

from ..errors import InstallError, PreflightError
from ..utils.logging import log_info, log_warn, log_error, log_step
from ..utils.system import check_internet, cleanup_nvidia_repos, find_nvidia_devices, get_os_info

ACKNOWLEDGE_PHRASE = "I understand"

PERFORMANCE_RECOMMENDATIONS = """\
IMPORTANT: NVIDIA Performance Recommendations

For optimal NVIDIA GPU performance and reliability in Docker containers,
the following kernel parameters are highly recommended:

  systemd.unified_cgroup_hierarchy=0  - Prevents 'CUDA_ERROR_NO_DEVICE' errors in containers
  pcie_port_pm=off                    - Disables PCIe power management for better performance
  pcie_aspm.policy=performance        - Sets PCIe power state policy to performance mode

If using GPU passthrough to a VM, add these on the BARE METAL HOST, not in the VM.

To add them:
  1. Edit /etc/default/grub
  2. Append them to GRUB_CMDLINE_LINUX_DEFAULT
  3. Run update-grub (or proxmox-boot-tool refresh on Proxmox)
  4. Reboot your system"""


class PreflightChecker:
    """Validates the host before any provisioning step runs.

    Hard checks (privilege, GPU presence) raise PreflightError straight away.
    Soft checks (OS version, connectivity) need the operator to opt in.
    """

    def __init__(self, ctx):
        self.ctx = ctx
        self.config = ctx.config

    def check(self) -> None:
        log_step("Running preliminary system checks...")

        self._check_privileges()
        self._show_performance_note_once()
        self._check_gpu_present()
        self._offer_cleanup_option()
        self._check_ubuntu_version()
        self._check_internet_connectivity()
        self._install_dependencies()

    def _check_privileges(self):
        if os.geteuid() != 0:
            log_error("This script must be run as root (sudo).")
            raise PreflightError("This script must be run as root (sudo).")

    def _show_performance_note_once(self):
        """Make the operator acknowledge the kernel recommendations once, then remember it."""
        marker = self.config.acknowledged_marker
        if os.path.exists(marker):
            return

        self.ctx.prompt.acknowledge(PERFORMANCE_RECOMMENDATIONS, ACKNOWLEDGE_PHRASE)
        if not self.ctx.prompt.interactive:
            return

        try:
            os.makedirs(os.path.dirname(marker), exist_ok=True)
            with open(marker, "w") as fh:
                fh.write("acknowledged\n")
        except OSError as exc:
            log_warn(f"Could not remember acknowledgement ({exc}); it will be asked again")

    def _check_gpu_present(self):
        devices = find_nvidia_devices(self.ctx.runner)
        if not devices:
            log_error("No NVIDIA GPU detected! This script requires an NVIDIA GPU.")
            raise PreflightError("No NVIDIA GPU detected")

        for device in devices:
            log_info(f"✓ GPU detected: {device}")

    def _offer_cleanup_option(self):
        if self.ctx.prompt.confirm(
            "Would you like to clean up existing NVIDIA repository files?", default=False
        ):
            cleanup_nvidia_repos(self.config.stale_repo_files)

    def _check_ubuntu_version(self):
        """Check Ubuntu version compatibility"""
        supported = self.config.supported_ubuntu_versions
        os_info = get_os_info(self.config.os_release_path)
        detected_name = os_info.get('NAME', '')
        detected_version = os_info.get('VERSION_ID', '')
        pretty_name = os_info.get('PRETTY_NAME', 'Unknown OS')

        if detected_name == 'Ubuntu' and detected_version in supported:
            log_info(f"Ubuntu {detected_version} detected (supported)")
            return

        warning_msg = (
            f"This script is designed for Ubuntu {', '.join(supported)}, "
            f"but detected: {pretty_name}."
        )
        if self.config.allow_unsupported_os:
            log_warn(f"{warning_msg} Continuing (unsupported OS allowed).")
            return

        if not self.ctx.prompt.confirm(f"{warning_msg} Continue anyway?", default=False):
            raise PreflightError(f"Unsupported operating system: {pretty_name}")

    def _check_internet_connectivity(self):
        if check_internet(self.ctx.runner, self.config.connectivity_host):
            log_info("✓ Internet connectivity verified")
            return

        log_error("No internet connectivity detected!")
        if not self.ctx.prompt.confirm("Continue without internet?", default=False):
            raise PreflightError("No internet connectivity")

    def _install_dependencies(self):
        log_info("Installing required dependencies...")
        try:
            self.ctx.apt.install(*self.config.base_dependencies)
        except InstallError as exc:
            raise PreflightError(f"Could not install required dependencies: {exc}") from exc
        log_info("✓ Dependencies installed")


def run_preliminary_checks(ctx) -> None:
    """Run all preliminary system checks, raising PreflightError on a hard failure."""
    PreflightChecker(ctx).check()

"""Run configuration: pinned versions, URLs, paths and environment overrides."""

import os
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional

ENV_NONINTERACTIVE = "NVIDIA_SETUP_NONINTERACTIVE"
ENV_ALLOW_UNSUPPORTED_OS = "NVIDIA_SETUP_ALLOW_UNSUPPORTED_OS"

_TRUTHY = {"1", "true", "yes", "y", "on"}

DOCKER_COMPOSE_VERSION = "v2.25.0"
DEFAULT_DRIVER_VERSION = "550"
DEFAULT_CUDA_VERSION = "12.4.0"

# CUDA image versions offered for container tests, newest first.
CUDA_VERSIONS: tuple[str, ...] = (
    "12.4.0", "12.3.2", "12.2.2", "12.1.1",
    "12.0.1", "11.8.0", "11.7.1", "11.6.2",
)

NVIDIA_TOOLKIT_GPG_URL = "https://nvidia.github.io/libnvidia-container/gpgkey"
NVIDIA_TOOLKIT_LIST_URL = (
    "https://nvidia.github.io/libnvidia-container/stable/deb/nvidia-container-toolkit.list"
)
DOCKER_INSTALL_SCRIPT_URL = "https://get.docker.com"
NVIDIA_PATCH_REPO = "https://github.com/keylase/nvidia-patch.git"


def env_flag(environ: Mapping[str, str], name: str) -> bool:
    """Return True when an environment variable holds a truthy value."""
    return environ.get(name, "").strip().lower() in _TRUTHY


@dataclass(frozen=True)
class SetupConfig:
    """Resolved configuration for one run.

    Paths are plain fields so a test (or a chroot) can point them elsewhere.
    """

    non_interactive: bool = False
    allow_unsupported_os: bool = False

    supported_ubuntu_versions: tuple[str, ...] = ("22.04", "24.04")
    default_driver_version: str = DEFAULT_DRIVER_VERSION
    default_cuda_version: str = DEFAULT_CUDA_VERSION
    cuda_versions: tuple[str, ...] = CUDA_VERSIONS
    docker_compose_version: str = DOCKER_COMPOSE_VERSION

    base_dependencies: tuple[str, ...] = (
        "curl", "gnupg", "lsb-release", "ca-certificates", "wget", "git",
    )
    driver_prerequisites: tuple[str, ...] = (
        "build-essential", "dkms", "ubuntu-drivers-common", "pkg-config", "libglvnd-dev",
    )
    toolkit_packages: tuple[str, ...] = ("nvidia-container-toolkit",)
    driver_purge_pattern: str = "^nvidia-.*"

    docker_install_script_url: str = DOCKER_INSTALL_SCRIPT_URL
    toolkit_gpg_url: str = NVIDIA_TOOLKIT_GPG_URL
    toolkit_list_url: str = NVIDIA_TOOLKIT_LIST_URL
    nvidia_patch_repo: str = NVIDIA_PATCH_REPO
    connectivity_host: str = "8.8.8.8"

    os_release_path: str = "/etc/os-release"
    daemon_config_path: str = "/etc/docker/daemon.json"
    compose_path: str = "/usr/local/bin/docker-compose"
    templates_dir: str = "/opt/docker-templates"
    scripts_dir: str = "/usr/local/bin"
    keyrings_dir: str = "/etc/apt/keyrings"
    toolkit_keyring_path: str = "/usr/share/keyrings/nvidia-container-toolkit-keyring.gpg"
    toolkit_list_path: str = "/etc/apt/sources.list.d/nvidia-container-toolkit.list"
    cdi_spec_path: str = "/etc/cdi/nvidia.yaml"
    acknowledged_marker: str = "/var/lib/nvidia-media-setup/.acknowledged"

    stale_repo_files: tuple[str, ...] = field(default=(
        "/etc/apt/sources.list.d/nvidia-docker.list",
        "/etc/apt/sources.list.d/nvidia-container-toolkit.list",
        "/etc/apt/keyrings/nvidia-docker.gpg",
        "/usr/share/keyrings/nvidia-docker.gpg",
        "/usr/share/keyrings/nvidia-container-toolkit-keyring.gpg",
    ))

    @property
    def compose_download_url(self) -> str:
        return (
            f"https://github.com/docker/compose/releases/download/"
            f"{self.docker_compose_version}/docker-compose-linux-x86_64"
        )

    def with_overrides(self, **changes) -> "SetupConfig":
        return replace(self, **changes)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SetupConfig":
        """Build the configuration, honoring the NVIDIA_SETUP_* overrides."""
        environ = os.environ if environ is None else environ
        return cls(
            non_interactive=env_flag(environ, ENV_NONINTERACTIVE),
            allow_unsupported_os=env_flag(environ, ENV_ALLOW_UNSUPPORTED_OS),
        )

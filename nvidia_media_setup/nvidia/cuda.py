"""CUDA container image version selection.

The chosen version only decides which nvidia/cuda image the container
tests use. It does not install CUDA on the host.
"""

import re

from ..context import VersionSpec
from ..utils.logging import log_info, log_warn, log_step

_CUDA_VERSION = re.compile(r"^\d+\.\d+\.\d+$")

# Minimum Linux driver required per CUDA image version (NVIDIA release notes).
_MIN_DRIVER: dict[str, str] = {
    "12.4.0": "550.54.14",
    "12.3.2": "545.23.08",
    "12.2.2": "535.104.05",
    "12.1.1": "530.30.02",
    "12.0.1": "525.85.12",
    "11.8.0": "520.61.05",
    "11.7.1": "515.48.07",
    "11.6.2": "510.47.03",
}


def select_cuda_version(ctx) -> VersionSpec:
    """Ask which CUDA image version to use and store it on the run context."""
    log_step("Selecting CUDA version...")

    versions = list(ctx.config.cuda_versions)
    default = ctx.config.default_cuda_version
    default_idx = versions.index(default) if default in versions else 0

    choices = []
    for version in versions:
        min_drv = _MIN_DRIVER.get(version)
        label = f"{version}  (min driver: {min_drv})" if min_drv else version
        if version == default:
            label += " (default)"
        choices.append(label)
    choices.append("Other (enter manually)")

    log_info("Available CUDA versions:")
    choice_idx = ctx.prompt.choose("Select CUDA version", choices, default=default_idx)

    if choice_idx == len(choices) - 1:
        manual = ctx.prompt.ask("Enter CUDA version manually (e.g. 12.4.0)", default=default).strip()
        if _CUDA_VERSION.match(manual):
            spec = VersionSpec(manual, "operator")
        else:
            log_warn(f"Invalid CUDA version '{manual}', using default version {default}")
            spec = VersionSpec(default, "default")
    else:
        version = versions[choice_idx]
        spec = VersionSpec(version, "default" if version == default else "operator")

    ctx.resolve_cuda_version(spec)
    log_info(f"Selected CUDA version: {spec}")
    return spec

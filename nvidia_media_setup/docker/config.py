"""Docker configuration for media processing"""

import json
import os

from ..steps import Decision, ProvisioningStep
from ..utils.logging import log_info

PLEX_TEMPLATE_NAME = "plex-nvidia.yml"

PLEX_TEMPLATE = """\
version: '3.8'

services:
  plex:
    image: plexinc/pms-docker:latest
    container_name: plex
    restart: unless-stopped
    network_mode: host
    environment:
      - TZ=UTC
      - PLEX_CLAIM=claim-YOURCLAIMTOKEN
      - NVIDIA_VISIBLE_DEVICES=all
      - NVIDIA_DRIVER_CAPABILITIES=compute,video,utility
    volumes:
      - /path/to/plex/config:/config
      - /path/to/media:/data
    deploy:
      resources:
        reservations:
          devices:
            - driver: nvidia
              count: all
              capabilities: [gpu, compute, video, utility]
"""


def render_daemon_config(use_cgroupfs=False) -> dict:
    """Docker daemon settings for NVIDIA media workloads.

    The result replaces daemon.json as a whole; existing keys are not merged.
    """
    config = {
        "default-runtime": "nvidia",
        "runtimes": {
            "nvidia": {
                "path": "nvidia-container-runtime",
                "runtimeArgs": []
            }
        },
        "log-driver": "json-file",
        "log-opts": {
            "max-size": "10m",
            "max-file": "3"
        },
        "storage-driver": "overlay2",
        "features": {
            "buildkit": True
        }
    }

    if use_cgroupfs:
        config["exec-opts"] = ["native.cgroupdriver=cgroupfs"]

    return config


class DaemonConfigurator:
    """Writes daemon.json and the sample Plex compose file, then restarts Docker."""

    step_id = "docker-media-config"

    def as_step(self) -> ProvisioningStep:
        return ProvisioningStep(
            step_id=self.step_id,
            title="Configuring Docker for media processing...",
            detect=lambda ctx: None,
            decide=self.decide,
            apply=self.apply,
            fatal=False,
        )

    def decide(self, ctx, _state) -> Decision:
        if ctx.prompt.confirm("Configure Docker with optimized settings for NVIDIA media?", default=True):
            return Decision.INSTALL
        return Decision.SKIP

    def apply(self, ctx, decision, _state) -> None:
        use_cgroupfs = ctx.prompt.confirm(
            "Would you like to configure Docker to use cgroupfs driver? "
            "(Fixes common 'CUDA_ERROR_NO_DEVICE' issues)",
            default=False,
        )

        self.write_daemon_config(ctx.config.daemon_config_path, use_cgroupfs)
        ctx.runner.check("systemctl restart docker")
        plex_dest = self.write_plex_template(ctx.config.templates_dir)

        log_info("✓ Docker configured for NVIDIA and media processing")
        log_info(f"Sample docker-compose created: {plex_dest}")
        if use_cgroupfs:
            log_info("Docker configured to use cgroupfs driver for improved NVIDIA GPU compatibility")

    def write_daemon_config(self, config_file, use_cgroupfs=False):
        os.makedirs(os.path.dirname(config_file), exist_ok=True)
        with open(config_file, 'w') as f:
            json.dump(render_daemon_config(use_cgroupfs), f, indent=4)
            f.write("\n")
        log_info(f"✓ Docker daemon configuration written to {config_file}")

    def write_plex_template(self, templates_dir) -> str:
        os.makedirs(templates_dir, exist_ok=True)
        dest_path = os.path.join(templates_dir, PLEX_TEMPLATE_NAME)
        with open(dest_path, 'w') as f:
            f.write(PLEX_TEMPLATE)
        return dest_path

"""Docker installation and NVIDIA integration setup"""

import os
import tempfile
from dataclasses import dataclass

from ..steps import Decision, ProvisioningStep
from ..utils.detection import DOCKER_FAILED_TO_START, NVIDIA_RUNTIME_REGISTERED
from ..utils.logging import log_info, log_warn


@dataclass(frozen=True)
class ToolkitState:
    package_installed: bool
    runtime_registered: bool

    @property
    def healthy(self) -> bool:
        return self.package_installed and self.runtime_registered


class ContainerRuntimeProvisioner:
    """Docker engine, its service, the NVIDIA runtime plugin and Compose.

    The engine and service steps are fatal: nothing after them works without
    a running Docker daemon. The toolkit and Compose steps are advisory.
    """

    def steps(self) -> list[ProvisioningStep]:
        return [
            ProvisioningStep("docker-engine", "Checking Docker installation...",
                             self.detect_engine, self.decide_engine, self.apply_engine,
                             fatal=True),
            ProvisioningStep("docker-service", "Checking Docker service health...",
                             self.detect_service, self.decide_service, self.apply_service,
                             fatal=True),
            ProvisioningStep("nvidia-container-toolkit", "Setting up NVIDIA Container Toolkit...",
                             self.detect_toolkit, self.decide_toolkit, self.apply_toolkit),
            ProvisioningStep("docker-compose", "Installing Docker Compose...",
                             self.detect_compose, self.decide_compose, self.apply_compose),
        ]

    # -- docker engine --

    def detect_engine(self, ctx) -> str | None:
        result = ctx.runner.run("docker --version", quiet=True)
        return result.output if result.ok else None

    def decide_engine(self, ctx, version) -> Decision:
        if version:
            log_info(f"Docker already installed: {version}")
            return Decision.SKIP
        log_info("Docker not found, installing...")
        return Decision.INSTALL

    def apply_engine(self, ctx, decision, version) -> None:
        with tempfile.TemporaryDirectory(prefix="docker-install-") as workdir:
            script = os.path.join(workdir, "get-docker.sh")
            ctx.runner.check(
                ["curl", "-fsSL", ctx.config.docker_install_script_url, "-o", script],
                progress=True,
            )
            log_info("Running Docker install script...")
            ctx.runner.check(["sh", script], progress=True)
        ctx.runner.check("systemctl enable docker")
        log_info("✓ Docker installed")

    # -- docker service --

    def detect_service(self, ctx) -> str:
        return ctx.runner.run("systemctl status docker", quiet=True).output

    def decide_service(self, ctx, status_output) -> Decision:
        if DOCKER_FAILED_TO_START.matches(status_output):
            log_warn("Docker service failed to start, attempting repair...")
            return Decision.REPAIR
        return Decision.SKIP

    def apply_service(self, ctx, decision, status_output) -> None:
        ctx.runner.check("systemctl stop docker")
        daemon_config = ctx.config.daemon_config_path
        if os.path.exists(daemon_config):
            log_info(f"Removing {daemon_config}")
            os.remove(daemon_config)
        ctx.runner.check("systemctl start docker")
        log_info("✓ Docker service restarted")

    # -- nvidia container toolkit --

    def detect_toolkit(self, ctx) -> ToolkitState:
        installed = all(ctx.apt.is_installed(pkg) for pkg in ctx.config.toolkit_packages)
        info = ctx.runner.run("docker info", quiet=True)
        registered = info.ok and NVIDIA_RUNTIME_REGISTERED.matches(info.output)
        return ToolkitState(installed, registered)

    def decide_toolkit(self, ctx, state: ToolkitState) -> Decision:
        if not state.healthy:
            return Decision.INSTALL
        log_info("NVIDIA Container Toolkit is installed and the nvidia runtime is registered")
        if ctx.prompt.confirm("Update NVIDIA Docker support?", default=False):
            return Decision.INSTALL
        return Decision.SKIP

    def apply_toolkit(self, ctx, decision, state) -> None:
        config = ctx.config
        ctx.runner.check(["mkdir", "-p", config.keyrings_dir])

        log_info("Adding NVIDIA container toolkit repository...")
        ctx.runner.check(
            f"curl -fsSL {config.toolkit_gpg_url} | "
            f"gpg --dearmor -o {config.toolkit_keyring_path} --yes"
        )
        ctx.runner.check(
            f"curl -s -L {config.toolkit_list_url} | "
            f"sed 's#deb https://#deb [signed-by={config.toolkit_keyring_path}] https://#g' | "
            f"tee {config.toolkit_list_path}",
            quiet=True,
        )

        # New repository: re-read the indexes even if apt was refreshed already.
        ctx.apt.update(force=True)
        ctx.apt.install(*config.toolkit_packages)

        version = ctx.runner.run("nvidia-ctk --version", quiet=True)
        if version.ok and version.output:
            log_info(f"Installed: {version.output.splitlines()[0]}")

        log_info("Configuring NVIDIA runtime for Docker...")
        ctx.runner.check("nvidia-ctk runtime configure --runtime=docker --set-as-default")
        ctx.runner.check("systemctl restart docker")

        self._generate_cdi_spec(ctx)

    def _generate_cdi_spec(self, ctx):
        log_info("Generating CDI specification for GPU access...")
        cdi_path = ctx.config.cdi_spec_path
        result = ctx.runner.run(
            f"mkdir -p {os.path.dirname(cdi_path)} && nvidia-ctk cdi generate --output={cdi_path}",
            quiet=True,
        )
        if result.ok:
            log_info(f"CDI specification generated at {cdi_path}")
        else:
            log_warn("Could not generate CDI spec")
            log_info("This is normal if NVIDIA driver is not yet loaded")

    # -- docker compose --

    def detect_compose(self, ctx) -> bool:
        return os.path.exists(ctx.config.compose_path)

    def decide_compose(self, ctx, present) -> Decision:
        if present:
            log_info("✓ Docker Compose already installed")
            return Decision.SKIP
        return Decision.INSTALL

    def apply_compose(self, ctx, decision, present) -> None:
        compose_path = ctx.config.compose_path
        ctx.runner.check(
            ["curl", "-SL", ctx.config.compose_download_url, "-o", compose_path], progress=True
        )
        ctx.runner.check(["chmod", "+x", compose_path])
        log_info(f"✓ Docker Compose {ctx.config.docker_compose_version} installed")

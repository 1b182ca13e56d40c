"""Runs every provisioning stage in order and decides whether to reboot"""

from dataclasses import dataclass

from .docker.config import DaemonConfigurator
from .docker.setup import ContainerRuntimeProvisioner
from .errors import PreflightError
from .nvidia.capabilities import CONTAINER_TEST_TIMEOUT, CapabilityProbe, cuda_test_image
from .nvidia.cuda import select_cuda_version
from .nvidia.drivers import DriverProvisioner
from .nvidia.patches import NvidiaPatcher
from .steps import StepStatus
from .system.checks import run_preliminary_checks
from .system.diagnostics import diagnostics_step
from .utils.logging import log_info, log_step, log_success, log_warn

NEXT_STEPS = """
Next Steps:

1. To verify NVIDIA GPU access in Docker:
   $ sudo {scripts_dir}/test-nvidia-docker.sh

2. To test transcoding performance:
   $ sudo {scripts_dir}/test-transcode.sh

3. To test NVENC unlimited sessions (if patched):
   $ for i in {{1..10}}; do ffmpeg -hwaccel cuda -i /tmp/test.mp4 -c:v h264_nvenc -b:v 5M -f null - & done

4. To configure Plex:
   - Edit the template at: {templates_dir}/plex-nvidia.yml
   - Run: docker-compose -f {templates_dir}/plex-nvidia.yml up -d

5. To monitor GPU usage:
   $ nvidia-smi dmon
"""


@dataclass(frozen=True)
class RebootRequest:
    """Asked for at the end of a run; the CLI carries it out last."""
    reason: str


class Orchestrator:
    """Drives one provisioning run.

    Stages run strictly in sequence. A FatalError from any of them ends the
    run immediately; advisory failures are only recorded in the report.
    """

    def __init__(self, ctx):
        self.ctx = ctx

    def stages(self):
        """(name, callable) pairs in execution order."""
        stages = [
            ("preflight", self._preflight),
            ("nvidia-driver", DriverProvisioner().as_step().run),
            ("cuda-version", select_cuda_version),
        ]
        stages += [(step.step_id, step.run) for step in ContainerRuntimeProvisioner().steps()]
        stages += [
            ("nvidia-patches", NvidiaPatcher().as_step().run),
            ("docker-media-config", DaemonConfigurator().as_step().run),
            ("capability-probe", CapabilityProbe().probe),
            ("diagnostic-scripts", diagnostics_step().run),
        ]
        return stages

    def run(self) -> RebootRequest | None:
        try:
            for _name, stage in self.stages():
                stage(self.ctx)
        finally:
            self.ctx.report.finish()
        return self.finish()

    def _preflight(self, ctx):
        try:
            run_preliminary_checks(ctx)
        except PreflightError as exc:
            ctx.report.record("preflight", StepStatus.FAILED, str(exc))
            raise
        ctx.report.record("preflight", StepStatus.APPLIED)

    def finish(self) -> RebootRequest | None:
        """Print the run summary and ask about a reboot if one is needed."""
        report = self.ctx.report
        report.finish()

        log_step("Setup summary")
        for line in report.render():
            print(line)
        log_success(f"Setup complete! Completed in {report.format_elapsed()}")

        reason = self.reboot_reason()
        if reason is None:
            log_info("Everything appears to be working correctly!")
            print(NEXT_STEPS.format(scripts_dir=self.ctx.config.scripts_dir,
                                    templates_dir=self.ctx.config.templates_dir))
            return None

        log_warn(f"A system reboot is required to complete the setup ({reason}).")
        if self.ctx.prompt.confirm("Would you like to reboot now?", default=False):
            return RebootRequest(reason)
        log_warn("Remember to reboot your system to complete the installation!")
        return None

    def reboot_reason(self) -> str | None:
        """Why a reboot is still needed, or None when the GPU already works."""
        runner = self.ctx.runner
        if not runner.run("nvidia-smi", quiet=True).ok:
            return "nvidia-smi is not working yet"

        # The probe may already have run the test container.
        capabilities = self.ctx.report.capabilities
        if capabilities is not None and capabilities.container_gpu is not None:
            container_ok = capabilities.container_gpu
        else:
            container_ok = runner.run(
                ["docker", "run", "--rm", "--gpus", "all", cuda_test_image(self.ctx), "nvidia-smi"],
                quiet=True, timeout=CONTAINER_TEST_TIMEOUT,
            ).ok
        if not container_ok:
            return "GPU is not visible inside Docker containers"
        return None

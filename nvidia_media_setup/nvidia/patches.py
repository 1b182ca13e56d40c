"""NVIDIA driver patches for NVENC and NvFBC

Runs the community keylase/nvidia-patch scripts from a throwaway clone.
"""

import tempfile

from ..steps import Decision, ProvisioningStep
from ..utils.logging import log_info


class NvidiaPatcher:
    """Removes the consumer NVENC session limit, optionally enables NvFBC."""

    step_id = "nvidia-patches"

    def as_step(self) -> ProvisioningStep:
        return ProvisioningStep(
            step_id=self.step_id,
            title="NVIDIA NVENC & NvFBC unlimited sessions patch...",
            detect=lambda ctx: None,
            decide=self.decide,
            apply=self.apply,
            fatal=False,
        )

    def decide(self, ctx, _state) -> Decision:
        if ctx.prompt.confirm(
            "Would you like to patch NVIDIA drivers to remove NVENC session limit?", default=False
        ):
            return Decision.INSTALL
        return Decision.SKIP

    def apply(self, ctx, decision, _state) -> None:
        # The clone is deleted even when a patch script fails.
        with tempfile.TemporaryDirectory(prefix="nvidia-patch-") as patch_dir:
            log_info("Downloading NVIDIA patcher...")
            ctx.runner.check(["git", "clone", ctx.config.nvidia_patch_repo, patch_dir], progress=True)

            log_info("Applying NVENC session limit patch...")
            ctx.runner.check(["bash", "./patch.sh"], cwd=patch_dir)

            if ctx.prompt.confirm(
                "Would you also like to patch for NvFBC support (useful for OBS)?", default=False
            ):
                log_info("Applying NvFBC patch...")
                ctx.runner.check(["bash", "./patch-fbc.sh"], cwd=patch_dir)

        log_info("✓ NVIDIA driver successfully patched!")

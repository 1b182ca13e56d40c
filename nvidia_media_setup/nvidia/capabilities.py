"""GPU capability checks for media processing.

Purely observational: nothing here changes the system. When the driver
cannot be queried (module not loaded before a reboot, for example) the
report degrades to "unknown" instead of raising.
"""

from dataclasses import dataclass

from ..utils.detection import DECODER_BLOCK, ENCODER_BLOCK
from ..utils.logging import log_info, log_step, log_warn
from ..utils.system import get_os_info

CONTAINER_TEST_TIMEOUT = 600
CUDA_IMAGE_RELEASES = ("22.04", "20.04")
DEFAULT_CUDA_IMAGE_RELEASE = "22.04"


@dataclass(frozen=True)
class GpuTier:
    """One row of the compatibility table."""
    patterns: tuple[str, ...]
    tier: str
    headline: str
    notes: str = ""
    recommended: bool = True


# Evaluated top to bottom, newest architectures first; the first match wins.
# Patterns match the device name case-insensitively.
GPU_TIERS: tuple[GpuTier, ...] = (
    GpuTier(("RTX 50", "RTX 40"), "excellent",
            "Modern GPU detected - excellent performance expected",
            "Full support for AV1, H.265/HEVC, H.264/AVC"),
    GpuTier(("RTX 30",), "very-good",
            "Very good GPU model - well-supported",
            "Good support for H.265/HEVC, H.264/AVC"),
    GpuTier(("RTX 20", "GTX 16"), "good",
            "Good GPU model - well-supported",
            "Supports H.265/HEVC, H.264/AVC"),
    GpuTier(("GTX 10",), "supported",
            "Supported GPU model - good for most tasks",
            "Good support for H.264/AVC, limited H.265/HEVC"),
    GpuTier(("GTX 9", "GTX 7", "GTX 8"), "limited",
            "Older GPU model - limited capabilities",
            "Basic H.264/AVC support only",
            recommended=False),
    GpuTier(("Quadro",), "professional",
            "Quadro GPU detected - should work with Plex"),
)

UNKNOWN_TIER = GpuTier((), "unknown",
                       "Unknown GPU model - check Plex compatibility manually",
                       recommended=False)


def classify_gpu(device_name: str | None) -> GpuTier:
    """Pick the first table row whose pattern occurs in the device name, ignoring case."""
    if not device_name:
        return UNKNOWN_TIER
    name = device_name.lower()
    for row in GPU_TIERS:
        if any(pattern.lower() in name for pattern in row.patterns):
            return row
    return UNKNOWN_TIER


def architecture_for(compute_cap: str | None) -> str:
    """Map a compute capability such as '8.6' to an architecture family."""
    try:
        major, minor = (compute_cap or "").split('.')[:2]
        cc_value = float(f"{int(major)}.{int(minor)}")
    except ValueError:
        return "Unknown/Legacy"

    if cc_value >= 10.0:
        return "Blackwell (RTX 50 series)"
    elif cc_value >= 8.9:
        return "Ada Lovelace (RTX 40 series)"
    elif cc_value >= 8.0:
        return "Ampere (RTX 30 series)"
    elif cc_value >= 7.5:
        return "Turing (RTX 20/GTX 16 series)"
    elif cc_value >= 7.0:
        return "Volta"
    elif cc_value >= 6.0:
        return "Pascal (GTX 10 series)"
    elif cc_value >= 5.0:
        return "Maxwell (GTX 9xx series)"
    elif cc_value >= 3.0:
        return "Kepler (GTX 6xx/7xx series)"
    return "Unknown/Legacy"


def cuda_test_image(ctx) -> str:
    """nvidia/cuda base image for the chosen CUDA version.

    Only Ubuntu releases published for every CUDA version in the menu are
    used; any other host release falls back to 22.04.
    """
    release = get_os_info(ctx.config.os_release_path).get("VERSION_ID")
    if release not in CUDA_IMAGE_RELEASES:
        release = DEFAULT_CUDA_IMAGE_RELEASE
    return f"nvidia/cuda:{ctx.cuda_version_value}-base-ubuntu{release}"


@dataclass
class CapabilityReport:
    status: str = "unknown"
    device_name: str | None = None
    compute_capability: str | None = None
    architecture: str | None = None
    nvenc: bool = False
    nvdec: bool = False
    tier: GpuTier = UNKNOWN_TIER
    container_gpu: bool | None = None
    container_nvenc: bool | None = None


class CapabilityProbe:
    """Reports what the installed GPU and driver can do for transcoding."""

    def probe(self, ctx, container_check: bool = True) -> CapabilityReport:
        log_step("Checking GPU capabilities for media processing...")
        report = CapabilityReport()
        ctx.report.capabilities = report

        query = ctx.runner.run(
            "nvidia-smi --query-gpu=gpu_name,compute_cap --format=csv,noheader", quiet=True
        )
        first_line = query.output.splitlines()[0] if query.ok and query.output else ""
        if "," not in first_line:
            log_warn("Cannot check GPU model - driver might not be loaded yet")
            return report

        name, compute_cap = (part.strip() for part in first_line.split(",", 1))
        report.status = "ok"
        report.device_name = name
        report.compute_capability = compute_cap
        report.architecture = architecture_for(compute_cap)
        log_info(f"Detected GPU: {name}")
        log_info(f"GPU Architecture: Compute {compute_cap} ({report.architecture})")

        self._check_codecs(ctx, report)
        self._provide_gpu_guidance(report)

        if container_check:
            self._check_container_access(ctx, report)
        return report

    def _check_codecs(self, ctx, report):
        details = ctx.runner.run("nvidia-smi -q", quiet=True)
        report.nvenc = details.ok and ENCODER_BLOCK.matches(details.output)
        report.nvdec = details.ok and DECODER_BLOCK.matches(details.output)

        if report.nvenc:
            log_info("✓ NVENC (GPU encoding) is supported")
            log_info("  → Compatible with FFmpeg and Plex GPU-accelerated encoding")
        else:
            log_warn("✗ NVENC not detected - GPU encoding may not be available")

        if report.nvdec:
            log_info("✓ NVDEC (GPU decoding) is supported")
            log_info("  → Compatible with FFmpeg and Plex GPU-accelerated decoding")
        else:
            log_warn("✗ NVDEC not detected - GPU decoding may not be available")

    def _provide_gpu_guidance(self, report):
        report.tier = classify_gpu(report.device_name)
        if report.tier.recommended:
            log_info(f"✓ {report.tier.headline}")
        else:
            log_warn(f"! {report.tier.headline}")
        if report.tier.notes:
            log_info(f"  → {report.tier.notes}")

    def _check_container_access(self, ctx, report):
        if not ctx.runner.run("docker --version", quiet=True).ok:
            log_info("Docker not available, skipping container GPU test")
            return
        if not ctx.prompt.confirm("Run a disposable test container to verify GPU access?", default=True):
            return

        image = cuda_test_image(ctx)
        log_info(f"Testing GPU access in Docker ({image})...")
        gpu = ctx.runner.run(
            ["docker", "run", "--rm", "--gpus", "all", image, "nvidia-smi"],
            quiet=True, progress=True, timeout=CONTAINER_TEST_TIMEOUT,
        )
        report.container_gpu = gpu.ok
        if not gpu.ok:
            log_warn("GPU is not yet accessible from Docker - reboot may be needed")
            return
        log_info("✓ GPU is accessible from Docker containers")

        encode = ctx.runner.run(
            ["docker", "run", "--rm", "--gpus", "all",
             "-e", "NVIDIA_DRIVER_CAPABILITIES=compute,video,utility",
             image, "sh", "-c", "ls /usr/lib/x86_64-linux-gnu/libnvidia-encode.so*"],
            quiet=True, timeout=CONTAINER_TEST_TIMEOUT,
        )
        report.container_nvenc = encode.ok
        if encode.ok:
            log_info("✓ NVENC libraries are mounted inside containers")
        else:
            log_warn("NVENC libraries not visible inside containers")

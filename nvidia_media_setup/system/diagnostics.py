"""Helper scripts left on the host for checking GPU transcoding later"""

import os

from ..steps import Decision, ProvisioningStep
from ..utils.logging import log_info

DOCKER_TEST_SCRIPT = """\
#!/bin/bash
echo "Testing NVIDIA GPU access inside Docker..."
docker run --rm --gpus all nvidia/cuda:latest nvidia-smi

echo -e "\\nTesting FFmpeg with CUDA inside Docker..."
docker run --rm --gpus all nvidia/cuda:latest bash -c "apt-get update >/dev/null && apt-get install -y ffmpeg >/dev/null && ffmpeg -hwaccels | grep cuda"

echo -e "\\nTesting NVENC encoding capabilities inside Docker..."
docker run --rm --gpus all nvidia/cuda:latest bash -c "apt-get update >/dev/null && apt-get install -y ffmpeg >/dev/null && ffmpeg -encoders | grep nvenc"
"""

TRANSCODE_TEST_SCRIPT = """\
#!/bin/bash
if [ ! -f "/tmp/test.mp4" ]; then
    echo "Downloading test video..."
    curl -L "https://download.blender.org/peach/bigbuckbunny_movies/BigBuckBunny_320x180.mp4" -o /tmp/test.mp4
fi

echo "Testing CPU transcoding..."
time ffmpeg -hide_banner -loglevel error -i /tmp/test.mp4 -c:v libx264 -preset ultrafast -t 10 -f null -

echo -e "\\nTesting GPU transcoding..."
time ffmpeg -hide_banner -loglevel error -i /tmp/test.mp4 -c:v h264_nvenc -preset fast -t 10 -f null -

echo -e "\\nNVIDIA hardware acceleration is working if the GPU test was faster than CPU!"
"""

DIAGNOSTIC_SCRIPTS = {
    "test-nvidia-docker.sh": ("Test GPU access in Docker", DOCKER_TEST_SCRIPT),
    "test-transcode.sh": ("Test transcoding performance", TRANSCODE_TEST_SCRIPT),
}


def write_diagnostic_scripts(scripts_dir) -> list[str]:
    """Write the helper scripts with mode 0755 and return their paths."""
    os.makedirs(scripts_dir, exist_ok=True)
    written = []
    for name, (_, body) in DIAGNOSTIC_SCRIPTS.items():
        path = os.path.join(scripts_dir, name)
        with open(path, 'w') as f:
            f.write(body)
        os.chmod(path, 0o755)
        written.append(path)
    return written


def _apply(ctx, decision, _state):
    paths = write_diagnostic_scripts(ctx.config.scripts_dir)
    log_info("Test scripts created:")
    for path, (description, _) in zip(paths, DIAGNOSTIC_SCRIPTS.values()):
        log_info(f"  • {path} - {description}")


def diagnostics_step() -> ProvisioningStep:
    return ProvisioningStep(
        step_id="diagnostic-scripts",
        title="Creating diagnostic and test scripts...",
        detect=lambda ctx: None,
        decide=lambda ctx, _state: Decision.INSTALL,
        apply=_apply,
        fatal=False,
    )

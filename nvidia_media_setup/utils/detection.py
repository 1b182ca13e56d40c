"""Matchers for diagnostic text printed by external tools.

Tool output is not a stable interface. Each check lives here as a named
matcher so the strings can change without touching the provisioning logic.
A matcher that finds nothing simply reports False; callers treat that as
"state unknown", never as a fatal error.
"""

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class OutputMatcher:
    """A named regular expression searched for in command output."""
    name: str
    pattern: str
    ignore_case: bool = True
    multiline: bool = False

    def matches(self, text: str | None) -> bool:
        if not text:
            return False
        flags = 0
        if self.ignore_case:
            flags |= re.IGNORECASE
        if self.multiline:
            flags |= re.MULTILINE
        return re.search(self.pattern, text, flags) is not None


# nvidia-smi: "Failed to initialize NVML: Driver/library version mismatch"
DRIVER_VERSION_MISMATCH = OutputMatcher("driver-version-mismatch", r"version mismatch")

# systemctl status docker after a broken daemon.json
DOCKER_FAILED_TO_START = OutputMatcher(
    "docker-failed-to-start",
    r"Failed to start Docker Application Container Engine",
    ignore_case=False,
)

# docker info: "Runtimes: io.containerd.runc.v2 nvidia runc"
NVIDIA_RUNTIME_REGISTERED = OutputMatcher("nvidia-runtime-registered", r"Runtimes:.*\bnvidia\b")

# nvidia-smi -q section headers
ENCODER_BLOCK = OutputMatcher("nvenc-block", r"^\s*Encoder", ignore_case=False, multiline=True)
DECODER_BLOCK = OutputMatcher("nvdec-block", r"^\s*Decoder", ignore_case=False, multiline=True)

# mokutil --sb-state
SECURE_BOOT_ENABLED = OutputMatcher("secure-boot-enabled", r"SecureBoot enabled", ignore_case=False)

"""Shared test fixtures for nvidia-media-setup tests."""

from __future__ import annotations

from dataclasses import dataclass
from unittest.mock import patch

import pytest

from nvidia_media_setup.config import SetupConfig
from nvidia_media_setup.context import RunContext
from nvidia_media_setup.utils.prompts import OperatorPrompt
from nvidia_media_setup.utils.system import CommandResult, CommandRunner, describe_command

UBUNTU_2204_OS_RELEASE = """\
NAME="Ubuntu"
VERSION_ID="22.04"
PRETTY_NAME="Ubuntu 22.04.4 LTS"
VERSION_CODENAME=jammy
"""

LSPCI_WITH_NVIDIA = (
    "00:02.0 Host bridge: Intel Corporation Device 4c53\n"
    "01:00.0 VGA compatible controller: NVIDIA Corporation GA102 [GeForce RTX 3090] (rev a1)\n"
    "01:00.1 Audio device: NVIDIA Corporation GA102 High Definition Audio Controller (rev a1)"
)

UBUNTU_DRIVERS_DEVICES = """\
== /sys/devices/pci0000:00/0000:00:01.0/0000:01:00.0 ==
modalias : pci:v000010DEd00002204sv00001458sd0000403Bbc03sc00i00
vendor   : NVIDIA Corporation
model    : GA102 [GeForce RTX 3090]
driver   : nvidia-driver-535 - distro non-free
driver   : nvidia-driver-550 - distro non-free recommended
driver   : xserver-xorg-video-nouveau - distro free builtin"""

NVIDIA_SMI_Q = """\
==============NVSMI LOG==============
Attached GPUs                             : 1
GPU 00000000:01:00.0
    Product Name                          : NVIDIA GeForce RTX 3090
    Encoder Stats
        Active Sessions                   : 0
    Decoder Utilization                   : 0 %
"""


# ---------------------------------------------------------------------------
# Fake command runner
# ---------------------------------------------------------------------------

@dataclass
class _Rule:
    fragment: str
    returncode: int
    output: str
    exact: bool
    times: int | None

    def matches(self, command: str) -> bool:
        if self.exact:
            return command == self.fragment
        return self.fragment in command


class FakeRunner(CommandRunner):
    """Records every command and answers from canned rules.

    Rules added later win over earlier ones. A command no rule matches
    succeeds with empty output.
    """

    def __init__(self):
        self.calls: list[str] = []
        self.options: list[dict] = []
        self.rules: list[_Rule] = []

    def on(self, fragment, returncode=0, output="", exact=False, times=None) -> "FakeRunner":
        self.rules.insert(0, _Rule(fragment, returncode, output, exact, times))
        return self

    def run(self, cmd, **kwargs) -> CommandResult:
        command = describe_command(cmd)
        self.calls.append(command)
        self.options.append(kwargs)
        for rule in self.rules:
            if not rule.matches(command):
                continue
            if rule.times is not None:
                rule.times -= 1
                if rule.times == 0:
                    self.rules.remove(rule)
            return CommandResult(command, rule.returncode, rule.output)
        return CommandResult(command, 0, "")

    def ran(self, fragment) -> list[str]:
        return [c for c in self.calls if fragment in c]

    def count(self, fragment) -> int:
        return len(self.ran(fragment))

    def index_of(self, fragment) -> int:
        for i, command in enumerate(self.calls):
            if fragment in command:
                return i
        raise AssertionError(f"{fragment!r} was never run")


# ---------------------------------------------------------------------------
# Scripted operator
# ---------------------------------------------------------------------------

class ScriptedPrompt(OperatorPrompt):
    """Answers prompts from a {prompt fragment: answer} map, else the default."""

    def __init__(self, answers=None, interactive=True):
        self.answers = dict(answers or {})
        self.interactive = interactive
        self.asked: list[str] = []
        self.acknowledged: list[str] = []

    def _answer(self, prompt, default):
        self.asked.append(prompt)
        for fragment, answer in self.answers.items():
            if fragment in prompt:
                return answer
        return default

    def confirm(self, prompt, default=True):
        return self._answer(prompt, default)

    def ask(self, prompt, default=None):
        return self._answer(prompt, default or "")

    def choose(self, prompt, choices, default=0):
        return self._answer(prompt, default)

    def acknowledge(self, message, phrase):
        self.acknowledged.append(phrase)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def config(tmp_path_factory) -> SetupConfig:
    """SetupConfig whose every path lives under a fresh temporary directory."""
    # Not tmp_path: its name embeds the test name, which would leak into
    # substring matches on recorded commands (e.g. "reboot").
    tmp_path = tmp_path_factory.mktemp("host")
    os_release = tmp_path / "os-release"
    os_release.write_text(UBUNTU_2204_OS_RELEASE)
    return SetupConfig(
        os_release_path=str(os_release),
        daemon_config_path=str(tmp_path / "etc" / "docker" / "daemon.json"),
        compose_path=str(tmp_path / "bin" / "docker-compose"),
        templates_dir=str(tmp_path / "opt" / "docker-templates"),
        scripts_dir=str(tmp_path / "bin"),
        keyrings_dir=str(tmp_path / "keyrings"),
        toolkit_keyring_path=str(tmp_path / "keyrings" / "nvidia-container-toolkit-keyring.gpg"),
        toolkit_list_path=str(tmp_path / "sources.list.d" / "nvidia-container-toolkit.list"),
        cdi_spec_path=str(tmp_path / "cdi" / "nvidia.yaml"),
        acknowledged_marker=str(tmp_path / "state" / ".acknowledged"),
        stale_repo_files=(
            str(tmp_path / "sources.list.d" / "nvidia-docker.list"),
            str(tmp_path / "keyrings" / "nvidia-docker.gpg"),
        ),
    )


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def prompt() -> ScriptedPrompt:
    return ScriptedPrompt()


@pytest.fixture
def ctx(config, runner, prompt) -> RunContext:
    return RunContext.create(config, runner=runner, prompt=prompt)


@pytest.fixture
def as_root():
    with patch("os.geteuid", return_value=0):
        yield


@pytest.fixture
def fresh_host(runner) -> FakeRunner:
    """Ubuntu 22.04 with an RTX 3090 and nothing installed yet."""
    runner.on("lspci", output=LSPCI_WITH_NVIDIA)
    runner.on("nvidia-smi", returncode=9,
              output="NVIDIA-SMI has failed because it couldn't communicate with the NVIDIA driver.")
    runner.on("ubuntu-drivers devices", output=UBUNTU_DRIVERS_DEVICES)
    runner.on("docker --version", returncode=127, output="docker: not found", times=1)
    runner.on("dpkg-query", returncode=1,
              output="dpkg-query: no packages found matching nvidia-container-toolkit")
    runner.on("docker info", output="Runtimes: io.containerd.runc.v2 runc")
    runner.on("systemctl status docker", output="Active: active (running)")
    return runner

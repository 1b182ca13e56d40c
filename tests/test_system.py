"""Tests for nvidia_media_setup.utils.system: CommandRunner, AptManager, helpers."""

from __future__ import annotations

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from nvidia_media_setup.errors import CommandError, InstallError
from nvidia_media_setup.utils.system import (
    NOT_FOUND_RETURNCODE,
    TIMEOUT_RETURNCODE,
    AptManager,
    CommandResult,
    CommandRunner,
    check_internet,
    cleanup_nvidia_repos,
    describe_command,
    find_nvidia_devices,
    get_kernel_release,
    get_os_info,
)

from conftest import LSPCI_WITH_NVIDIA, FakeRunner


# ---------------------------------------------------------------------------
# CommandResult / describe_command
# ---------------------------------------------------------------------------

class TestCommandResult:
    def test_ok_on_zero(self):
        assert CommandResult("true", 0).ok is True

    def test_not_ok_on_nonzero(self):
        assert CommandResult("false", 1).ok is False

    def test_is_immutable(self):
        result = CommandResult("true", 0)
        with pytest.raises(AttributeError):
            result.returncode = 1

    def test_describe_shell_string(self):
        assert describe_command("apt-get update") == "apt-get update"

    def test_describe_argv_quotes_arguments(self):
        assert describe_command(["apt-get", "remove", "^nvidia-.*"]) == "apt-get remove '^nvidia-.*'"


# ---------------------------------------------------------------------------
# CommandRunner
# ---------------------------------------------------------------------------

class TestCommandRunner:
    @patch("nvidia_media_setup.utils.system.subprocess.run")
    def test_shell_string_runs_through_shell(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0)
        result = CommandRunner().run("systemctl restart docker")

        assert result.ok
        assert result.output == ""
        args, kwargs = mock_run.call_args
        assert args[0] == "systemctl restart docker"
        assert kwargs["shell"] is True
        assert kwargs["stdin"] is subprocess.DEVNULL

    @patch("nvidia_media_setup.utils.system.subprocess.run")
    def test_argv_list_runs_without_shell(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0)
        CommandRunner().run(["git", "clone", "repo"])
        assert mock_run.call_args.kwargs["shell"] is False

    @patch("nvidia_media_setup.utils.system.subprocess.run")
    def test_quiet_captures_and_strips_output(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="Docker version 26.1.0\n")
        result = CommandRunner().run("docker --version", quiet=True)

        assert result.output == "Docker version 26.1.0"
        kwargs = mock_run.call_args.kwargs
        assert kwargs["stdout"] is subprocess.PIPE
        assert kwargs["stderr"] is subprocess.STDOUT

    @patch("nvidia_media_setup.utils.system.subprocess.run")
    def test_quiet_suppresses_running_line(self, mock_run, capsys):
        mock_run.return_value = MagicMock(returncode=0, stdout="")
        CommandRunner().run("lspci", quiet=True)
        assert "Running:" not in capsys.readouterr().out

    @patch("nvidia_media_setup.utils.system.subprocess.run")
    def test_loud_logs_running_line(self, mock_run, capsys):
        mock_run.return_value = MagicMock(returncode=0)
        CommandRunner().run("apt-get update")
        assert "Running: apt-get update" in capsys.readouterr().out

    @patch("nvidia_media_setup.utils.system.subprocess.run")
    def test_nonzero_exit_is_failure_not_exception(self, mock_run):
        mock_run.return_value = MagicMock(returncode=100)
        result = CommandRunner().run("apt-get install -y nope")
        assert result.returncode == 100
        assert not result.ok

    @patch("nvidia_media_setup.utils.system.subprocess.run")
    def test_timeout_maps_to_124(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired("ping", 10)
        result = CommandRunner().run("ping -c 1 8.8.8.8", quiet=True, timeout=10)
        assert result.returncode == TIMEOUT_RETURNCODE

    @patch("nvidia_media_setup.utils.system.subprocess.run")
    def test_missing_executable_maps_to_127(self, mock_run):
        mock_run.side_effect = FileNotFoundError("nvidia-smi")
        result = CommandRunner().run(["nvidia-smi"], quiet=True)
        assert result.returncode == NOT_FOUND_RETURNCODE

    @patch("nvidia_media_setup.utils.system.subprocess.run")
    def test_env_is_merged_into_os_environ(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0)
        with patch.dict("os.environ", {"PATH": "/usr/bin"}, clear=True):
            CommandRunner().run("apt-get install -y git", env={"DEBIAN_FRONTEND": "noninteractive"})
        assert mock_run.call_args.kwargs["env"] == {
            "PATH": "/usr/bin", "DEBIAN_FRONTEND": "noninteractive",
        }

    @patch("nvidia_media_setup.utils.system.subprocess.run")
    def test_check_raises_command_error(self, mock_run):
        mock_run.return_value = MagicMock(returncode=1)
        with pytest.raises(CommandError) as exc_info:
            CommandRunner().check("systemctl start docker")
        assert exc_info.value.result.returncode == 1
        assert "systemctl start docker" in str(exc_info.value)

    def test_progress_captures_output(self):
        runner = CommandRunner()
        runner.POLL_INTERVAL = 0
        result = runner.run(["sh", "-c", "echo downloaded"], progress=True)
        assert result.ok
        assert result.output == "downloaded"

    def test_progress_failure_shows_output_tail(self, capsys):
        runner = CommandRunner()
        runner.POLL_INTERVAL = 0
        runner.FAILURE_TAIL_LINES = 2
        result = runner.run(["sh", "-c", "echo one; echo two; echo three; exit 3"], progress=True)

        assert result.returncode == 3
        out = capsys.readouterr().out
        assert "Last output lines:" in out
        assert "    two" in out and "    three" in out
        assert "    one" not in out

    def test_progress_success_hides_output(self, capsys):
        runner = CommandRunner()
        runner.POLL_INTERVAL = 0
        runner.run(["sh", "-c", "echo fine"], progress=True)
        assert "Last output lines:" not in capsys.readouterr().out

    def test_progress_timeout_kills_process(self):
        runner = CommandRunner()
        runner.POLL_INTERVAL = 0.01
        result = runner.run(["sleep", "5"], progress=True, timeout=0.1)
        assert result.returncode == TIMEOUT_RETURNCODE


# ---------------------------------------------------------------------------
# AptManager
# ---------------------------------------------------------------------------

class TestAptManager:
    def test_repeated_install_refreshes_index_once(self):
        runner = FakeRunner()
        apt = AptManager(runner)

        apt.install("curl")
        apt.install("git", "wget")
        apt.install("dkms")

        assert runner.count("apt-get update") == 1
        assert runner.count("apt-get install") == 3
        assert apt.update_done is True

    def test_flag_starts_false(self):
        assert AptManager(FakeRunner()).update_done is False

    def test_forced_update_runs_again(self):
        runner = FakeRunner()
        apt = AptManager(runner)
        apt.update()
        apt.update()
        apt.update(force=True)
        assert runner.count("apt-get update") == 2
        assert apt.update_done is True

    def test_install_is_noninteractive(self):
        runner = FakeRunner()
        AptManager(runner).install("curl", "git")
        index = runner.index_of("apt-get install")
        assert runner.calls[index] == "apt-get install -y curl git"
        assert runner.options[index]["env"] == {"DEBIAN_FRONTEND": "noninteractive"}

    def test_install_failure_raises_install_error(self):
        runner = FakeRunner().on("apt-get install", returncode=100)
        with pytest.raises(InstallError) as exc_info:
            AptManager(runner).install("nvidia-driver-550")
        assert exc_info.value.packages == ["nvidia-driver-550"]

    def test_update_failure_raises_install_error(self):
        runner = FakeRunner().on("apt-get update", returncode=100)
        with pytest.raises(InstallError):
            AptManager(runner).install("curl")
        assert runner.count("apt-get install") == 0

    def test_install_nothing_is_noop(self):
        runner = FakeRunner()
        AptManager(runner).install()
        assert runner.calls == []

    def test_purge_pattern_passes_regex_as_one_argument(self):
        runner = FakeRunner()
        AptManager(runner).purge_pattern("^nvidia-.*")
        assert runner.calls == ["apt-get remove --purge -y '^nvidia-.*'"]

    def test_autoremove_purge(self):
        runner = FakeRunner()
        AptManager(runner).autoremove(purge=True)
        assert runner.calls == ["apt-get autoremove --purge -y"]

    def test_is_installed(self):
        runner = FakeRunner().on("dpkg-query", output="install ok installed")
        assert AptManager(runner).is_installed("nvidia-container-toolkit") is True

    def test_is_not_installed(self):
        runner = FakeRunner().on("dpkg-query", returncode=1)
        assert AptManager(runner).is_installed("nvidia-container-toolkit") is False


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestHelpers:
    def test_get_os_info(self, tmp_path):
        path = tmp_path / "os-release"
        path.write_text('NAME="Ubuntu"\nVERSION_ID="24.04"\n# comment\n')
        assert get_os_info(str(path)) == {"NAME": "Ubuntu", "VERSION_ID": "24.04"}

    def test_get_os_info_missing_file(self, tmp_path):
        assert get_os_info(str(tmp_path / "nope")) == {}

    def test_find_nvidia_devices(self):
        runner = FakeRunner().on("lspci", output=LSPCI_WITH_NVIDIA)
        devices = find_nvidia_devices(runner)
        assert len(devices) == 2
        assert all("NVIDIA" in d for d in devices)

    def test_find_nvidia_devices_none(self):
        runner = FakeRunner().on("lspci", output="00:02.0 VGA compatible controller: Intel Corporation UHD")
        assert find_nvidia_devices(runner) == []

    def test_find_nvidia_devices_is_case_insensitive(self):
        runner = FakeRunner().on("lspci", output="01:00.0 3D controller: nvidia corporation TU104GL")
        assert len(find_nvidia_devices(runner)) == 1

    def test_check_internet(self):
        runner = FakeRunner().on("ping", returncode=1)
        assert check_internet(runner, "8.8.8.8") is False
        assert runner.calls == ["ping -c 1 8.8.8.8"]

    def test_kernel_release(self):
        runner = FakeRunner().on("uname -r", output="6.8.0-45-generic")
        assert get_kernel_release(runner) == "6.8.0-45-generic"

    def test_cleanup_removes_only_existing(self, tmp_path):
        present = tmp_path / "nvidia-docker.list"
        present.write_text("deb https://example\n")
        missing = tmp_path / "nvidia-docker.gpg"

        removed = cleanup_nvidia_repos([str(present), str(missing)])

        assert removed == [str(present)]
        assert not present.exists()

"""Exception types raised while provisioning.

Fatal errors stop the whole run (exit code 1). Everything else is advisory
unless the step that raised it is marked fatal.
"""


class SetupError(Exception):
    """Base class for all provisioning errors."""


class FatalError(SetupError):
    """An error that halts the run immediately."""


class PreflightError(FatalError):
    """A preflight requirement was not met or the operator declined to continue."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class CommandError(SetupError):
    """A command that had to succeed returned a failure."""

    def __init__(self, result, message: str | None = None):
        self.result = result
        super().__init__(message or f"Command failed ({result.returncode}): {result.command}")


class InstallError(SetupError):
    """Package installation failed."""

    def __init__(self, packages, result=None):
        self.packages = list(packages)
        self.result = result
        names = " ".join(self.packages) or "<none>"
        super().__init__(f"Failed to install: {names}")

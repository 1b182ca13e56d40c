"""Idempotent provisioning steps: detect, decide, apply."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from .errors import CommandError, FatalError, InstallError
from .utils.logging import log_error, log_info, log_step, log_success, log_warn


class Decision(Enum):
    """What a step should do about the state it detected."""
    SKIP = "skip"
    REPAIR = "repair"
    INSTALL = "install"


class StepStatus(Enum):
    """How a step ended."""
    SKIPPED = "skipped"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass(frozen=True)
class StepOutcome:
    step_id: str
    status: StepStatus
    detail: str = ""


@dataclass
class ProvisioningStep:
    """One unit of convergence logic.

    ``detect(ctx)`` returns the current state, ``decide(ctx, state)`` maps it
    to a Decision, and ``apply(ctx, decision, state)`` converges the system.
    ``apply`` must be safe to run any number of times.

    A fatal step turns apply failures (failed commands, failed installs,
    unwritable files) into FatalError; an advisory step logs them and lets
    the run continue.
    """

    step_id: str
    title: str
    detect: Callable[[Any], Any]
    decide: Callable[[Any, Any], Decision]
    apply: Callable[[Any, Decision, Any], None]
    fatal: bool = False

    def run(self, ctx) -> StepOutcome:
        log_step(self.title)
        state = self.detect(ctx)
        try:
            decision = self.decide(ctx, state)
        except FatalError as exc:
            ctx.report.record(self.step_id, StepStatus.FAILED, str(exc))
            raise

        if decision is Decision.SKIP:
            log_info(f"Nothing to do for {self.step_id}")
            return ctx.report.record(self.step_id, StepStatus.SKIPPED)

        try:
            self.apply(ctx, decision, state)
        except (CommandError, InstallError, OSError) as exc:
            if self.fatal:
                log_error(f"{self.title} failed: {exc}")
                ctx.report.record(self.step_id, StepStatus.FAILED, str(exc))
                raise FatalError(f"{self.title} failed: {exc}") from exc
            log_warn(f"{self.title} failed: {exc}")
            return ctx.report.record(self.step_id, StepStatus.FAILED, str(exc))
        except FatalError as exc:
            ctx.report.record(self.step_id, StepStatus.FAILED, str(exc))
            raise

        log_success(f"{self.title}: {decision.value} complete")
        return ctx.report.record(self.step_id, StepStatus.APPLIED, decision.value)

"""Run-scoped state shared by every step of one provisioning run."""

import time
from dataclasses import dataclass, field
from typing import Any, Optional

from .config import SetupConfig
from .steps import StepOutcome, StepStatus
from .utils.prompts import OperatorPrompt, make_prompt
from .utils.system import AptManager, CommandRunner


@dataclass(frozen=True)
class VersionSpec:
    """A version chosen once per run (driver, CUDA image)."""
    value: str
    source: str  # recommended, default, operator, auto

    def __str__(self) -> str:
        return self.value


@dataclass
class RunReport:
    """Outcome of every step, in the order the steps ran."""

    started_at: float = field(default_factory=time.monotonic)
    finished_at: Optional[float] = None
    outcomes: list[StepOutcome] = field(default_factory=list)
    capabilities: Any = None

    def record(self, step_id: str, status: StepStatus, detail: str = "") -> StepOutcome:
        outcome = StepOutcome(step_id, status, detail)
        self.outcomes.append(outcome)
        return outcome

    def status_of(self, step_id: str) -> Optional[StepStatus]:
        for outcome in reversed(self.outcomes):
            if outcome.step_id == step_id:
                return outcome.status
        return None

    @property
    def failed(self) -> list[StepOutcome]:
        return [o for o in self.outcomes if o.status is StepStatus.FAILED]

    def finish(self) -> None:
        if self.finished_at is None:
            self.finished_at = time.monotonic()

    @property
    def elapsed(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return max(0.0, end - self.started_at)

    def format_elapsed(self) -> str:
        minutes, seconds = divmod(int(self.elapsed), 60)
        return f"{minutes}m {seconds}s"

    def render(self) -> list[str]:
        """Summary lines, one per step."""
        tags = {
            StepStatus.APPLIED: "[OK]",
            StepStatus.SKIPPED: "[--]",
            StepStatus.FAILED: "[!!]",
        }
        lines = []
        for outcome in self.outcomes:
            line = f"  {tags[outcome.status]} {outcome.step_id:<26} {outcome.status.value}"
            if outcome.detail and outcome.status is StepStatus.FAILED:
                line += f" ({outcome.detail})"
            lines.append(line)
        return lines


@dataclass
class RunContext:
    """Everything a step may consult during one run.

    Replaces process-wide flags: the apt refresh flag lives on ``apt``,
    resolved versions live here, and the whole object is dropped when the
    run ends.
    """

    config: SetupConfig
    runner: CommandRunner
    prompt: OperatorPrompt
    apt: AptManager
    report: RunReport
    driver_version: Optional[VersionSpec] = None
    cuda_version: Optional[VersionSpec] = None

    @classmethod
    def create(cls, config: SetupConfig, runner: Optional[CommandRunner] = None,
               prompt: Optional[OperatorPrompt] = None) -> "RunContext":
        runner = runner or CommandRunner()
        return cls(
            config=config,
            runner=runner,
            prompt=prompt or make_prompt(config.non_interactive),
            apt=AptManager(runner),
            report=RunReport(),
        )

    def resolve_driver_version(self, spec: VersionSpec) -> VersionSpec:
        if self.driver_version is not None:
            raise RuntimeError(f"Driver version already resolved to {self.driver_version}")
        self.driver_version = spec
        return spec

    def resolve_cuda_version(self, spec: VersionSpec) -> VersionSpec:
        if self.cuda_version is not None:
            raise RuntimeError(f"CUDA version already resolved to {self.cuda_version}")
        self.cuda_version = spec
        return spec

    @property
    def cuda_version_value(self) -> str:
        if self.cuda_version is None:
            return self.config.default_cuda_version
        return self.cuda_version.value

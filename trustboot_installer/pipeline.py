from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from .context import StageContext
from .errors import DestructiveConfirmationDeclined

logger = logging.getLogger(__name__)


class Stage(Protocol):
    """A single pipeline stage.

    ``skip_reason`` says whether the stage applies at all, ``check`` raises
    PreconditionError when the stage cannot run, ``progress`` describes what a
    successful run left behind on the machine and ``failure_note`` what a
    failed run may have left half done (None for side-effect free stages).
    """

    stage_id: str
    fatal: bool

    def skip_reason(self, ctx: StageContext) -> Optional[str]:
        ...

    def check(self, ctx: StageContext) -> None:
        ...

    def run(self, ctx: StageContext) -> None:
        ...

    def progress(self, ctx: StageContext) -> Optional[str]:
        ...

    def failure_note(self, ctx: StageContext) -> Optional[str]:
        ...


class BaseStage:
    stage_id = ""
    fatal = True

    def skip_reason(self, ctx: StageContext) -> Optional[str]:
        return None

    def check(self, ctx: StageContext) -> None:
        return None

    def run(self, ctx: StageContext) -> None:
        raise NotImplementedError

    def progress(self, ctx: StageContext) -> Optional[str]:
        return None

    def failure_note(self, ctx: StageContext) -> Optional[str]:
        return None


class StageOutcome(str, enum.Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class RunStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    COMPLETED = "completed"
    ABORTED = "aborted"
    DECLINED = "declined"


@dataclass(frozen=True)
class StageResult:
    stage_id: str
    outcome: StageOutcome
    reason: Optional[str] = None
    fatal: bool = True


@dataclass
class PipelineRun:
    results: List[StageResult] = field(default_factory=list)
    status: RunStatus = RunStatus.NOT_STARTED
    abort_reason: Optional[str] = None
    progress: List[str] = field(default_factory=list)
    interrupted: bool = False
    cleanup_ok: Optional[bool] = None

    def record(self, result: StageResult) -> None:
        self.results.append(result)

    def ids(self, outcome: StageOutcome) -> List[str]:
        return [r.stage_id for r in self.results if r.outcome is outcome]

    @property
    def ran_stages(self) -> List[str]:
        return self.ids(StageOutcome.SUCCESS)

    @property
    def skipped_stages(self) -> List[str]:
        return self.ids(StageOutcome.SKIPPED)

    @property
    def failed_stages(self) -> List[str]:
        return self.ids(StageOutcome.FAILED)

    def failure_report(self) -> str:
        lines = [f"Installation aborted: {self.abort_reason or 'unknown reason'}"]
        if self.progress:
            lines.append("Changes already made before the failure:")
            lines += [f"  - {note}" for note in self.progress]
        else:
            lines.append("No changes had been made to the target disk.")
        if self.cleanup_ok is False:
            lines.append("Cleanup could not unmount the target; inspect mounts before retrying.")
        lines.append("Nothing is resumed automatically: inspect the disk, then re-run from the start.")
        return "\n".join(lines)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "abort_reason": self.abort_reason,
            "interrupted": self.interrupted,
            "cleanup_ok": self.cleanup_ok,
            "progress": list(self.progress),
            "stages": [
                {"stage": r.stage_id, "outcome": r.outcome.value, "reason": r.reason, "fatal": r.fatal}
                for r in self.results
            ],
        }


class CleanupGuard:
    """Runs its action at most once and never lets it raise."""

    def __init__(self, action: Callable[[], Any]) -> None:
        self._action = action
        self._done = False
        self.ok: Optional[bool] = None

    def __call__(self) -> bool:
        if self._done:
            return bool(self.ok)
        self._done = True
        try:
            result = self._action()
            self.ok = result is not False
        except Exception:
            logger.exception("Cleanup failed")
            self.ok = False
        return self.ok


def run_pipeline(
    *,
    ctx: StageContext,
    stages: Sequence[Stage],
    cleanup: Callable[[], Any],
) -> PipelineRun:
    """Run stages in order, stopping at the first fatal failure.

    No stage is retried. ``cleanup`` runs exactly once on every way out:
    completion, fatal failure, operator decline and KeyboardInterrupt.
    """

    run = PipelineRun()
    guard = cleanup if isinstance(cleanup, CleanupGuard) else CleanupGuard(cleanup)
    current: Optional[Stage] = None
    stopped = False

    try:
        for stage in stages:
            current = stage
            ctx.current_stage = stage.stage_id

            reason = stage.skip_reason(ctx)
            if reason:
                logger.info("Skipping stage %s (%s)", stage.stage_id, reason)
                run.record(StageResult(stage.stage_id, StageOutcome.SKIPPED, reason, stage.fatal))
                continue

            logger.info("Running stage %s", stage.stage_id)
            try:
                stage.check(ctx)
                stage.run(ctx)
            except DestructiveConfirmationDeclined as e:
                logger.info("Stage %s: %s", stage.stage_id, e)
                run.record(StageResult(stage.stage_id, StageOutcome.SKIPPED, str(e), stage.fatal))
                run.status = RunStatus.DECLINED
                run.abort_reason = str(e)
                stopped = True
                break
            except Exception as e:
                run.record(StageResult(stage.stage_id, StageOutcome.FAILED, str(e), stage.fatal))
                if stage.fatal:
                    logger.error("Stage %s failed: %s", stage.stage_id, e, exc_info=True)
                    run.status = RunStatus.ABORTED
                    run.abort_reason = f"{stage.stage_id}: {e}"
                    note = stage.failure_note(ctx)
                    if note:
                        run.progress.append(f"(incomplete) {note}")
                    stopped = True
                    break
                logger.warning("Non-fatal stage %s failed: %s", stage.stage_id, e)
                ctx.warnings.append(UserWarning(f"{stage.stage_id} failed: {e}"))
                continue

            run.record(StageResult(stage.stage_id, StageOutcome.SUCCESS, None, stage.fatal))
            note = stage.progress(ctx)
            if note:
                run.progress.append(note)

        if not stopped:
            run.status = RunStatus.COMPLETED
    except KeyboardInterrupt:
        stage_id = current.stage_id if current is not None else "-"
        logger.error("Interrupted during stage %s", stage_id)
        run.status = RunStatus.ABORTED
        run.abort_reason = f"{stage_id}: interrupted by operator"
        run.interrupted = True
        # A stage already recorded finished its work before the interrupt
        if stage_id not in {r.stage_id for r in run.results}:
            run.record(StageResult(stage_id, StageOutcome.FAILED, "interrupted", True))
            note = current.failure_note(ctx) if current is not None else None
            if note:
                run.progress.append(f"(incomplete) {note}")
    finally:
        ctx.current_stage = None
        run.cleanup_ok = guard()

    return run

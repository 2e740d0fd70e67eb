from __future__ import annotations

import argparse
import logging
import signal
from typing import Any, Dict, List, Optional, Sequence

from .config import InstallerConfig, load_config
from .context import StageContext, Toolset
from .lib.chroot import ChrootBoundaryRunner
from .lib.command import run_cmd
from .lib.env import PATHS, EnvironmentProbe
from .lib.pkg import PacmanPackageTool
from .lib.prompts import Prompter
from .lib.secureboot import SbctlTrustTool
from .lib.storage import SgdiskDiskTool, unmount_target
from .logging_utils import configure_logging
from .pipeline import PipelineRun, RunStatus, Stage, run_pipeline
from .report_store import save_report
from .stages import (
    ConfigureTargetStage,
    ConfirmDestructiveStage,
    FinalizeStage,
    GatherConfigStage,
    InstallApplicationsStage,
    InstallBaseStage,
    InstallTrustChainStage,
    ProvisionDiskStage,
    ValidateEnvironmentStage,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130


def build_stages() -> List[Stage]:
    return [
        ValidateEnvironmentStage(),
        GatherConfigStage(),
        ConfirmDestructiveStage(),
        ProvisionDiskStage(),
        InstallBaseStage(),
        ConfigureTargetStage(),
        InstallTrustChainStage(),
        InstallApplicationsStage(),
        FinalizeStage(),
    ]


def build_toolset(
    *,
    config: InstallerConfig,
    mount_root: str,
    dry_run: bool = False,
    prompter: Optional[Prompter] = None,
) -> Toolset:
    runner = ChrootBoundaryRunner(dry_run=dry_run)
    return Toolset(
        disk=SgdiskDiskTool(dry_run=dry_run),
        packages=PacmanPackageTool(runner, dry_run=dry_run),
        runner=runner,
        trust=SbctlTrustTool(runner, mount_root),
        probe=EnvironmentProbe(probe_host=config.probe_host, dry_run=dry_run),
        prompter=prompter or Prompter(),
    )


def build_report(ctx: StageContext, result: PipelineRun) -> Dict[str, Any]:
    trust = ctx.trust
    return {
        "run": result.as_dict(),
        "target": ctx.spec.redacted() if ctx.spec is not None else None,
        "partition_plan": (
            {"device": ctx.plan.device, "boot": ctx.plan.boot_part, "root": ctx.plan.root_part}
            if ctx.plan is not None
            else None
        ),
        "trust": (
            {
                "state": trust.state.value,
                "signed_count": trust.signed_count,
                "signed": list(trust.signing.signed) if trust.signing else [],
                "failed": list(trust.signing.failed) if trust.signing else [],
                "triggers": list(trust.triggers),
            }
            if trust is not None
            else None
        ),
        "warnings": [f"{type(w).__name__}: {w}" for w in ctx.warnings],
        "dry_run": ctx.dry_run,
    }


def _summarize(ctx: StageContext, result: PipelineRun) -> None:
    say = ctx.tools.prompter.say
    if result.status is RunStatus.DECLINED:
        say("Installation cancelled by operator. The disk was not touched.")
        return
    if result.status is RunStatus.ABORTED:
        say(result.failure_report())
        return

    say("Installation complete!")
    for note in result.progress:
        say(f"  - {note}")
    if ctx.warnings:
        say("Warnings needing attention after reboot:")
        for w in ctx.warnings:
            say(f"  ! {w}")


def run(
    *,
    config_path: Optional[str] = PATHS.config_default,
    log_path: Optional[str] = None,
    report_path: Optional[str] = None,
    mount_root: Optional[str] = None,
    dry_run: bool = False,
    tools: Optional[Toolset] = None,
    stages: Optional[Sequence[Stage]] = None,
) -> PipelineRun:
    """Run the installer pipeline once and write the run report."""

    config = load_config(config_path)
    actual_log_path = configure_logging(log_path=log_path or config.log_path)

    mount_root = mount_root or config.mount_root
    tools = tools or build_toolset(config=config, mount_root=mount_root, dry_run=dry_run)
    ctx = StageContext(config=config, tools=tools, mount_root=mount_root, dry_run=dry_run)

    result = run_pipeline(
        ctx=ctx,
        stages=stages if stages is not None else build_stages(),
        cleanup=lambda: unmount_target(mount_root, tools.disk),
    )

    report = build_report(ctx, result)
    report["log_path"] = actual_log_path
    try:
        save_report(report_path or config.report_path, report)
    except OSError:
        logger.exception("Could not write run report")

    _summarize(ctx, result)
    return result


def exit_code(result: PipelineRun) -> int:
    if result.status in {RunStatus.COMPLETED, RunStatus.DECLINED}:
        return EXIT_OK
    if result.interrupted:
        return EXIT_INTERRUPTED
    return EXIT_FAILED


def _raise_interrupt(signum, frame) -> None:
    raise KeyboardInterrupt(f"signal {signum}")


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="trustboot-installer")
    p.add_argument("--config", default=PATHS.config_default, help="Installer config / answers file (yaml)")
    p.add_argument("--log", default=None, help="Path to installer log")
    p.add_argument("--report", default=None, help="Path to run report (json|yaml)")
    p.add_argument("--mount-root", default=None, help="Where the target is mounted (default /mnt)")
    p.add_argument("--dry-run", action="store_true", help="Log commands without running them")
    p.add_argument("--reboot", action="store_true", help="Reboot after a completed installation")

    args = p.parse_args(argv)

    previous = signal.signal(signal.SIGTERM, _raise_interrupt)
    try:
        result = run(
            config_path=args.config,
            log_path=args.log,
            report_path=args.report,
            mount_root=args.mount_root,
            dry_run=bool(args.dry_run),
        )
    finally:
        signal.signal(signal.SIGTERM, previous)

    if args.reboot and result.status is RunStatus.COMPLETED:
        run_cmd(["reboot"], dry_run=bool(args.dry_run))
    return exit_code(result)


if __name__ == "__main__":
    raise SystemExit(main())

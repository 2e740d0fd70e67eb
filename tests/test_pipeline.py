from pathlib import Path

import pytest

from fakes import MUTATING_DISK_CALLS, PASSWORD, FakeDiskTool, FakePackageTool, FakeProbe, FakeRunner, FakeTrustTool
from trustboot_installer.errors import ArtifactDiscoveryEmpty, EnrollmentDegradedWarning
from trustboot_installer.lib.hooks import parse_hook
from trustboot_installer.lib.storage import unmount_target
from trustboot_installer.main import build_stages
from trustboot_installer.pipeline import BaseStage, CleanupGuard, RunStatus, StageOutcome, run_pipeline

WITH_APPS = {"packages": {"applications": ["firefox"]}}


class Counter:
    def __init__(self, result=True):
        self.calls = 0
        self.result = result

    def __call__(self):
        self.calls += 1
        return self.result


def _run(ctx, stages=None, cleanup=None):
    cleanup = cleanup or (lambda: unmount_target(ctx.mount_root, ctx.tools.disk))
    return run_pipeline(ctx=ctx, stages=build_stages() if stages is None else stages, cleanup=cleanup)


def _cleanups(disk: FakeDiskTool, mount_root: str) -> int:
    return disk.calls.count(("unmount_recursive", mount_root))


def test_full_run_completes(make_ctx):
    ctx = make_ctx()
    disk, runner, packages = ctx.tools.disk, ctx.tools.runner, ctx.tools.packages

    result = _run(ctx)

    assert result.status is RunStatus.COMPLETED
    assert result.ran_stages == [
        "10_validate_environment",
        "20_gather_config",
        "25_confirm_destructive",
        "30_provision_disk",
        "40_install_base",
        "50_configure_target",
        "60_install_trust_chain",
        "90_finalize",
    ]
    # No applications configured and dev tools declined
    assert result.skipped_stages == ["70_install_applications"]
    assert result.cleanup_ok is True
    assert ctx.tools.probe.clock_synced
    assert "wipe_signatures" in disk.names
    assert [c[0] for c in packages.calls] == ["bootstrap", "generate_fstab", "install", "install"]
    assert runner.names[0] == "configure system"
    initramfs_hook = parse_hook((Path(ctx.mount_root) / "etc/pacman.d/hooks/90-trustboot-initramfs.hook").read_text())
    assert initramfs_hook["Action"]["Depends"] == ["mkinitcpio"]
    assert "install signing hooks" in runner.names
    assert runner.names[-1] == "post-install guide"
    assert len(result.progress) == 5


def test_passwords_only_passed_as_redacted_args(make_ctx):
    ctx = make_ctx()
    _run(ctx)

    configure = next(c for c in ctx.tools.runner.calls if c["name"] == "configure system")
    assert configure["args"].count(PASSWORD) == 2
    assert configure["secret_args"] == (PASSWORD, PASSWORD)
    assert PASSWORD not in configure["script"]
    for call in ctx.tools.runner.calls:
        if call["name"] != "configure system":
            assert PASSWORD not in call["args"]


def test_zero_kernel_directories_still_completes(make_ctx):
    ctx = make_ctx()
    result = _run(ctx)

    assert result.status is RunStatus.COMPLETED
    assert ctx.trust.signed_count == 0
    assert any(isinstance(w, ArtifactDiscoveryEmpty) for w in ctx.warnings)


def test_enrollment_failure_completes_with_warning(make_ctx):
    ctx = make_ctx(trust=FakeTrustTool(enroll_ok=False))
    result = _run(ctx)

    assert result.status is RunStatus.COMPLETED
    assert ctx.trust.state.value == "enrollment_degraded"
    assert any(isinstance(w, EnrollmentDegradedWarning) for w in ctx.warnings)
    guide = ctx.tools.runner.calls[-1]["script"]
    assert "sbctl enroll-keys -m" in guide


def test_decline_touches_no_disk(make_ctx):
    ctx = make_ctx(inputs=["n"])
    result = _run(ctx)

    assert result.status is RunStatus.DECLINED
    assert result.failed_stages == []
    assert result.ids(StageOutcome.SKIPPED) == ["25_confirm_destructive"]
    assert not MUTATING_DISK_CALLS.intersection(ctx.tools.disk.names)
    assert ctx.tools.packages.calls == []
    assert ctx.tools.runner.calls == []
    assert _cleanups(ctx.tools.disk, ctx.mount_root) == 1


def test_unclear_confirmation_declines(make_ctx):
    ctx = make_ctx(inputs=["proceed"])
    assert _run(ctx).status is RunStatus.DECLINED
    assert not MUTATING_DISK_CALLS.intersection(ctx.tools.disk.names)


def test_environment_failure_before_anything_destructive(make_ctx):
    ctx = make_ctx(probe=FakeProbe(uefi=False))
    result = _run(ctx)

    assert result.status is RunStatus.ABORTED
    assert result.failed_stages == ["10_validate_environment"]
    assert "UEFI" in result.abort_reason
    assert ctx.tools.disk.names == ["unmount_recursive"]
    assert "No changes had been made" in result.failure_report()


def test_missing_tool_aborts(make_ctx):
    result = _run(make_ctx(probe=FakeProbe(missing=["sgdisk"])))
    assert result.status is RunStatus.ABORTED
    assert "sgdisk" in result.abort_reason


def test_provisioning_failure_reports_partial_state(make_ctx):
    ctx = make_ctx(disk=FakeDiskTool(fail_on="format"))
    result = _run(ctx)

    assert result.status is RunStatus.ABORTED
    assert result.failed_stages == ["30_provision_disk"]
    report = result.failure_report()
    assert "(incomplete) /dev/testblock0 may have been partially wiped" in report
    assert _cleanups(ctx.tools.disk, ctx.mount_root) == 2  # provision's own unmount + cleanup


def test_failure_after_provision_lists_earlier_progress(make_ctx):
    ctx = make_ctx(runner=FakeRunner(fail_names=["configure system"]))
    result = _run(ctx)

    assert result.status is RunStatus.ABORTED
    report = result.failure_report()
    assert "/dev/testblock0 was wiped and repartitioned" in report
    assert "base system installed" in report
    assert "(incomplete) target configuration" in report
    assert "60_install_trust_chain" not in [r.stage_id for r in result.results]


def test_trust_chain_disabled_is_skipped(make_ctx):
    answers = {
        "device": "/dev/testblock0",
        "username": "alice",
        "hostname": "box",
        "timezone": "UTC",
        "enable_trust_chain": False,
        "install_dev_tools": True,
    }
    ctx = make_ctx(answers=answers)
    result = _run(ctx)

    assert result.status is RunStatus.COMPLETED
    assert "60_install_trust_chain" in result.skipped_stages
    assert ctx.tools.trust.created == 0
    assert "70_install_applications" in result.ran_stages
    assert ctx.trust is None


def test_key_generation_failure_aborts(make_ctx):
    result = _run(make_ctx(trust=FakeTrustTool(keys_fail=True)))
    assert result.status is RunStatus.ABORTED
    assert result.failed_stages == ["60_install_trust_chain"]


def test_non_fatal_stage_failure_is_recorded(make_ctx, monkeypatch):
    ctx = make_ctx(raw={"packages": {"applications": ["firefox"]}})
    stages = build_stages()
    apps = next(s for s in stages if s.stage_id == "70_install_applications")

    def broken(_ctx):
        raise RuntimeError("mirror unreachable")

    monkeypatch.setattr(apps, "run", broken)
    result = _run(ctx, stages)

    assert result.status is RunStatus.COMPLETED
    assert result.failed_stages == ["70_install_applications"]
    assert "90_finalize" in result.ran_stages
    assert any("mirror unreachable" in str(w) for w in ctx.warnings)


@pytest.mark.parametrize("index", range(9))
def test_cleanup_runs_once_whatever_stage_fails(make_ctx, monkeypatch, index):
    ctx = make_ctx(raw=WITH_APPS)
    stages = build_stages()

    def broken(_ctx):
        raise RuntimeError("injected")

    monkeypatch.setattr(stages[index], "run", broken)
    cleanup = Counter()
    result = _run(ctx, stages, cleanup)

    assert cleanup.calls == 1
    assert result.failed_stages == [stages[index].stage_id]
    expected = RunStatus.ABORTED if stages[index].fatal else RunStatus.COMPLETED
    assert result.status is expected


@pytest.mark.parametrize("index", range(9))
def test_cleanup_runs_once_on_interrupt(make_ctx, monkeypatch, index):
    ctx = make_ctx(raw=WITH_APPS)
    stages = build_stages()

    def interrupted(_ctx):
        raise KeyboardInterrupt

    monkeypatch.setattr(stages[index], "run", interrupted)
    cleanup = Counter()
    result = _run(ctx, stages, cleanup)

    assert cleanup.calls == 1
    assert result.status is RunStatus.ABORTED
    assert result.interrupted
    assert "interrupted" in result.abort_reason


def test_cleanup_runs_once_on_completion(make_ctx):
    cleanup = Counter()
    assert _run(make_ctx(), cleanup=cleanup).status is RunStatus.COMPLETED
    assert cleanup.calls == 1


def test_cleanup_errors_are_contained(make_ctx):
    def exploding():
        raise OSError("target busy")

    result = _run(make_ctx(probe=FakeProbe(online=False)), cleanup=exploding)

    assert result.status is RunStatus.ABORTED
    assert result.cleanup_ok is False
    assert "Cleanup could not unmount" in result.failure_report()


def test_cleanup_guard_runs_action_once():
    counter = Counter(result=False)
    guard = CleanupGuard(counter)
    assert guard() is False
    assert guard() is False
    assert counter.calls == 1


def test_precondition_failure_when_stage_order_broken(make_ctx):
    stages = [s for s in build_stages() if s.stage_id == "40_install_base"]
    result = _run(make_ctx(), stages)
    assert result.status is RunStatus.ABORTED
    assert "provision stage" in result.abort_reason


def test_stage_results_are_serialisable(make_ctx):
    result = _run(make_ctx(inputs=["n"]))
    data = result.as_dict()
    assert data["status"] == "declined"
    assert [s["outcome"] for s in data["stages"]] == ["success", "success", "skipped"]


def test_base_stage_defaults(make_ctx):
    class Noop(BaseStage):
        stage_id = "noop"

        def run(self, ctx):
            return None

    result = _run(make_ctx(), [Noop()])
    assert result.ran_stages == ["noop"]
    assert result.progress == []


def test_interrupt_after_stage_finished_keeps_its_result(make_ctx):
    class Finished(BaseStage):
        stage_id = "10_finished"

        def run(self, ctx):
            return None

        def progress(self, ctx):
            raise KeyboardInterrupt

        def failure_note(self, ctx):
            return "should not be reported"

    cleanup = Counter()
    result = _run(make_ctx(), [Finished()], cleanup)

    assert [(r.stage_id, r.outcome) for r in result.results] == [("10_finished", StageOutcome.SUCCESS)]
    assert result.status is RunStatus.ABORTED
    assert result.interrupted
    assert result.progress == []
    assert cleanup.calls == 1

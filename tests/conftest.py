from __future__ import annotations

from typing import Callable, Dict, Optional, Sequence

import pytest

from fakes import DEFAULT_ANSWERS, FakeDiskTool, FakePackageTool, FakeProbe, FakeRunner, FakeTrustTool, ScriptedIO
from trustboot_installer.config import InstallerConfig
from trustboot_installer.context import StageContext, Toolset
from trustboot_installer.lib import validation


@pytest.fixture(autouse=True)
def _fixed_timezones(monkeypatch):
    monkeypatch.setattr(validation, "known_timezones", lambda: {"Europe/Oslo", "UTC", "America/New_York"})


@pytest.fixture
def make_ctx(tmp_path) -> Callable[..., StageContext]:
    def _make(
        *,
        answers: Optional[Dict] = None,
        raw: Optional[Dict] = None,
        inputs: Sequence[str] = ("y",),
        disk: Optional[FakeDiskTool] = None,
        packages: Optional[FakePackageTool] = None,
        runner: Optional[FakeRunner] = None,
        trust: Optional[FakeTrustTool] = None,
        probe: Optional[FakeProbe] = None,
        dry_run: bool = False,
    ) -> StageContext:
        mount_root = tmp_path / "mnt"
        mount_root.mkdir(exist_ok=True)
        cfg_raw = dict(raw or {})
        cfg_raw["answers"] = dict(DEFAULT_ANSWERS if answers is None else answers)
        cfg_raw.setdefault("packages", {}).setdefault("applications", [])
        io = ScriptedIO(answers=inputs)
        tools = Toolset(
            disk=disk or FakeDiskTool(),
            packages=packages or FakePackageTool(),
            runner=runner or FakeRunner(),
            trust=trust or FakeTrustTool(),
            probe=probe or FakeProbe(),
            prompter=io.prompter(),
        )
        ctx = StageContext(config=InstallerConfig(raw=cfg_raw), tools=tools, mount_root=str(mount_root), dry_run=dry_run)
        ctx.io = io  # type: ignore[attr-defined]
        return ctx

    return _make

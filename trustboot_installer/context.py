from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .config import InstallerConfig, TargetSpec
from .lib.chroot import BoundaryRunner
from .lib.devices import PartitionPlan
from .lib.env import EnvironmentProbe
from .lib.pkg import PackageTool
from .lib.prompts import Prompter
from .lib.secureboot import TrustTool
from .lib.storage import DiskTool, ProvisionedMount
from .lib.trust_chain import TrustReport


@dataclass
class Toolset:
    """External capabilities; swapped for fakes in tests."""

    disk: DiskTool
    packages: PackageTool
    runner: BoundaryRunner
    trust: TrustTool
    probe: EnvironmentProbe
    prompter: Prompter


@dataclass
class StageContext:
    config: InstallerConfig
    tools: Toolset
    mount_root: str
    dry_run: bool = False

    # Filled in as stages complete
    spec: Optional[TargetSpec] = None
    plan: Optional[PartitionPlan] = None
    mount: Optional[ProvisionedMount] = None
    trust: Optional[TrustReport] = None

    warnings: List[UserWarning] = field(default_factory=list)
    current_stage: Optional[str] = None

    def set_spec(self, spec: TargetSpec) -> None:
        if self.spec is not None:
            raise RuntimeError("TargetSpec is already set for this run")
        self.spec = spec

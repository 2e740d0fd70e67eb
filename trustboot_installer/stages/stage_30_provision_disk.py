from __future__ import annotations

import logging
from typing import Optional

from ..context import StageContext
from ..errors import PreconditionError
from ..lib.devices import resolve
from ..lib.storage import provision
from ..pipeline import BaseStage

logger = logging.getLogger(__name__)


class ProvisionDiskStage(BaseStage):
    stage_id = "30_provision_disk"

    def check(self, ctx: StageContext) -> None:
        if ctx.spec is None:
            raise PreconditionError("No target configuration; refusing to touch any disk")

    def run(self, ctx: StageContext) -> None:
        cfg = ctx.config
        ctx.plan = resolve(
            ctx.spec.device,
            root_fs=cfg.root_fs,
            boot_size_mib=cfg.boot_size_mib,
            check_device=ctx.tools.probe.is_block_device,
        )
        ctx.mount = provision(
            plan=ctx.plan,
            mount_root=ctx.mount_root,
            tool=ctx.tools.disk,
            settle_timeout_s=cfg.settle_timeout_s,
            settle_interval_s=cfg.settle_interval_s,
            dry_run=ctx.dry_run,
        )

    def progress(self, ctx: StageContext) -> Optional[str]:
        plan = ctx.plan
        return (
            f"{plan.device} was wiped and repartitioned "
            f"(boot={plan.boot_part}, root={plan.root_part}) and mounted at {ctx.mount_root}"
        )

    def failure_note(self, ctx: StageContext) -> Optional[str]:
        if ctx.plan is None:
            return None
        return f"{ctx.plan.device} may have been partially wiped, partitioned or formatted"

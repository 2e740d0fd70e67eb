from __future__ import annotations

import logging
from typing import Optional

from ..context import StageContext
from ..errors import PreconditionError
from ..pipeline import BaseStage

logger = logging.getLogger(__name__)


class InstallBaseStage(BaseStage):
    stage_id = "40_install_base"

    def check(self, ctx: StageContext) -> None:
        if ctx.mount is None:
            raise PreconditionError("Target root is not mounted; run the provision stage first")

    def run(self, ctx: StageContext) -> None:
        packages = ctx.config.base_packages
        ctx.tools.packages.bootstrap(ctx.mount_root, packages)
        ctx.tools.packages.generate_fstab(ctx.mount_root)
        logger.info("Base system (%d packages) installed at %s", len(packages), ctx.mount_root)

    def progress(self, ctx: StageContext) -> Optional[str]:
        return f"base system installed into {ctx.mount_root} and fstab generated"

    def failure_note(self, ctx: StageContext) -> Optional[str]:
        return f"base system install into {ctx.mount_root} did not finish"

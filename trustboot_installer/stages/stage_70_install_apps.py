from __future__ import annotations

import logging
from typing import List, Optional

from ..context import StageContext
from ..pipeline import BaseStage

logger = logging.getLogger(__name__)


class InstallApplicationsStage(BaseStage):
    """Supplementary packages. A failure here is recorded, not fatal."""

    stage_id = "70_install_applications"
    fatal = False

    def _packages(self, ctx: StageContext) -> List[str]:
        pkgs = list(ctx.config.application_packages)
        if ctx.spec is not None and ctx.spec.install_dev_tools:
            pkgs += [p for p in ctx.config.development_packages if p not in pkgs]
        return pkgs

    def skip_reason(self, ctx: StageContext) -> Optional[str]:
        if not self._packages(ctx):
            return "no supplementary packages selected"
        return None

    def run(self, ctx: StageContext) -> None:
        pkgs = self._packages(ctx)
        ctx.tools.packages.install(ctx.mount_root, pkgs)
        logger.info("Installed %d supplementary package(s)", len(pkgs))

    def progress(self, ctx: StageContext) -> Optional[str]:
        return "supplementary applications installed"

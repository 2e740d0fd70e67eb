from __future__ import annotations

import logging
from typing import Optional

from ..context import StageContext
from ..errors import PreconditionError
from ..lib.trust_chain import TrustChainManager
from ..pipeline import BaseStage

logger = logging.getLogger(__name__)

TRUST_TOOL_PACKAGES = ["sbctl"]


class InstallTrustChainStage(BaseStage):
    stage_id = "60_install_trust_chain"

    def skip_reason(self, ctx: StageContext) -> Optional[str]:
        if ctx.spec is not None and not ctx.spec.enable_trust_chain:
            return "Secure Boot setup disabled by operator"
        return None

    def check(self, ctx: StageContext) -> None:
        if ctx.mount is None:
            raise PreconditionError("Target root is not mounted; run the provision stage first")

    def run(self, ctx: StageContext) -> None:
        cfg = ctx.config
        ctx.tools.packages.install(ctx.mount_root, TRUST_TOOL_PACKAGES)

        manager = TrustChainManager(
            tool=ctx.tools.trust,
            runner=ctx.tools.runner,
            mount_root=ctx.mount_root,
            patterns=cfg.artifact_patterns,
            driver_packages=cfg.trust_driver_packages,
            include_vendor_keys=cfg.include_vendor_keys,
            hook_dir=cfg.hook_dir,
            resign_script=cfg.resign_script,
            verify=not ctx.dry_run,
        )
        ctx.trust = manager.establish()
        ctx.warnings.extend(ctx.trust.warnings)

    def progress(self, ctx: StageContext) -> Optional[str]:
        t = ctx.trust
        return (
            f"Secure Boot keys created ({t.state.value}), {t.signed_count} artifact(s) signed, "
            f"{len(t.triggers)} signing hook(s) installed"
        )

    def failure_note(self, ctx: StageContext) -> Optional[str]:
        return "Secure Boot keys or signing hooks may be only partly installed in the target"

from __future__ import annotations

import logging
from typing import Optional

from ..context import StageContext
from ..errors import PreconditionError
from ..lib.target_config import configure_args, render_configure_script
from ..pipeline import BaseStage

logger = logging.getLogger(__name__)


class ConfigureTargetStage(BaseStage):
    """Identity, accounts, display driver and bootloader, all inside the target."""

    stage_id = "50_configure_target"

    def check(self, ctx: StageContext) -> None:
        if ctx.mount is None or ctx.spec is None:
            raise PreconditionError("Target root is not mounted; run the provision stage first")

    def run(self, ctx: StageContext) -> None:
        cfg = ctx.config
        spec = ctx.spec

        # Driver first so mkinitcpio in the configure script picks up its modules
        ctx.tools.packages.install(ctx.mount_root, cfg.driver_packages)

        script = render_configure_script(
            extra_locales=cfg.extra_locales,
            user_groups=cfg.user_groups,
            shell=cfg.shell,
            initramfs_modules=cfg.initramfs_modules,
            kernel_params=cfg.kernel_params,
            driver_packages=cfg.driver_packages,
            hook_dir=cfg.hook_dir,
        )
        args = configure_args(
            timezone=spec.timezone,
            hostname=spec.hostname,
            root_password=spec.root_password,
            username=spec.username,
            user_password=spec.user_password,
            locale=spec.locale,
            keymap=spec.keymap,
        )
        ctx.tools.runner.run_in_target(
            ctx.mount_root,
            script,
            args,
            name="configure system",
            secret_args=spec.secrets,
        )
        logger.info("Configured hostname=%s user=%s timezone=%s", spec.hostname, spec.username, spec.timezone)

    def progress(self, ctx: StageContext) -> Optional[str]:
        return "display driver, locale, hostname, accounts and GRUB configured in the target"

    def failure_note(self, ctx: StageContext) -> Optional[str]:
        return "target configuration (driver, accounts, bootloader) may be incomplete"

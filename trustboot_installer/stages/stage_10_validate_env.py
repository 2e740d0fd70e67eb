from __future__ import annotations

import logging

from ..context import StageContext
from ..errors import EnvironmentCheckError
from ..pipeline import BaseStage

logger = logging.getLogger(__name__)


class ValidateEnvironmentStage(BaseStage):
    """Refuse to start on an unfit live system, before anything is touched."""

    stage_id = "10_validate_environment"

    def run(self, ctx: StageContext) -> None:
        probe = ctx.tools.probe

        if not probe.is_root():
            raise EnvironmentCheckError("This installer must be run as root (from the Arch Linux live environment)")

        if not probe.is_uefi():
            raise EnvironmentCheckError("System is not booted in UEFI mode. Enable UEFI in the firmware settings.")
        logger.info("UEFI boot mode confirmed")

        if not probe.is_online():
            raise EnvironmentCheckError("No internet connection. Configure the network and try again.")
        logger.info("Internet connection confirmed")

        missing = probe.missing_tools(ctx.config.required_tools)
        if missing:
            raise EnvironmentCheckError(f"Required tools not found: {', '.join(missing)}")

        if probe.sync_clock():
            logger.info("System clock synchronized")
        else:
            logger.warning("Could not enable NTP time sync; continuing with the current clock")

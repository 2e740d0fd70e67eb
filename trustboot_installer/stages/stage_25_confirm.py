from __future__ import annotations

import logging

from ..context import StageContext
from ..errors import DestructiveConfirmationDeclined, PreconditionError
from ..pipeline import BaseStage

logger = logging.getLogger(__name__)


class ConfirmDestructiveStage(BaseStage):
    """Last gate before the disk is wiped. Always asked, never pre-answered."""

    stage_id = "25_confirm_destructive"

    def check(self, ctx: StageContext) -> None:
        if ctx.spec is None:
            raise PreconditionError("No target configuration; gather stage did not run")

    def run(self, ctx: StageContext) -> None:
        spec = ctx.spec
        prompter = ctx.tools.prompter

        prompter.say("")
        prompter.say("FINAL CONFIRMATION")
        prompter.say(f"Username: {spec.username}")
        prompter.say(f"Hostname: {spec.hostname}")
        prompter.say(f"Disk: {spec.device}")
        prompter.say(f"Timezone: {spec.timezone}")
        prompter.say(f"Secure Boot: {'yes' if spec.enable_trust_chain else 'no'}")
        prompter.say(f"Development Tools: {'yes' if spec.install_dev_tools else 'no'}")
        prompter.say("")

        if not prompter.confirm(f"Proceed with installation? This will WIPE {spec.device}!", default=False, strict=True):
            raise DestructiveConfirmationDeclined("Installation cancelled by operator")
        logger.info("Operator confirmed wiping %s", spec.device)

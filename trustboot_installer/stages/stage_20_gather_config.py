from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from ..config import InstallerConfig, TargetSpec
from ..context import StageContext
from ..errors import ValidationError
from ..lib import validation
from ..lib.devices import resolve
from ..lib.env import EnvironmentProbe
from ..lib.prompts import Prompter
from ..pipeline import BaseStage

logger = logging.getLogger(__name__)


def _prefilled(
    answers: Dict[str, Any],
    key: str,
    validate: Callable[[str], str],
    prompter: Prompter,
) -> Optional[str]:
    value = answers.get(key)
    if value is None:
        return None
    try:
        return validate(str(value))
    except ValidationError as e:
        prompter.say(f"ERROR: answers.{key}: {e}")
        return None


def gather_target_spec(
    *,
    prompter: Prompter,
    config: InstallerConfig,
    probe: EnvironmentProbe,
) -> TargetSpec:
    """Ask the operator for everything the later stages need."""

    answers = config.answers

    def _device(value: str) -> str:
        return resolve(value, check_device=probe.is_block_device).device

    username = _prefilled(answers, "username", validation.validate_username, prompter) or prompter.ask(
        "Enter username", validation.validate_username
    )
    hostname = _prefilled(answers, "hostname", validation.validate_hostname, prompter) or prompter.ask(
        "Enter hostname", validation.validate_hostname
    )

    # Passwords are never taken from the answers file
    root_password = prompter.ask_password("Enter root password", validation.validate_password)
    user_password = prompter.ask_password(f"Enter password for {username}", validation.validate_password)

    tz_answer = answers.get("timezone")
    if tz_answer is None:
        tz_answer = prompter.ask(f"Enter timezone (e.g., {config.default_timezone})", str.strip, default="")
    timezone = validation.resolve_timezone(str(tz_answer), default=config.default_timezone)
    if timezone != str(tz_answer).strip():
        prompter.say(f"Invalid timezone. Using {timezone} as default.")

    enable_trust_chain = answers.get("enable_trust_chain")
    if enable_trust_chain is None:
        enable_trust_chain = prompter.confirm("Enable Secure Boot setup?", default=True)
    install_dev_tools = answers.get("install_dev_tools")
    if install_dev_tools is None:
        install_dev_tools = prompter.confirm("Install complete development environment?", default=True)

    device = _prefilled(answers, "device", _device, prompter)
    if device is None:
        prompter.say("WARNING: The selected disk will be completely wiped!")
        disks = probe.list_disks()
        if disks:
            prompter.say(disks.rstrip())
        device = prompter.ask("Enter disk to install to (e.g., /dev/nvme0n1 or /dev/sda)", _device)

    return TargetSpec(
        device=device,
        hostname=hostname,
        username=username,
        root_password=root_password,
        user_password=user_password,
        timezone=timezone,
        locale=config.locale,
        keymap=config.keymap,
        enable_trust_chain=bool(enable_trust_chain),
        install_dev_tools=bool(install_dev_tools),
    )


class GatherConfigStage(BaseStage):
    stage_id = "20_gather_config"

    def run(self, ctx: StageContext) -> None:
        spec = gather_target_spec(prompter=ctx.tools.prompter, config=ctx.config, probe=ctx.tools.probe)
        ctx.set_spec(spec)
        logger.info("Target: %s", spec.redacted())

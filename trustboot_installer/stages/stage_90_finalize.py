from __future__ import annotations

import logging
from typing import List, Optional

from ..context import StageContext
from ..errors import PreconditionError
from ..lib.trust_chain import ENROLLMENT_REMEDIATION, TrustState
from ..pipeline import BaseStage

logger = logging.getLogger(__name__)

GUIDE_NAME = "POST_INSTALL_GUIDE.md"
GUIDE_EOF = "GUIDE_EOF"


def render_post_install_guide(ctx: StageContext) -> str:
    trust = ctx.trust
    lines: List[str] = ["# Post-Installation Guide", "", "## First Boot Steps", ""]

    if trust is None:
        lines.append("- Secure Boot was not configured by the installer.")
    elif trust.state is TrustState.ENROLLED:
        lines += [
            "- Secure Boot keys are enrolled. Enable Secure Boot in the firmware settings,",
            "  then confirm with `sudo sbctl status`.",
        ]
    else:
        lines.append(f"- {ENROLLMENT_REMEDIATION}")

    if trust is not None:
        lines += [
            f"- {trust.signed_count} boot artifact(s) were signed during installation.",
            "- Kernel and driver updates are re-signed automatically by these pacman hooks:",
            *[f"  - `{hook}`" for hook in trust.triggers],
            f"- To re-sign by hand: `sudo {ctx.config.resign_script} all`",
        ]

    lines += ["", "## System Maintenance", "", "```bash", "sudo pacman -Syu", "```", ""]

    if ctx.warnings:
        lines += ["## Installer Warnings", ""]
        lines += [f"- {w}" for w in ctx.warnings]
        lines.append("")
    return "\n".join(lines)


class FinalizeStage(BaseStage):
    """Leave the operator a guide inside the new system. Failure is recorded, not fatal."""

    stage_id = "90_finalize"
    fatal = False

    def check(self, ctx: StageContext) -> None:
        if ctx.mount is None or ctx.spec is None:
            raise PreconditionError("Target root is not mounted")

    def run(self, ctx: StageContext) -> None:
        guide = render_post_install_guide(ctx)
        script = "\n".join(
            [
                "#!/bin/bash",
                "set -euo pipefail",
                f'guide="/home/$1/{GUIDE_NAME}"',
                f"cat > \"$guide\" <<'{GUIDE_EOF}'",
                guide.rstrip("\n"),
                GUIDE_EOF,
                'chown "$1:$1" "$guide"',
                "",
            ]
        )
        ctx.tools.runner.run_in_target(ctx.mount_root, script, [ctx.spec.username], name="post-install guide")
        logger.info("Wrote ~%s/%s", ctx.spec.username, GUIDE_NAME)

    def progress(self, ctx: StageContext) -> Optional[str]:
        return f"post-install guide written to /home/{ctx.spec.username}/{GUIDE_NAME}"

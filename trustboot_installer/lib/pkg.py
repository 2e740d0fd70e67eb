from __future__ import annotations

import logging
from typing import Protocol, Sequence

from .chroot import BoundaryRunner
from .command import run_cmd

logger = logging.getLogger(__name__)

FSTAB_EOF = "FSTAB_EOF"

PACMAN_INSTALL_SCRIPT = """#!/bin/bash
set -euo pipefail
pacman -S --noconfirm --needed "$@"
"""


class PackageTool(Protocol):
    def bootstrap(self, mount_root: str, packages: Sequence[str]) -> None:
        ...

    def generate_fstab(self, mount_root: str) -> None:
        ...

    def install(self, mount_root: str, packages: Sequence[str]) -> None:
        ...


class PacmanPackageTool:
    def __init__(self, runner: BoundaryRunner, *, dry_run: bool = False) -> None:
        self.runner = runner
        self.dry_run = dry_run

    def bootstrap(self, mount_root: str, packages: Sequence[str]) -> None:
        """Populate an empty mounted root with the base package set."""

        run_cmd(["pacman", "-Sy"], dry_run=self.dry_run)
        run_cmd(["pacstrap", "-K", mount_root, *packages], dry_run=self.dry_run)

    def generate_fstab(self, mount_root: str) -> None:
        """Run genfstab on the host, where the target mounts are visible, and
        append its output to /etc/fstab from inside the target."""

        r = run_cmd(["genfstab", "-U", mount_root], dry_run=self.dry_run)
        script = "\n".join(
            [
                "#!/bin/bash",
                "set -euo pipefail",
                f"cat >> /etc/fstab <<'{FSTAB_EOF}'",
                r.stdout.rstrip("\n"),
                FSTAB_EOF,
                "",
            ]
        )
        self.runner.run_in_target(mount_root, script, name="append fstab")
        logger.info("Appended %d fstab line(s)", len(r.stdout.splitlines()))

    def install(self, mount_root: str, packages: Sequence[str]) -> None:
        if not packages:
            return
        self.runner.run_in_target(
            mount_root,
            PACMAN_INSTALL_SCRIPT,
            list(packages),
            name=f"pacman install ({len(packages)} packages)",
        )

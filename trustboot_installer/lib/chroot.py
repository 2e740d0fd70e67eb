from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Collection, Protocol, Sequence

from ..errors import BoundaryExecutionError
from .command import run_cmd

logger = logging.getLogger(__name__)

# Where the payload lives, as seen from inside the target root.
SCRIPT_PATH = "/trustboot-stage.sh"


class BoundaryRunner(Protocol):
    def run_in_target(
        self,
        mount_root: str,
        script_body: str,
        args: Sequence[str] = (),
        *,
        name: str = "",
        secret_args: Collection[str] = (),
    ) -> int:
        ...


class ChrootBoundaryRunner:
    """Run a script inside the target root via arch-chroot.

    The script is materialised at SCRIPT_PATH under the target, executed with
    the target as "/", and removed again whatever the outcome.
    """

    def __init__(self, *, chroot_cmd: str = "arch-chroot", dry_run: bool = False) -> None:
        self.chroot_cmd = chroot_cmd
        self.dry_run = dry_run

    def run_in_target(
        self,
        mount_root: str,
        script_body: str,
        args: Sequence[str] = (),
        *,
        name: str = "",
        secret_args: Collection[str] = (),
    ) -> int:
        host_path = Path(mount_root) / SCRIPT_PATH.lstrip("/")
        label = name or "stage script"
        logger.info("Running %s inside %s", label, mount_root)

        if self.dry_run:
            logger.info("Would write %s", str(host_path))
            run_cmd([self.chroot_cmd, mount_root, SCRIPT_PATH, *args], dry_run=True, redact=secret_args)
            return 0

        try:
            host_path.write_text(script_body, encoding="utf-8")
            os.chmod(host_path, 0o755)
            r = run_cmd(
                [self.chroot_cmd, mount_root, SCRIPT_PATH, *args],
                check=False,
                redact=secret_args,
            )
        finally:
            host_path.unlink(missing_ok=True)

        if r.returncode != 0:
            logger.error("%s failed (exit=%s): %s", label, r.returncode, (r.stderr or "").strip())
            raise BoundaryExecutionError(r.returncode, label)
        return r.returncode

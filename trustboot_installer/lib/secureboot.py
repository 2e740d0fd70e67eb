from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from ..errors import BoundaryExecutionError
from .chroot import BoundaryRunner

logger = logging.getLogger(__name__)

SIGN_COMMAND = "/usr/bin/sbctl sign -s"


@dataclass(frozen=True)
class EnrollResult:
    ok: bool
    detail: str = ""


class TrustTool(Protocol):
    def create_keys(self) -> None:
        ...

    def enroll_keys(self, *, include_vendor_keys: bool = True) -> EnrollResult:
        ...

    def sign(self, path: str) -> bool:
        ...


class SbctlTrustTool:
    """sbctl driven from outside the target through the boundary runner."""

    def __init__(self, runner: BoundaryRunner, mount_root: str) -> None:
        self.runner = runner
        self.mount_root = mount_root

    def _script(self, *commands: str) -> str:
        return "\n".join(["#!/bin/bash", "set -euo pipefail", *commands, ""])

    def create_keys(self) -> None:
        # Raises BoundaryExecutionError; no trust chain without keys.
        self.runner.run_in_target(
            self.mount_root,
            self._script(
                # Keys already present are reused
                "if [ ! -d /var/lib/sbctl/keys ] && [ ! -d /usr/share/secureboot/keys ]; then",
                "    sbctl create-keys",
                "fi",
            ),
            name="sbctl create-keys",
        )

    def enroll_keys(self, *, include_vendor_keys: bool = True) -> EnrollResult:
        argv = "sbctl enroll-keys -m" if include_vendor_keys else "sbctl enroll-keys"
        try:
            self.runner.run_in_target(self.mount_root, self._script(argv), name="sbctl enroll-keys")
        except BoundaryExecutionError as e:
            # Typically: firmware not in Setup Mode, or vendor keys still present.
            return EnrollResult(ok=False, detail=f"sbctl enroll-keys exited with status {e.exit_code}")
        return EnrollResult(ok=True)

    def sign(self, path: str) -> bool:
        try:
            self.runner.run_in_target(
                self.mount_root,
                self._script(f'{SIGN_COMMAND} "$1"'),
                [path],
                name=f"sbctl sign {path}",
            )
        except BoundaryExecutionError:
            logger.warning("Signing failed for %s", path)
            return False
        return True

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Collection, Mapping, Sequence

from ..errors import CommandError

logger = logging.getLogger(__name__)

REDACTED = "***"


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def mask(argv: Sequence[str], secrets: Collection[str]) -> list[str]:
    """Copy of ``argv`` with every element found in ``secrets`` replaced."""
    return [REDACTED if a in secrets else a for a in argv]


def render(argv: Sequence[str], secrets: Collection[str] = ()) -> str:
    return " ".join(a if a == REDACTED else shlex.quote(a) for a in mask(argv, secrets))


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    input_text: str | None = None,
    dry_run: bool = False,
    redact: Collection[str] = (),
) -> CmdResult:
    """Run one external program and log it as a ``CMD`` line.

    Values listed in ``redact`` are masked in the log and in the raised
    :class:`CommandError`; they are still passed to the program unchanged.
    With ``dry_run`` the command is only logged and reported as successful.
    A non-zero exit raises unless ``check`` is false.
    """

    args = list(argv)
    logger.info("CMD %s", render(args, redact))
    if dry_run:
        return CmdResult(argv=args, returncode=0, stdout="", stderr="")

    merged_env = {**os.environ, **(env or {})}
    proc = subprocess.run(
        args,
        input=input_text,
        capture_output=True,
        text=True,
        cwd=cwd,
        env=merged_env,
    )
    result = CmdResult(argv=args, returncode=proc.returncode, stdout=proc.stdout or "", stderr=proc.stderr or "")

    for stream, text in (("stdout", result.stdout), ("stderr", result.stderr)):
        if text.strip():
            logger.debug("%s of %s: %s", stream, args[0], text.strip())

    if check and not result.ok:
        raise CommandError(mask(args, redact), result.returncode, result.stderr)
    return result

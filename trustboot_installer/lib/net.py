from __future__ import annotations

import logging

from .command import run_cmd

logger = logging.getLogger(__name__)


def is_online(host: str = "archlinux.org", *, dry_run: bool = False) -> bool:
    """Best-effort online check."""

    r = run_cmd(["ping", "-c", "3", "-W", "2", host], check=False, dry_run=dry_run)
    if r.returncode != 0:
        logger.info("No reply from %s", host)
    return r.returncode == 0

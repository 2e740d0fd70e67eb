from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .command import run_cmd
from .devices import is_block_device
from .firmware import is_uefi_booted
from .net import is_online

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Paths:
    mount_root: str = "/mnt"
    config_default: str = "/etc/trustboot-installer.yaml"
    report_default: str = "/var/log/trustboot-installer/last-run.json"
    log_default: str = "/var/log/trustboot-installer.log"


PATHS = Paths()

REQUIRED_TOOLS = (
    "wipefs",
    "sgdisk",
    "partprobe",
    "mkfs.fat",
    "mkfs.ext4",
    "mount",
    "umount",
    "mountpoint",
    "pacstrap",
    "genfstab",
    "arch-chroot",
)


class EnvironmentProbe:
    """Facts about the live environment the installer runs in."""

    def __init__(
        self,
        *,
        probe_host: str = "archlinux.org",
        dry_run: bool = False,
        which: Callable[[str], Optional[str]] = shutil.which,
    ) -> None:
        self.probe_host = probe_host
        self.dry_run = dry_run
        self.which = which

    def is_root(self) -> bool:
        return os.geteuid() == 0

    def is_uefi(self) -> bool:
        return is_uefi_booted()

    def is_online(self) -> bool:
        return is_online(self.probe_host, dry_run=self.dry_run)

    def missing_tools(self, tools: Sequence[str] = REQUIRED_TOOLS) -> List[str]:
        return [t for t in tools if not self.which(t)]

    def sync_clock(self) -> bool:
        r = run_cmd(["timedatectl", "set-ntp", "true"], check=False, dry_run=self.dry_run)
        return r.returncode == 0

    def is_block_device(self, path: str) -> bool:
        return is_block_device(path)

    def list_disks(self) -> str:
        r = run_cmd(["lsblk", "-d", "-o", "NAME,SIZE,MODEL"], check=False, dry_run=self.dry_run)
        return r.stdout or ""

from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass
from typing import Callable

from ..errors import InvalidDeviceError

logger = logging.getLogger(__name__)

BOOT_INDEX = 1
ROOT_INDEX = 2


@dataclass(frozen=True)
class PartitionPlan:
    device: str
    boot_part: str
    root_part: str
    boot_fs: str = "vfat"  # FAT32
    root_fs: str = "ext4"
    boot_size_mib: int = 1024
    boot_type_code: str = "ef00"  # EFI system
    root_type_code: str = "8300"  # Linux filesystem
    boot_label: str = "EFI"
    root_label: str = "ROOT"


def is_block_device(path: str) -> bool:
    try:
        return stat.S_ISBLK(os.stat(path).st_mode)
    except OSError:
        return False


def partition_path(device: str, index: int) -> str:
    # nvme0n1, mmcblk0, loop0: a trailing digit needs the "p" separator
    name = os.path.basename(device.rstrip("/"))
    if name[-1:].isdigit():
        return f"{device}p{index}"
    return f"{device}{index}"


def resolve(
    device: str,
    *,
    root_fs: str = "ext4",
    boot_size_mib: int = 1024,
    check_device: Callable[[str], bool] = is_block_device,
) -> PartitionPlan:
    """Derive the boot/root partition layout for a raw block device."""

    device = (device or "").strip()
    if not device or not check_device(device):
        raise InvalidDeviceError(f"Not a block device: {device!r}")

    plan = PartitionPlan(
        device=device,
        boot_part=partition_path(device, BOOT_INDEX),
        root_part=partition_path(device, ROOT_INDEX),
        root_fs=root_fs,
        boot_size_mib=boot_size_mib,
    )
    logger.info("Partition plan: boot=%s root=%s (%s)", plan.boot_part, plan.root_part, plan.root_fs)
    return plan

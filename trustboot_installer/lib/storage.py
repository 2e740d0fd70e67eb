from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from ..errors import DeviceSettleTimeoutError, InstallerError, ProvisioningError
from .command import run_cmd
from .devices import BOOT_INDEX, ROOT_INDEX, PartitionPlan

logger = logging.getLogger(__name__)


class DiskTool(Protocol):
    def unmount_recursive(self, path: str) -> None:
        ...

    def wipe_signatures(self, device: str) -> None:
        ...

    def create_gpt_table(self, device: str) -> None:
        ...

    def create_partition(
        self, device: str, index: int, size_mib: Optional[int], type_code: str, label: str
    ) -> None:
        ...

    def reread_partition_table(self, device: str) -> None:
        ...

    def format(self, path: str, fs_type: str, label: str) -> None:
        ...

    def make_dirs(self, path: str) -> None:
        ...

    def mount(self, path: str, mountpoint: str) -> None:
        ...

    def node_exists(self, path: str) -> bool:
        ...

    def is_mounted(self, path: str) -> bool:
        ...


class SgdiskDiskTool:
    """DiskTool backed by util-linux, gptfdisk and parted tooling."""

    def __init__(self, *, dry_run: bool = False) -> None:
        self.dry_run = dry_run

    def unmount_recursive(self, path: str) -> None:
        if not self.is_mounted(path):
            return
        run_cmd(["umount", "-R", path], dry_run=self.dry_run)

    def wipe_signatures(self, device: str) -> None:
        run_cmd(["wipefs", "-af", device], dry_run=self.dry_run)

    def create_gpt_table(self, device: str) -> None:
        run_cmd(["sgdisk", "-Z", device], dry_run=self.dry_run)
        run_cmd(["sgdisk", "-o", device], dry_run=self.dry_run)

    def create_partition(
        self, device: str, index: int, size_mib: Optional[int], type_code: str, label: str
    ) -> None:
        end = f"+{size_mib}M" if size_mib else "0"
        run_cmd(
            [
                "sgdisk",
                f"--new={index}:0:{end}",
                f"--typecode={index}:{type_code}",
                f"--change-name={index}:{label}",
                device,
            ],
            dry_run=self.dry_run,
        )

    def reread_partition_table(self, device: str) -> None:
        run_cmd(["partprobe", device], dry_run=self.dry_run)

    def format(self, path: str, fs_type: str, label: str) -> None:
        if fs_type == "vfat":
            argv = ["mkfs.fat", "-F32", "-n", label, path]
        else:
            argv = [f"mkfs.{fs_type}", "-F", "-L", label, path]
        run_cmd(argv, dry_run=self.dry_run)

    def make_dirs(self, path: str) -> None:
        run_cmd(["mkdir", "-p", path], dry_run=self.dry_run)

    def mount(self, path: str, mountpoint: str) -> None:
        run_cmd(["mount", path, mountpoint], dry_run=self.dry_run)

    def node_exists(self, path: str) -> bool:
        return os.path.exists(path)

    def is_mounted(self, path: str) -> bool:
        r = run_cmd(["mountpoint", "-q", path], check=False, dry_run=self.dry_run)
        return r.returncode == 0 and not self.dry_run


@dataclass(frozen=True)
class ProvisionedMount:
    mount_root: str
    boot_mount: str
    plan: PartitionPlan


def wait_for_nodes(
    tool: DiskTool,
    paths: list[str],
    *,
    timeout_s: float,
    interval_s: float,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> None:
    deadline = clock() + timeout_s
    while True:
        missing = [p for p in paths if not tool.node_exists(p)]
        if not missing:
            return
        if clock() >= deadline:
            raise DeviceSettleTimeoutError(
                f"Partition nodes did not appear within {timeout_s:g}s: {', '.join(missing)}"
            )
        sleep(interval_s)


def provision(
    *,
    plan: PartitionPlan,
    mount_root: str,
    tool: DiskTool,
    settle_timeout_s: float = 10.0,
    settle_interval_s: float = 0.5,
    dry_run: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> ProvisionedMount:
    """Wipe, partition, format and mount ``plan.device``.

    Destructive and not resumable: the first failing step aborts the whole
    attempt with ProvisioningError.

    Layout:
    - 1: EFI system partition (FAT32), mounted at <mount_root>/boot
    - 2: root (journaling filesystem, rest of disk), mounted at <mount_root>
    """

    disk = plan.device
    boot_mount = f"{mount_root.rstrip('/')}/boot"
    logger.info("Provisioning disk=%s mount_root=%s", disk, mount_root)

    try:
        tool.unmount_recursive(mount_root)
        tool.wipe_signatures(disk)
        tool.create_gpt_table(disk)
        tool.create_partition(disk, BOOT_INDEX, plan.boot_size_mib, plan.boot_type_code, plan.boot_label)
        tool.create_partition(disk, ROOT_INDEX, None, plan.root_type_code, plan.root_label)

        # Inform kernel, then wait for udev to create the nodes
        tool.reread_partition_table(disk)
        if not dry_run:
            wait_for_nodes(
                tool,
                [plan.boot_part, plan.root_part],
                timeout_s=settle_timeout_s,
                interval_s=settle_interval_s,
                sleep=sleep,
            )

        tool.format(plan.boot_part, plan.boot_fs, plan.boot_label)
        tool.format(plan.root_part, plan.root_fs, plan.root_label)

        tool.mount(plan.root_part, mount_root)
        tool.make_dirs(boot_mount)
        tool.mount(plan.boot_part, boot_mount)
    except ProvisioningError:
        raise
    except (InstallerError, OSError) as e:
        raise ProvisioningError(f"Provisioning {disk} failed: {e}") from e

    logger.info("Mounted root=%s at %s, boot=%s at %s", plan.root_part, mount_root, plan.boot_part, boot_mount)
    return ProvisionedMount(mount_root=mount_root, boot_mount=boot_mount, plan=plan)


def unmount_target(mount_root: str, tool: DiskTool) -> bool:
    """Best-effort recursive unmount; a missing mount counts as success."""

    try:
        tool.unmount_recursive(mount_root)
        return True
    except Exception:
        logger.exception("Cleanup: failed to unmount %s", mount_root)
        return False

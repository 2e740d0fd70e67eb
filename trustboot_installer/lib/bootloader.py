from __future__ import annotations

import logging
from typing import List, Sequence

logger = logging.getLogger(__name__)

BOOTLOADER_ID = "GRUB"
EFI_DIRECTORY = "/boot"


def grub_efi_binary(bootloader_id: str = BOOTLOADER_ID, efi_directory: str = EFI_DIRECTORY) -> str:
    """In-target path of the EFI binary grub-install writes for x86_64."""

    return f"{efi_directory.rstrip('/')}/EFI/{bootloader_id}/grubx64.efi"


def grub_efi_commands(
    *,
    bootloader_id: str = BOOTLOADER_ID,
    efi_directory: str = EFI_DIRECTORY,
    kernel_params: Sequence[str] = (),
) -> List[str]:
    """Shell lines that install GRUB for x86_64 EFI targets.

    Assumes the ESP is mounted at ``efi_directory`` inside the target.
    """

    lines = [
        f"grub-install --target=x86_64-efi --efi-directory={efi_directory} --bootloader-id={bootloader_id}",
    ]
    if kernel_params:
        extra = " ".join(kernel_params)
        lines.append(
            "sed -i 's/^GRUB_CMDLINE_LINUX_DEFAULT=\"\\(.*\\)\"/GRUB_CMDLINE_LINUX_DEFAULT=\"\\1 "
            + extra
            + "\"/' /etc/default/grub"
        )
    lines.append("grub-mkconfig -o /boot/grub/grub.cfg")
    return lines

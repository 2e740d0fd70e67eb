from __future__ import annotations

from pathlib import Path

EFI_VARS_DIR = "/sys/firmware/efi"


def is_uefi_booted(efi_dir: str = EFI_VARS_DIR) -> bool:
    """True when the *currently running* environment was booted via UEFI."""

    return Path(efi_dir).is_dir()

from __future__ import annotations

import shlex
from typing import List, Sequence

from .bootloader import grub_efi_commands
from .hooks import Operation, SigningTrigger, TriggerType, install_file_lines, render_hook

DEFAULT_HOOK_DIR = "/etc/pacman.d/hooks"
KERNEL_PACKAGES = ("linux", "linux-lts")


def initramfs_trigger(
    driver_packages: Sequence[str],
    kernel_packages: Sequence[str] = KERNEL_PACKAGES,
) -> SigningTrigger:
    """Rebuild the initramfs when the display driver changes.

    Kernels are listed as targets too so a transaction that updates both only
    rebuilds once, through mkinitcpio's own hook.
    """

    kernels = "|".join(kernel_packages)
    return SigningTrigger(
        name="90-trustboot-initramfs",
        description="Updating initramfs for the display driver",
        trigger_type=TriggerType.PACKAGE,
        operations=(Operation.INSTALL, Operation.UPGRADE, Operation.REMOVE),
        targets=(*driver_packages, *kernel_packages),
        action=(
            "/bin/sh -c 'while read -r trg; do case $trg in "
            f"{kernels}) exit 0;; esac; done; /usr/bin/mkinitcpio -P'"
        ),
        depends=("mkinitcpio",),
        needs_targets=True,
    )


def configure_args(
    *,
    timezone: str,
    hostname: str,
    root_password: str,
    username: str,
    user_password: str,
    locale: str,
    keymap: str,
) -> List[str]:
    # Positional order matches $1..$7 in render_configure_script
    return [timezone, hostname, root_password, username, user_password, locale, keymap]


def render_configure_script(
    *,
    extra_locales: Sequence[str] = (),
    user_groups: Sequence[str] = ("wheel", "audio", "video", "optical", "storage"),
    shell: str = "/bin/bash",
    initramfs_modules: Sequence[str] = (),
    kernel_params: Sequence[str] = (),
    driver_packages: Sequence[str] = (),
    hook_dir: str = DEFAULT_HOOK_DIR,
) -> str:
    """Script run inside the target to give it its identity and a bootloader.

    Positional args: timezone hostname root_password username user_password locale keymap
    """

    locale_gen = ['echo "$6 UTF-8" > /etc/locale.gen']
    locale_gen += [f"echo {shlex.quote(loc + ' UTF-8')} >> /etc/locale.gen" for loc in extra_locales]

    modules = " ".join(initramfs_modules)

    lines = [
        "#!/bin/bash",
        "set -euo pipefail",
        "",
        "# Time",
        'ln -sf "/usr/share/zoneinfo/$1" /etc/localtime',
        "hwclock --systohc",
        "",
        "# Locale and console keymap",
        *locale_gen,
        "locale-gen",
        'echo "LANG=$6" > /etc/locale.conf',
        'echo "KEYMAP=$7" > /etc/vconsole.conf',
        "",
        "# Host identity",
        'echo "$2" > /etc/hostname',
        "cat > /etc/hosts <<HOSTS_EOF",
        "127.0.0.1   localhost",
        "::1         localhost",
        "127.0.1.1   $2.localdomain $2",
        "HOSTS_EOF",
        "",
    ]
    if modules:
        lines += [
            "# Early KMS for the display driver",
            f"sed -i 's/^MODULES=(.*)/MODULES=({modules})/' /etc/mkinitcpio.conf",
        ]
        if driver_packages:
            hook = initramfs_trigger(driver_packages)
            lines += install_file_lines(f"{hook_dir.rstrip('/')}/{hook.filename}", render_hook(hook))
    lines += [
        "mkinitcpio -P",
        "",
        "# Bootloader",
        *grub_efi_commands(kernel_params=kernel_params),
        "",
        "systemctl enable NetworkManager",
        "",
        "# Accounts",
        'echo "root:$3" | chpasswd',
        f"id -u \"$4\" >/dev/null 2>&1 || useradd -m -G {shlex.quote(','.join(user_groups))} -s {shlex.quote(shell)} \"$4\"",
        'echo "$4:$5" | chpasswd',
        "grep -q '^%wheel ALL=(ALL:ALL) ALL' /etc/sudoers || echo '%wheel ALL=(ALL:ALL) ALL' >> /etc/sudoers",
        "",
    ]
    return "\n".join(lines)

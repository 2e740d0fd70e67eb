from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .lib.artifacts import ArtifactPatterns
from .lib.bootloader import grub_efi_binary
from .lib.env import PATHS, REQUIRED_TOOLS

DEFAULT_BASE_PACKAGES = [
    "base",
    "base-devel",
    "linux",
    "linux-lts",
    "linux-firmware",
    "amd-ucode",
    "grub",
    "efibootmgr",
    "networkmanager",
    "sudo",
    "nano",
    "vim",
    "git",
]

DEFAULT_DRIVER_PACKAGES = ["nvidia", "nvidia-lts", "nvidia-utils", "nvidia-settings"]

DEFAULT_DEVELOPMENT_PACKAGES = ["cmake", "gcc", "clang", "gdb", "python", "python-pip", "nodejs", "npm", "go", "rustup"]


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"config section {name!r} must be a mapping")
    return value


@dataclass(frozen=True)
class InstallerConfig:
    raw: Dict[str, Any] = field(default_factory=dict)

    # paths

    @property
    def mount_root(self) -> str:
        return str(_section(self.raw, "paths").get("mount_root") or PATHS.mount_root)

    @property
    def log_path(self) -> str:
        return str(_section(self.raw, "paths").get("log") or PATHS.log_default)

    @property
    def report_path(self) -> str:
        return str(_section(self.raw, "paths").get("report") or PATHS.report_default)

    # disk

    @property
    def boot_size_mib(self) -> int:
        return int(_section(self.raw, "disk").get("boot_size_mib") or 1024)

    @property
    def root_fs(self) -> str:
        return str(_section(self.raw, "disk").get("root_fs") or "ext4")

    @property
    def settle_timeout_s(self) -> float:
        return float(_section(self.raw, "disk").get("settle_timeout_s") or 10.0)

    @property
    def settle_interval_s(self) -> float:
        return float(_section(self.raw, "disk").get("settle_interval_s") or 0.5)

    # packages

    def packages(self, group: str, default: Optional[List[str]] = None) -> List[str]:
        value = _section(self.raw, "packages").get(group)
        if value is None:
            return list(default or [])
        return [str(p) for p in value]

    @property
    def base_packages(self) -> List[str]:
        return self.packages("base", DEFAULT_BASE_PACKAGES)

    @property
    def driver_packages(self) -> List[str]:
        return self.packages("drivers", DEFAULT_DRIVER_PACKAGES)

    @property
    def development_packages(self) -> List[str]:
        return self.packages("development", DEFAULT_DEVELOPMENT_PACKAGES)

    @property
    def application_packages(self) -> List[str]:
        return self.packages("applications", [])

    # system

    @property
    def locale(self) -> str:
        return str(_section(self.raw, "system").get("locale") or "en_US.UTF-8")

    @property
    def extra_locales(self) -> List[str]:
        return [str(x) for x in (_section(self.raw, "system").get("extra_locales") or ["nb_NO.UTF-8"])]

    @property
    def keymap(self) -> str:
        return str(_section(self.raw, "system").get("keymap") or "no")

    @property
    def default_timezone(self) -> str:
        return str(_section(self.raw, "system").get("default_timezone") or "Europe/Oslo")

    @property
    def shell(self) -> str:
        return str(_section(self.raw, "system").get("shell") or "/bin/bash")

    @property
    def user_groups(self) -> List[str]:
        groups = _section(self.raw, "system").get("user_groups")
        return [str(g) for g in (groups or ["wheel", "audio", "video", "optical", "storage"])]

    @property
    def initramfs_modules(self) -> List[str]:
        mods = _section(self.raw, "system").get("initramfs_modules")
        if mods is None:
            return ["nvidia", "nvidia_modeset", "nvidia_uvm", "nvidia_drm"]
        return [str(m) for m in mods]

    @property
    def kernel_params(self) -> List[str]:
        params = _section(self.raw, "system").get("kernel_params")
        if params is None:
            return ["nvidia_drm.modeset=1", "nvidia_drm.fbdev=1"]
        return [str(p) for p in params]

    # trust chain

    @property
    def artifact_patterns(self) -> ArtifactPatterns:
        t = _section(self.raw, "trust")
        return ArtifactPatterns(
            bootloader_path=str(t.get("bootloader_path") or grub_efi_binary()),
            kernel_image_glob=str(t.get("kernel_image_glob") or "vmlinuz-*"),
            modules_dir=str(t.get("modules_dir") or "/usr/lib/modules"),
            driver_module_glob=str(t.get("driver_module_glob") or "nvidia*.ko*"),
        )

    @property
    def trust_driver_packages(self) -> List[str]:
        pkgs = _section(self.raw, "trust").get("driver_packages")
        return [str(p) for p in (pkgs or ["nvidia", "nvidia-lts", "nvidia-open", "nvidia-dkms"])]

    @property
    def include_vendor_keys(self) -> bool:
        value = _section(self.raw, "trust").get("include_vendor_keys")
        return True if value is None else bool(value)

    @property
    def hook_dir(self) -> str:
        return str(_section(self.raw, "trust").get("hook_dir") or "/etc/pacman.d/hooks")

    @property
    def resign_script(self) -> str:
        return str(_section(self.raw, "trust").get("resign_script") or "/usr/local/sbin/trustboot-resign")

    # live environment

    @property
    def probe_host(self) -> str:
        return str(_section(self.raw, "network").get("probe_host") or "archlinux.org")

    @property
    def required_tools(self) -> List[str]:
        tools = _section(self.raw, "env").get("required_tools")
        if tools is None:
            return list(REQUIRED_TOOLS)
        return [str(t) for t in tools]

    @property
    def answers(self) -> Dict[str, Any]:
        return dict(_section(self.raw, "answers"))


def load_config(path: Optional[str]) -> InstallerConfig:
    """Load installer config from YAML; a missing file means all defaults."""

    if not path:
        return InstallerConfig()
    p = Path(path)
    if not p.exists():
        return InstallerConfig()

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ValueError("installer config must be YAML")

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a mapping/object")
    return InstallerConfig(raw=raw)


@dataclass(frozen=True)
class TargetSpec:
    """Everything the operator decided. Built once, then read-only."""

    device: str
    hostname: str
    username: str
    root_password: str = field(repr=False)
    user_password: str = field(repr=False)
    timezone: str
    locale: str = "en_US.UTF-8"
    keymap: str = "no"
    enable_trust_chain: bool = True
    install_dev_tools: bool = True

    @property
    def secrets(self) -> tuple[str, str]:
        return (self.root_password, self.user_password)

    def redacted(self) -> Dict[str, Any]:
        return {
            "device": self.device,
            "hostname": self.hostname,
            "username": self.username,
            "timezone": self.timezone,
            "locale": self.locale,
            "keymap": self.keymap,
            "enable_trust_chain": self.enable_trust_chain,
            "install_dev_tools": self.install_dev_tools,
        }

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterator, Optional, Tuple

logger = logging.getLogger(__name__)

KIND_BOOTLOADER = "bootloader"
KIND_KERNEL = "kernel"
KIND_MODULE = "module"


@dataclass(frozen=True)
class ArtifactPatterns:
    bootloader_path: str = "/boot/EFI/GRUB/grubx64.efi"
    kernel_dir: str = "/boot"
    kernel_image_glob: str = "vmlinuz-*"
    modules_dir: str = "/usr/lib/modules"
    driver_module_glob: str = "nvidia*.ko*"


@dataclass(frozen=True)
class Artifact:
    path: str  # absolute, as seen from inside the target
    kind: str
    kernel_version: Optional[str] = None


@dataclass(frozen=True)
class ArtifactSet:
    artifacts: Tuple[Artifact, ...]
    kernel_versions: Tuple[str, ...]

    def __iter__(self) -> Iterator[Artifact]:
        return iter(self.artifacts)

    def __len__(self) -> int:
        return len(self.artifacts)

    @property
    def paths(self) -> list[str]:
        return [a.path for a in self.artifacts]

    def of_kind(self, kind: str) -> list[Artifact]:
        return [a for a in self.artifacts if a.kind == kind]


def _in_target(root: Path, p: Path) -> str:
    return str(PurePosixPath("/") / p.relative_to(root).as_posix())


def discover_artifacts(root: str | Path, patterns: ArtifactPatterns = ArtifactPatterns()) -> ArtifactSet:
    """Enumerate everything that needs a signature under ``root``.

    Always walks the filesystem: installed kernel versions change over the
    life of the system, so a previous result must never be reused.
    """

    root = Path(root)
    found: list[Artifact] = []

    bootloader = root / patterns.bootloader_path.lstrip("/")
    if bootloader.is_file():
        found.append(Artifact(path=patterns.bootloader_path, kind=KIND_BOOTLOADER))

    kernel_dir = root / patterns.kernel_dir.lstrip("/")
    if kernel_dir.is_dir():
        for image in sorted(kernel_dir.glob(patterns.kernel_image_glob)):
            if image.is_file():
                found.append(Artifact(path=_in_target(root, image), kind=KIND_KERNEL))

    versions: list[str] = []
    modules_dir = root / patterns.modules_dir.lstrip("/")
    if modules_dir.is_dir():
        for version_dir in sorted(p for p in modules_dir.iterdir() if p.is_dir()):
            versions.append(version_dir.name)
            for module in sorted(version_dir.rglob(patterns.driver_module_glob)):
                if module.is_file():
                    found.append(
                        Artifact(path=_in_target(root, module), kind=KIND_MODULE, kernel_version=version_dir.name)
                    )

    result = ArtifactSet(artifacts=tuple(found), kernel_versions=tuple(versions))
    logger.info(
        "Discovered %d artifact(s) across %d kernel version(s) under %s",
        len(result),
        len(versions),
        root,
    )
    return result


def render_resign_script(patterns: ArtifactPatterns, sign_command: str) -> str:
    """Shell twin of discover_artifacts, run by the package hooks at fire time.

    Scope "modules" re-signs driver modules only; "all" adds the bootloader and
    kernel images.
    """

    bootloader = shlex.quote(patterns.bootloader_path)
    kernels = f"{shlex.quote(patterns.kernel_dir.rstrip('/'))}/{patterns.kernel_image_glob}"
    modules = shlex.quote(patterns.modules_dir.rstrip("/"))
    driver_glob = patterns.driver_module_glob

    lines = [
        "#!/bin/bash",
        "# Managed by trustboot-installer: re-sign boot artifacts after package changes.",
        "set -uo pipefail",
        "shopt -s nullglob globstar",
        "",
        'scope="${1:-all}"',
        "signed=0",
        "failed=0",
        "",
        "sign() {",
        f'    if {sign_command} "$1" >/dev/null; then',
        "        signed=$((signed + 1))",
        "    else",
        "        failed=$((failed + 1))",
        '        echo "trustboot: failed to sign $1" >&2',
        "    fi",
        "}",
        "",
        'if [ "$scope" = "all" ]; then',
        f"    [ -f {bootloader} ] && sign {bootloader}",
        f'    for k in {kernels}; do [ -f "$k" ] && sign "$k"; done',
        "fi",
        "",
        f"for d in {modules}/*/; do",
        f'    for m in "$d"**/{driver_glob}; do [ -f "$m" ] && sign "$m"; done',
        "done",
        "",
        'if [ "$signed" -eq 0 ] && [ "$failed" -eq 0 ]; then',
        '    echo "trustboot: nothing to sign (scope=$scope); driver modules may not be built yet" >&2',
        "fi",
        'echo "trustboot: signed $signed artifact(s), $failed failure(s)"',
        '[ "$failed" -eq 0 ]',
        "",
    ]
    return "\n".join(lines)

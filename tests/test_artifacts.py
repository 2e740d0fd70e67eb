import shlex
import shutil
import subprocess
from pathlib import Path

import pytest

from trustboot_installer.lib.artifacts import (
    KIND_BOOTLOADER,
    KIND_KERNEL,
    KIND_MODULE,
    ArtifactPatterns,
    discover_artifacts,
    render_resign_script,
)


def _touch(root: Path, rel: str) -> None:
    p = root / rel
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(b"\x7fELF")


def test_discovers_bootloader_kernels_and_driver_modules(tmp_path):
    _touch(tmp_path, "boot/EFI/GRUB/grubx64.efi")
    _touch(tmp_path, "boot/vmlinuz-linux")
    _touch(tmp_path, "boot/vmlinuz-linux-lts")
    _touch(tmp_path, "boot/initramfs-linux.img")
    _touch(tmp_path, "usr/lib/modules/6.9.1-arch1-1/extramodules/nvidia.ko.zst")
    _touch(tmp_path, "usr/lib/modules/6.9.1-arch1-1/extramodules/nvidia-drm.ko.zst")
    _touch(tmp_path, "usr/lib/modules/6.9.1-arch1-1/kernel/drivers/net/e1000.ko.zst")

    found = discover_artifacts(tmp_path)

    assert [a.path for a in found.of_kind(KIND_BOOTLOADER)] == ["/boot/EFI/GRUB/grubx64.efi"]
    assert [a.path for a in found.of_kind(KIND_KERNEL)] == ["/boot/vmlinuz-linux", "/boot/vmlinuz-linux-lts"]
    modules = found.of_kind(KIND_MODULE)
    assert sorted(a.path for a in modules) == [
        "/usr/lib/modules/6.9.1-arch1-1/extramodules/nvidia-drm.ko.zst",
        "/usr/lib/modules/6.9.1-arch1-1/extramodules/nvidia.ko.zst",
    ]
    assert {a.kernel_version for a in modules} == {"6.9.1-arch1-1"}
    assert found.kernel_versions == ("6.9.1-arch1-1",)
    assert len(found) == 5


def test_every_call_reflects_current_filesystem(tmp_path):
    _touch(tmp_path, "usr/lib/modules/6.9.1-arch1-1/extramodules/nvidia.ko.zst")
    first = discover_artifacts(tmp_path)

    _touch(tmp_path, "usr/lib/modules/6.1.90-1-lts/extramodules/nvidia.ko.zst")
    second = discover_artifacts(tmp_path)

    assert len(first.of_kind(KIND_MODULE)) == 1
    assert len(second.of_kind(KIND_MODULE)) == 2
    assert set(second.kernel_versions) == {"6.9.1-arch1-1", "6.1.90-1-lts"}


def test_empty_root_is_not_an_error(tmp_path):
    found = discover_artifacts(tmp_path)
    assert len(found) == 0
    assert found.kernel_versions == ()


def test_custom_driver_glob(tmp_path):
    _touch(tmp_path, "usr/lib/modules/6.9/updates/dkms/amdgpu.ko")
    _touch(tmp_path, "usr/lib/modules/6.9/updates/dkms/nvidia.ko")
    found = discover_artifacts(tmp_path, ArtifactPatterns(driver_module_glob="amdgpu*.ko*"))
    assert found.paths == ["/usr/lib/modules/6.9/updates/dkms/amdgpu.ko"]


def test_resign_script_uses_same_patterns():
    patterns = ArtifactPatterns(driver_module_glob="nvidia*.ko*")
    script = render_resign_script(patterns, "/usr/bin/sbctl sign -s")

    assert script.startswith("#!/bin/bash\n")
    assert 'scope="${1:-all}"' in script
    assert "shopt -s nullglob globstar" in script
    assert "/usr/bin/sbctl sign -s" in script
    assert "/boot/EFI/GRUB/grubx64.efi" in script
    assert "/boot/vmlinuz-*" in script
    assert "/usr/lib/modules/*/" in script
    assert "**/nvidia*.ko*" in script
    assert script.rstrip().endswith('[ "$failed" -eq 0 ]')


def _resign_setup(tmp_path, sign_command=None):
    root = tmp_path / "target"
    _touch(root, "boot/EFI/GRUB/grubx64.efi")
    _touch(root, "boot/vmlinuz-linux")
    _touch(root, "usr/lib/modules/6.9.1-arch1-1/extramodules/nvidia.ko.zst")
    _touch(root, "usr/lib/modules/6.9.1-arch1-1/kernel/drivers/net/e1000.ko.zst")

    log = tmp_path / "signed.log"
    stub = tmp_path / "sign-stub"
    stub.write_text(f'#!/bin/sh\necho "$1" >> {shlex.quote(str(log))}\n', encoding="utf-8")
    stub.chmod(0o755)

    patterns = ArtifactPatterns(
        bootloader_path=str(root / "boot/EFI/GRUB/grubx64.efi"),
        kernel_dir=str(root / "boot"),
        modules_dir=str(root / "usr/lib/modules"),
    )
    script = tmp_path / "trustboot-resign"
    script.write_text(render_resign_script(patterns, sign_command or shlex.quote(str(stub))), encoding="utf-8")
    return root, log, script


def _resign(script, log, scope):
    log.write_text("", encoding="utf-8")
    proc = subprocess.run(["bash", str(script), scope], capture_output=True, text=True)
    return proc, sorted(log.read_text(encoding="utf-8").splitlines())


@pytest.mark.skipif(shutil.which("bash") is None, reason="needs bash")
def test_resign_script_signs_current_artifacts_on_every_run(tmp_path):
    root, log, script = _resign_setup(tmp_path)
    bootloader = str(root / "boot/EFI/GRUB/grubx64.efi")
    kernel = str(root / "boot/vmlinuz-linux")
    module = str(root / "usr/lib/modules/6.9.1-arch1-1/extramodules/nvidia.ko.zst")

    for _ in range(2):
        proc, signed = _resign(script, log, "all")
        assert proc.returncode == 0, proc.stderr
        assert signed == sorted([bootloader, kernel, module])
        assert "signed 3 artifact(s), 0 failure(s)" in proc.stdout

    proc, signed = _resign(script, log, "modules")
    assert proc.returncode == 0, proc.stderr
    assert signed == [module]

    _touch(root, "usr/lib/modules/6.1.90-1-lts/extramodules/nvidia.ko.zst")
    proc, signed = _resign(script, log, "all")
    assert proc.returncode == 0, proc.stderr
    assert str(root / "usr/lib/modules/6.1.90-1-lts/extramodules/nvidia.ko.zst") in signed
    assert len(signed) == 4


@pytest.mark.skipif(shutil.which("bash") is None, reason="needs bash")
def test_resign_script_reports_signing_failures(tmp_path):
    _root, log, script = _resign_setup(tmp_path, sign_command="false")

    proc, _signed = _resign(script, log, "all")

    assert proc.returncode != 0
    assert "failed to sign" in proc.stderr
    assert "signed 0 artifact(s), 3 failure(s)" in proc.stdout

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from ..errors import (
    ArtifactDiscoveryEmpty,
    BoundaryExecutionError,
    EnrollmentDegradedWarning,
    KeyGenerationError,
    TriggerInstallError,
)
from .artifacts import KIND_MODULE, ArtifactPatterns, discover_artifacts, render_resign_script
from .chroot import BoundaryRunner
from .hooks import Operation, SigningTrigger, TriggerType, install_file_lines, parse_hook, render_hook
from .secureboot import SIGN_COMMAND, TrustTool

logger = logging.getLogger(__name__)

DEFAULT_HOOK_DIR = "/etc/pacman.d/hooks"
DEFAULT_RESIGN_SCRIPT = "/usr/local/sbin/trustboot-resign"

ENROLLMENT_REMEDIATION = (
    "Secure Boot keys were created but could not be enrolled. After the first boot: "
    "enter the firmware setup, clear the platform keys to put Secure Boot into Setup Mode, "
    "boot the system, run 'sbctl enroll-keys -m', then enable Secure Boot and confirm "
    "with 'sbctl status'."
)


class TrustState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    KEYS_CREATED = "keys_created"
    ENROLLED = "enrolled"
    ENROLLMENT_DEGRADED = "enrollment_degraded"


@dataclass
class SigningReport:
    signed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    kernel_versions: List[str] = field(default_factory=list)

    @property
    def signed_count(self) -> int:
        return len(self.signed)


@dataclass
class TrustReport:
    state: TrustState = TrustState.UNINITIALIZED
    signing: Optional[SigningReport] = None
    triggers: List[str] = field(default_factory=list)
    warnings: List[UserWarning] = field(default_factory=list)

    @property
    def signed_count(self) -> int:
        return self.signing.signed_count if self.signing else 0

    def warn(self, warning: UserWarning) -> None:
        logger.warning("%s", warning)
        self.warnings.append(warning)


class TrustChainManager:
    """Keys, enrollment, signing and the standing re-sign triggers.

    Failure policy:
    - key generation failure: fatal (KeyGenerationError)
    - enrollment failure: ENROLLMENT_DEGRADED plus a warning, continue
    - nothing to sign: warning with a remediation hint, continue
    - trigger installation failure: fatal (TriggerInstallError)
    """

    def __init__(
        self,
        *,
        tool: TrustTool,
        runner: BoundaryRunner,
        mount_root: str,
        patterns: ArtifactPatterns = ArtifactPatterns(),
        driver_packages: Sequence[str] = ("nvidia", "nvidia-open", "nvidia-dkms"),
        include_vendor_keys: bool = True,
        hook_dir: str = DEFAULT_HOOK_DIR,
        resign_script: str = DEFAULT_RESIGN_SCRIPT,
        verify: bool = True,
    ) -> None:
        self.tool = tool
        self.runner = runner
        self.mount_root = mount_root
        self.patterns = patterns
        self.driver_packages = list(driver_packages)
        self.include_vendor_keys = include_vendor_keys
        self.hook_dir = hook_dir.rstrip("/")
        self.resign_script = resign_script
        self.verify = verify

    def establish(self) -> TrustReport:
        report = TrustReport()
        self.create_keys(report)
        self.enroll(report)
        report.signing = self.sign_artifacts(report)
        report.triggers = self.install_triggers()
        logger.info(
            "Trust chain ready: state=%s signed=%d triggers=%d",
            report.state.value,
            report.signed_count,
            len(report.triggers),
        )
        return report

    def create_keys(self, report: TrustReport) -> None:
        try:
            self.tool.create_keys()
        except BoundaryExecutionError as e:
            raise KeyGenerationError(f"Signing key generation failed (exit={e.exit_code})") from e
        report.state = TrustState.KEYS_CREATED

    def enroll(self, report: TrustReport) -> None:
        result = self.tool.enroll_keys(include_vendor_keys=self.include_vendor_keys)
        if result.ok:
            report.state = TrustState.ENROLLED
            return
        report.state = TrustState.ENROLLMENT_DEGRADED
        detail = f" ({result.detail})" if result.detail else ""
        report.warn(EnrollmentDegradedWarning(f"Key enrollment failed{detail}. {ENROLLMENT_REMEDIATION}"))

    def sign_artifacts(self, report: Optional[TrustReport] = None) -> SigningReport:
        """Sign the current ArtifactSet. Safe to call any number of times."""

        artifacts = discover_artifacts(self.mount_root, self.patterns)
        signing = SigningReport(kernel_versions=list(artifacts.kernel_versions))

        for artifact in artifacts:
            if self.tool.sign(artifact.path):
                signing.signed.append(artifact.path)
            else:
                signing.failed.append(artifact.path)

        if not artifacts.of_kind(KIND_MODULE):
            hint = (
                f"No {self.patterns.driver_module_glob} driver modules found under "
                f"{self.patterns.modules_dir} ({len(artifacts.kernel_versions)} kernel version(s)). "
                "They may not be built yet; the driver package hook will sign them once installed, "
                f"or run '{self.resign_script} all' manually."
            )
            if report is not None:
                report.warn(ArtifactDiscoveryEmpty(hint))
            else:
                logger.warning("%s", hint)

        if signing.failed:
            logger.warning("Failed to sign %d artifact(s): %s", len(signing.failed), ", ".join(signing.failed))
        logger.info("Signed %d of %d artifact(s)", signing.signed_count, len(artifacts))
        return signing

    def build_triggers(self) -> List[SigningTrigger]:
        kernel_glob = f"{self.patterns.modules_dir.strip('/')}/*/vmlinuz"
        return [
            SigningTrigger(
                name="95-trustboot-driver",
                description="Signing driver modules for Secure Boot",
                trigger_type=TriggerType.PACKAGE,
                operations=(Operation.INSTALL, Operation.UPGRADE),
                targets=tuple(self.driver_packages),
                action=f"{self.resign_script} modules",
                depends=("sbctl",),
            ),
            SigningTrigger(
                name="96-trustboot-kernel",
                description="Signing kernel images, bootloader and driver modules for Secure Boot",
                trigger_type=TriggerType.PATH,
                operations=(Operation.INSTALL, Operation.UPGRADE),
                targets=(kernel_glob,),
                action=f"{self.resign_script} all",
                depends=("sbctl",),
            ),
        ]

    def _install_script(self, triggers: Sequence[SigningTrigger]) -> str:
        files = [(self.resign_script, render_resign_script(self.patterns, SIGN_COMMAND), "755")]
        files += [(f"{self.hook_dir}/{t.filename}", render_hook(t), "644") for t in triggers]

        lines = ["#!/bin/bash", "set -euo pipefail"]
        for path, body, mode in files:
            lines += install_file_lines(path, body, mode)
        lines.append("")
        return "\n".join(lines)

    def install_triggers(self) -> List[str]:
        triggers = self.build_triggers()
        try:
            self.runner.run_in_target(self.mount_root, self._install_script(triggers), name="install signing hooks")
        except BoundaryExecutionError as e:
            raise TriggerInstallError(f"Could not install signing hooks (exit={e.exit_code})") from e

        installed = [f"{self.hook_dir}/{t.filename}" for t in triggers]
        if self.verify:
            self._verify_installed(triggers)
        logger.info("Installed signing hooks: %s", ", ".join(installed))
        return installed

    def _verify_installed(self, triggers: Sequence[SigningTrigger]) -> None:
        root = Path(self.mount_root)
        script = root / self.resign_script.lstrip("/")
        if not script.is_file():
            raise TriggerInstallError(f"Re-sign script missing after install: {self.resign_script}")
        for t in triggers:
            hook = root / self.hook_dir.lstrip("/") / t.filename
            try:
                parsed = parse_hook(hook.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                raise TriggerInstallError(f"Hook {t.filename} unreadable after install: {e}") from e
            if parsed.get("Trigger", {}).get("Target") != list(t.targets) or "Exec" not in parsed.get("Action", {}):
                raise TriggerInstallError(f"Hook {t.filename} does not match what was written")

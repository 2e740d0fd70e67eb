from __future__ import annotations

from typing import Sequence


class InstallerError(RuntimeError):
    """Base class for every failure the installer raises on purpose."""


class CommandError(InstallerError):
    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = "") -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"Command failed ({returncode}): {' '.join(self.argv)}\n{stderr}".rstrip())


class EnvironmentCheckError(InstallerError):
    """Live environment is unfit (not UEFI, offline, missing tool, not root)."""


class ValidationError(InstallerError):
    """Operator input rejected; callers re-prompt."""


class InvalidDeviceError(ValidationError):
    pass


class DestructiveConfirmationDeclined(InstallerError):
    """Operator declined the destructive step. Not a failure."""


class PreconditionError(InstallerError):
    pass


class ProvisioningError(InstallerError):
    pass


class DeviceSettleTimeoutError(ProvisioningError):
    pass


class BoundaryExecutionError(InstallerError):
    def __init__(self, exit_code: int, script: str = "") -> None:
        self.exit_code = exit_code
        self.script = script
        label = f" ({script})" if script else ""
        super().__init__(f"In-target script{label} exited with status {exit_code}")


class TrustChainError(InstallerError):
    pass


class KeyGenerationError(TrustChainError):
    pass


class TriggerInstallError(TrustChainError):
    pass


# Notices: recorded on the run and logged, never raised through the pipeline.


class EnrollmentDegradedWarning(UserWarning):
    pass


class ArtifactDiscoveryEmpty(UserWarning):
    pass

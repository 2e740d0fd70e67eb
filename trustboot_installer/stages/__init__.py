from .stage_10_validate_env import ValidateEnvironmentStage
from .stage_20_gather_config import GatherConfigStage
from .stage_25_confirm import ConfirmDestructiveStage
from .stage_30_provision_disk import ProvisionDiskStage
from .stage_40_install_base import InstallBaseStage
from .stage_50_configure_target import ConfigureTargetStage
from .stage_60_trust_chain import InstallTrustChainStage
from .stage_70_install_apps import InstallApplicationsStage
from .stage_90_finalize import FinalizeStage

__all__ = [
    "ValidateEnvironmentStage",
    "GatherConfigStage",
    "ConfirmDestructiveStage",
    "ProvisionDiskStage",
    "InstallBaseStage",
    "ConfigureTargetStage",
    "InstallTrustChainStage",
    "InstallApplicationsStage",
    "FinalizeStage",
]

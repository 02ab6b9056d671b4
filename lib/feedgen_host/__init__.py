from .config_types import (
    Architecture,
    DeploymentParameters,
    GeneratedArtifacts,
    HostEnvironment,
    HostPaths,
    InstallerSettings,
    ResolvedPublicAddress,
)
from .errors import InstallerError, LockTimeout, ProvisioningError, UsageError
from .installer import Installer, InstallResult, InstallState

__all__ = [
    "Architecture",
    "DeploymentParameters",
    "GeneratedArtifacts",
    "HostEnvironment",
    "HostPaths",
    "InstallerSettings",
    "ResolvedPublicAddress",
    "InstallerError",
    "LockTimeout",
    "ProvisioningError",
    "UsageError",
    "Installer",
    "InstallResult",
    "InstallState",
]

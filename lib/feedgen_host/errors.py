from __future__ import annotations


class InstallerError(Exception):
    """Base installer error."""


class UsageError(InstallerError):
    def __init__(self, message: str, *, remediation: list[str] | None = None):
        super().__init__(message)
        self.remediation = list(remediation or [])


class ProvisioningError(InstallerError):
    def __init__(self, message: str, *, stdout: str | None = None, stderr: str | None = None) -> None:
        super().__init__(message)
        self.stdout = stdout or ""
        self.stderr = stderr or ""


class LockTimeout(ProvisioningError):
    """Package database stayed locked past the configured timeout."""

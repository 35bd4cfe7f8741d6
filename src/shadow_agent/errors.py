"""
Agent Errors

Exception hierarchy for provisioning, enrollment and launch failures.
"""

from pathlib import Path
from typing import List, Optional, Sequence


class ShadowAgentError(Exception):
    """Base exception for shadow agent errors."""
    pass


class ConfigError(ShadowAgentError):
    """Agent configuration is missing or invalid."""
    pass


class UnsupportedPlatformError(ShadowAgentError):
    """No osquery release exists for this OS/architecture."""

    def __init__(self, os_name: str, arch: str):
        self.os_name = os_name
        self.arch = arch
        super().__init__(f"Unsupported platform: {os_name}-{arch}")


class DownloadError(ShadowAgentError):
    """Downloading the osquery release failed."""

    def __init__(self, url: str, message: str, status: Optional[int] = None):
        self.url = url
        self.status = status
        super().__init__(f"{message} ({url})")


class ChecksumMismatchError(ShadowAgentError):
    """Downloaded file does not match the pinned SHA-256 digest."""

    def __init__(self, path: Path, expected: str, actual: str):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Hash mismatch for {path}!\n  Expected: {expected}\n  Got: {actual}"
        )


class BinaryNotFoundInArchiveError(ShadowAgentError):
    """No archive entry matched the osqueryd binary."""

    def __init__(self, archive: Path, candidates: Sequence[str]):
        self.archive = archive
        self.candidates = list(candidates)
        super().__init__(
            f"{' or '.join(self.candidates)} not found in archive {archive}"
        )


class BundleNotFoundInPackageError(ShadowAgentError):
    """The expanded installer package has no osquery.app bundle."""

    def __init__(self, package: Path, expected: Path):
        self.package = package
        self.expected = expected
        super().__init__(f"Could not find osquery.app in pkg {package} at {expected}")


class ExternalToolError(ShadowAgentError):
    """An external command exited non-zero or could not be started."""

    def __init__(self, cmd: List[str], exit_code: Optional[int], stderr: str = ""):
        self.cmd = list(cmd)
        self.exit_code = exit_code
        self.stderr = stderr
        if exit_code is None:
            message = f"Failed to run {self.cmd[0]}: {stderr}"
        else:
            message = f"{self.cmd[0]} failed with exit code {exit_code}: {stderr.strip()}"
        super().__init__(message)


class ProvisioningError(ShadowAgentError):
    """Provisioning finished without a usable binary."""
    pass


class EnrollmentError(ShadowAgentError):
    """Enrollment with the server failed."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(message)


class IdentifierParseError(ShadowAgentError):
    """osquery output did not contain the requested host identifier."""
    pass


class LaunchError(ShadowAgentError):
    """osqueryd could not be started."""
    pass

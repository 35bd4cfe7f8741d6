"""
Shadow Agent

Provisions osquery on Mac, Windows, and Linux hosts, enrolls the host with a
Hyprwatch server and runs osqueryd against it.
"""

from .version import __version__
from .agent import ShadowAgent
from .platform import detect_platform, PlatformInfo
from .releases import ArchiveKind, PlatformDescriptor, resolve_descriptor
from .provisioner import OsqueryProvisioner, ProvisionState
from .osquery import HostIdentifier, HostIdentity, get_host_identifier
from .enrollment import EnrollmentClient
from .launcher import OsqueryLauncher

__all__ = [
    "__version__",
    "ShadowAgent",
    "detect_platform",
    "PlatformInfo",
    "ArchiveKind",
    "PlatformDescriptor",
    "resolve_descriptor",
    "OsqueryProvisioner",
    "ProvisionState",
    "HostIdentifier",
    "HostIdentity",
    "get_host_identifier",
    "EnrollmentClient",
    "OsqueryLauncher",
]

"""
Install Layout

Paths of the provisioned osquery install and its runtime files under the
agent data directory.

    <data_dir>/
        bin/osqueryd                                  - Linux
        bin/osqueryd.exe                              - Windows
        bin/osquery.app/Contents/MacOS/osqueryd       - macOS (bundle kept intact)
        osquery_logs/                                 - osqueryd filesystem logs
        osquery.db                                    - osqueryd database
        osquery.pid                                   - osqueryd pidfile
        tmp/                                          - downloads (transient)
"""

import os
import platform
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Directory name under the per-user data directory
DATA_DIR_NAME = "shadow"

BUNDLE_NAME = "osquery.app"
DATABASE_NAME = "osquery.db"


def default_data_dir(os_name: Optional[str] = None) -> Path:
    """
    Get the default data directory for the platform.
    
    Uses the per-user local data directory to avoid permission issues,
    falling back to a system-wide location.
    """
    os_name = (os_name or platform.system()).lower()
    home = os.environ.get("HOME") or os.environ.get("USERPROFILE")
    
    if os_name == "windows":
        local = os.environ.get("LOCALAPPDATA")
        if local:
            return Path(local) / DATA_DIR_NAME
        return Path("C:\\ProgramData") / DATA_DIR_NAME
    
    if os_name == "darwin":
        if home:
            return Path(home) / "Library" / "Application Support" / DATA_DIR_NAME
        return Path("/var/lib") / DATA_DIR_NAME
    
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / DATA_DIR_NAME
    if home:
        return Path(home) / ".local" / "share" / DATA_DIR_NAME
    return Path("/var/lib") / DATA_DIR_NAME


@dataclass
class InstallLayout:
    """Paths within the agent data directory for one platform."""
    
    data_dir: Path
    os_name: str
    
    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        self.os_name = self.os_name.lower()
    
    @classmethod
    def for_host(cls, data_dir: Path) -> "InstallLayout":
        """Create the layout for the running OS."""
        return cls(data_dir, platform.system())
    
    @property
    def bin_dir(self) -> Path:
        return self.data_dir / "bin"
    
    @property
    def tmp_dir(self) -> Path:
        return self.data_dir / "tmp"
    
    @property
    def pkg_expand_dir(self) -> Path:
        """Scratch directory for expanding the macOS installer package."""
        return self.tmp_dir / "pkg_expand"
    
    @property
    def log_dir(self) -> Path:
        return self.data_dir / "osquery_logs"
    
    @property
    def database_path(self) -> Path:
        return self.data_dir / DATABASE_NAME
    
    @property
    def pidfile(self) -> Path:
        return self.data_dir / "osquery.pid"
    
    @property
    def bundle_dir(self) -> Optional[Path]:
        """App bundle directory (macOS only)."""
        if self.os_name == "darwin":
            return self.bin_dir / BUNDLE_NAME
        return None
    
    @property
    def osqueryd_path(self) -> Path:
        """Path where osqueryd should be located."""
        if self.os_name == "windows":
            return self.bin_dir / "osqueryd.exe"
        if self.os_name == "darwin":
            # Keep the .app bundle intact for code signing
            return self.bundle_dir / "Contents" / "MacOS" / "osqueryd"
        return self.bin_dir / "osqueryd"
    
    @property
    def requires_exec_bit(self) -> bool:
        return self.os_name != "windows"
    
    def is_provisioned(self) -> bool:
        """
        Check if osqueryd is already installed.
        
        The binary must exist and, on permission-bearing platforms, carry
        an executable bit. Anything else counts as not provisioned.
        """
        path = self.osqueryd_path
        try:
            st = path.stat()
        except OSError:
            return False
        
        if not path.is_file():
            return False
        
        if self.requires_exec_bit:
            return bool(st.st_mode & 0o111)
        return True
    
    def ensure_directories(self) -> None:
        """Create the data, bin and log directories."""
        for directory in (self.data_dir, self.bin_dir, self.log_dir):
            directory.mkdir(parents=True, exist_ok=True)

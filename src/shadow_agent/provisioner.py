"""
osquery Provisioning

Downloads, verifies and installs the pinned osquery release into the agent
data directory. Re-running is cheap: an install that passes the layout's
idempotency check is reused without any network or archive work.

Concurrent runs against the same data directory are not supported; the
operator must ensure a single agent instance per data directory.
"""

import asyncio
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from .commands import CommandRunner
from .download import Downloader, ProgressCallback
from .errors import ProvisioningError
from .extract import get_extractor, remove_tree, stale_partials
from .integrity import verify_digest
from .layout import InstallLayout
from .releases import (
    OSQUERY_VERSION,
    RELEASE_URL,
    PlatformDescriptor,
    download_url,
    resolve_descriptor,
)
from .platform import detect_platform

logger = logging.getLogger(__name__)


class ProvisionState(str, Enum):
    """Provisioning pipeline states."""
    NOT_CHECKED = "not_checked"
    CACHED = "cached"
    DOWNLOADING = "downloading"
    VERIFYING = "verifying"
    EXTRACTING = "extracting"
    FINALIZING_PERMISSIONS = "finalizing_permissions"
    FAILED = "failed"


class OsqueryProvisioner:
    """
    Manages osquery binary provisioning.

    Pipeline: idempotency check -> download -> verify -> extract ->
    set executable bit. Any failure aborts the run; temporary artifacts are
    removed on every exit path.
    """

    def __init__(
        self,
        data_dir: Path,
        *,
        os_name: Optional[str] = None,
        arch: Optional[str] = None,
        descriptor: Optional[PlatformDescriptor] = None,
        skip_verify: bool = False,
        release_url: str = RELEASE_URL,
        downloader: Optional[Downloader] = None,
        runner: Optional[CommandRunner] = None,
        progress: Optional[ProgressCallback] = None,
        echo: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize provisioner.

        Args:
            data_dir: Agent data directory
            os_name: Platform OS override (default: detected)
            arch: Platform architecture override (default: detected)
            descriptor: Release descriptor override (default: resolved from platform)
            skip_verify: Skip checksum verification (development only)
            release_url: Release download URL prefix
            downloader: Downloader to use
            runner: Command runner for external tools
            progress: Download percentage callback
            echo: Callback for user-facing status lines
        """
        if os_name is None or arch is None:
            info = detect_platform()
            os_name = os_name or info.platform
            arch = arch or info.architecture

        self.os_name = os_name
        self.arch = arch
        self.layout = InstallLayout(Path(data_dir), os_name)
        self.descriptor = descriptor
        self.skip_verify = skip_verify
        self.release_url = release_url
        self.downloader = downloader or Downloader()
        self.runner = runner or CommandRunner()
        self.progress = progress
        self.echo = echo or (lambda message: None)

        self.state = ProvisionState.NOT_CHECKED
        self.history: List[ProvisionState] = [self.state]

    def skip_verification(self, skip: bool) -> "OsqueryProvisioner":
        """Allow skipping hash verification (development only)."""
        self.skip_verify = skip
        return self

    @property
    def osqueryd_path(self) -> Path:
        """Path where osqueryd should be located."""
        return self.layout.osqueryd_path

    def is_provisioned(self) -> bool:
        """Check if osquery is already provisioned."""
        return self.layout.is_provisioned()

    def _transition(self, state: ProvisionState) -> None:
        logger.debug(f"Provisioning: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    async def ensure_provisioned(self) -> Path:
        """
        Provision osquery - download if not present.

        Returns:
            Path to the installed osqueryd binary
        """
        if self.is_provisioned():
            self._transition(ProvisionState.CACHED)
            logger.info(f"osqueryd already installed at {self.osqueryd_path}")
            self.echo(f"  osquery:   {self.osqueryd_path} (cached)")
            return self.osqueryd_path

        try:
            await self._download_and_install()
        except BaseException:
            self._transition(ProvisionState.FAILED)
            raise

        self._transition(ProvisionState.CACHED)
        return self.osqueryd_path

    async def _download_and_install(self) -> None:
        descriptor = self.descriptor or resolve_descriptor(self.os_name, self.arch)
        url = download_url(descriptor, self.release_url, OSQUERY_VERSION)
        temp_file = self.layout.tmp_dir / descriptor.download_filename

        self.echo("  osquery:   Downloading...")
        self.echo(f"             URL: {url}")
        logger.info(f"Downloading osquery {OSQUERY_VERSION} from {url}")

        try:
            self._transition(ProvisionState.DOWNLOADING)
            self.layout.tmp_dir.mkdir(parents=True, exist_ok=True)
            await self.downloader.download(url, temp_file, progress=self.progress)

            if self.skip_verify:
                logger.warning(
                    f"⚠️  Checksum verification SKIPPED for {temp_file.name} (--skip-verify)"
                )
                self.echo("             Checksum verification SKIPPED (--skip-verify)")
            else:
                self._transition(ProvisionState.VERIFYING)
                self.echo("             Verifying checksum...")
                await verify_digest(temp_file, descriptor.sha256)
                logger.info(f"Checksum verified for {temp_file.name}")

            self._transition(ProvisionState.EXTRACTING)
            self.echo("             Extracting...")
            self.layout.bin_dir.mkdir(parents=True, exist_ok=True)
            extractor = get_extractor(descriptor.archive_kind, self.runner)
            await extractor.extract(temp_file, self.layout, descriptor)

            self._transition(ProvisionState.FINALIZING_PERMISSIONS)
            self._finalize_permissions()
        finally:
            await asyncio.to_thread(self._cleanup, temp_file)

        logger.info(f"✅ osqueryd installed at {self.osqueryd_path}")
        self.echo(f"             Done! osqueryd installed at {self.osqueryd_path}")

    def _finalize_permissions(self) -> None:
        """Verify the binary exists and make it executable."""
        path = self.osqueryd_path
        if not path.is_file():
            raise ProvisioningError(f"Failed to extract osqueryd binary to {path}")

        # Archive permission bits are not trusted; set them explicitly
        if self.layout.requires_exec_bit:
            try:
                os.chmod(path, 0o755)
            except OSError as e:
                raise ProvisioningError(f"Failed to make {path} executable: {e}") from e

    def _cleanup(self, temp_file: Path) -> None:
        """Best-effort removal of temporary artifacts."""
        for path in (temp_file, self.layout.pkg_expand_dir, *stale_partials(self.layout.bin_dir)):
            try:
                remove_tree(path)
            except OSError as e:
                logger.warning(f"Failed to remove {path}: {e}")

        try:
            if self.layout.tmp_dir.exists() and not any(self.layout.tmp_dir.iterdir()):
                self.layout.tmp_dir.rmdir()
        except OSError as e:
            logger.warning(f"Failed to remove {self.layout.tmp_dir}: {e}")

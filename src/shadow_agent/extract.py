"""
Archive Extraction

One strategy per release archive format. Each strategy materializes
osqueryd (or, for the macOS package, the whole osquery.app bundle) at the
install layout path and leaves any previous install untouched on failure.
"""

import asyncio
import logging
import os
import shutil
import tarfile
import tempfile
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Dict, List, Optional, Type

from .commands import CommandRunner
from .errors import (
    BinaryNotFoundInArchiveError,
    BundleNotFoundInPackageError,
    ProvisioningError,
)
from .layout import InstallLayout
from .releases import ArchiveKind, PlatformDescriptor

logger = logging.getLogger(__name__)

# Errors raised by tarfile/zipfile on damaged archives or failed writes
_ARCHIVE_ERRORS = (tarfile.TarError, zipfile.BadZipFile, EOFError, zlib.error, OSError)


def normalize_member_name(name: str) -> str:
    """Strip leading './' and '/' from an archive member name."""
    name = name.replace("\\", "/")
    while name.startswith("./"):
        name = name[2:]
    return name.lstrip("/")


def matches_binary(name: str, descriptor: PlatformDescriptor) -> bool:
    """
    Check whether an archive member is the osqueryd binary.
    
    Exact match on the descriptor path, falling back to a match on the
    final path component since archive layouts vary between releases.
    """
    name = normalize_member_name(name)
    if name == descriptor.binary_path:
        return True
    return PurePosixPath(name).name == descriptor.binary_name


def write_atomically(source: BinaryIO, dest: Path) -> None:
    """Stream ``source`` into a fresh file next to ``dest`` and rename it into place."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}.partial-", dir=dest.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as out:
            shutil.copyfileobj(source, out)
        os.replace(tmp_path, dest)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def remove_tree(path: Path) -> None:
    """Remove a directory tree (or stray file) if present."""
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.exists():
        shutil.rmtree(path)


def stale_partials(directory: Path) -> List[Path]:
    """Leftovers of interrupted installs: hidden partial files and set-aside bundles."""
    if not directory.is_dir():
        return []
    return sorted(
        path for path in directory.iterdir()
        if path.name.startswith(".") and (".partial" in path.name or path.name.endswith(".old"))
    )


class Extractor:
    """Base class for archive extraction strategies."""
    
    kind: ArchiveKind
    
    def __init__(self, runner: Optional[CommandRunner] = None):
        self.runner = runner or CommandRunner()
    
    async def extract(
        self,
        archive: Path,
        layout: InstallLayout,
        descriptor: PlatformDescriptor,
    ) -> Path:
        """
        Extract osqueryd from ``archive`` into the install layout.
        
        Returns:
            Path of the installed osqueryd binary
        """
        raise NotImplementedError
    
    def _not_found(self, archive: Path, descriptor: PlatformDescriptor) -> BinaryNotFoundInArchiveError:
        return BinaryNotFoundInArchiveError(
            archive, [descriptor.binary_path, f"*/{descriptor.binary_name}"]
        )


class TarGzipExtractor(Extractor):
    """Extracts osqueryd from a Linux .tar.gz release."""
    
    kind = ArchiveKind.TAR_GZIP
    
    async def extract(self, archive, layout, descriptor):
        dest = layout.osqueryd_path
        dest.parent.mkdir(parents=True, exist_ok=True)
        
        # Decompression is CPU-bound, keep it off the event loop
        member = await asyncio.to_thread(self._extract_sync, archive, descriptor, dest)
        logger.info(f"Extracted {member} from {archive.name}")
        return dest
    
    def _extract_sync(self, archive: Path, descriptor: PlatformDescriptor, dest: Path) -> str:
        try:
            with tarfile.open(archive, "r:gz") as tar:
                for member in tar:
                    if not member.isfile() or not matches_binary(member.name, descriptor):
                        continue
                    source = tar.extractfile(member)
                    write_atomically(source, dest)
                    return member.name
        except _ARCHIVE_ERRORS as e:
            raise ProvisioningError(f"Failed to extract {archive}: {e}") from e
        
        raise self._not_found(archive, descriptor)


class ZipExtractor(Extractor):
    """Extracts osqueryd.exe from a Windows .zip release."""
    
    kind = ArchiveKind.ZIP
    
    async def extract(self, archive, layout, descriptor):
        dest = layout.osqueryd_path
        dest.parent.mkdir(parents=True, exist_ok=True)
        
        member = await asyncio.to_thread(self._extract_sync, archive, descriptor, dest)
        logger.info(f"Extracted {member} from {archive.name}")
        return dest
    
    def _extract_sync(self, archive: Path, descriptor: PlatformDescriptor, dest: Path) -> str:
        try:
            with zipfile.ZipFile(archive) as zf:
                for info in zf.infolist():
                    if info.is_dir() or not matches_binary(info.filename, descriptor):
                        continue
                    with zf.open(info) as source:
                        write_atomically(source, dest)
                    return info.filename
        except _ARCHIVE_ERRORS as e:
            raise ProvisioningError(f"Failed to extract {archive}: {e}") from e
        
        raise self._not_found(archive, descriptor)


class InstallerPackageExtractor(Extractor):
    """
    Installs osquery.app from a macOS .pkg release.
    
    The package is expanded with ``pkgutil --expand-full`` and the whole app
    bundle is copied with ``cp -R`` so symlinks and extended attributes (and
    with them the code signature) survive.
    """
    
    kind = ArchiveKind.INSTALLER_PACKAGE
    
    async def extract(self, archive, layout, descriptor):
        expand_dir = layout.pkg_expand_dir
        expand_dir.parent.mkdir(parents=True, exist_ok=True)
        
        # pkgutil --expand-full requires the destination to NOT exist
        await asyncio.to_thread(remove_tree, expand_dir)
        
        result = await self.runner.run(
            ["pkgutil", "--expand-full", str(archive), str(expand_dir)]
        )
        result.check()
        
        src_app = expand_dir / "Payload" / self._bundle_relpath(descriptor)
        if not src_app.is_dir():
            raise BundleNotFoundInPackageError(archive, src_app)
        
        dest_app = layout.bundle_dir
        dest_app.parent.mkdir(parents=True, exist_ok=True)
        partial = dest_app.with_name(f".{dest_app.name}.partial")
        await asyncio.to_thread(remove_tree, partial)
        
        result = await self.runner.run(["cp", "-R", str(src_app), str(partial)])
        if not result.ok:
            await asyncio.to_thread(remove_tree, partial)
            result.check()
        
        await asyncio.to_thread(self._swap_bundle, partial, dest_app)
        logger.info(f"Installed {dest_app.name} from {archive.name}")
        return layout.osqueryd_path
    
    @staticmethod
    def _bundle_relpath(descriptor: PlatformDescriptor) -> PurePosixPath:
        parts = PurePosixPath(descriptor.binary_path).parts
        for i, part in enumerate(parts):
            if part.endswith(".app"):
                return PurePosixPath(*parts[: i + 1])
        raise ProvisioningError(f"No .app bundle in binary path {descriptor.binary_path}")
    
    @staticmethod
    def _swap_bundle(partial: Path, dest: Path) -> None:
        old = dest.with_name(f".{dest.name}.old")
        remove_tree(old)
        if dest.exists() or dest.is_symlink():
            os.replace(dest, old)
        os.replace(partial, dest)
        remove_tree(old)


_EXTRACTORS: Dict[ArchiveKind, Type[Extractor]] = {
    ArchiveKind.TAR_GZIP: TarGzipExtractor,
    ArchiveKind.INSTALLER_PACKAGE: InstallerPackageExtractor,
    ArchiveKind.ZIP: ZipExtractor,
}


def get_extractor(kind: ArchiveKind, runner: Optional[CommandRunner] = None) -> Extractor:
    """Get the extraction strategy for an archive kind."""
    return _EXTRACTORS[kind](runner)

"""Shared fixtures for shadow agent tests."""

import hashlib
import io
import shutil
import tarfile
import zipfile
from pathlib import Path
from typing import Callable, Dict, List, Tuple

import pytest

from shadow_agent.commands import CommandResult
from shadow_agent.releases import ArchiveKind, PlatformDescriptor


OSQUERYD_BYTES = b"\x7fELF fake osqueryd"
MAN_PAGE_BYTES = b".TH OSQUERYD 1"


class FakeRunner:
    """Command runner that dispatches on the program name instead of spawning."""

    def __init__(self):
        self.calls: List[List[str]] = []
        self.handlers: Dict[str, Callable[[List[str]], CommandResult]] = {}

    async def run(self, args):
        args = [str(a) for a in args]
        self.calls.append(args)
        handler = self.handlers[Path(args[0]).name]
        return handler(args)

    def programs(self) -> List[str]:
        return [Path(call[0]).name for call in self.calls]


class FakeDownloader:
    """Downloader that copies a local archive instead of fetching the URL."""

    def __init__(self, source: Path):
        self.source = source
        self.calls: List[Tuple[str, Path]] = []

    async def download(self, url, destination, progress=None):
        self.calls.append((url, Path(destination)))
        shutil.copyfile(self.source, destination)
        if progress is not None:
            progress(100)


def sha256_of(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def _add_file(tar: tarfile.TarFile, name: str, data: bytes, mode: int = 0o644) -> None:
    info = tarfile.TarInfo(name)
    info.size = len(data)
    info.mode = mode
    tar.addfile(info, io.BytesIO(data))


def build_tar_gz(path: Path, entries: List[Tuple[str, bytes]], include_symlink: bool = False) -> Path:
    """Build a .tar.gz with the given (name, data) regular files, in order."""
    with tarfile.open(path, "w:gz") as tar:
        if include_symlink:
            link = tarfile.TarInfo("usr/local/bin/osqueryd")
            link.type = tarfile.SYMTYPE
            link.linkname = "/opt/osquery/bin/osqueryd"
            tar.addfile(link)
        for name, data in entries:
            if name.endswith("/"):
                info = tarfile.TarInfo(name.rstrip("/"))
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
            else:
                _add_file(tar, name, data)
    return path


def build_zip(path: Path, entries: List[Tuple[str, bytes]]) -> Path:
    with zipfile.ZipFile(path, "w") as zf:
        for name, data in entries:
            zf.writestr(name, data)
    return path


# Real release layout plus man pages at several depths, listed before the binary
LINUX_RELEASE_ENTRIES = [
    ("opt/", b""),
    ("opt/osquery/share/man/man1/osqueryd.1", MAN_PAGE_BYTES),
    ("./usr/share/man/osqueryd.1", MAN_PAGE_BYTES),
    ("osqueryd.1", MAN_PAGE_BYTES),
    ("opt/osquery/bin/", b""),
    ("opt/osquery/bin/osqueryd", OSQUERYD_BYTES),
    ("opt/osquery/share/osquery/osquery.example.conf", b"{}"),
]


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def linux_tarball(tmp_path) -> Path:
    return build_tar_gz(tmp_path / "osquery-test.linux_x86_64.tar.gz", LINUX_RELEASE_ENTRIES, include_symlink=True)


@pytest.fixture
def linux_descriptor(linux_tarball) -> PlatformDescriptor:
    return PlatformDescriptor(
        download_filename="osquery-test.linux_x86_64.tar.gz",
        sha256=sha256_of(linux_tarball),
        archive_kind=ArchiveKind.TAR_GZIP,
        binary_path="opt/osquery/bin/osqueryd",
    )


@pytest.fixture
def windows_zip(tmp_path) -> Path:
    return build_zip(
        tmp_path / "osquery-test.windows_x86_64.zip",
        [
            ("osqueryd/", b""),
            ("osqueryd/osqueryd.exe.manifest", b"<assembly/>"),
            ("osqueryd/osqueryd.exe", OSQUERYD_BYTES),
            ("osqueryi.exe", b"MZ shell"),
        ],
    )


@pytest.fixture
def windows_descriptor(windows_zip) -> PlatformDescriptor:
    return PlatformDescriptor(
        download_filename="osquery-test.windows_x86_64.zip",
        sha256=sha256_of(windows_zip),
        archive_kind=ArchiveKind.ZIP,
        binary_path="osqueryd/osqueryd.exe",
    )


@pytest.fixture
def data_dir(tmp_path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path

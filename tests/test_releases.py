"""Tests for platform detection and the osquery release table."""

import pytest

from shadow_agent.errors import UnsupportedPlatformError
from shadow_agent.platform import PlatformInfo, detect_platform, normalize_arch
from shadow_agent.releases import (
    OSQUERY_VERSION,
    PLATFORM_RELEASES,
    ArchiveKind,
    download_url,
    resolve_descriptor,
)


class TestNormalizeArch:
    """Tests for architecture normalization."""

    @pytest.mark.parametrize("machine", ["x86_64", "amd64", "AMD64"])
    def test_x86_64_aliases(self, machine):
        assert normalize_arch(machine) == "x86_64"

    @pytest.mark.parametrize("machine", ["aarch64", "arm64", "ARM64"])
    def test_aarch64_aliases(self, machine):
        assert normalize_arch(machine) == "aarch64"

    def test_unknown_passes_through(self):
        assert normalize_arch("riscv64") == "riscv64"


def test_detect_platform_returns_normalized_info():
    """Detected platform uses lowercase OS and release arch naming."""
    info = detect_platform()
    assert isinstance(info, PlatformInfo)
    assert info.platform == info.platform.lower()
    assert info.architecture == normalize_arch(info.architecture)
    assert info.hostname


class TestResolveDescriptor:
    """Tests for resolve_descriptor."""

    def test_linux_x86_64(self):
        descriptor = resolve_descriptor("linux", "x86_64")
        assert descriptor.download_filename == "osquery-5.20.0_1.linux_x86_64.tar.gz"
        assert descriptor.archive_kind == ArchiveKind.TAR_GZIP
        assert descriptor.binary_path == "opt/osquery/bin/osqueryd"
        assert descriptor.binary_name == "osqueryd"

    def test_linux_arm64_alias(self):
        descriptor = resolve_descriptor("linux", "arm64")
        assert descriptor.download_filename == "osquery-5.20.0_1.linux_aarch64.tar.gz"

    def test_macos_uses_universal_pkg(self):
        intel = resolve_descriptor("darwin", "x86_64")
        apple = resolve_descriptor("darwin", "arm64")
        assert intel is apple
        assert intel.archive_kind == ArchiveKind.INSTALLER_PACKAGE

    def test_windows_zip(self):
        descriptor = resolve_descriptor("Windows", "AMD64")
        assert descriptor.archive_kind == ArchiveKind.ZIP
        assert descriptor.binary_name == "osqueryd.exe"

    @pytest.mark.parametrize("os_name,arch", [
        ("freebsd", "x86_64"),
        ("windows", "aarch64"),
        ("linux", "i686"),
    ])
    def test_unsupported_platform(self, os_name, arch):
        with pytest.raises(UnsupportedPlatformError) as exc_info:
            resolve_descriptor(os_name, arch)
        assert os_name in str(exc_info.value)

    def test_defaults_to_detected_platform(self, monkeypatch):
        monkeypatch.setattr(
            "shadow_agent.releases.detect_platform",
            lambda: PlatformInfo("linux", "host", "1", "aarch64", ""),
        )
        assert resolve_descriptor().download_filename.endswith("linux_aarch64.tar.gz")

    def test_digests_are_lowercase_sha256(self):
        for descriptor in PLATFORM_RELEASES.values():
            assert len(descriptor.sha256) == 64
            assert descriptor.sha256 == descriptor.sha256.lower()


def test_download_url():
    descriptor = resolve_descriptor("linux", "x86_64")
    assert download_url(descriptor) == (
        f"https://github.com/osquery/osquery/releases/download/{OSQUERY_VERSION}/"
        "osquery-5.20.0_1.linux_x86_64.tar.gz"
    )
    assert download_url(descriptor, "http://mirror.local/releases/", "1.0").startswith(
        "http://mirror.local/releases/1.0/"
    )

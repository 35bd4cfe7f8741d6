"""
Integrity Verification

SHA-256 verification of downloaded release artifacts.
"""

import hashlib
import logging
from pathlib import Path

import aiofiles

from .errors import ChecksumMismatchError

logger = logging.getLogger(__name__)


async def sha256_file(path: Path, chunk_size: int = 1024 * 1024) -> str:
    """Compute the lower-case hex SHA-256 digest of a file."""
    sha256_hash = hashlib.sha256()
    async with aiofiles.open(path, "rb") as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            sha256_hash.update(chunk)
    return sha256_hash.hexdigest()


async def verify_digest(path: Path, expected: str) -> str:
    """
    Verify the SHA-256 digest of a downloaded file.
    
    Args:
        path: File to hash
        expected: Expected hex digest (case and surrounding whitespace ignored)
        
    Returns:
        The computed digest
        
    Raises:
        ChecksumMismatchError: If the digest does not match
    """
    expected = expected.strip().lower()
    actual = await sha256_file(path)
    
    if actual != expected:
        raise ChecksumMismatchError(path, expected, actual)
    
    logger.debug(f"SHA-256 verified for {path}: {actual}")
    return actual

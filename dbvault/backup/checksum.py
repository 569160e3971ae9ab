# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Checksum Verifier - Streaming SHA-256 over finished artifacts.
"""

import hashlib
from pathlib import Path

import aiofiles
import structlog

from dbvault.exceptions import BackupError

logger = structlog.get_logger()

CHUNK_SIZE = 1024 * 1024


async def compute_checksum(path: Path) -> str:
    """
    Compute the SHA-256 digest of a file.

    The file is read in 1 MiB chunks, never loaded whole.

    Args:
        path: File to hash

    Returns:
        Lowercase hex digest
    """
    digest = hashlib.sha256()
    try:
        async with aiofiles.open(path, "rb") as f:
            while True:
                chunk = await f.read(CHUNK_SIZE)
                if not chunk:
                    break
                digest.update(chunk)
    except OSError as e:
        raise BackupError(
            f"Failed to compute checksum: {e}",
            details={"path": str(path)},
        ) from e

    return digest.hexdigest()


async def verify_checksum(path: Path, expected: str) -> bool:
    """
    Compare a file's digest with an expected value.

    A mismatch is reported by the return value and a warning, never by an
    exception; the caller decides whether drift is fatal.

    Returns:
        True if the digests match (case-insensitive)
    """
    actual = await compute_checksum(path)
    matched = actual == expected.strip().lower()

    if matched:
        logger.debug("checksum_verified", path=str(path))
    else:
        logger.warning(
            "checksum_mismatch",
            path=str(path),
            expected=expected,
            actual=actual,
        )
    return matched

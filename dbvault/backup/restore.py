# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbvault Restore - Replays an artifact into a database.

Steps for one artifact:
1. Read the sidecar metadata (optional, a warning if missing)
2. Verify the recorded checksum (a mismatch is a warning, not an error)
3. Decode the artifact through the read chain into the restore engine
4. Compare the restored database shape against the sidecar snapshot
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from dbvault.backup.checksum import compute_checksum, verify_checksum
from dbvault.backup.metadata import BackupMetadata, BackupType, read_metadata
from dbvault.backup.naming import derive_metadata_path, target_from_artifact
from dbvault.exceptions import ChecksumMismatch, MetadataUnavailable, RestoreError
from dbvault.stream.chain import ProgressCallback, open_read_chain

logger = structlog.get_logger()

MATCHED = "MATCHED"
MISMATCHED = "MISMATCHED"


@dataclass
class RestoreReport:
    """Result of restoring one artifact."""

    target: str
    artifact_path: Path
    bytes_restored: int
    duration_seconds: float
    checksum_verified: Optional[bool] = None  # None: nothing to verify against
    metadata: Optional[BackupMetadata] = None
    shape: Dict[str, str] = field(default_factory=dict)
    shape_details: Dict[str, Dict[str, int]] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @property
    def shape_matched(self) -> bool:
        return all(status == MATCHED for status in self.shape.values())


async def restore_artifact(
    artifact_path: Path,
    engine: Any,
    *,
    target: Optional[str] = None,
    key: Optional[bytes] = None,
    verify: bool = True,
    strict_checksum: bool = False,
    server: Any = None,
    on_progress: Optional[ProgressCallback] = None,
) -> RestoreReport:
    """
    Restore a single artifact.

    Compression and encryption are detected from the artifact's suffixes.
    Metadata and checksum problems are logged and listed in
    ``RestoreReport.warnings``; only ``strict_checksum`` turns a mismatch
    into an error.

    Args:
        artifact_path: Path to the artifact
        engine: RestoreEngine receiving the decoded SQL
        target: Database to restore into (default: name from the metadata
                or the artifact file name)
        key: Envelope key, required for ``.enc`` artifacts
        verify: Verify the recorded checksum before restoring
        strict_checksum: Refuse to restore when the checksum does not match
        server: MySQLServer used for the post-restore shape comparison
        on_progress: Optional plaintext byte counter callback

    Returns:
        RestoreReport

    Raises:
        RestoreError: artifact missing or the engine failed
        ChecksumMismatch: checksum differs and strict_checksum is set
        DecryptionError: wrong key or corrupted artifact
    """
    artifact_path = Path(artifact_path)
    if not artifact_path.is_file():
        raise RestoreError(
            f"Backup file not found: {artifact_path}",
            details={"artifact_path": str(artifact_path)},
        )

    warnings: List[str] = []
    metadata = await _load_metadata(artifact_path, warnings)

    target = target or (metadata.database_name if metadata else None) or target_from_artifact(
        artifact_path
    )
    if not target:
        raise RestoreError(
            f"Cannot determine restore target for {artifact_path.name}",
            details={"artifact_path": str(artifact_path)},
        )

    checksum_verified: Optional[bool] = None
    if verify and metadata is not None and metadata.checksum:
        checksum_verified = await verify_checksum(artifact_path, metadata.checksum)
        if not checksum_verified:
            if strict_checksum:
                raise ChecksumMismatch(
                    str(artifact_path),
                    metadata.checksum,
                    await compute_checksum(artifact_path),
                )
            warnings.append("checksum mismatch, restoring anyway")

    logger.info(
        "restore_started",
        target=target,
        artifact_path=str(artifact_path),
        checksum_verified=checksum_verified,
    )

    start = time.monotonic()
    with open(artifact_path, "rb") as raw:
        with open_read_chain(raw, artifact_path, key=key, on_progress=on_progress) as source:
            await engine.restore(target, source)
            bytes_restored = source.bytes_read
    duration = time.monotonic() - start

    report = RestoreReport(
        target=target,
        artifact_path=artifact_path,
        bytes_restored=bytes_restored,
        duration_seconds=duration,
        checksum_verified=checksum_verified,
        metadata=metadata,
        warnings=warnings,
    )

    if server is not None and metadata is not None:
        await _compare_shape(server, target, metadata, report)

    logger.info(
        "restore_completed",
        target=target,
        bytes_restored=bytes_restored,
        duration=duration,
        shape_matched=report.shape_matched,
        warnings=len(warnings),
    )
    return report


async def _load_metadata(artifact_path: Path, warnings: List[str]) -> Optional[BackupMetadata]:
    metadata_path = derive_metadata_path(artifact_path)
    if metadata_path is None:
        warnings.append("artifact name has no metadata counterpart")
        logger.warning("metadata_path_unknown", artifact_path=str(artifact_path))
        return None

    try:
        return await read_metadata(metadata_path)
    except MetadataUnavailable as e:
        warnings.append(f"metadata unavailable: {e.message}")
        logger.warning(
            "metadata_unavailable",
            metadata_path=str(metadata_path),
            error=str(e),
        )
        return None


async def _compare_shape(
    server: Any,
    target: str,
    metadata: BackupMetadata,
    report: RestoreReport,
) -> None:
    """Compare object counts recorded at backup time with the live database."""
    expected = metadata.shape_counts()
    if not expected or metadata.backup_type != BackupType.SINGLE:
        return

    try:
        live = (await server.get_database_info(target)).model_dump()
    except Exception as e:
        report.warnings.append(f"shape comparison skipped: {e}")
        logger.warning("shape_comparison_failed", target=target, error=str(e))
        return

    for name, backup_count in expected.items():
        restored_count = int(live.get(name, 0))
        status = MATCHED if restored_count == backup_count else MISMATCHED
        report.shape[name] = status
        report.shape_details[name] = {"backup": backup_count, "restored": restored_count}
        if status == MISMATCHED:
            logger.warning(
                "shape_mismatch",
                target=target,
                item=name,
                backup=backup_count,
                restored=restored_count,
            )

# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbvault Backup Manager - Output directory lifecycle.

This module locates artifacts in the dated output tree, reports storage
statistics and prunes dated directories that fell out of retention.
"""

import shutil
from datetime import datetime, timedelta, UTC
from pathlib import Path
from typing import List, Optional

import structlog

from dbvault.backup.naming import (
    BASE_EXTENSION,
    METADATA_EXTENSION,
    derive_metadata_path,
    parse_date_stamp,
)
from dbvault.exceptions import BackupError

logger = structlog.get_logger()


async def prune_old_backups(
    output_dir: Path,
    retention_days: int,
    now: Optional[datetime] = None,
    dry_run: bool = False,
) -> List[str]:
    """
    Delete dated backup directories older than the retention window.

    Only immediate subdirectories named ``YYYY_MM_DD`` are candidates.
    Anything else in the output directory is left alone.

    Args:
        output_dir: Root output directory
        retention_days: Days to keep; ``<= 0`` disables pruning
        now: Reference time (default: current UTC time)
        dry_run: If True, only report what would be deleted

    Returns:
        Names of the directories removed (or that would be removed)
    """
    if retention_days <= 0:
        logger.debug("retention_disabled", retention_days=retention_days)
        return []

    output_dir = Path(output_dir)
    if not output_dir.is_dir():
        return []

    now = now or datetime.now(UTC)
    cutoff = now.replace(tzinfo=None) - timedelta(days=retention_days)

    removed: List[str] = []
    errors: List[str] = []

    for entry in sorted(output_dir.iterdir()):
        if not entry.is_dir():
            continue

        stamp = parse_date_stamp(entry.name)
        if stamp is None:
            logger.debug("retention_ignored_entry", path=str(entry))
            continue
        if stamp >= cutoff:
            continue

        try:
            if not dry_run:
                shutil.rmtree(entry)
            removed.append(entry.name)
            logger.debug(
                "backup_dir_pruned" if not dry_run else "backup_dir_would_prune",
                path=str(entry),
                age_days=(now.replace(tzinfo=None) - stamp).days,
            )
        except OSError as e:
            errors.append(f"{entry.name}: {e}")
            logger.warning(
                "prune_dir_error",
                path=str(entry),
                error=str(e),
            )

    logger.info(
        "retention_prune_complete",
        removed=len(removed),
        failed=len(errors),
        retention_days=retention_days,
        dry_run=dry_run,
    )

    return removed


def is_artifact(path: Path) -> bool:
    """Check whether a file name looks like a backup artifact."""
    return (
        path.is_file()
        and BASE_EXTENSION in path.name
        and not path.name.endswith((METADATA_EXTENSION, ".tmp"))
        and derive_metadata_path(path) is not None
    )


def list_artifacts(output_dir: Path, target: Optional[str] = None) -> List[Path]:
    """
    List artifacts under the dated output tree, oldest first.

    Args:
        output_dir: Root output directory
        target: Restrict to one target's directories

    Returns:
        Artifact paths sorted by date directory, then name
    """
    output_dir = Path(output_dir)
    if not output_dir.is_dir():
        return []

    artifacts: List[Path] = []
    for day_dir in sorted(output_dir.iterdir()):
        if not day_dir.is_dir() or parse_date_stamp(day_dir.name) is None:
            continue
        target_dirs = [day_dir / target] if target else sorted(day_dir.iterdir())
        for target_dir in target_dirs:
            if not target_dir.is_dir():
                continue
            artifacts.extend(p for p in sorted(target_dir.iterdir()) if is_artifact(p))

    return artifacts


def find_latest_artifact(output_dir: Path, target: str) -> Path:
    """
    Return the most recent artifact for a target.

    Raises:
        BackupError: no artifact exists for the target
    """
    artifacts = list_artifacts(output_dir, target)
    if not artifacts:
        raise BackupError(
            f"No backup found for {target}",
            details={"output_dir": str(output_dir), "target": target},
        )
    return artifacts[-1]


async def get_backup_stats(output_dir: Path) -> dict:
    """
    Get statistics about backup storage.

    Args:
        output_dir: Root output directory

    Returns:
        Dict with backup statistics
    """
    stats = {
        "artifact_count": 0,
        "artifact_bytes": 0,
        "day_count": 0,
        "oldest_day": None,
        "newest_day": None,
    }

    output_dir = Path(output_dir)
    if not output_dir.is_dir():
        return stats

    days = sorted(
        entry.name
        for entry in output_dir.iterdir()
        if entry.is_dir() and parse_date_stamp(entry.name) is not None
    )
    stats["day_count"] = len(days)
    if days:
        stats["oldest_day"] = days[0]
        stats["newest_day"] = days[-1]

    for artifact in list_artifacts(output_dir):
        stats["artifact_count"] += 1
        stats["artifact_bytes"] += artifact.stat().st_size

    return stats

# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Engine - Artifact naming, metadata, checksums, retention and restore.
"""

from dbvault.backup.checksum import (
    compute_checksum,
    verify_checksum,
)

from dbvault.backup.manager import (
    prune_old_backups,
    list_artifacts,
    find_latest_artifact,
    get_backup_stats,
)

from dbvault.backup.metadata import (
    BackupMetadata,
    BackupType,
    DatabaseInfo,
    ReplicationInfo,
    read_metadata,
    write_metadata,
)

from dbvault.backup.naming import (
    artifact_name,
    metadata_name,
    backup_directory,
    derive_metadata_path,
)

from dbvault.backup.restore import (
    restore_artifact,
    RestoreReport,
)

__all__ = [
    # Checksum
    "compute_checksum",
    "verify_checksum",
    # Manager
    "prune_old_backups",
    "list_artifacts",
    "find_latest_artifact",
    "get_backup_stats",
    # Metadata
    "BackupMetadata",
    "BackupType",
    "DatabaseInfo",
    "ReplicationInfo",
    "read_metadata",
    "write_metadata",
    # Naming
    "artifact_name",
    "metadata_name",
    "backup_directory",
    "derive_metadata_path",
    # Restore
    "restore_artifact",
    "RestoreReport",
]

# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Metadata Store - Sidecar JSON documents describing each artifact.

The sidecar is provenance: it records how an artifact was produced and
what the database looked like at the time. Restores use it for checksum
verification and shape comparison, but can proceed without it.
"""

import json
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles
import structlog
from pydantic import BaseModel, Field, ValidationError

from dbvault.exceptions import BackupError, MetadataUnavailable

logger = structlog.get_logger()


class BackupType(str, Enum):
    """Kind of dump an artifact contains."""

    SINGLE = "single"
    ALL_DATABASES = "all_databases"
    SYSTEM_USERS = "system_users"


class DatabaseInfo(BaseModel):
    """Shape snapshot of a database at backup time."""

    size_bytes: int = Field(0, description="Data + index size in bytes")
    size_mb: float = Field(0.0, description="size_bytes in MiB, two decimals")
    table_count: int = 0
    view_count: int = 0
    routine_count: int = 0
    trigger_count: int = 0
    user_count: int = Field(0, description="Accounts holding grants on the database")


class ReplicationInfo(BaseModel):
    """Replication position of the source server at backup time."""

    has_gtid: bool = False
    gtid_executed: str = ""
    gtid_purged: str = ""
    server_uuid: str = ""
    has_binlog: bool = False
    log_file: str = ""
    log_position: int = 0


class BackupMetadata(BaseModel):
    """Sidecar document for one backup artifact."""

    database_name: str = Field(..., description="Backup target name")
    backup_date: datetime = Field(..., description="When the artifact was written")
    backup_type: BackupType = BackupType.SINGLE
    output_file: str = Field(..., description="Absolute path of the artifact")
    file_size: int = Field(..., description="Artifact size on disk in bytes")
    compressed: bool
    compression_type: str = ""
    encrypted: bool
    includes_data: bool
    duration: str = Field(..., description="Wall time of the dump, e.g. '12.345s'")
    checksum: str = ""
    host: str
    port: int
    user: str
    mariadb_version: str = ""
    database_info: Optional[DatabaseInfo] = None
    replication_info: Optional[ReplicationInfo] = None

    def to_document(self) -> Dict[str, Any]:
        """Return the JSON document, omitting empty optional fields."""
        document = self.model_dump(mode="json")
        for key in ("compression_type", "checksum", "database_info", "replication_info"):
            if not document.get(key):
                document.pop(key, None)
        return document

    def shape_counts(self) -> Dict[str, int]:
        """Counts compared against the live database after a restore."""
        if self.database_info is None:
            return {}
        info = self.database_info
        return {
            "table_count": info.table_count,
            "view_count": info.view_count,
            "routine_count": info.routine_count,
            "trigger_count": info.trigger_count,
            "user_count": info.user_count,
        }


def format_duration(seconds: float) -> str:
    """Render a duration for the sidecar ``duration`` field."""
    return f"{seconds:.3f}s"


async def write_metadata(path: Path, metadata: BackupMetadata) -> Path:
    """
    Write a sidecar document next to its artifact.

    The file is written atomically (write to temp, then rename).

    Args:
        path: Destination ``.json`` path
        metadata: Document to persist

    Returns:
        Path to the written file
    """
    path = Path(path)
    temp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(metadata.to_document(), indent=2))
        temp_path.replace(path)
    except OSError as e:
        raise BackupError(
            f"Failed to write metadata: {e}",
            details={"path": str(path)},
        ) from e

    logger.debug("metadata_written", path=str(path))
    return path


async def read_metadata(path: Path) -> BackupMetadata:
    """
    Read and validate a sidecar document.

    Raises:
        MetadataUnavailable: file is missing, unreadable or malformed
    """
    try:
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            text = await f.read()
    except FileNotFoundError as e:
        raise MetadataUnavailable(
            f"Metadata file not found: {path}",
            details={"path": str(path)},
        ) from e
    except (OSError, UnicodeDecodeError) as e:
        raise MetadataUnavailable(
            f"Failed to read metadata: {e}",
            details={"path": str(path)},
        ) from e

    try:
        return BackupMetadata.model_validate_json(text)
    except ValidationError as e:
        raise MetadataUnavailable(
            f"Invalid metadata document: {path}",
            details={"path": str(path), "errors": e.error_count()},
        ) from e

# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbvault Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation to prevent
accidental modification during a batch.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
import re

from dbvault.engines import DEFAULT_DUMP_ARGS
from dbvault.stream.codecs import CompressionLevel, CompressionType, resolve_codec

_TARGET_NAME = re.compile(r"^[A-Za-z0-9_$][A-Za-z0-9_$-]*$")


def is_valid_target(name: str) -> bool:
    """
    Check whether a database name can be used as a backup target.

    Names end up in directory and file names, so only characters that
    are safe on every filesystem are accepted.
    """
    return bool(name) and len(name) <= 64 and bool(_TARGET_NAME.match(name))


@dataclass(frozen=True)
class ConnectionDescriptor:
    """Source connection recorded in metadata (never carries the password)."""

    host: str
    port: int
    user: str


@dataclass(frozen=True)
class BackupConfig:
    """
    Immutable configuration for backup and restore batches.

    Compression names are resolved into enums here, once; an unknown
    codec or level falls back to gzip / default with a logged warning.
    """

    # Required: database server host
    host: str

    # Server port
    port: int = 3306

    # Account used by the dump and restore clients
    user: str = "root"

    # Account password (never logged or written to metadata)
    password: str = field(default="", repr=False)

    # Root of the dated output tree
    output_dir: Path = field(default_factory=lambda: Path("./backups"))

    # Compress artifacts
    compress: bool = True

    # Compression codec and level
    compression: CompressionType = CompressionType.GZIP
    compression_level: CompressionLevel = CompressionLevel.DEFAULT

    # Encrypt artifacts (passphrase supplied at run time)
    encrypt: bool = False

    # Include table data (False = schema only)
    include_data: bool = True

    # Record a SHA-256 checksum in the metadata
    calculate_checksum: bool = True

    # Verify the recorded checksum before restoring
    verify_checksum: bool = True

    # Days of dated directories to keep; 0 disables pruning
    retention_days: int = 0

    # Allow mysql, sys, information_schema, performance_schema as targets
    include_system_databases: bool = False

    # Record GTID / binlog position in metadata
    capture_replication: bool = False

    # max_statement_time applied for the batch (None leaves it untouched)
    statement_time_override: Optional[float] = 0

    # Extra mysqldump arguments
    dump_args: List[str] = field(default_factory=lambda: list(DEFAULT_DUMP_ARGS))

    # Client binaries
    mysqldump_path: str = "mysqldump"
    mysql_path: str = "mysql"

    # Accounts included in the system_users target (empty = all)
    system_users: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not self.host:
            errors.append("host is required")

        if not isinstance(self.port, int) or not 1 <= self.port <= 65535:
            errors.append(f"port must be between 1 and 65535, got {self.port}")

        if not self.user:
            errors.append("user is required")

        if not isinstance(self.retention_days, int):
            errors.append(f"retention_days must be an integer, got {self.retention_days!r}")

        if self.statement_time_override is not None and self.statement_time_override < 0:
            errors.append(
                f"statement_time_override must be >= 0, got {self.statement_time_override}"
            )

        if not all(isinstance(arg, str) for arg in self.dump_args):
            errors.append("dump_args must be a list of strings")

        if errors:
            from dbvault.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

        # Frozen: normalize through object.__setattr__
        codec, level = resolve_codec(self.compression, self.compression_level)
        object.__setattr__(self, "compression", codec)
        object.__setattr__(self, "compression_level", level)
        object.__setattr__(self, "output_dir", Path(self.output_dir))

    @property
    def connection(self) -> ConnectionDescriptor:
        return ConnectionDescriptor(host=self.host, port=self.port, user=self.user)

    def with_updates(self, **kwargs) -> "BackupConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return BackupConfig(**current)
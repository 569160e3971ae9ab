# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers and backup profiles.

These helpers are small, convenient wrappers around create_config() and
BackupConfig.with_updates(). They make it easy to:

- Build a configuration from environment variables
- Apply ready-made backup profiles
"""

from __future__ import annotations

import os
from pathlib import Path

from dbvault.builder import create_config
from dbvault.config import BackupConfig
from dbvault.errors import (
    explain_invalid_bool_env,
    explain_invalid_port_env,
    explain_invalid_retention_days_env,
    explain_missing_host_env,
)
from dbvault.exceptions import ConfigurationError
from dbvault.stream.codecs import CompressionLevel, CompressionType

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_port(value: str | None) -> int:
    if not value:
        return 3306
    try:
        port = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_port_env(value)) from exc
    if not 1 <= port <= 65535:
        raise ConfigurationError(explain_invalid_port_env(value))
    return port


def _parse_retention_days(value: str | None) -> int:
    if not value:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_retention_days_env(value)) from exc


def _parse_bool(name: str, value: str | None, default: bool) -> bool:
    if value is None or value == "":
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(explain_invalid_bool_env(name, value))


def create_config_from_env() -> BackupConfig:
    """
    Create a BackupConfig from environment variables.

    Required:
        - DBVAULT_HOST: Database server host

    Optional environment variables:
        - DBVAULT_PORT: Server port (default: 3306)
        - DBVAULT_USER: Client account (default: root)
        - DBVAULT_PASSWORD: Client account password
        - DBVAULT_OUTPUT_DIR: Root of the dated output tree (default: ./backups)
        - DBVAULT_COMPRESSION: 'gzip' | 'zlib' | 'zstd' | 'none' (default: gzip)
        - DBVAULT_COMPRESSION_LEVEL: 'best_speed' ... 'best' (default: default)
        - DBVAULT_ENCRYPT: Encrypt artifacts (default: false)
        - DBVAULT_RETENTION_DAYS: Days to keep, 0 disables pruning (default: 0)
        - DBVAULT_INCLUDE_DATA: False for schema-only dumps (default: true)

    The encryption passphrase is read separately, at run time, from
    DBVAULT_ENCRYPTION_PASSWORD.
    """

    host = os.getenv("DBVAULT_HOST")
    if not host:
        raise ConfigurationError(explain_missing_host_env())

    output_dir_env = os.getenv("DBVAULT_OUTPUT_DIR")

    return create_config(
        host=host,
        port=_parse_port(os.getenv("DBVAULT_PORT")),
        user=os.getenv("DBVAULT_USER", "root"),
        password=os.getenv("DBVAULT_PASSWORD", ""),
        output_dir=Path(output_dir_env) if output_dir_env else None,
        compression=os.getenv("DBVAULT_COMPRESSION", "gzip"),
        compression_level=os.getenv("DBVAULT_COMPRESSION_LEVEL", "default"),
        encrypt=_parse_bool("DBVAULT_ENCRYPT", os.getenv("DBVAULT_ENCRYPT"), False),
        include_data=_parse_bool(
            "DBVAULT_INCLUDE_DATA", os.getenv("DBVAULT_INCLUDE_DATA"), True
        ),
        retention_days=_parse_retention_days(os.getenv("DBVAULT_RETENTION_DAYS")),
    )


# ============================================================================
# Profiles
# ============================================================================

def fast_local(config: BackupConfig) -> BackupConfig:
    """
    Favor speed for frequent local snapshots.

    - zstd at the fastest level
    - No checksum at backup time
    - Keep at most 3 days
    """

    return config.with_updates(
        compress=True,
        compression=CompressionType.ZSTD,
        compression_level=CompressionLevel.BEST_SPEED,
        calculate_checksum=False,
        retention_days=3 if config.retention_days <= 0 else min(config.retention_days, 3),
    )


def archival(config: BackupConfig) -> BackupConfig:
    """
    Favor size and verifiability for long-term archives.

    - zstd at the best level, encrypted
    - Checksums recorded and verified
    - Replication position captured
    - Keep at least 30 days
    """

    return config.with_updates(
        compress=True,
        compression=CompressionType.ZSTD,
        compression_level=CompressionLevel.BEST,
        encrypt=True,
        calculate_checksum=True,
        verify_checksum=True,
        capture_replication=True,
        retention_days=max(config.retention_days, 30),
    )


def schema_snapshot(config: BackupConfig) -> BackupConfig:
    """
    Schema-only dumps for change tracking.

    - No table data
    - Uncompressed, so snapshots diff cleanly
    """

    return config.with_updates(include_data=False, compress=False)

# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbvault Builder - Functional builder pattern for configuration.

This module provides pure functions for building BackupConfig objects.
Each function takes a config dict and returns a new dict with the
modification applied (immutable updates).
"""

from pathlib import Path
from typing import Any, Callable, Dict, List

from dbvault.config import BackupConfig
from dbvault.engines import DEFAULT_DUMP_ARGS
from dbvault.stream.codecs import CompressionLevel, CompressionType


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_config() -> ConfigDict:
    """
    Create an initial empty configuration dictionary.

    Returns:
        Dict with default values for all configuration fields
    """
    return {
        "host": "",
        "port": 3306,
        "user": "root",
        "password": "",
        "output_dir": Path("./backups"),
        "compress": True,
        "compression": CompressionType.GZIP,
        "compression_level": CompressionLevel.DEFAULT,
        "encrypt": False,
        "include_data": True,
        "calculate_checksum": True,
        "verify_checksum": True,
        "retention_days": 0,
        "include_system_databases": False,
        "capture_replication": False,
        "statement_time_override": 0,
        "dump_args": list(DEFAULT_DUMP_ARGS),
        "mysqldump_path": "mysqldump",
        "mysql_path": "mysql",
        "system_users": [],
    }


def with_connection(
    config: ConfigDict,
    host: str,
    port: int = 3306,
    user: str = "root",
    password: str = "",
) -> ConfigDict:
    """
    Set the database server connection.

    Args:
        config: Current configuration dictionary
        host: Server host name or address
        port: Server port
        user: Account used by mysqldump / mysql
        password: Account password

    Returns:
        New configuration dictionary with connection set
    """
    return {**config, "host": host, "port": port, "user": user, "password": password}


def with_output_dir(config: ConfigDict, output_dir: Path | str) -> ConfigDict:
    """
    Set the root of the dated output tree.

    Args:
        config: Current configuration dictionary
        output_dir: Directory receiving {YYYY_MM_DD}/{target}/ folders

    Returns:
        New configuration dictionary with output directory set
    """
    return {**config, "output_dir": Path(output_dir)}


def compress_with(
    config: ConfigDict,
    codec: str | CompressionType,
    level: str | CompressionLevel = CompressionLevel.DEFAULT,
) -> ConfigDict:
    """
    Enable compression with a codec and level.

    Args:
        config: Current configuration dictionary
        codec: 'gzip', 'zlib', 'zstd' (or 'none')
        level: 'best_speed', 'fast', 'default', 'better' or 'best'

    Returns:
        New configuration dictionary with compression set
    """
    return {**config, "compress": True, "compression": codec, "compression_level": level}


def disable_compression(config: ConfigDict) -> ConfigDict:
    """Write plain ``.sql`` artifacts."""
    return {**config, "compress": False}


def enable_encryption(config: ConfigDict) -> ConfigDict:
    """
    Encrypt artifacts.

    The passphrase is not part of the configuration; it is supplied to
    run_backup_batch() or read from DBVAULT_ENCRYPTION_PASSWORD.
    """
    return {**config, "encrypt": True}


def schema_only(config: ConfigDict) -> ConfigDict:
    """Dump schema without table data (mysqldump --no-data)."""
    return {**config, "include_data": False}


def keep_for_days(config: ConfigDict, days: int) -> ConfigDict:
    """
    Prune dated backup directories older than ``days``.

    Args:
        config: Current configuration dictionary
        days: Retention window; 0 disables pruning

    Returns:
        New configuration dictionary with retention set
    """
    return {**config, "retention_days": days}


def with_checksums(config: ConfigDict, calculate: bool = True, verify: bool = True) -> ConfigDict:
    """Control checksum recording at backup time and verification at restore time."""
    return {**config, "calculate_checksum": calculate, "verify_checksum": verify}


def capture_replication(config: ConfigDict) -> ConfigDict:
    """Record GTID and binlog position in each artifact's metadata."""
    return {**config, "capture_replication": True}


def include_system_databases(config: ConfigDict) -> ConfigDict:
    """Allow mysql, sys and the schema databases as explicit targets."""
    return {**config, "include_system_databases": True}


def override_statement_time(config: ConfigDict, seconds: float | None) -> ConfigDict:
    """
    Set max_statement_time for the duration of a batch.

    Args:
        config: Current configuration dictionary
        seconds: Value to apply (0 = unlimited), or None to leave the
                 server setting untouched

    Returns:
        New configuration dictionary with the override set
    """
    return {**config, "statement_time_override": seconds}


def with_dump_args(config: ConfigDict, args: List[str]) -> ConfigDict:
    """Replace the extra arguments passed to mysqldump."""
    return {**config, "dump_args": list(args)}


def with_system_users(config: ConfigDict, users: List[str]) -> ConfigDict:
    """Restrict the system_users target to the given account names."""
    return {**config, "system_users": list(users)}


def build_config(config_dict: ConfigDict) -> BackupConfig:
    """
    Build an immutable BackupConfig from a configuration dictionary.

    Args:
        config_dict: Configuration dictionary

    Returns:
        Validated, immutable BackupConfig instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    return BackupConfig(**config_dict)


def pipe(*funcs: BuilderFunc) -> BuilderFunc:
    """
    Compose multiple builder functions into a single function.

    Example:
        nightly = pipe(
            lambda c: compress_with(c, "zstd", "better"),
            enable_encryption,
            lambda c: keep_for_days(c, 14),
        )
    """

    def composed(config: ConfigDict) -> ConfigDict:
        result = config
        for func in funcs:
            result = func(result)
        return result

    return composed


def build_from_steps(*steps: BuilderFunc) -> BackupConfig:
    """
    Build a config by applying steps to an empty configuration.

    Example:
        config = build_from_steps(
            lambda c: with_connection(c, "db1.internal", user="backup"),
            lambda c: with_output_dir(c, "/var/backups/mysql"),
            schema_only,
        )
    """
    return build_config(pipe(*steps)(create_empty_config()))


def create_config(
    host: str,
    *,
    port: int = 3306,
    user: str = "root",
    password: str = "",
    output_dir: str | Path | None = None,
    compression: str | CompressionType | None = "gzip",
    compression_level: str | CompressionLevel = "default",
    encrypt: bool = False,
    include_data: bool = True,
    retention_days: int = 0,
    **kwargs: Any,
) -> BackupConfig:
    """
    Create dbvault configuration from simple parameters.

    This is the recommended user-facing API for creating configurations.
    It's simpler than the builder pattern and easier to understand.

    Args:
        host: Database server host (required)
        port: Server port (default: 3306)
        user: Account used by the client utilities (default: "root")
        password: Account password
        output_dir: Root of the dated output tree (default: "./backups")
        compression: "gzip", "zlib", "zstd", or None / "none" to disable
        compression_level: "best_speed", "fast", "default", "better" or "best"
        encrypt: Encrypt artifacts (passphrase supplied at run time)
        include_data: False for schema-only dumps
        retention_days: Days of dated directories to keep (0 = keep all)
        **kwargs: Additional configuration options

    Returns:
        Validated, immutable BackupConfig instance

    Example:
        # Simple configuration
        config = create_config(
            host="db1.internal",
            user="backup",
            password=os.environ["DB_PASSWORD"],
            output_dir="/var/backups/mysql",
        )

        # Encrypted zstd archives kept for two weeks
        config = create_config(
            host="db1.internal",
            compression="zstd",
            compression_level="best",
            encrypt=True,
            retention_days=14,
        )
    """
    config_dict = with_connection(create_empty_config(), host, port, user, password)

    if output_dir:
        config_dict = with_output_dir(config_dict, output_dir)

    if compression is None or str(getattr(compression, "value", compression)).lower() == "none":
        config_dict = disable_compression(config_dict)
    else:
        config_dict = compress_with(config_dict, compression, compression_level)

    if encrypt:
        config_dict = enable_encryption(config_dict)

    if not include_data:
        config_dict = schema_only(config_dict)

    if retention_days:
        config_dict = keep_for_days(config_dict, retention_days)

    # Apply any additional kwargs
    for key, value in kwargs.items():
        if key in config_dict:
            config_dict[key] = value

    return build_config(config_dict)

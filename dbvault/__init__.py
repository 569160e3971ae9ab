# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbvault - Backup and restore pipeline for MySQL/MariaDB.

Drives mysqldump / mysql through a compression and authenticated
encryption stream chain, writes a JSON sidecar per artifact, runs
multi-database batches that continue past individual failures, and
prunes dated output directories. Package name: dbvault.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from dbvault.builder import create_config
from dbvault.config import BackupConfig

# Core functions
from dbvault.core import (
    BatchRun,
    BackupArtifact,
    Succeeded,
    Failed,
    Skipped,
    run_backup_batch,
    run_restore_batch,
    backup_target,
)

# Engines and server access
from dbvault.engines import (
    MysqldumpEngine,
    MysqlClientEngine,
    GrantsDumpEngine,
    RoutingDumpEngine,
)
from dbvault.server import MySQLServer, statement_time_override

# Environment-based configuration and profiles (additional helpers)
from dbvault.env import (
    create_config_from_env,
    fast_local,
    archival,
    schema_snapshot,
)

__all__ = [
    # Version
    "__version__",
    # Configuration creation (primary user-facing APIs)
    "create_config",
    "create_config_from_env",
    "BackupConfig",
    # Core orchestration
    "run_backup_batch",
    "run_restore_batch",
    "backup_target",
    "BatchRun",
    "BackupArtifact",
    "Succeeded",
    "Failed",
    "Skipped",
    # Engines and server
    "MysqldumpEngine",
    "MysqlClientEngine",
    "GrantsDumpEngine",
    "RoutingDumpEngine",
    "MySQLServer",
    "statement_time_override",
    # Profiles
    "fast_local",
    "archival",
    "schema_snapshot",
]

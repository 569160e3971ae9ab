# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbvault Core - Batch orchestration for backups and restores.

A batch runs its targets one after another. Each target ends in exactly
one tagged outcome:

- Succeeded(target, result): artifact, checksum and metadata all written
- Failed(target, cause): any pipeline stage raised; the batch moves on
- Skipped(target, reason): excluded by policy before anything ran

Errors in shared setup (server unreachable, statement time override)
abort the batch, since no target could succeed without it.
"""

import time
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Union

import structlog
from ulid import ULID

from dbvault.backup.checksum import compute_checksum
from dbvault.backup.manager import prune_old_backups
from dbvault.backup.metadata import (
    BackupMetadata,
    BackupType,
    DatabaseInfo,
    ReplicationInfo,
    format_duration,
    write_metadata,
)
from dbvault.backup.naming import artifact_name, backup_directory, derive_metadata_path
from dbvault.backup.restore import RestoreReport, restore_artifact
from dbvault.config import BackupConfig, is_valid_target
from dbvault.engines import ALL_DATABASES, SYSTEM_USERS
from dbvault.exceptions import BatchError, ConfigurationError
from dbvault.server import SYSTEM_DATABASES, statement_time_override
from dbvault.stream.chain import StreamChainSpec, open_write_chain
from dbvault.stream.codecs import CompressionType
from dbvault.stream.envelope import derive_key, is_encrypted_path, resolve_passphrase

logger = structlog.get_logger()

# Called with (target, plaintext bytes so far)
BatchProgressCallback = Callable[[str, int], None]


class TargetStatus(str, Enum):
    """Final state of one target inside a batch."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class BackupArtifact:
    """One finished backup file. Never modified after the run writes it."""

    target: str
    path: Path
    size_bytes: int
    compression: CompressionType
    encrypted: bool
    created_at: datetime
    duration_seconds: float
    throughput: float  # plaintext bytes per second
    checksum: Optional[str] = None
    metadata_path: Optional[Path] = None


@dataclass(frozen=True)
class Succeeded:
    target: str
    result: Any  # BackupArtifact or RestoreReport
    status: TargetStatus = field(default=TargetStatus.SUCCEEDED, init=False)


@dataclass(frozen=True)
class Failed:
    target: str
    cause: str
    error: Optional[BaseException] = field(default=None, compare=False, repr=False)
    status: TargetStatus = field(default=TargetStatus.FAILED, init=False)


@dataclass(frozen=True)
class Skipped:
    target: str
    reason: str
    status: TargetStatus = field(default=TargetStatus.SKIPPED, init=False)


Outcome = Union[Succeeded, Failed, Skipped]


@dataclass
class BatchRun:
    """Outcomes of one orchestrator invocation."""

    operation: str
    run_id: str = field(default_factory=lambda: str(ULID()))
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: Optional[datetime] = None
    outcomes: List[Outcome] = field(default_factory=list)
    pruned: List[str] = field(default_factory=list)

    def record(self, outcome: Outcome) -> None:
        self.outcomes.append(outcome)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> List[Succeeded]:
        return [o for o in self.outcomes if isinstance(o, Succeeded)]

    @property
    def failed(self) -> List[Failed]:
        return [o for o in self.outcomes if isinstance(o, Failed)]

    @property
    def skipped(self) -> List[Skipped]:
        return [o for o in self.outcomes if isinstance(o, Skipped)]

    @property
    def artifacts(self) -> List[BackupArtifact]:
        return [o.result for o in self.succeeded if isinstance(o.result, BackupArtifact)]

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or datetime.now(UTC)
        return (end - self.started_at).total_seconds()

    def summary(self) -> Dict[str, Any]:
        """Summary for the caller: counts plus per-target details."""
        return {
            "run_id": self.run_id,
            "operation": self.operation,
            "total": self.total,
            "succeeded": [o.target for o in self.succeeded],
            "failed": {o.target: o.cause for o in self.failed},
            "skipped": {o.target: o.reason for o in self.skipped},
            "pruned": list(self.pruned),
            "duration_seconds": self.duration_seconds,
        }

    def raise_for_failures(self) -> None:
        """Raise BatchError if any target failed."""
        if not self.failed:
            return
        raise BatchError(
            f"{len(self.failed)} of {self.total} {self.operation} targets failed",
            run=self,
            details={
                "succeeded": len(self.succeeded),
                "failed": [o.target for o in self.failed],
                "skipped": len(self.skipped),
            },
        )


def chain_spec_for(
    config: BackupConfig,
    passphrase: Optional[str] = None,
    key: Optional[bytes] = None,
) -> StreamChainSpec:
    """Build the stream chain spec described by a config."""
    return StreamChainSpec.create(
        compress=config.compress,
        codec=config.compression,
        level=config.compression_level,
        encrypt=config.encrypt,
        passphrase=passphrase,
        key=key,
    )


def backup_type_for(target: str) -> BackupType:
    if target == ALL_DATABASES:
        return BackupType.ALL_DATABASES
    if target == SYSTEM_USERS:
        return BackupType.SYSTEM_USERS
    return BackupType.SINGLE


def _skip_reason(
    config: BackupConfig,
    target: str,
    available: Optional[Set[str]],
) -> Optional[str]:
    if target in (ALL_DATABASES, SYSTEM_USERS):
        return None
    if target in SYSTEM_DATABASES and not config.include_system_databases:
        return "protected system database"
    if available is not None and target not in available:
        return "database not found on server"
    return None


def _target_progress(
    on_progress: Optional[BatchProgressCallback],
    target: str,
) -> Optional[Callable[[int], None]]:
    if on_progress is None:
        return None

    def report(count: int) -> None:
        on_progress(target, count)

    return report


def _remove_partial(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("partial_artifact_cleanup_failed", path=str(path), error=str(e))
    else:
        logger.debug("partial_artifact_removed", path=str(path))


async def backup_target(
    config: BackupConfig,
    target: str,
    engine: Any,
    spec: StreamChainSpec,
    *,
    server: Any = None,
    server_version: str = "",
    when: Optional[datetime] = None,
    on_progress: Optional[BatchProgressCallback] = None,
) -> BackupArtifact:
    """
    Run the backup pipeline for one target.

    Dump into the write chain, then checksum, then metadata. If any step
    fails, the partial artifact and sidecar are removed and the error
    propagates to the caller.

    Args:
        config: Backup configuration
        target: Database name, ``all_databases`` or ``system_users``
        engine: DumpEngine producing the SQL
        spec: Stream chain spec (resolved codec and key)
        server: MySQLServer for shape and replication snapshots
        server_version: Version string recorded in metadata
        when: Timestamp used for naming (default: now)
        on_progress: Optional (target, bytes) callback

    Returns:
        The finished BackupArtifact
    """
    when = when or datetime.now(UTC)
    if not is_valid_target(target):
        raise ConfigurationError(
            f"Invalid backup target name: {target!r}",
            details={"target": target},
        )

    directory = backup_directory(config.output_dir, target, when)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / artifact_name(target, spec, when)
    metadata_path = derive_metadata_path(path)

    progress = _target_progress(on_progress, target)
    start = time.monotonic()
    try:
        with open(path, "wb") as raw:
            with open_write_chain(raw, spec, progress) as sink:
                await engine.dump(target, sink, include_data=config.include_data)
                plaintext_bytes = sink.bytes_written
        duration = time.monotonic() - start

        size = path.stat().st_size
        checksum = await compute_checksum(path) if config.calculate_checksum else None

        database_info: Optional[DatabaseInfo] = None
        replication_info: Optional[ReplicationInfo] = None
        if server is not None:
            database_info, replication_info = await _snapshot_server(config, target, server)

        metadata = BackupMetadata(
            database_name=target,
            backup_date=when,
            backup_type=backup_type_for(target),
            output_file=str(path.resolve()),
            file_size=size,
            compressed=spec.compress,
            compression_type=spec.effective_codec.value if spec.compress else "",
            encrypted=spec.encrypt,
            includes_data=config.include_data,
            duration=format_duration(duration),
            checksum=checksum or "",
            host=config.connection.host,
            port=config.connection.port,
            user=config.connection.user,
            mariadb_version=server_version,
            database_info=database_info,
            replication_info=replication_info,
        )
        await write_metadata(metadata_path, metadata)
    except BaseException:
        _remove_partial(path)
        _remove_partial(metadata_path)
        raise

    artifact = BackupArtifact(
        target=target,
        path=path,
        size_bytes=size,
        compression=spec.effective_codec,
        encrypted=spec.encrypt,
        created_at=when,
        duration_seconds=duration,
        throughput=plaintext_bytes / duration if duration > 0 else 0.0,
        checksum=checksum,
        metadata_path=metadata_path,
    )

    logger.info(
        "backup_target_completed",
        target=target,
        path=str(path),
        size=size,
        plaintext_bytes=plaintext_bytes,
        duration=duration,
    )
    return artifact


async def _snapshot_server(
    config: BackupConfig,
    target: str,
    server: Any,
) -> tuple[Optional[DatabaseInfo], Optional[ReplicationInfo]]:
    """Collect metadata-only server details; failures degrade to None."""
    database_info = None
    replication_info = None

    if backup_type_for(target) == BackupType.SINGLE:
        try:
            database_info = await server.get_database_info(target)
        except Exception as e:
            logger.warning("database_info_unavailable", target=target, error=str(e))

    if config.capture_replication:
        try:
            replication_info = await server.get_replication_info()
        except Exception as e:
            logger.warning("replication_info_unavailable", target=target, error=str(e))

    return database_info, replication_info


async def run_backup_batch(
    config: BackupConfig,
    targets: Sequence[str],
    engine: Any,
    *,
    chain_spec: Optional[StreamChainSpec] = None,
    passphrase: Optional[str] = None,
    server: Any = None,
    now: Optional[datetime] = None,
    on_progress: Optional[BatchProgressCallback] = None,
) -> BatchRun:
    """
    Back up a list of targets, continuing past individual failures.

    This is the main entry point for backups. It:
    1. Resolves the stream chain spec (codec and key) once
    2. Lists the server's databases and overrides the statement time limit
    3. Runs each target's pipeline in order, recording one outcome each
    4. Prunes dated directories past the retention window

    The returned BatchRun always lists every target; call
    ``raise_for_failures()`` to turn failures into a BatchError.

    Args:
        config: Backup configuration
        targets: Target names in execution order
        engine: DumpEngine (e.g. MysqldumpEngine)
        chain_spec: Pre-built spec (default: built from config)
        passphrase: Encryption passphrase (default: environment)
        server: MySQLServer, or None to run without server checks
        now: Timestamp for naming and retention (default: now)
        on_progress: Optional (target, bytes) callback

    Returns:
        BatchRun with one outcome per target
    """
    spec = chain_spec or chain_spec_for(config, passphrase)
    when = now or datetime.now(UTC)
    run = BatchRun(operation="backup")

    logger.info(
        "backup_batch_started",
        run_id=run.run_id,
        targets=len(targets),
        codec=spec.effective_codec.value,
        encrypted=spec.encrypt,
    )

    async with AsyncExitStack() as stack:
        available: Optional[Set[str]] = None
        server_version = ""
        if server is not None:
            available = set(await server.list_databases(include_system=True))
            server_version = await server.get_version()
            if config.statement_time_override is not None:
                await stack.enter_async_context(
                    statement_time_override(server, config.statement_time_override)
                )

        for target in targets:
            reason = _skip_reason(config, target, available)
            if reason:
                run.record(Skipped(target, reason))
                logger.info("backup_target_skipped", run_id=run.run_id, target=target, reason=reason)
                continue

            logger.info("backup_target_started", run_id=run.run_id, target=target)
            try:
                artifact = await backup_target(
                    config,
                    target,
                    engine,
                    spec,
                    server=server,
                    server_version=server_version,
                    when=when,
                    on_progress=on_progress,
                )
            except Exception as e:
                run.record(Failed(target, str(e), error=e))
                logger.error(
                    "backup_target_failed",
                    run_id=run.run_id,
                    target=target,
                    error=str(e),
                )
                continue

            run.record(Succeeded(target, artifact))

    if config.retention_days > 0:
        run.pruned = await prune_old_backups(config.output_dir, config.retention_days, now=when)

    run.finished_at = datetime.now(UTC)
    logger.info(
        "backup_batch_completed",
        run_id=run.run_id,
        succeeded=len(run.succeeded),
        failed=len(run.failed),
        skipped=len(run.skipped),
        pruned=len(run.pruned),
        duration=run.duration_seconds,
    )
    return run


async def run_restore_batch(
    config: BackupConfig,
    requests: Mapping[str, Path],
    engine: Any,
    *,
    passphrase: Optional[str] = None,
    key: Optional[bytes] = None,
    server: Any = None,
    on_progress: Optional[BatchProgressCallback] = None,
) -> BatchRun:
    """
    Restore several artifacts, continuing past individual failures.

    Args:
        config: Backup configuration (verification and policy flags)
        requests: Mapping of target database -> artifact path
        engine: RestoreEngine (e.g. MysqlClientEngine)
        passphrase: Passphrase for ``.enc`` artifacts (default: environment)
        key: Pre-derived envelope key, instead of a passphrase
        server: MySQLServer for database creation and shape comparison

    Returns:
        BatchRun whose successes carry RestoreReport results
    """
    run = BatchRun(operation="restore")

    if key is None and any(is_encrypted_path(path) for path in requests.values()):
        key = derive_key(resolve_passphrase(passphrase))

    logger.info("restore_batch_started", run_id=run.run_id, targets=len(requests))

    async with AsyncExitStack() as stack:
        if server is not None and config.statement_time_override is not None:
            await stack.enter_async_context(
                statement_time_override(server, config.statement_time_override)
            )

        for target, path in requests.items():
            reason = _skip_reason(config, target, None)
            if reason:
                run.record(Skipped(target, reason))
                logger.info("restore_target_skipped", run_id=run.run_id, target=target, reason=reason)
                continue

            progress = _target_progress(on_progress, target)
            try:
                if server is not None and backup_type_for(target) == BackupType.SINGLE:
                    await server.create_database(target)
                report: RestoreReport = await restore_artifact(
                    Path(path),
                    engine,
                    target=target,
                    key=key,
                    verify=config.verify_checksum,
                    server=server,
                    on_progress=progress,
                )
            except Exception as e:
                run.record(Failed(target, str(e), error=e))
                logger.error(
                    "restore_target_failed",
                    run_id=run.run_id,
                    target=target,
                    error=str(e),
                )
                continue

            run.record(Succeeded(target, report))

    run.finished_at = datetime.now(UTC)
    logger.info(
        "restore_batch_completed",
        run_id=run.run_id,
        succeeded=len(run.succeeded),
        failed=len(run.failed),
        skipped=len(run.skipped),
        duration=run.duration_seconds,
    )
    return run

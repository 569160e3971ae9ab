# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for dbvault tests.

Provides temporary output directories, configurations, a derived key and
in-memory doubles for the dump/restore engines and server settings.
"""

import tempfile
from pathlib import Path
from typing import Any, Dict, Generator, Iterable, List, Optional, Tuple
from unittest.mock import AsyncMock

import pytest

from dbvault.backup.metadata import DatabaseInfo, ReplicationInfo
from dbvault.exceptions import BackupError


SAMPLE_DUMP = (
    b"-- MariaDB dump 10.19\n"
    b"CREATE TABLE `users` (`id` int NOT NULL, `name` varchar(64));\n"
    + b"INSERT INTO `users` VALUES (1,'alice'),(2,'bob'),(3,'carol');\n" * 500
)


class FakeDumpEngine:
    """Dump engine writing canned SQL; selected targets fail midway."""

    def __init__(self, payloads: Optional[Dict[str, bytes]] = None, fail: Iterable[str] = ()):
        self.payloads = payloads or {}
        self.fail = set(fail)
        self.calls: List[Tuple[str, bool]] = []

    def payload_for(self, target: str) -> bytes:
        return self.payloads.get(target, SAMPLE_DUMP.replace(b"users", target.encode()))

    async def dump(self, target: str, sink, *, include_data: bool = True) -> None:
        self.calls.append((target, include_data))
        payload = self.payload_for(target)
        if target in self.fail:
            sink.write(payload[: len(payload) // 2])
            raise BackupError(f"mysqldump exited with status 2 for {target}")
        for offset in range(0, len(payload), 4096):
            sink.write(payload[offset : offset + 4096])


class FakeRestoreEngine:
    """Restore engine collecting the decoded SQL per target."""

    def __init__(self, fail: Iterable[str] = ()):
        self.fail = set(fail)
        self.restored: Dict[str, bytes] = {}

    async def restore(self, target: str, source) -> None:
        if target in self.fail:
            raise BackupError(f"mysql exited with status 1 for {target}")
        self.restored[target] = source.read()


class FakeSettings:
    """Server-global variables kept in a dict, with a write history."""

    def __init__(self, values: Optional[Dict[str, Any]] = None, fail_on_set: Iterable[Any] = ()):
        self.values = dict(values or {})
        self.fail_on_set = list(fail_on_set)
        self.history: List[Tuple[str, Any]] = []

    async def get_global(self, variable: str) -> Any:
        return self.values.get(variable)

    async def set_global(self, variable: str, value: Any) -> None:
        if value in self.fail_on_set:
            raise RuntimeError(f"cannot set {variable}")
        self.history.append((variable, value))
        self.values[variable] = value


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(scope="session")
def envelope_key() -> bytes:
    """Key derived once per session; PBKDF2 is deliberately slow."""
    from dbvault.stream.envelope import derive_key

    return derive_key("test-passphrase")


@pytest.fixture
def test_config(temp_dir: Path):
    """Create a test configuration writing under temp_dir."""
    from dbvault.config import BackupConfig

    return BackupConfig(
        host="localhost",
        port=3306,
        user="backup",
        password="secret",
        output_dir=temp_dir / "backups",
        compression="gzip",
        compression_level="fast",
    )


@pytest.fixture
def encrypted_config(test_config):
    """Test configuration with zstd compression and encryption."""
    return test_config.with_updates(compression="zstd", encrypt=True)


@pytest.fixture
def make_dump_engine():
    """Factory for dump engines with custom payloads or failing targets."""
    return FakeDumpEngine


@pytest.fixture
def make_restore_engine():
    return FakeRestoreEngine


@pytest.fixture
def make_settings():
    return FakeSettings


@pytest.fixture
def fake_dump_engine() -> FakeDumpEngine:
    return FakeDumpEngine()


@pytest.fixture
def fake_restore_engine() -> FakeRestoreEngine:
    return FakeRestoreEngine()


@pytest.fixture
def fake_settings() -> FakeSettings:
    return FakeSettings({"max_statement_time": "30.000000"})


@pytest.fixture
def mock_server():
    """
    AsyncMock standing in for MySQLServer.

    Knows databases ``app``, ``billing`` and ``crm`` plus the system schemas.
    """
    server = AsyncMock()
    server.list_databases.return_value = [
        "app",
        "billing",
        "crm",
        "information_schema",
        "mysql",
        "performance_schema",
        "sys",
    ]
    server.get_version.return_value = "10.11.6-MariaDB"
    server.get_global.return_value = "30.000000"
    server.get_database_info.return_value = DatabaseInfo(
        size_bytes=2 * 1024 * 1024,
        size_mb=2.0,
        table_count=4,
        view_count=1,
        routine_count=2,
        trigger_count=0,
        user_count=3,
    )
    server.get_replication_info.return_value = ReplicationInfo(
        has_gtid=True,
        gtid_executed="0-1-42",
        gtid_purged="0-1-40",
        server_uuid="1",
        has_binlog=True,
        log_file="mysql-bin.000007",
        log_position=1337,
    )
    return server

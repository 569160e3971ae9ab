# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbvault Engines - Dump and restore client adapters.

Engines move raw SQL bytes between a client utility and a stream handed
to them by the chain builder. They know nothing about compression,
encryption or file names.
"""

import asyncio
import os
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Dict, List, Optional, Protocol, Sequence

import structlog

from dbvault.exceptions import BackupError, RestoreError

logger = structlog.get_logger()

# Special targets
ALL_DATABASES = "all_databases"
SYSTEM_USERS = "system_users"

CHUNK_SIZE = 64 * 1024
STDERR_TAIL = 2000

DEFAULT_DUMP_ARGS = [
    "--single-transaction",
    "--routines",
    "--triggers",
    "--events",
]


class DumpEngine(Protocol):
    """Produces the SQL dump of a target into ``sink``."""

    async def dump(self, target: str, sink: BinaryIO, *, include_data: bool = True) -> None: ...


class RestoreEngine(Protocol):
    """Applies the SQL read from ``source`` to a target."""

    async def restore(self, target: str, source: BinaryIO) -> None: ...


def _client_env(password: str) -> Dict[str, str]:
    # Keeps the password off the process command line
    env = dict(os.environ)
    if password:
        env["MYSQL_PWD"] = password
    return env


def _tail(stderr: bytes) -> str:
    return stderr.decode("utf-8", errors="replace").strip()[-STDERR_TAIL:]


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        process.kill()
        await process.wait()


@dataclass
class MysqldumpEngine:
    """Dump engine backed by the ``mysqldump`` client."""

    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = field(default="", repr=False)
    binary: str = "mysqldump"
    extra_args: List[str] = field(default_factory=lambda: list(DEFAULT_DUMP_ARGS))
    chunk_size: int = CHUNK_SIZE

    @classmethod
    def from_config(cls, config: Any) -> "MysqldumpEngine":
        return cls(
            host=config.host,
            port=config.port,
            user=config.user,
            password=config.password,
            binary=config.mysqldump_path,
            extra_args=list(config.dump_args),
        )

    def build_command(self, target: str, include_data: bool = True) -> List[str]:
        command = [
            self.binary,
            f"--host={self.host}",
            f"--port={self.port}",
            f"--user={self.user}",
            *self.extra_args,
        ]
        if not include_data:
            command.append("--no-data")
        if target == ALL_DATABASES:
            command.append("--all-databases")
        else:
            command.append(target)
        return command

    async def dump(self, target: str, sink: BinaryIO, *, include_data: bool = True) -> None:
        command = self.build_command(target, include_data)
        logger.debug("mysqldump_started", target=target, args=command[1:])

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=_client_env(self.password),
            )
        except OSError as e:
            raise BackupError(
                f"Failed to start {self.binary}: {e}",
                details={"target": target},
            ) from e

        stderr_task = asyncio.ensure_future(process.stderr.read())
        try:
            while True:
                chunk = await process.stdout.read(self.chunk_size)
                if not chunk:
                    break
                sink.write(chunk)
            returncode = await process.wait()
        except BaseException:
            await _terminate(process)
            stderr_task.cancel()
            raise

        stderr = await stderr_task
        if returncode != 0:
            raise BackupError(
                f"{self.binary} exited with status {returncode}",
                details={"target": target, "stderr": _tail(stderr)},
            )


@dataclass
class MysqlClientEngine:
    """Restore engine backed by the ``mysql`` client (run with ``--force``)."""

    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = field(default="", repr=False)
    binary: str = "mysql"
    chunk_size: int = CHUNK_SIZE

    @classmethod
    def from_config(cls, config: Any) -> "MysqlClientEngine":
        return cls(
            host=config.host,
            port=config.port,
            user=config.user,
            password=config.password,
            binary=config.mysql_path,
        )

    def build_command(self, target: str) -> List[str]:
        command = [
            self.binary,
            f"--host={self.host}",
            f"--port={self.port}",
            f"--user={self.user}",
            "--force",
        ]
        if target not in (ALL_DATABASES, SYSTEM_USERS):
            command.append(target)
        return command

    async def restore(self, target: str, source: BinaryIO) -> None:
        command = self.build_command(target)
        logger.debug("mysql_client_started", target=target, args=command[1:])

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
                env=_client_env(self.password),
            )
        except OSError as e:
            raise RestoreError(
                f"Failed to start {self.binary}: {e}",
                details={"target": target},
            ) from e

        stderr_task = asyncio.ensure_future(process.stderr.read())
        try:
            try:
                while True:
                    chunk = source.read(self.chunk_size)
                    if not chunk:
                        break
                    process.stdin.write(chunk)
                    await process.stdin.drain()
                process.stdin.close()
                await process.stdin.wait_closed()
            except (BrokenPipeError, ConnectionResetError) as e:
                # Client exited early; its exit status and stderr explain why
                logger.debug("mysql_client_pipe_closed", target=target, error=str(e))
            returncode = await process.wait()
        except BaseException:
            await _terminate(process)
            stderr_task.cancel()
            raise

        stderr = await stderr_task
        if returncode != 0:
            raise RestoreError(
                f"{self.binary} exited with status {returncode}",
                details={"target": target, "stderr": _tail(stderr)},
            )


class GrantsDumpEngine:
    """
    Dump engine for the ``system_users`` target.

    Writes the ``SHOW GRANTS`` output of each account as a replayable SQL
    script. ``users`` restricts the dump to some user names; by default
    every non-builtin account is included.
    """

    def __init__(self, server: Any, users: Optional[Sequence[str]] = None):
        self.server = server
        self.users = list(users) if users else None

    @classmethod
    def from_config(cls, server: Any, config: Any) -> "GrantsDumpEngine":
        return cls(server, users=config.system_users)

    async def dump(self, target: str, sink: BinaryIO, *, include_data: bool = True) -> None:
        accounts = await self.server.list_user_accounts(self.users)
        sink.write(b"-- dbvault account grants\n")
        for user, host in accounts:
            grants = await self.server.show_grants(user, host)
            sink.write(f"\n-- {user}@{host}\n".encode("utf-8"))
            for grant in grants:
                sink.write(f"{grant};\n".encode("utf-8"))
        sink.write(b"\nFLUSH PRIVILEGES;\n")
        logger.debug("grants_dumped", target=target, accounts=len(accounts))


class RoutingDumpEngine:
    """Dispatch special targets to dedicated engines."""

    def __init__(self, default: DumpEngine, routes: Optional[Dict[str, DumpEngine]] = None):
        self.default = default
        self.routes = dict(routes or {})

    @classmethod
    def from_config(cls, server: Any, config: Any) -> "RoutingDumpEngine":
        """mysqldump for databases, account grants for ``system_users``."""
        return cls(
            MysqldumpEngine.from_config(config),
            {SYSTEM_USERS: GrantsDumpEngine.from_config(server, config)},
        )

    async def dump(self, target: str, sink: BinaryIO, *, include_data: bool = True) -> None:
        engine = self.routes.get(target, self.default)
        await engine.dump(target, sink, include_data=include_data)

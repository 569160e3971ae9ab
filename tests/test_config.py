# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Configuration tests: validation, builder steps, environment and profiles.
"""

from pathlib import Path

import pytest

from dbvault.builder import (
    build_from_steps,
    compress_with,
    create_config,
    enable_encryption,
    keep_for_days,
    pipe,
    schema_only,
    with_connection,
    with_output_dir,
)
from dbvault.config import BackupConfig, is_valid_target
from dbvault.env import archival, create_config_from_env, fast_local, schema_snapshot
from dbvault.exceptions import ConfigurationError
from dbvault.stream.codecs import CompressionLevel, CompressionType


ENV_VARS = [
    "DBVAULT_HOST",
    "DBVAULT_PORT",
    "DBVAULT_USER",
    "DBVAULT_PASSWORD",
    "DBVAULT_OUTPUT_DIR",
    "DBVAULT_COMPRESSION",
    "DBVAULT_COMPRESSION_LEVEL",
    "DBVAULT_ENCRYPT",
    "DBVAULT_INCLUDE_DATA",
    "DBVAULT_RETENTION_DAYS",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


# ============================================================================
# BackupConfig
# ============================================================================

def test_validation_collects_every_error():
    with pytest.raises(ConfigurationError) as exc_info:
        BackupConfig(host="", port=70000, user="", statement_time_override=-1)

    errors = exc_info.value.details["errors"]
    assert len(errors) == 4
    assert "host is required" in errors


def test_invalid_codec_falls_back_to_gzip():
    """A typo in the codec name degrades instead of failing the config."""
    config = BackupConfig(host="db1", compression="lz4", compression_level="ultra")

    assert config.compression == CompressionType.GZIP
    assert config.compression_level == CompressionLevel.DEFAULT


def test_codec_names_are_resolved():
    config = BackupConfig(host="db1", compression="zstd", compression_level="best", output_dir="out")

    assert config.compression == CompressionType.ZSTD
    assert config.compression_level == CompressionLevel.BEST
    assert config.output_dir == Path("out")


def test_config_is_immutable(test_config):
    with pytest.raises(AttributeError):
        test_config.host = "elsewhere"


def test_with_updates_returns_new_config(test_config):
    updated = test_config.with_updates(retention_days=14, compression="zlib")

    assert updated.retention_days == 14
    assert updated.compression == CompressionType.ZLIB
    assert test_config.retention_days == 0
    assert updated.password == test_config.password


def test_password_never_exposed(test_config):
    assert "secret" not in repr(test_config)
    assert "password" not in vars(test_config.connection)
    assert test_config.connection.host == "localhost"


@pytest.mark.parametrize(
    "name, valid",
    [
        ("app", True),
        ("billing_2024", True),
        ("all_databases", True),
        ("my-app", True),
        ("", False),
        ("../etc", False),
        ("app db", False),
        ("a" * 65, False),
    ],
)
def test_is_valid_target(name, valid):
    assert is_valid_target(name) is valid


# ============================================================================
# Builder
# ============================================================================

def test_create_config_defaults():
    config = create_config("db1.internal")

    assert config.host == "db1.internal"
    assert config.port == 3306
    assert config.compress
    assert config.compression == CompressionType.GZIP
    assert config.output_dir == Path("./backups")
    assert not config.encrypt
    assert config.retention_days == 0


@pytest.mark.parametrize("compression", [None, "none", CompressionType.NONE])
def test_create_config_without_compression(compression):
    assert not create_config("db1", compression=compression).compress


def test_create_config_extra_options():
    config = create_config(
        "db1",
        compression="zstd",
        compression_level="better",
        encrypt=True,
        include_data=False,
        retention_days=14,
        capture_replication=True,
        unknown_option=True,
    )

    assert config.compression == CompressionType.ZSTD
    assert config.compression_level == CompressionLevel.BETTER
    assert config.encrypt
    assert not config.include_data
    assert config.retention_days == 14
    assert config.capture_replication


def test_build_from_steps():
    config = build_from_steps(
        lambda c: with_connection(c, "db1.internal", user="backup", password="pw"),
        lambda c: with_output_dir(c, "/var/backups/mysql"),
        lambda c: compress_with(c, "zstd", "best"),
        enable_encryption,
        schema_only,
        lambda c: keep_for_days(c, 30),
    )

    assert config.user == "backup"
    assert config.output_dir == Path("/var/backups/mysql")
    assert config.compression == CompressionType.ZSTD
    assert config.encrypt
    assert not config.include_data
    assert config.retention_days == 30


def test_pipe_does_not_mutate_input():
    base = {"host": "db1"}
    step = pipe(schema_only, enable_encryption)

    result = step(base)

    assert base == {"host": "db1"}
    assert result == {"host": "db1", "include_data": False, "encrypt": True}


def test_build_from_steps_requires_host():
    with pytest.raises(ConfigurationError):
        build_from_steps(schema_only)


# ============================================================================
# Environment
# ============================================================================

def test_config_from_env(clean_env, temp_dir: Path):
    clean_env.setenv("DBVAULT_HOST", "db1.internal")
    clean_env.setenv("DBVAULT_PORT", "3307")
    clean_env.setenv("DBVAULT_USER", "backup")
    clean_env.setenv("DBVAULT_OUTPUT_DIR", str(temp_dir))
    clean_env.setenv("DBVAULT_COMPRESSION", "zstd")
    clean_env.setenv("DBVAULT_ENCRYPT", "yes")
    clean_env.setenv("DBVAULT_INCLUDE_DATA", "false")
    clean_env.setenv("DBVAULT_RETENTION_DAYS", "7")

    config = create_config_from_env()

    assert config.host == "db1.internal"
    assert config.port == 3307
    assert config.user == "backup"
    assert config.output_dir == temp_dir
    assert config.compression == CompressionType.ZSTD
    assert config.encrypt
    assert not config.include_data
    assert config.retention_days == 7


def test_config_from_env_requires_host(clean_env):
    with pytest.raises(ConfigurationError, match="DBVAULT_HOST"):
        create_config_from_env()


@pytest.mark.parametrize(
    "name, value",
    [
        ("DBVAULT_PORT", "not-a-port"),
        ("DBVAULT_PORT", "0"),
        ("DBVAULT_RETENTION_DAYS", "a week"),
        ("DBVAULT_ENCRYPT", "maybe"),
    ],
)
def test_config_from_env_rejects_bad_values(clean_env, name, value):
    clean_env.setenv("DBVAULT_HOST", "db1")
    clean_env.setenv(name, value)

    with pytest.raises(ConfigurationError, match=name):
        create_config_from_env()


# ============================================================================
# Profiles
# ============================================================================

def test_fast_local_profile(test_config):
    config = fast_local(test_config.with_updates(retention_days=30))

    assert config.compression == CompressionType.ZSTD
    assert config.compression_level == CompressionLevel.BEST_SPEED
    assert not config.calculate_checksum
    assert config.retention_days == 3


def test_archival_profile(test_config):
    config = archival(test_config.with_updates(retention_days=90))

    assert config.encrypt
    assert config.compression_level == CompressionLevel.BEST
    assert config.capture_replication
    assert config.retention_days == 90
    assert archival(test_config).retention_days == 30


def test_schema_snapshot_profile(test_config):
    config = schema_snapshot(test_config)

    assert not config.include_data
    assert not config.compress

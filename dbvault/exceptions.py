# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbvault Exceptions - Custom exceptions for the dbvault package.
"""

from typing import Any


class DBVaultError(Exception):
    """Base exception for all dbvault errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(DBVaultError):
    """Raised when configuration is invalid."""

    pass


class ServerError(DBVaultError):
    """Raised when the database server cannot be reached or queried."""

    pass


class BackupError(DBVaultError):
    """Raised when backup operations fail."""

    pass


class CodecError(BackupError):
    """Raised when compressed data cannot be decoded."""

    pass


class RestoreError(DBVaultError):
    """Raised when restore operations fail."""

    pass


class DecryptionError(DBVaultError):
    """
    Raised when an encrypted stream fails authentication.

    ``reason`` is ``"wrong_password"`` when the key check in the header
    does not match, and ``"corrupted"`` when the payload itself was
    truncated or tampered with.
    """

    WRONG_PASSWORD = "wrong_password"
    CORRUPTED = "corrupted"

    def __init__(self, message: str, reason: str = CORRUPTED, details: dict | None = None):
        self.reason = reason
        super().__init__(message, details={"reason": reason, **(details or {})})


class ChecksumMismatch(DBVaultError):
    """Raised when an artifact digest differs from the recorded one."""

    def __init__(self, path: str, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checksum mismatch for {path}",
            details={"expected": expected, "actual": actual},
        )


class MetadataUnavailable(DBVaultError):
    """Raised when a sidecar metadata file is missing or unreadable."""

    pass


class BatchError(DBVaultError):
    """Raised when one or more targets of a batch failed."""

    def __init__(self, message: str, run: Any = None, details: dict | None = None):
        self.run = run
        super().__init__(message, details=details)

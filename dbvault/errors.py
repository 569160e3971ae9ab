# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for dbvault.

These helpers centralize wording for common configuration and restore
errors so that all modules present consistent, actionable messages.
"""

from typing import Iterable


def explain_invalid_codec(value: str | None, choices: Iterable[str]) -> str:
    """
    Explain that a compression codec name is not supported.
    """

    return (
        f"Unsupported compression type: {value!r}. "
        f"Expected one of: {', '.join(repr(c) for c in choices)}."
    )


def explain_invalid_level(value: str | None, choices: Iterable[str]) -> str:
    """
    Explain that a compression level name is not supported.
    """

    return (
        f"Unsupported compression level: {value!r}. "
        f"Expected one of: {', '.join(repr(c) for c in choices)}."
    )


def explain_missing_passphrase() -> str:
    """
    Explain that encryption was requested without a passphrase.
    """

    return (
        "Encryption is enabled but no passphrase was provided. "
        "Set the DBVAULT_ENCRYPTION_PASSWORD environment variable or pass "
        "passphrase=... to the backup or restore call."
    )


def explain_missing_host_env() -> str:
    """
    Explain that the database host environment variable is missing.
    """

    return (
        "Database host is not configured. "
        "Set the DBVAULT_HOST environment variable or pass host=... to create_config()."
    )


def explain_invalid_port_env(value: str | None) -> str:
    """
    Explain that DBVAULT_PORT is invalid.
    """

    return (
        f"Invalid DBVAULT_PORT value: {value!r}. "
        "It must be an integer between 1 and 65535."
    )


def explain_invalid_retention_days_env(value: str | None) -> str:
    """
    Explain that DBVAULT_RETENTION_DAYS is invalid.
    """

    return (
        f"Invalid DBVAULT_RETENTION_DAYS value: {value!r}. "
        "It must be an integer number of days (0 disables pruning)."
    )


def explain_invalid_bool_env(name: str, value: str | None) -> str:
    """
    Explain that a boolean environment variable could not be parsed.
    """

    return (
        f"Invalid {name} value: {value!r}. "
        "Expected one of: 'true', 'false', '1', '0', 'yes', 'no'."
    )


def explain_wrong_password() -> str:
    """
    Explain a key-check failure on an encrypted artifact.
    """

    return (
        "Failed to decrypt backup: wrong password. "
        "The artifact was encrypted with a different passphrase."
    )


def explain_corrupted_envelope(detail: str) -> str:
    """
    Explain an authentication failure inside an encrypted artifact.
    """

    return (
        f"Failed to decrypt backup: data is corrupted or was tampered with ({detail}). "
        "Restore from another copy of this artifact."
    )

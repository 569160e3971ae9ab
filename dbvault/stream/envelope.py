# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbvault Envelope - Authenticated encryption for backup streams.

Layout of an encrypted artifact::

    header:  MAGIC (6) | VERSION (1) | NONCE PREFIX (7) | KEY CHECK (16)
    frames:  LENGTH (4, top bit = final) | AES-256-GCM ciphertext + tag

Every frame is sealed with AES-GCM under a nonce built from the header's
random prefix, the frame counter and the final flag. The header and the
frame length are bound as associated data, so reordered, truncated or
extended streams fail authentication. The key check lets the reader tell
a wrong passphrase apart from corrupted data before touching any frame.
"""

import hashlib
import hmac
import io
import os
import struct
from pathlib import Path
from typing import BinaryIO

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from dbvault.errors import (
    explain_corrupted_envelope,
    explain_missing_passphrase,
    explain_wrong_password,
)
from dbvault.exceptions import ConfigurationError, DecryptionError

logger = structlog.get_logger()

# Key derivation is pinned to the envelope version; changing any of these
# makes existing artifacts unreadable.
KDF_SALT = b"dbvault_envelope_salt_v1"
KDF_ITERATIONS = 100_000
KEY_SIZE = 32

MAGIC = b"DBVENC"
VERSION = 1
NONCE_PREFIX_SIZE = 7
KEY_CHECK_SIZE = 16
HEADER_SIZE = len(MAGIC) + 1 + NONCE_PREFIX_SIZE + KEY_CHECK_SIZE
TAG_SIZE = 16

FRAME_SIZE = 64 * 1024
_FINAL_FLAG = 0x80000000
_MAX_FRAMES = 2**32

ENCRYPTED_SUFFIX = ".enc"
PASSPHRASE_ENV = "DBVAULT_ENCRYPTION_PASSWORD"


def derive_key(passphrase: str | bytes) -> bytes:
    """
    Derive the 256-bit envelope key from an operator passphrase.

    PBKDF2-HMAC-SHA512 with a fixed salt: the same passphrase yields the
    same key on every host, which is what lets a restore run on a machine
    other than the one that took the backup.

    Args:
        passphrase: Operator passphrase (str is UTF-8 encoded)

    Returns:
        32-byte key
    """
    if not passphrase:
        raise ConfigurationError(explain_missing_passphrase())
    if isinstance(passphrase, str):
        passphrase = passphrase.encode("utf-8")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA512(),
        length=KEY_SIZE,
        salt=KDF_SALT,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(passphrase)


def resolve_passphrase(passphrase: str | None = None) -> str:
    """Return the explicit passphrase, else the one from the environment."""
    resolved = passphrase or os.getenv(PASSPHRASE_ENV)
    if not resolved:
        raise ConfigurationError(explain_missing_passphrase())
    return resolved


def is_encrypted_path(path: str | Path) -> bool:
    """Check whether an artifact name carries the encryption suffix."""
    return Path(path).name.lower().endswith(ENCRYPTED_SUFFIX)


def _key_check(key: bytes, header_prefix: bytes) -> bytes:
    return hmac.new(key, b"key-check:" + header_prefix, hashlib.sha256).digest()[
        :KEY_CHECK_SIZE
    ]


def _nonce(prefix: bytes, counter: int, final: bool) -> bytes:
    return prefix + struct.pack(">IB", counter, 1 if final else 0)


def _validate_key(key: bytes) -> None:
    if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_SIZE:
        raise ConfigurationError(
            "Envelope key must be 32 bytes",
            details={"length": len(key) if key else 0},
        )


class EncryptingWriter(io.RawIOBase):
    """
    Writer that seals plaintext into authenticated frames.

    The header is emitted on construction. Buffered plaintext is sealed
    as the final frame on close(); a writer that is never closed leaves a
    stream the reader rejects as truncated.
    """

    def __init__(self, sink: BinaryIO, key: bytes):
        super().__init__()
        _validate_key(key)
        self._sink = sink
        self._aead = AESGCM(bytes(key))
        self._prefix = os.urandom(NONCE_PREFIX_SIZE)
        head = MAGIC + bytes([VERSION]) + self._prefix
        self._header = head + _key_check(bytes(key), head)
        self._counter = 0
        self._buffer = bytearray()
        self._sink.write(self._header)

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        if self.closed:
            raise ValueError("write to closed envelope")
        self._buffer += data
        # Keep at least one byte back so the final frame is never empty
        # unless the whole stream is.
        while len(self._buffer) > FRAME_SIZE:
            self._seal(bytes(self._buffer[:FRAME_SIZE]), final=False)
            del self._buffer[:FRAME_SIZE]
        return len(data)

    def _seal(self, plaintext: bytes, final: bool) -> None:
        if self._counter >= _MAX_FRAMES:
            raise ValueError("envelope frame counter exhausted")
        length = len(plaintext) + TAG_SIZE
        length_field = struct.pack(">I", length | (_FINAL_FLAG if final else 0))
        sealed = self._aead.encrypt(
            _nonce(self._prefix, self._counter, final),
            plaintext,
            self._header + length_field,
        )
        self._sink.write(length_field)
        self._sink.write(sealed)
        self._counter += 1

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._seal(bytes(self._buffer), final=True)
            self._buffer.clear()
        finally:
            super().close()


class DecryptingReader(io.RawIOBase):
    """
    Reader that opens and authenticates frames produced by EncryptingWriter.

    The header is read and the key check verified on construction, so a
    wrong passphrase is reported before any plaintext is produced.
    """

    def __init__(self, source: BinaryIO, key: bytes):
        super().__init__()
        _validate_key(key)
        self._source = source
        self._aead = AESGCM(bytes(key))
        self._counter = 0
        self._pending = b""
        self._finished = False

        header = self._read_exact(HEADER_SIZE)
        if len(header) < HEADER_SIZE or not header.startswith(MAGIC):
            raise DecryptionError(
                explain_corrupted_envelope("missing envelope header"),
                reason=DecryptionError.CORRUPTED,
            )
        if header[len(MAGIC)] != VERSION:
            raise DecryptionError(
                explain_corrupted_envelope(f"unsupported envelope version {header[len(MAGIC)]}"),
                reason=DecryptionError.CORRUPTED,
            )

        head = header[: -KEY_CHECK_SIZE]
        if not hmac.compare_digest(_key_check(bytes(key), head), header[-KEY_CHECK_SIZE:]):
            raise DecryptionError(
                explain_wrong_password(),
                reason=DecryptionError.WRONG_PASSWORD,
            )

        self._header = header
        self._prefix = head[len(MAGIC) + 1 :]

    def readable(self) -> bool:
        return True

    def _read_exact(self, size: int) -> bytes:
        chunks = []
        remaining = size
        while remaining > 0:
            chunk = self._source.read(remaining)
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    def _corrupted(self, detail: str) -> DecryptionError:
        return DecryptionError(
            explain_corrupted_envelope(detail),
            reason=DecryptionError.CORRUPTED,
            details={"frame": self._counter},
        )

    def _open_next_frame(self) -> None:
        length_field = self._read_exact(4)
        if len(length_field) < 4:
            raise self._corrupted("stream truncated before final frame")

        (raw_length,) = struct.unpack(">I", length_field)
        final = bool(raw_length & _FINAL_FLAG)
        length = raw_length & 0x7FFFFFFF
        if length < TAG_SIZE or length > FRAME_SIZE + TAG_SIZE:
            raise self._corrupted(f"invalid frame length {length}")

        sealed = self._read_exact(length)
        if len(sealed) < length:
            raise self._corrupted("frame truncated")

        try:
            plaintext = self._aead.decrypt(
                _nonce(self._prefix, self._counter, final),
                sealed,
                self._header + length_field,
            )
        except InvalidTag as e:
            raise self._corrupted("frame authentication failed") from e

        self._counter += 1
        self._pending = plaintext
        if final:
            self._finished = True
            if self._source.read(1):
                raise self._corrupted("trailing data after final frame")

    def readinto(self, buffer) -> int:
        while not self._pending:
            if self._finished:
                return 0
            self._open_next_frame()

        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size


def wrap_for_write(sink: BinaryIO, key: bytes) -> EncryptingWriter:
    """Wrap a sink so everything written to it is encrypted."""
    logger.debug("envelope_writer_opened", version=VERSION)
    return EncryptingWriter(sink, key)


def wrap_for_read(source: BinaryIO, key: bytes) -> DecryptingReader:
    """
    Wrap a source produced by wrap_for_write.

    Raises:
        DecryptionError: wrong key (reason ``wrong_password``) or a
            damaged header (reason ``corrupted``)
    """
    return DecryptingReader(source, key)

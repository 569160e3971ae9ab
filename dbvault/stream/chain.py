# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbvault Stream Chain - Composes codecs and the envelope into one stream.

Write order: plaintext -> compress -> encrypt -> base sink
Read order:  base source -> decrypt -> decompress -> plaintext

Compression must happen before encryption; ciphertext does not compress
and a reader applying the stages in another order cannot decode the
artifact. Each builder returns the list of stages it opened, in the order
they were acquired. close_chain() finalizes them in reverse so every
stage flushes into a stage that is still open.
"""

import io
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, List, Optional, Tuple

import structlog

from dbvault.errors import explain_missing_passphrase
from dbvault.exceptions import ConfigurationError
from dbvault.stream import codecs, envelope
from dbvault.stream.codecs import CompressionLevel, CompressionType

logger = structlog.get_logger()

# Called with the running plaintext byte count
ProgressCallback = Callable[[int], None]


@dataclass(frozen=True)
class StreamChainSpec:
    """
    Immutable description of how an artifact stream is encoded.

    ``codec`` and ``level`` are already-resolved enum members; string
    names are resolved by create(). ``key`` is the derived envelope key,
    never the passphrase.
    """

    compress: bool = True
    codec: CompressionType = codecs.DEFAULT_COMPRESSION
    level: CompressionLevel = codecs.DEFAULT_LEVEL
    encrypt: bool = False
    key: Optional[bytes] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.encrypt and not self.key:
            raise ConfigurationError(explain_missing_passphrase())
        if self.key is not None and len(self.key) != envelope.KEY_SIZE:
            raise ConfigurationError(
                "Envelope key must be 32 bytes",
                details={"length": len(self.key)},
            )

    @property
    def effective_codec(self) -> CompressionType:
        """Codec actually applied, NONE when compression is disabled."""
        return self.codec if self.compress else CompressionType.NONE

    @classmethod
    def create(
        cls,
        *,
        compress: bool = True,
        codec: str | CompressionType | None = None,
        level: str | CompressionLevel | None = None,
        encrypt: bool = False,
        passphrase: str | None = None,
        key: bytes | None = None,
        strict: bool = False,
    ) -> "StreamChainSpec":
        """
        Build a spec from configuration values.

        Codec names are resolved here, once; see codecs.resolve_codec for
        the fallback rules. When ``encrypt`` is set and no key is given,
        the key is derived from ``passphrase`` (or the passphrase
        environment variable).

        Example:
            spec = StreamChainSpec.create(codec="zstd", level="best",
                                          encrypt=True, passphrase="s3cret")
        """
        resolved_codec, resolved_level = codecs.resolve_codec(codec, level, strict=strict)
        if not compress:
            resolved_codec = CompressionType.NONE

        if encrypt and key is None:
            key = envelope.derive_key(envelope.resolve_passphrase(passphrase))

        return cls(
            compress=compress and resolved_codec != CompressionType.NONE,
            codec=resolved_codec,
            level=resolved_level,
            encrypt=encrypt,
            key=key if encrypt else None,
        )


class CountingWriter(io.RawIOBase):
    """Pass-through writer counting plaintext bytes for progress display."""

    def __init__(self, inner: BinaryIO, on_progress: Optional[ProgressCallback] = None):
        super().__init__()
        self._inner = inner
        self._on_progress = on_progress
        self.bytes_written = 0

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        self._inner.write(data)
        size = len(data)
        self.bytes_written += size
        if self._on_progress is not None:
            self._on_progress(self.bytes_written)
        return size


class CountingReader(io.RawIOBase):
    """Pass-through reader counting plaintext bytes for progress display."""

    def __init__(self, inner: BinaryIO, on_progress: Optional[ProgressCallback] = None):
        super().__init__()
        self._inner = inner
        self._on_progress = on_progress
        self.bytes_read = 0

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        data = self._inner.read(len(buffer))
        size = len(data)
        buffer[:size] = data
        self.bytes_read += size
        if size and self._on_progress is not None:
            self._on_progress(self.bytes_read)
        return size


def close_chain(closeables: List[BinaryIO], suppress: bool = False) -> None:
    """
    Finalize chain stages in reverse acquisition order.

    Every stage gets a close attempt even if an earlier one fails. The
    first failure is re-raised afterwards unless ``suppress`` is set, in
    which case failures are only logged (used on error paths, where the
    original exception matters more).
    """
    first_error: Optional[BaseException] = None
    for stage in reversed(closeables):
        try:
            stage.close()
        except Exception as e:
            logger.warning(
                "stream_stage_close_failed",
                stage=type(stage).__name__,
                error=str(e),
            )
            if first_error is None:
                first_error = e

    if first_error is not None and not suppress:
        raise first_error


def build_write_chain(
    base_sink: BinaryIO,
    spec: StreamChainSpec,
    on_progress: Optional[ProgressCallback] = None,
) -> Tuple[BinaryIO, List[BinaryIO]]:
    """
    Wrap a raw sink according to a StreamChainSpec.

    The base sink is not part of the returned closeables; its owner
    closes it after close_chain().

    Args:
        base_sink: Raw byte sink (usually the artifact file)
        spec: Encoding to apply
        on_progress: Optional plaintext byte counter callback

    Returns:
        Tuple of (plaintext sink, closeables in acquisition order)
    """
    closeables: List[BinaryIO] = []
    sink = base_sink
    try:
        if spec.encrypt:
            sink = envelope.wrap_for_write(sink, spec.key)
            closeables.append(sink)

        codec = spec.effective_codec
        if codec != CompressionType.NONE:
            sink = codecs.wrap_for_write(sink, codec, spec.level)
            closeables.append(sink)

        sink = CountingWriter(sink, on_progress)
        closeables.append(sink)
    except Exception:
        close_chain(closeables, suppress=True)
        raise

    return sink, closeables


def build_read_chain(
    base_source: BinaryIO,
    path_hint: str | Path,
    key: Optional[bytes] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> Tuple[BinaryIO, List[BinaryIO]]:
    """
    Wrap a raw source according to the artifact's file name.

    Encryption and compression are detected from the suffixes of
    ``path_hint`` rather than from configuration, so artifacts produced
    by any earlier run can be read.

    Raises:
        ConfigurationError: artifact is encrypted and no key was given
        DecryptionError: key does not match the artifact
    """
    closeables: List[BinaryIO] = []
    source = base_source
    try:
        if envelope.is_encrypted_path(path_hint):
            if key is None:
                raise ConfigurationError(
                    explain_missing_passphrase(),
                    details={"path": str(path_hint)},
                )
            source = envelope.wrap_for_read(source, key)
            closeables.append(source)

        codec = codecs.detect_compression_from_path(path_hint)
        if codec != CompressionType.NONE:
            source = codecs.wrap_for_read(source, codec)
            closeables.append(source)

        source = CountingReader(source, on_progress)
        closeables.append(source)
    except Exception:
        close_chain(closeables, suppress=True)
        raise

    return source, closeables


@contextmanager
def open_write_chain(
    base_sink: BinaryIO,
    spec: StreamChainSpec,
    on_progress: Optional[ProgressCallback] = None,
) -> Iterator[BinaryIO]:
    """
    Context manager around build_write_chain().

    On normal exit the chain is closed and close errors propagate; on an
    exception it is closed best-effort and the original error propagates.
    """
    sink, closeables = build_write_chain(base_sink, spec, on_progress)
    try:
        yield sink
    except BaseException:
        close_chain(closeables, suppress=True)
        raise
    close_chain(closeables)


@contextmanager
def open_read_chain(
    base_source: BinaryIO,
    path_hint: str | Path,
    key: Optional[bytes] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> Iterator[BinaryIO]:
    """Context manager around build_read_chain()."""
    source, closeables = build_read_chain(base_source, path_hint, key, on_progress)
    try:
        yield source
    finally:
        close_chain(closeables, suppress=True)

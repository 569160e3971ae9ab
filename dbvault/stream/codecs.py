# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
dbvault Codecs - Compression registry for backup streams.

Codec names coming from configuration are resolved exactly once into the
closed CompressionType / CompressionLevel enums. The pipeline itself only
ever dispatches on those enums.

Supported codecs:
1. gzip (``.gz``), also accepted under the ``pgzip`` alias
2. zlib (``.zlib``)
3. zstd (``.zst``)
4. none (no suffix)
"""

import gzip
import io
import zlib
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Dict, Tuple

import structlog
import zstandard as zstd

from dbvault.errors import explain_invalid_codec, explain_invalid_level
from dbvault.exceptions import CodecError, ConfigurationError

logger = structlog.get_logger()


class CompressionType(str, Enum):
    """Compression algorithm applied to a backup stream."""

    NONE = "none"
    GZIP = "gzip"
    ZLIB = "zlib"
    ZSTD = "zstd"


class CompressionLevel(str, Enum):
    """Speed/ratio trade-off, from fastest to smallest output."""

    BEST_SPEED = "best_speed"
    FAST = "fast"
    DEFAULT = "default"
    BETTER = "better"
    BEST = "best"


DEFAULT_COMPRESSION = CompressionType.GZIP
DEFAULT_LEVEL = CompressionLevel.DEFAULT

# Names accepted on input that map onto an existing codec
_ALIASES: Dict[str, CompressionType] = {
    "pgzip": CompressionType.GZIP,
    "gz": CompressionType.GZIP,
    "zst": CompressionType.ZSTD,
}

_DEFLATE_LEVELS: Dict[CompressionLevel, int] = {
    CompressionLevel.BEST_SPEED: 1,
    CompressionLevel.FAST: 3,
    CompressionLevel.DEFAULT: 6,
    CompressionLevel.BETTER: 8,
    CompressionLevel.BEST: 9,
}

_ZSTD_LEVELS: Dict[CompressionLevel, int] = {
    CompressionLevel.BEST_SPEED: 1,
    CompressionLevel.FAST: 2,
    CompressionLevel.DEFAULT: 3,
    CompressionLevel.BETTER: 9,
    CompressionLevel.BEST: 19,
}

_EXTENSIONS: Dict[CompressionType, str] = {
    CompressionType.NONE: "",
    CompressionType.GZIP: ".gz",
    CompressionType.ZLIB: ".zlib",
    CompressionType.ZSTD: ".zst",
}

_ENCRYPTED_SUFFIX = ".enc"

# Read/decompress chunk size
CHUNK_SIZE = 64 * 1024


def resolve_codec(
    name: str | CompressionType | None,
    level: str | CompressionLevel | None = None,
    strict: bool = False,
) -> Tuple[CompressionType, CompressionLevel]:
    """
    Resolve user supplied codec and level names.

    Unknown names fall back to gzip and the default level with a logged
    warning, so a typo in configuration never fails a backup. With
    ``strict=True`` the same input raises ConfigurationError instead.

    Args:
        name: Codec name or enum member (``None``/empty means gzip)
        level: Level name or enum member (``None``/empty means default)
        strict: Raise instead of falling back

    Returns:
        Tuple of (CompressionType, CompressionLevel)
    """
    return _resolve_type(name, strict), _resolve_level(level, strict)


def _resolve_type(name: str | CompressionType | None, strict: bool) -> CompressionType:
    if isinstance(name, CompressionType):
        return name
    if not name:
        return DEFAULT_COMPRESSION

    normalized = name.strip().lower()
    if normalized in _ALIASES:
        return _ALIASES[normalized]
    try:
        return CompressionType(normalized)
    except ValueError:
        choices = [c.value for c in CompressionType]
        if strict:
            raise ConfigurationError(explain_invalid_codec(name, choices))
        logger.warning(
            "codec_fallback",
            requested=name,
            fallback=DEFAULT_COMPRESSION.value,
        )
        return DEFAULT_COMPRESSION


def _resolve_level(level: str | CompressionLevel | None, strict: bool) -> CompressionLevel:
    if isinstance(level, CompressionLevel):
        return level
    if not level:
        return DEFAULT_LEVEL

    try:
        return CompressionLevel(level.strip().lower())
    except ValueError:
        choices = [lv.value for lv in CompressionLevel]
        if strict:
            raise ConfigurationError(explain_invalid_level(level, choices))
        logger.warning(
            "compression_level_fallback",
            requested=level,
            fallback=DEFAULT_LEVEL.value,
        )
        return DEFAULT_LEVEL


def native_level(codec: CompressionType, level: CompressionLevel) -> int:
    """Map a level onto the codec's own numeric scale."""
    if codec == CompressionType.ZSTD:
        return _ZSTD_LEVELS[level]
    return _DEFLATE_LEVELS[level]


def file_extension(codec: CompressionType) -> str:
    """Return the file suffix for a codec (empty for none)."""
    return _EXTENSIONS[codec]


def detect_compression_from_path(path: str | Path) -> CompressionType:
    """
    Detect the codec of an artifact from its file name.

    The ``.enc`` suffix is ignored, so ``db_2024_01_01.sql.gz.enc`` is
    detected as gzip. Restores rely on this rather than on the current
    configuration, since artifacts may come from another run.
    """
    name = Path(path).name.lower()
    if name.endswith(_ENCRYPTED_SUFFIX):
        name = name[: -len(_ENCRYPTED_SUFFIX)]

    for codec, extension in _EXTENSIONS.items():
        if extension and name.endswith(extension):
            return codec
    return CompressionType.NONE


# ============================================================================
# Write side
# ============================================================================


class _ZlibWriter(io.RawIOBase):
    """Streaming zlib compressor writing into an underlying sink."""

    def __init__(self, sink: BinaryIO, level: int):
        super().__init__()
        self._sink = sink
        self._compressor = zlib.compressobj(level)

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        if self.closed:
            raise ValueError("write to closed zlib stream")
        compressed = self._compressor.compress(bytes(data))
        if compressed:
            self._sink.write(compressed)
        return len(data)

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._sink.write(self._compressor.flush(zlib.Z_FINISH))
        finally:
            super().close()


def wrap_for_write(
    sink: BinaryIO,
    codec: CompressionType,
    level: CompressionLevel = DEFAULT_LEVEL,
) -> BinaryIO:
    """
    Wrap a sink with a compressing writer.

    The returned writer buffers data internally; it must be closed to emit
    the trailing bytes. Closing it never closes ``sink``.

    Returns:
        The compressing writer, or ``sink`` itself for CompressionType.NONE
    """
    if codec == CompressionType.NONE:
        return sink

    numeric = native_level(codec, level)
    logger.debug("codec_writer_opened", codec=codec.value, level=level.value)

    if codec == CompressionType.GZIP:
        # GzipFile leaves a caller-supplied fileobj open on close
        return gzip.GzipFile(fileobj=sink, mode="wb", compresslevel=numeric)
    if codec == CompressionType.ZLIB:
        return _ZlibWriter(sink, numeric)
    if codec == CompressionType.ZSTD:
        cctx = zstd.ZstdCompressor(level=numeric)
        return cctx.stream_writer(sink, closefd=False)

    raise ConfigurationError(f"Unhandled compression type: {codec}")


# ============================================================================
# Read side
# ============================================================================


class _ZlibReader(io.RawIOBase):
    """Streaming zlib decompressor reading from an underlying source."""

    def __init__(self, source: BinaryIO):
        super().__init__()
        self._source = source
        self._decompressor = zlib.decompressobj()
        self._pending = b""

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        while not self._pending:
            if self._decompressor.eof:
                return 0
            chunk = self._source.read(CHUNK_SIZE)
            if not chunk:
                raise CodecError("Truncated zlib stream")
            self._pending = self._decompressor.decompress(chunk)

        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size


class _ZstdReader(io.RawIOBase):
    """Streaming zstd decompressor that refuses to stop mid-frame."""

    def __init__(self, source: BinaryIO):
        super().__init__()
        self._source = source
        self._decompressor = zstd.ZstdDecompressor().decompressobj()
        self._pending = b""

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        while not self._pending:
            if self._decompressor.eof:
                return 0
            chunk = self._source.read(CHUNK_SIZE)
            if not chunk:
                raise CodecError("Truncated zstd stream")
            self._pending = self._decompressor.decompress(chunk)

        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size


class _GuardedReader(io.RawIOBase):
    """Translate library specific decode errors into CodecError."""

    def __init__(self, inner, codec: CompressionType):
        super().__init__()
        self._inner = inner
        self._codec = codec

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        try:
            data = self._inner.read(len(buffer))
        except CodecError:
            raise
        except (OSError, EOFError, zlib.error, zstd.ZstdError) as e:
            raise CodecError(
                f"Failed to decompress {self._codec.value} stream: {e}",
                details={"codec": self._codec.value},
            ) from e
        size = len(data)
        buffer[:size] = data
        return size

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._inner.close()
        finally:
            super().close()


def wrap_for_read(source: BinaryIO, codec: CompressionType) -> BinaryIO:
    """
    Wrap a source with a decompressing reader.

    Corrupt or truncated input surfaces as CodecError on read. Closing the
    reader never closes ``source``.

    Returns:
        The decompressing reader, or ``source`` itself for CompressionType.NONE
    """
    if codec == CompressionType.NONE:
        return source

    if codec == CompressionType.GZIP:
        inner = gzip.GzipFile(fileobj=source, mode="rb")
    elif codec == CompressionType.ZLIB:
        inner = _ZlibReader(source)
    elif codec == CompressionType.ZSTD:
        inner = _ZstdReader(source)
    else:
        raise ConfigurationError(f"Unhandled compression type: {codec}")

    return _GuardedReader(inner, codec)

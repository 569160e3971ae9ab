# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Stream pipeline tests.

These tests verify the encode/decode guarantees of artifacts:
1. Round trip - every codec x encryption combination decodes to the input
2. Nesting order - compression sits inside encryption
3. Authentication - wrong keys and tampered bytes are rejected
4. Finalization - stages are closed in reverse acquisition order
"""

import io
from datetime import date

import pytest

from dbvault.backup.naming import artifact_name
from dbvault.exceptions import CodecError, ConfigurationError, DecryptionError
from dbvault.stream import codecs, envelope
from dbvault.stream.chain import (
    CountingWriter,
    StreamChainSpec,
    build_read_chain,
    build_write_chain,
    close_chain,
    open_read_chain,
    open_write_chain,
)
from dbvault.stream.codecs import CompressionLevel, CompressionType


BACKUP_DAY = date(2024, 3, 15)
PLAINTEXT = b"INSERT INTO `orders` VALUES (1,'2024-03-15','shipped');\n" * 4000


def _encode(spec: StreamChainSpec, data: bytes) -> bytes:
    base = io.BytesIO()
    sink, closeables = build_write_chain(base, spec)
    sink.write(data)
    close_chain(closeables)
    return base.getvalue()


def _decode(spec: StreamChainSpec, encoded: bytes, key=None) -> bytes:
    path_hint = artifact_name("orders", spec, BACKUP_DAY)
    source, closeables = build_read_chain(io.BytesIO(encoded), path_hint, key=key)
    try:
        return source.read()
    finally:
        close_chain(closeables)


def _spec(codec: CompressionType, encrypt: bool, key: bytes) -> StreamChainSpec:
    return StreamChainSpec(
        compress=codec != CompressionType.NONE,
        codec=codec,
        level=CompressionLevel.FAST,
        encrypt=encrypt,
        key=key if encrypt else None,
    )


# ============================================================================
# Round trip
# ============================================================================

@pytest.mark.parametrize("codec", list(CompressionType))
@pytest.mark.parametrize("encrypt", [False, True])
def test_round_trip_every_codec_and_encryption(codec, encrypt, envelope_key):
    """Reading back what was written yields the original bytes."""
    spec = _spec(codec, encrypt, envelope_key)

    encoded = _encode(spec, PLAINTEXT)

    assert _decode(spec, encoded, key=envelope_key) == PLAINTEXT


@pytest.mark.parametrize("codec", list(CompressionType))
def test_round_trip_empty_stream(codec, envelope_key):
    """An empty dump still produces a decodable artifact."""
    spec = _spec(codec, True, envelope_key)

    assert _decode(spec, _encode(spec, b""), key=envelope_key) == b""


def test_round_trip_larger_than_one_frame(envelope_key):
    """Streams spanning many envelope frames decode intact."""
    spec = _spec(CompressionType.NONE, True, envelope_key)
    data = bytes(range(256)) * (envelope.FRAME_SIZE // 64)

    assert _decode(spec, _encode(spec, data), key=envelope_key) == data


def test_scenario_ten_megabytes_with_passphrase():
    """
    10 MB of repeating text, default compression, passphrase "p1".

    Output is smaller than the input and not readable as text; "p1" reads
    it back exactly, "p2" is rejected.
    """
    line = b"The quick brown fox jumps over the lazy dog. 0123456789\n"
    data = (line * (10 * 1024 * 1024 // len(line) + 1))[: 10 * 1024 * 1024]
    spec = StreamChainSpec.create(compress=True, encrypt=True, passphrase="p1")

    encoded = _encode(spec, data)

    assert len(encoded) < len(data)
    assert b"quick brown fox" not in encoded

    assert _decode(spec, encoded, key=envelope.derive_key("p1")) == data

    with pytest.raises(DecryptionError):
        _decode(spec, encoded, key=envelope.derive_key("p2"))


# ============================================================================
# Nesting order
# ============================================================================

@pytest.mark.parametrize(
    "codec", [CompressionType.GZIP, CompressionType.ZLIB, CompressionType.ZSTD]
)
def test_decompressing_before_decrypting_fails(codec, envelope_key):
    """
    Compression is the inner layer, so a codec cannot read the raw artifact.
    """
    spec = _spec(codec, True, envelope_key)
    encoded = _encode(spec, PLAINTEXT)

    reader = codecs.wrap_for_read(io.BytesIO(encoded), codec)
    with pytest.raises(CodecError):
        reader.read()


def test_write_chain_acquires_envelope_before_codec(envelope_key):
    """Closeables are listed envelope first, so close_chain() flushes the codec first."""
    spec = _spec(CompressionType.GZIP, True, envelope_key)

    sink, closeables = build_write_chain(io.BytesIO(), spec)
    close_chain(closeables)

    assert isinstance(closeables[0], envelope.EncryptingWriter)
    assert isinstance(closeables[-1], CountingWriter)
    assert sink is closeables[-1]


def test_compressed_payload_is_smaller_than_plaintext(envelope_key):
    """Compressing before encrypting keeps repetitive dumps small."""
    spec = _spec(CompressionType.ZSTD, True, envelope_key)

    assert len(_encode(spec, PLAINTEXT)) < len(PLAINTEXT) // 10


# ============================================================================
# Authentication
# ============================================================================

def test_wrong_key_raises_decryption_error(envelope_key):
    """A different key is reported as a wrong password, not garbage output."""
    spec = _spec(CompressionType.GZIP, True, envelope_key)
    encoded = _encode(spec, PLAINTEXT)

    with pytest.raises(DecryptionError) as exc_info:
        _decode(spec, encoded, key=envelope.derive_key("not-the-passphrase"))

    assert exc_info.value.reason == DecryptionError.WRONG_PASSWORD


def test_tampered_byte_is_detected(envelope_key):
    """Flipping one ciphertext byte fails frame authentication."""
    spec = _spec(CompressionType.NONE, True, envelope_key)
    encoded = bytearray(_encode(spec, PLAINTEXT))
    encoded[envelope.HEADER_SIZE + 100] ^= 0x01

    with pytest.raises(DecryptionError) as exc_info:
        _decode(spec, bytes(encoded), key=envelope_key)

    assert exc_info.value.reason == DecryptionError.CORRUPTED


def test_truncated_envelope_is_detected(envelope_key):
    """Dropping the tail of an artifact is reported as corruption."""
    spec = _spec(CompressionType.NONE, True, envelope_key)
    encoded = _encode(spec, PLAINTEXT)

    with pytest.raises(DecryptionError) as exc_info:
        _decode(spec, encoded[:-10], key=envelope_key)

    assert exc_info.value.reason == DecryptionError.CORRUPTED


def test_trailing_garbage_is_detected(envelope_key):
    """Bytes appended after the final frame are rejected."""
    spec = _spec(CompressionType.NONE, True, envelope_key)
    encoded = _encode(spec, PLAINTEXT) + b"extra"

    with pytest.raises(DecryptionError):
        _decode(spec, encoded, key=envelope_key)


def test_plain_file_with_enc_suffix_is_corrupted(envelope_key):
    """A file that never was an envelope fails on the header."""
    with pytest.raises(DecryptionError) as exc_info:
        envelope.wrap_for_read(io.BytesIO(b"-- plain SQL dump\n"), envelope_key)

    assert exc_info.value.reason == DecryptionError.CORRUPTED


def test_encrypted_artifact_without_key_is_rejected(envelope_key):
    """Reading an .enc artifact without a key is a configuration error."""
    spec = _spec(CompressionType.GZIP, True, envelope_key)
    encoded = _encode(spec, PLAINTEXT)

    with pytest.raises(ConfigurationError):
        build_read_chain(io.BytesIO(encoded), "orders_2024_03_15.sql.gz.enc")


def test_derive_key_is_deterministic():
    """The same passphrase yields the same key on every call."""
    assert envelope.derive_key("p1") == envelope.derive_key("p1")
    assert envelope.derive_key("p1") != envelope.derive_key("p2")
    assert len(envelope.derive_key("p1")) == envelope.KEY_SIZE


def test_derive_key_rejects_empty_passphrase():
    with pytest.raises(ConfigurationError):
        envelope.derive_key("")


# ============================================================================
# Codec registry
# ============================================================================

def test_invalid_codec_falls_back_to_gzip():
    """Unknown codec and level names degrade to gzip at the default level."""
    assert codecs.resolve_codec("lz4", "ultra") == (
        CompressionType.GZIP,
        CompressionLevel.DEFAULT,
    )


def test_invalid_codec_strict_raises():
    with pytest.raises(ConfigurationError):
        codecs.resolve_codec("lz4", strict=True)
    with pytest.raises(ConfigurationError):
        codecs.resolve_codec("zstd", "ultra", strict=True)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("gzip", CompressionType.GZIP),
        ("PGZIP", CompressionType.GZIP),
        ("zstd", CompressionType.ZSTD),
        (" zlib ", CompressionType.ZLIB),
        ("none", CompressionType.NONE),
        (None, CompressionType.GZIP),
    ],
)
def test_resolve_codec_names(name, expected):
    assert codecs.resolve_codec(name)[0] == expected


@pytest.mark.parametrize(
    "path, expected",
    [
        ("app_2024_03_15.sql", CompressionType.NONE),
        ("app_2024_03_15.sql.gz", CompressionType.GZIP),
        ("app_2024_03_15.sql.zst.enc", CompressionType.ZSTD),
        ("/var/backups/2024_03_15/app/app_2024_03_15.sql.zlib", CompressionType.ZLIB),
        ("app_2024_03_15.sql.enc", CompressionType.NONE),
    ],
)
def test_detect_compression_from_path(path, expected):
    """Read-side detection uses the file name, ignoring the .enc suffix."""
    assert codecs.detect_compression_from_path(path) == expected


def test_native_levels_are_monotonic():
    """Higher levels never map to a faster native setting."""
    for codec in (CompressionType.GZIP, CompressionType.ZSTD):
        numeric = [codecs.native_level(codec, level) for level in CompressionLevel]
        assert numeric == sorted(numeric)


def test_truncated_zlib_stream_raises_codec_error():
    spec = _spec(CompressionType.ZLIB, False, b"")
    encoded = _encode(spec, PLAINTEXT)

    reader = codecs.wrap_for_read(io.BytesIO(encoded[: len(encoded) // 2]), CompressionType.ZLIB)
    with pytest.raises(CodecError):
        reader.read()


@pytest.mark.parametrize("codec", [CompressionType.GZIP, CompressionType.ZSTD])
def test_truncated_stream_never_yields_a_prefix(codec):
    """A cut-off artifact fails on read instead of replaying partial SQL."""
    spec = _spec(codec, False, b"")
    encoded = _encode(spec, PLAINTEXT)

    path_hint = artifact_name("orders", spec, BACKUP_DAY)
    reader, closeables = build_read_chain(io.BytesIO(encoded[: len(encoded) // 2]), path_hint)
    try:
        with pytest.raises(CodecError):
            reader.read()
    finally:
        close_chain(closeables)


def test_zstd_reader_stops_at_end_of_frame():
    spec = _spec(CompressionType.ZSTD, False, b"")
    encoded = _encode(spec, PLAINTEXT)

    reader = codecs.wrap_for_read(io.BytesIO(encoded), CompressionType.ZSTD)

    assert reader.read() == PLAINTEXT
    assert reader.read() == b""


# ============================================================================
# Chain finalization and specs
# ============================================================================

class _RecordingStage:
    def __init__(self, name, log, fail=False):
        self.name = name
        self.log = log
        self.fail = fail

    def close(self):
        self.log.append(self.name)
        if self.fail:
            raise OSError(f"{self.name} failed to flush")


def test_close_chain_reverse_order_and_continues_after_failure():
    """Every stage is closed, last acquired first, and the first error re-raised."""
    log = []
    stages = [
        _RecordingStage("envelope", log),
        _RecordingStage("codec", log, fail=True),
        _RecordingStage("counter", log),
    ]

    with pytest.raises(OSError, match="codec"):
        close_chain(stages)

    assert log == ["counter", "codec", "envelope"]


def test_close_chain_suppress_only_logs():
    log = []
    close_chain([_RecordingStage("codec", log, fail=True)], suppress=True)
    assert log == ["codec"]


def test_open_write_chain_closes_on_error(envelope_key):
    """An exception inside the block still finalizes every stage."""
    spec = _spec(CompressionType.GZIP, True, envelope_key)
    base = io.BytesIO()

    with pytest.raises(RuntimeError):
        with open_write_chain(base, spec) as sink:
            sink.write(PLAINTEXT)
            raise RuntimeError("dump client crashed")

    assert not base.closed
    assert base.getvalue().startswith(envelope.MAGIC)


def test_open_read_chain_counts_progress(envelope_key):
    spec = _spec(CompressionType.ZSTD, True, envelope_key)
    encoded = _encode(spec, PLAINTEXT)
    seen = []

    with open_read_chain(
        io.BytesIO(encoded),
        artifact_name("orders", spec, BACKUP_DAY),
        key=envelope_key,
        on_progress=seen.append,
    ) as source:
        assert source.read() == PLAINTEXT

    assert seen[-1] == len(PLAINTEXT)


def test_write_progress_reports_plaintext_bytes():
    spec = StreamChainSpec.create(codec="zlib")
    seen = []
    base = io.BytesIO()

    sink, closeables = build_write_chain(base, spec, on_progress=seen.append)
    sink.write(b"a" * 1000)
    sink.write(b"b" * 500)
    close_chain(closeables)

    assert seen == [1000, 1500]


def test_spec_requires_key_when_encrypting():
    with pytest.raises(ConfigurationError):
        StreamChainSpec(encrypt=True)


def test_spec_create_reads_passphrase_from_env(monkeypatch):
    monkeypatch.setenv(envelope.PASSPHRASE_ENV, "from-env")

    spec = StreamChainSpec.create(encrypt=True)

    assert spec.key == envelope.derive_key("from-env")


def test_spec_create_without_passphrase_fails(monkeypatch):
    monkeypatch.delenv(envelope.PASSPHRASE_ENV, raising=False)

    with pytest.raises(ConfigurationError):
        StreamChainSpec.create(encrypt=True)


def test_spec_create_compression_disabled():
    spec = StreamChainSpec.create(compress=False, codec="zstd")

    assert spec.effective_codec == CompressionType.NONE
    assert not spec.compress


def test_spec_repr_hides_key(envelope_key):
    spec = _spec(CompressionType.GZIP, True, envelope_key)
    assert envelope_key.hex() not in repr(spec)
    assert "key" not in repr(spec)

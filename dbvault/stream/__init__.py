# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Stream Pipeline - Compression codecs, encryption envelope and chain builder.
"""

from dbvault.stream.codecs import (
    CompressionType,
    CompressionLevel,
    resolve_codec,
    file_extension,
    detect_compression_from_path,
)

from dbvault.stream.envelope import (
    derive_key,
    resolve_passphrase,
    is_encrypted_path,
)

from dbvault.stream.chain import (
    StreamChainSpec,
    build_write_chain,
    build_read_chain,
    close_chain,
    open_write_chain,
    open_read_chain,
)

__all__ = [
    # Codecs
    "CompressionType",
    "CompressionLevel",
    "resolve_codec",
    "file_extension",
    "detect_compression_from_path",
    # Envelope
    "derive_key",
    "resolve_passphrase",
    "is_encrypted_path",
    # Chain
    "StreamChainSpec",
    "build_write_chain",
    "build_read_chain",
    "close_chain",
    "open_write_chain",
    "open_read_chain",
]

# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Artifact naming and directory layout.

    {output_dir}/{YYYY_MM_DD}/{target}/{target}_{YYYY_MM_DD}.sql[.gz|.zst|.zlib][.enc]
    {output_dir}/{YYYY_MM_DD}/{target}/{target}_{YYYY_MM_DD}.json
"""

import re
from datetime import date, datetime
from pathlib import Path
from typing import Optional

from dbvault.stream.chain import StreamChainSpec
from dbvault.stream.codecs import CompressionType, file_extension
from dbvault.stream.envelope import ENCRYPTED_SUFFIX

DATE_FORMAT = "%Y_%m_%d"
DATE_PATTERN = re.compile(r"^\d{4}_\d{2}_\d{2}$")
BASE_EXTENSION = ".sql"
METADATA_EXTENSION = ".json"

_COMPRESSION_SUFFIXES = tuple(
    file_extension(codec) for codec in CompressionType if codec != CompressionType.NONE
)


def date_stamp(when: date | datetime) -> str:
    """Format a date as used in directory and artifact names."""
    return when.strftime(DATE_FORMAT)


def artifact_name(target: str, spec: StreamChainSpec, when: date | datetime) -> str:
    """Return the artifact file name for a target encoded with ``spec``."""
    name = f"{target}_{date_stamp(when)}{BASE_EXTENSION}"
    name += file_extension(spec.effective_codec)
    if spec.encrypt:
        name += ENCRYPTED_SUFFIX
    return name


def metadata_name(target: str, when: date | datetime) -> str:
    """Return the sidecar metadata file name for a target."""
    return f"{target}_{date_stamp(when)}{METADATA_EXTENSION}"


def backup_directory(output_dir: Path, target: str, when: date | datetime) -> Path:
    """Return the directory holding a target's artifacts for one day."""
    return Path(output_dir) / date_stamp(when) / target


def derive_metadata_path(artifact_path: str | Path) -> Optional[Path]:
    """
    Derive the sidecar path from an artifact path.

    Strips ``.enc``, then a compression suffix, then ``.sql`` and appends
    ``.json``. This is the inverse of artifact_name(): for any spec,
    ``derive_metadata_path(artifact_name(t, spec, d)).name == metadata_name(t, d)``.

    Returns:
        The metadata path, or None if the name carries none of the known
        suffixes (so it cannot be an artifact).
    """
    path = Path(artifact_path)
    name = path.name
    stripped = False

    if name.endswith(ENCRYPTED_SUFFIX):
        name = name[: -len(ENCRYPTED_SUFFIX)]
        stripped = True

    for suffix in _COMPRESSION_SUFFIXES:
        if name.endswith(suffix):
            name = name[: -len(suffix)]
            stripped = True
            break

    if name.endswith(BASE_EXTENSION):
        name = name[: -len(BASE_EXTENSION)]
        stripped = True

    if not stripped or not name:
        return None
    return path.with_name(name + METADATA_EXTENSION)


def parse_date_stamp(name: str) -> Optional[datetime]:
    """
    Parse a YYYY_MM_DD directory name.

    Returns None for names that do not match the pattern or are not real
    calendar dates (``2024_02_30``).
    """
    if not DATE_PATTERN.match(name):
        return None
    try:
        return datetime.strptime(name, DATE_FORMAT)
    except ValueError:
        return None


_ARTIFACT_PATTERN = re.compile(r"^(?P<target>.+)_(?P<stamp>\d{4}_\d{2}_\d{2})\.sql")


def target_from_artifact(artifact_path: str | Path) -> Optional[str]:
    """Recover the target name from an artifact file name."""
    match = _ARTIFACT_PATTERN.match(Path(artifact_path).name)
    return match.group("target") if match else None

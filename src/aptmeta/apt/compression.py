"""Compression utilities for APT index files."""

from __future__ import annotations

import gzip
import lzma
import zlib
from enum import Enum

from aptmeta.errors import DecompressionError


class Compression(str, Enum):
    """Compression variants of Packages/Sources indices."""

    XZ = "xz"
    GZIP = "gzip"
    LZMA = "lzma"
    NONE = "none"

    @property
    def extension(self) -> str:
        """File extension (e.g., ".xz", ".gz", "")."""
        return _EXTENSIONS[self]


_EXTENSIONS = {
    Compression.XZ: ".xz",
    Compression.GZIP: ".gz",
    Compression.LZMA: ".lzma",
    Compression.NONE: "",
}

# Order in which index variants are tried: smallest download first
PREFERENCE = (Compression.XZ, Compression.GZIP, Compression.LZMA, Compression.NONE)


def detect_compression(filename: str) -> Compression | None:
    """Detect compression format from filename extension.

    Args:
        filename: Filename to check (e.g., "main/binary-amd64/Packages.xz")

    Returns:
        Compression variant, or None for unsupported compressions (.bz2, .zst, ...)
    """
    if filename.endswith(".xz"):
        return Compression.XZ
    elif filename.endswith(".gz"):
        return Compression.GZIP
    elif filename.endswith(".lzma"):
        return Compression.LZMA
    elif filename.endswith((".bz2", ".zst", ".lz4", ".diff/Index")):
        return None
    else:
        return Compression.NONE


def decompress(data: bytes, compression: Compression) -> bytes:
    """Decompress data based on compression variant.

    Args:
        data: Compressed bytes
        compression: Compression variant

    Returns:
        Decompressed bytes

    Raises:
        DecompressionError: If the stream is malformed
    """
    try:
        if compression == Compression.GZIP:
            return gzip.decompress(data)
        elif compression == Compression.XZ:
            return lzma.decompress(data, format=lzma.FORMAT_XZ)
        elif compression == Compression.LZMA:
            return lzma.decompress(data, format=lzma.FORMAT_ALONE)
        elif compression == Compression.NONE:
            return data
    except (OSError, EOFError, lzma.LZMAError, zlib.error) as e:
        raise DecompressionError(
            f"Malformed {compression.value} stream: {e}", compression=compression.value
        ) from e

    raise ValueError(f"Unknown compression format: {compression}")

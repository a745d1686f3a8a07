"""
Trust anchors for InRelease verification.

A trust anchor is either ``NO_SIGNATURE_CHECK`` or a ``PublicKey`` holding
binary OpenPGP key material. Keys are accepted in either encoding apt itself
accepts: binary keyrings (``/etc/apt/trusted.gpg.d/*.gpg``) and ASCII-armored
exports (``*.asc``, ``Release.key``). Armored keys are converted to binary
once, when the anchor is created.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum

import gnupg
from pydantic import BaseModel, ConfigDict

from aptmeta.core.transport import FileSystem, LocalFileSystem, Transport
from aptmeta.errors import MalformedDocumentError

logger = logging.getLogger(__name__)

ARMOR_HEADER = b"-----BEGIN PGP PUBLIC KEY BLOCK-----"
REMOTE_SCHEMES = ("http://", "https://")


@contextmanager
def temporary_gpg() -> Iterator[gnupg.GPG]:
    """Yield a GPG instance bound to a throwaway home directory."""
    home = tempfile.mkdtemp(prefix="aptmeta-gnupg-")
    try:
        yield gnupg.GPG(gnupghome=home)
    finally:
        shutil.rmtree(home, ignore_errors=True)


class KeyEncoding(str, Enum):
    """Encoding the key material was supplied in."""

    ARMORED = "armored"
    BINARY = "binary"


class TrustAnchor(BaseModel):
    """Base of the closed trust anchor variant (NoSignatureCheck | PublicKey)."""

    model_config = ConfigDict(frozen=True)


class NoSignatureCheck(TrustAnchor):
    """Marker anchor: accept InRelease files without verifying their signature."""

    def __repr__(self) -> str:
        return "NO_SIGNATURE_CHECK"


class PublicKey(TrustAnchor):
    """Binary OpenPGP public key material (one key or a keyring)."""

    data: bytes
    encoding: KeyEncoding = KeyEncoding.BINARY
    source: str | None = None

    def __repr__(self) -> str:
        return f"PublicKey(source={self.source!r}, encoding={self.encoding.value}, {len(self.data)} bytes)"


NO_SIGNATURE_CHECK = NoSignatureCheck()


def is_armored(data: bytes) -> bool:
    """Return True if data contains an ASCII-armored public key block."""
    return ARMOR_HEADER in data


def dearmor(data: bytes) -> bytes:
    """Convert ASCII-armored key material to its binary form.

    Raises:
        MalformedDocumentError: If gpg finds no public key in the data
    """
    with temporary_gpg() as gpg:
        result = gpg.import_keys(data)
        fingerprints = [fp for fp in result.fingerprints if fp]
        if not fingerprints:
            raise MalformedDocumentError(
                f"No valid OpenPGP public key found in armored data: {result.stderr.strip()}"
            )
        binary = gpg.export_keys(fingerprints, armor=False)

    if not binary:
        raise MalformedDocumentError("Exporting de-armored key material failed")
    logger.debug(f"De-armored {len(fingerprints)} key(s): {', '.join(fingerprints)}")
    return binary


def from_bytes(data: bytes, source: str | None = None) -> PublicKey:
    """Create a PublicKey, de-armoring ASCII-armored material.

    Binary material is passed through unchanged.
    """
    if is_armored(data):
        return PublicKey(data=dearmor(data), encoding=KeyEncoding.ARMORED, source=source)
    return PublicKey(data=data, encoding=KeyEncoding.BINARY, source=source)


def from_url_or_path(
    location: str,
    transport: Transport | None = None,
    filesystem: FileSystem | None = None,
) -> PublicKey:
    """Load a public key from a URL or a local path.

    Args:
        location: ``http(s)://`` URL, ``file://`` URL or filesystem path
        transport: Transport used for remote keys
        filesystem: FileSystem used for local keys (default: local disk)

    Returns:
        PublicKey with binary key material

    Raises:
        TransportError: If a remote key cannot be fetched
        FileReadError: If a local key cannot be read
        MalformedDocumentError: If armored key material is invalid
    """
    if location.startswith(REMOTE_SCHEMES):
        if transport is None:
            raise ValueError(f"A transport is required to fetch key {location}")
        logger.info(f"Fetching signing key {location}")
        data = transport.fetch(location)
    else:
        filesystem = filesystem or LocalFileSystem()
        logger.info(f"Reading signing key {location}")
        data = filesystem.read(location)

    return from_bytes(data, source=location)

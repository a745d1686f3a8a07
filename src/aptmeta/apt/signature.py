"""
Verification of inline-signed (clearsigned) documents.

An InRelease file is an OpenPGP cleartext signed message:

    -----BEGIN PGP SIGNED MESSAGE-----
    Hash: SHA512

    Origin: Debian
    ...
    -----BEGIN PGP SIGNATURE-----

    iQIzBAEBCgAdFiEE...
    -----END PGP SIGNATURE-----

The signature is checked by GnuPG against a throwaway keyring containing only
the trust anchor. The payload handed to the Release parser is the text
between the armor headers and the signature block, with dash escaping removed,
so the parser sees exactly what was signed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict

from aptmeta.apt.keys import NoSignatureCheck, PublicKey, TrustAnchor, temporary_gpg
from aptmeta.errors import VerificationError, VerificationFailure

logger = logging.getLogger(__name__)

BEGIN_MESSAGE = b"-----BEGIN PGP SIGNED MESSAGE-----"
BEGIN_SIGNATURE = b"-----BEGIN PGP SIGNATURE-----"
END_SIGNATURE = b"-----END PGP SIGNATURE-----"

NO_PUBLIC_KEY = "no public key"


def _malformed(message: str) -> VerificationError:
    return VerificationError(message, VerificationFailure.MALFORMED_DOCUMENT)


class ClearsignedMessage(BaseModel):
    """The parts of a cleartext signed message."""

    model_config = ConfigDict(frozen=True)

    hash_algorithms: tuple[str, ...]
    text: bytes
    signature: bytes

    @staticmethod
    def is_clearsigned(data: bytes) -> bool:
        return data.lstrip().startswith(BEGIN_MESSAGE)

    @classmethod
    def parse(cls, data: bytes) -> ClearsignedMessage:
        """Split a cleartext signed message into headers, text and signature.

        Nothing but whitespace may precede the message header or follow the
        signature block.

        Raises:
            VerificationError: With reason MALFORMED_DOCUMENT
        """
        lines = [line.rstrip(b"\r") for line in data.split(b"\n")]

        # Header line
        index = 0
        while index < len(lines) and not lines[index].strip():
            index += 1
        if index == len(lines) or lines[index].strip() != BEGIN_MESSAGE:
            raise _malformed("Document does not start with a PGP signed message header")
        index += 1

        # Armor headers up to the first blank line
        hash_algorithms: list[str] = []
        while index < len(lines) and lines[index].strip():
            key, sep, value = lines[index].decode("ascii", errors="replace").partition(":")
            if not sep:
                raise _malformed(f"Invalid armor header: {lines[index]!r}")
            if key.strip() == "Hash":
                hash_algorithms.extend(h.strip() for h in value.split(",") if h.strip())
            index += 1
        if index == len(lines):
            raise _malformed("Signed message has no text")
        index += 1

        # Dash-escaped text up to the signature block
        text_lines: list[bytes] = []
        while index < len(lines):
            line = lines[index]
            if line.strip() == BEGIN_SIGNATURE:
                break
            if line.startswith(b"- "):
                line = line[2:]
            elif line.startswith(b"-"):
                raise _malformed(f"Unexpected armor line in signed text: {line!r}")
            text_lines.append(line)
            index += 1
        else:
            raise _malformed("Signature block missing")

        # Signature block
        signature_start = index
        while index < len(lines) and lines[index].strip() != END_SIGNATURE:
            index += 1
        if index == len(lines):
            raise _malformed("Signature block is not terminated")
        signature = b"\n".join(lines[signature_start : index + 1]) + b"\n"

        if any(line.strip() for line in lines[index + 1 :]):
            raise _malformed("Unexpected data after the signature block")

        return cls(
            hash_algorithms=tuple(hash_algorithms),
            text=b"\n".join(text_lines),
            signature=signature,
        )


class SignatureInfo(BaseModel):
    """How a document's authenticity was established."""

    model_config = ConfigDict(frozen=True)

    verified: bool
    fingerprint: str | None = None
    key_id: str | None = None
    username: str | None = None
    timestamp: datetime | None = None


UNVERIFIED = SignatureInfo(verified=False)


class VerifiedDocument(BaseModel):
    """Signed payload plus the signature details."""

    model_config = ConfigDict(frozen=True)

    payload: bytes
    signature: SignatureInfo


def _signature_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except ValueError:
        return None


def _verify_with_key(data: bytes, message: ClearsignedMessage, key: PublicKey) -> VerifiedDocument:
    with temporary_gpg() as gpg:
        imported = gpg.import_keys(key.data)
        if not any(imported.fingerprints):
            raise VerificationError(
                f"Trust anchor {key.source or ''} contains no usable public key",
                VerificationFailure.UNKNOWN_KEY,
            )
        result = gpg.verify(data)

    if result.valid:
        info = SignatureInfo(
            verified=True,
            fingerprint=result.fingerprint,
            key_id=result.key_id,
            username=result.username,
            timestamp=_signature_time(result.sig_timestamp),
        )
        logger.info(f"Signature by {info.username or info.key_id} ({info.fingerprint}) is valid")
        return VerifiedDocument(payload=message.text, signature=info)

    if result.status == NO_PUBLIC_KEY:
        raise VerificationError(
            f"Document is signed by unknown key {result.key_id}",
            VerificationFailure.UNKNOWN_KEY,
        )
    raise VerificationError(
        f"Signature verification failed: {result.status or result.stderr.strip()}",
        VerificationFailure.SIGNATURE_MISMATCH,
    )


def verify_inline(data: bytes, anchor: TrustAnchor) -> VerifiedDocument:
    """Verify an inline-signed document and return its payload.

    Args:
        data: Raw bytes of the clearsigned document
        anchor: PublicKey, or NO_SIGNATURE_CHECK to skip verification

    Returns:
        VerifiedDocument; ``signature.verified`` is False only on the
        NO_SIGNATURE_CHECK path

    Raises:
        VerificationError: MALFORMED_DOCUMENT, UNKNOWN_KEY or SIGNATURE_MISMATCH
    """
    if isinstance(anchor, NoSignatureCheck):
        if ClearsignedMessage.is_clearsigned(data):
            payload = ClearsignedMessage.parse(data).text
        else:
            payload = data
        logger.warning("Signature verification skipped (no signature check requested)")
        return VerifiedDocument(payload=payload, signature=UNVERIFIED)

    if isinstance(anchor, PublicKey):
        message = ClearsignedMessage.parse(data)
        return _verify_with_key(data, message, anchor)

    raise TypeError(f"Unsupported trust anchor: {anchor!r}")

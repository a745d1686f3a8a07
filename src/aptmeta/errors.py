"""
Exception hierarchy for aptmeta.

Every failure of the metadata pipeline surfaces as a subclass of
``AptMetaError``. The ``retryable`` flag separates "repository temporarily
unreachable" from "repository metadata is invalid or tampered".
"""

from __future__ import annotations

from enum import Enum


class VerificationFailure(str, Enum):
    """Why an inline-signed document was rejected."""

    MALFORMED_DOCUMENT = "malformed-document"
    UNKNOWN_KEY = "unknown-signing-key"
    SIGNATURE_MISMATCH = "signature-mismatch"
    SKIPPED_BY_POLICY = "skipped-by-policy"


class ChecksumFailure(str, Enum):
    """Why downloaded bytes did not match their file reference."""

    SIZE_MISMATCH = "size-mismatch"
    DIGEST_MISMATCH = "digest-mismatch"
    NO_CHECKSUM = "no-checksum"


class AptMetaError(Exception):
    """Base class for all aptmeta errors."""

    retryable = False


class TransportError(AptMetaError):
    """Fetching or probing a URL failed."""

    retryable = True

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class FileReadError(AptMetaError):
    """Reading local key material failed."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class MalformedDocumentError(AptMetaError):
    """A document or envelope is structurally invalid."""


class MalformedStanzaError(MalformedDocumentError):
    """A single stanza of a control file is invalid."""

    def __init__(self, message: str, ordinal: int | None = None):
        if ordinal is not None:
            message = f"stanza {ordinal}: {message}"
        super().__init__(message)
        self.ordinal = ordinal


class VerificationError(AptMetaError):
    """Signature verification failed (or was refused by policy)."""

    def __init__(self, message: str, reason: VerificationFailure):
        super().__init__(message)
        self.reason = reason


class ChecksumError(AptMetaError):
    """Downloaded bytes do not match the expected size or digest."""

    def __init__(
        self,
        message: str,
        reason: ChecksumFailure,
        path: str | None = None,
        algorithm: str | None = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.path = path
        self.algorithm = algorithm


class DecompressionError(AptMetaError):
    """A compressed index could not be decoded."""

    def __init__(self, message: str, compression: str | None = None):
        super().__init__(message)
        self.compression = compression


class NotFoundError(AptMetaError):
    """A component, architecture or index is absent from the release or repository."""

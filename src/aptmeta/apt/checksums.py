"""
Checksum model for files referenced by APT metadata.

Release files list every index with one line per hash algorithm; Packages
stanzas carry the checksums of the .deb they describe. Both end up as a
``FileRef``: a relative path, a declared size and up to one digest per
algorithm.
"""

from __future__ import annotations

import hashlib
import logging
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from aptmeta.errors import ChecksumError, ChecksumFailure

logger = logging.getLogger(__name__)


class HashAlgorithm(str, Enum):
    """Hash algorithms used by APT repositories."""

    MD5 = "md5"
    SHA1 = "sha1"
    SHA256 = "sha256"
    SHA512 = "sha512"

    @property
    def strength(self) -> int:
        """Relative strength, higher is stronger."""
        return _STRENGTH[self]

    @property
    def release_field(self) -> str:
        """Field name of the checksum block in Release files."""
        return _RELEASE_FIELDS[self]

    @property
    def package_field(self) -> str:
        """Field name of the checksum in Packages stanzas."""
        return _PACKAGE_FIELDS[self]


_STRENGTH = {
    HashAlgorithm.MD5: 0,
    HashAlgorithm.SHA1: 1,
    HashAlgorithm.SHA256: 2,
    HashAlgorithm.SHA512: 3,
}

_RELEASE_FIELDS = {
    HashAlgorithm.MD5: "MD5Sum",
    HashAlgorithm.SHA1: "SHA1",
    HashAlgorithm.SHA256: "SHA256",
    HashAlgorithm.SHA512: "SHA512",
}

_PACKAGE_FIELDS = {
    HashAlgorithm.MD5: "MD5sum",
    HashAlgorithm.SHA1: "SHA1",
    HashAlgorithm.SHA256: "SHA256",
    HashAlgorithm.SHA512: "SHA512",
}

# Strongest first
ALGORITHM_PREFERENCE = sorted(HashAlgorithm, key=lambda a: a.strength, reverse=True)


def compute_digest(algorithm: HashAlgorithm, data: bytes) -> str:
    """Compute the lowercase hex digest of data."""
    return hashlib.new(algorithm.value, data).hexdigest()


class Checksum(BaseModel):
    """A single algorithm/digest pair."""

    model_config = ConfigDict(frozen=True)

    algorithm: HashAlgorithm
    digest: str = Field(..., description="Lowercase hex digest")

    @field_validator("digest")
    @classmethod
    def normalize_digest(cls, v: str) -> str:
        """Lowercase and validate hex digests."""
        v = v.strip().lower()
        if not v:
            raise ValueError("digest must not be empty")
        try:
            int(v, 16)
        except ValueError:
            raise ValueError(f"digest is not hexadecimal: {v!r}")
        return v

    def matches(self, data: bytes) -> bool:
        return compute_digest(self.algorithm, data) == self.digest


class FileRef(BaseModel):
    """A sized, checksummed file reference relative to some base URL."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Path relative to the release directory or repository root")
    size: int = Field(..., ge=0, description="Declared size in bytes")
    checksums: tuple[Checksum, ...] = Field(default_factory=tuple)

    @field_validator("checksums")
    @classmethod
    def one_per_algorithm(cls, v: tuple[Checksum, ...]) -> tuple[Checksum, ...]:
        """Reject two digests for the same algorithm."""
        seen = set()
        for checksum in v:
            if checksum.algorithm in seen:
                raise ValueError(f"duplicate {checksum.algorithm.value} checksum")
            seen.add(checksum.algorithm)
        return v

    def get(self, algorithm: HashAlgorithm) -> Checksum | None:
        for checksum in self.checksums:
            if checksum.algorithm == algorithm:
                return checksum
        return None

    @property
    def algorithms(self) -> set[HashAlgorithm]:
        return {c.algorithm for c in self.checksums}

    def strongest(self) -> Checksum | None:
        """Return the strongest checksum present, or None."""
        for algorithm in ALGORITHM_PREFERENCE:
            checksum = self.get(algorithm)
            if checksum is not None:
                return checksum
        return None

    def with_checksum(self, checksum: Checksum) -> FileRef:
        """Return a copy carrying an additional (or replaced) checksum."""
        others = tuple(c for c in self.checksums if c.algorithm != checksum.algorithm)
        return self.model_copy(update={"checksums": others + (checksum,)})

    def merge(self, other: FileRef) -> FileRef:
        """Combine the checksums of two references to the same path.

        A differing size is logged and the size of ``self`` is kept.
        """
        if other.path != self.path:
            raise ValueError(f"cannot merge {other.path} into {self.path}")
        if other.size != self.size:
            logger.warning(f"Size mismatch for {self.path}: {other.size} != {self.size}")
        merged = self
        for checksum in other.checksums:
            merged = merged.with_checksum(checksum)
        return merged

    def check(self, data: bytes) -> None:
        """Verify data against this reference.

        The size is compared first; no digest is computed when it differs.
        A reference without checksums fails closed.

        Raises:
            ChecksumError: On size mismatch, digest mismatch or missing checksum
        """
        if len(data) != self.size:
            raise ChecksumError(
                f"Size mismatch for {self.path}: expected {self.size} bytes, got {len(data)}",
                ChecksumFailure.SIZE_MISMATCH,
                path=self.path,
            )

        checksum = self.strongest()
        if checksum is None:
            raise ChecksumError(
                f"No checksum available for {self.path}",
                ChecksumFailure.NO_CHECKSUM,
                path=self.path,
            )

        actual = compute_digest(checksum.algorithm, data)
        if actual != checksum.digest:
            raise ChecksumError(
                f"{checksum.algorithm.value.upper()} mismatch for {self.path}: "
                f"expected {checksum.digest}, got {actual}",
                ChecksumFailure.DIGEST_MISMATCH,
                path=self.path,
                algorithm=checksum.algorithm.value,
            )

        logger.debug(f"Verified {checksum.algorithm.value.upper()} of {self.path}")

    def verify(self, data: bytes) -> bool:
        """Return True if data matches the size and strongest checksum."""
        try:
            self.check(data)
        except ChecksumError:
            return False
        return True

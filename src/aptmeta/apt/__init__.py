"""APT repository metadata: layouts, verification, parsing and the client."""

from aptmeta.apt.checksums import Checksum, FileRef, HashAlgorithm
from aptmeta.apt.client import AptRepositoryClient
from aptmeta.apt.compression import Compression
from aptmeta.apt.keys import NO_SIGNATURE_CHECK, NoSignatureCheck, PublicKey, TrustAnchor
from aptmeta.apt.layout import DefaultLayout, FlatLayout, RepositoryLocation
from aptmeta.apt.models import (
    ComplianceCode,
    ComplianceViolation,
    IndexLink,
    PackageRecord,
    ParsedIndex,
    ReleaseDocument,
    SourceIndex,
    SourceRecord,
    StanzaIssue,
)
from aptmeta.apt.signature import SignatureInfo, VerifiedDocument, verify_inline
from aptmeta.apt.types import Architecture, Component

__all__ = [
    "AptRepositoryClient",
    "Architecture",
    "Checksum",
    "ComplianceCode",
    "ComplianceViolation",
    "Component",
    "Compression",
    "DefaultLayout",
    "FileRef",
    "FlatLayout",
    "HashAlgorithm",
    "IndexLink",
    "NO_SIGNATURE_CHECK",
    "NoSignatureCheck",
    "PackageRecord",
    "ParsedIndex",
    "PublicKey",
    "ReleaseDocument",
    "RepositoryLocation",
    "SignatureInfo",
    "SourceIndex",
    "SourceRecord",
    "StanzaIssue",
    "TrustAnchor",
    "VerifiedDocument",
    "verify_inline",
]

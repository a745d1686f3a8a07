from __future__ import annotations

"""
Models for APT repository metadata.

See: https://wiki.debian.org/DebianRepository/Format
"""

import logging
import posixpath
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from debian.debian_support import Version
from pydantic import BaseModel, ConfigDict, Field

from aptmeta.apt.checksums import Checksum, FileRef, HashAlgorithm
from aptmeta.apt.compression import PREFERENCE, Compression, detect_compression
from aptmeta.apt.layout import RepositoryLocation, probe_url, subtree_index_path
from aptmeta.apt.signature import SignatureInfo
from aptmeta.apt.types import Architecture, Component
from aptmeta.apt.versions import Relation, VersionConstraint, parse_relations, parse_version
from aptmeta.core.transport import ProbeResult, Transport
from aptmeta.errors import (
    MalformedDocumentError,
    NotFoundError,
    VerificationError,
    VerificationFailure,
)

logger = logging.getLogger(__name__)

STRONG_ALGORITHMS = (HashAlgorithm.SHA256, HashAlgorithm.SHA512)


def _lookup(fields: dict[str, str], name: str) -> str | None:
    """Case-insensitive field lookup."""
    if name in fields:
        return fields[name]
    lowered = name.lower()
    for key, value in fields.items():
        if key.lower() == lowered:
            return value
    return None


class ComplianceCode(str, Enum):
    """Kinds of Debian repository format violations."""

    MISSING_FIELD = "missing_field"
    MISSING_INDEX = "missing_index"
    TIMESTAMP_ORDER = "timestamp_order"
    EXPIRED = "expired"
    WEAK_CHECKSUM = "weak_checksum"


class ComplianceViolation(BaseModel):
    """One way a Release file deviates from the repository format."""

    model_config = ConfigDict(frozen=True)

    code: ComplianceCode
    message: str
    path: str | None = None

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class IndexLink(BaseModel):
    """Resolved location of one package index variant."""

    model_config = ConfigDict(frozen=True)

    component: Component | None = Field(None, description="None for flat repositories without components")
    architecture: Architecture | None = Field(
        None, description="None for flat repositories without architectures"
    )
    url: str
    file_ref: FileRef
    compression: Compression
    probe: ProbeResult | None = None

    @property
    def label(self) -> str:
        return f"{self.component or '-'}/{self.architecture or '-'}"


class StanzaIssue(BaseModel):
    """A stanza that was skipped while parsing an index."""

    model_config = ConfigDict(frozen=True)

    ordinal: int = Field(..., description="1-based position of the stanza in the index")
    message: str


class _StanzaRecord(BaseModel):
    """Fields of one index stanza, kept verbatim in document order.

    Field names are matched case-insensitively.
    """

    model_config = ConfigDict(frozen=True)

    fields: dict[str, str]
    component: Component | None = None

    def get(self, name: str, default: str | None = None) -> str | None:
        value = _lookup(self.fields, name)
        return default if value is None else value

    def __getitem__(self, name: str) -> str:
        value = _lookup(self.fields, name)
        if value is None:
            raise KeyError(name)
        return value

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and _lookup(self.fields, name) is not None

    @property
    def name(self) -> str:
        return self["Package"]

    @property
    def version(self) -> str:
        return self["Version"]

    @property
    def parsed_version(self) -> Version:
        return parse_version(self.version)


class PackageRecord(_StanzaRecord):
    """One stanza of a Packages index; accessors interpret the commonly used fields."""

    @property
    def architecture(self) -> Architecture:
        return Architecture(self["Architecture"])

    @property
    def filename(self) -> str | None:
        return self.get("Filename")

    @property
    def size(self) -> int | None:
        value = self.get("Size")
        if value is None:
            return None
        try:
            return int(value)
        except ValueError as e:
            raise MalformedDocumentError(f"Invalid Size for {self.name}: {value!r}") from e

    @property
    def source(self) -> str:
        """Source package name (``Source`` may carry a version in parentheses)."""
        value = self.get("Source")
        if not value:
            return self.name
        return value.split()[0]

    @property
    def section(self) -> str | None:
        return self.get("Section")

    @property
    def priority(self) -> str | None:
        return self.get("Priority")

    @property
    def maintainer(self) -> str | None:
        return self.get("Maintainer")

    @property
    def description(self) -> str | None:
        """Synopsis (first line of Description)."""
        value = self.get("Description")
        if value is None:
            return None
        return value.split("\n", 1)[0]

    @property
    def long_description(self) -> str | None:
        """Extended description; lines consisting of ``.`` become blank lines."""
        value = self.get("Description")
        if value is None or "\n" not in value:
            return None
        lines = value.split("\n")[1:]
        return "\n".join("" if line == "." else line for line in lines)

    @property
    def file_ref(self) -> FileRef | None:
        """Pool file reference, or None when Filename or Size is absent.

        Raises:
            MalformedDocumentError: If Size or a checksum field is invalid
        """
        filename = self.filename
        size = self.size
        if filename is None or size is None:
            return None
        try:
            checksums = []
            for algorithm in HashAlgorithm:
                digest = self.get(algorithm.package_field)
                if digest:
                    checksums.append(Checksum(algorithm=algorithm, digest=digest))
            return FileRef(path=filename, size=size, checksums=tuple(checksums))
        except ValueError as e:
            raise MalformedDocumentError(f"Invalid file reference for {self.name}: {e}") from e

    def relations(self, field_name: str) -> list[list[Relation]]:
        """Parse a relationship field (Depends, Breaks, ...); empty if absent."""
        return parse_relations(self.get(field_name, ""))

    def __str__(self) -> str:
        return f"{self.name}_{self.version}_{self.get('Architecture')}"


class SourceRecord(_StanzaRecord):
    """One stanza of a Sources index."""

    @property
    def directory(self) -> str | None:
        return self.get("Directory")

    @property
    def binaries(self) -> list[str]:
        value = self.get("Binary", "")
        return [b for b in value.replace(",", " ").split() if b]

    @property
    def architectures(self) -> list[str]:
        return self.get("Architecture", "").split()

    @property
    def files(self) -> list[FileRef]:
        """Source files with all listed checksums, paths joined with Directory."""
        blocks = (
            ("Files", HashAlgorithm.MD5),
            ("Checksums-Sha1", HashAlgorithm.SHA1),
            ("Checksums-Sha256", HashAlgorithm.SHA256),
            ("Checksums-Sha512", HashAlgorithm.SHA512),
        )
        directory = self.directory or ""
        files: dict[str, FileRef] = {}
        for field_name, algorithm in blocks:
            for line in self.get(field_name, "").split("\n"):
                parts = line.split()
                if not parts:
                    continue
                if len(parts) != 3:
                    raise MalformedDocumentError(
                        f"Invalid {field_name} line in source {self.name}: {line!r}"
                    )
                digest, size, filename = parts
                try:
                    ref = FileRef(
                        path=posixpath.join(directory, filename),
                        size=int(size),
                        checksums=(Checksum(algorithm=algorithm, digest=digest),),
                    )
                except ValueError as e:
                    raise MalformedDocumentError(
                        f"Invalid {field_name} line in source {self.name}: {line!r}"
                    ) from e
                files[ref.path] = files[ref.path].merge(ref) if ref.path in files else ref
        return list(files.values())

    def __str__(self) -> str:
        return f"{self.name}_{self.version}"


def _newest(records: list[_StanzaRecord], constraint: VersionConstraint | str | None):
    if isinstance(constraint, str):
        constraint = VersionConstraint.parse(constraint)
    if constraint is not None:
        records = [r for r in records if constraint.matches(r.version)]
    if not records:
        return None
    return max(records, key=lambda r: r.parsed_version)


@dataclass(frozen=True)
class ParsedIndex:
    """Records of one Packages index, in document order."""

    component: Component | None
    architecture: Architecture | None
    records: tuple[PackageRecord, ...] = ()
    skipped: int = 0
    issues: tuple[StanzaIssue, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[PackageRecord]:
        return iter(self.records)

    def find(self, name: str) -> list[PackageRecord]:
        """All records for a package name (several versions may be listed)."""
        return [r for r in self.records if r.name == name]

    def get(self, name: str, constraint: VersionConstraint | str | None = None) -> PackageRecord | None:
        """Newest record for name, optionally restricted by a version constraint.

        Args:
            name: Package name
            constraint: VersionConstraint or a string such as ">= 1.18"

        Returns:
            Matching record with the highest version, or None
        """
        return _newest(self.find(name), constraint)

    def package_names(self) -> list[str]:
        return sorted({r.name for r in self.records})


@dataclass(frozen=True)
class SourceIndex:
    """Records of one Sources index, in document order."""

    component: Component | None
    records: tuple[SourceRecord, ...] = ()
    skipped: int = 0
    issues: tuple[StanzaIssue, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[SourceRecord]:
        return iter(self.records)

    def find(self, name: str) -> list[SourceRecord]:
        return [r for r in self.records if r.name == name]

    def get(self, name: str, constraint: VersionConstraint | str | None = None) -> SourceRecord | None:
        return _newest(self.find(name), constraint)

    def package_names(self) -> list[str]:
        return sorted({r.name for r in self.records})


class ReleaseDocument(BaseModel):
    """Parsed and (normally) verified InRelease file.

    The document is never refused for being stale; ``check_compliance``
    reports expiry and other format violations on request.
    """

    model_config = ConfigDict(frozen=True)

    repository: RepositoryLocation
    signature: SignatureInfo

    origin: str | None = None
    label: str | None = None
    suite: str | None = None
    codename: str | None = None
    version: str | None = None
    description: str | None = None
    date: datetime | None = None
    valid_until: datetime | None = None
    architectures: tuple[Architecture, ...] = ()
    components: tuple[Component, ...] = ()
    acquire_by_hash: bool = False
    signed_by: tuple[str, ...] = ()
    changelogs: str | None = None
    snapshots: str | None = None
    no_support_for_architecture_all: bool = False

    files: dict[str, FileRef] = Field(default_factory=dict, description="Files listed in checksum blocks, by path")
    extra_fields: dict[str, str] = Field(default_factory=dict, description="Fields not explicitly modeled")

    @property
    def is_flat(self) -> bool:
        return self.repository.layout.is_flat

    @property
    def name(self) -> str:
        """Suite or codename, whichever is set."""
        return self.codename or self.suite or self.repository.layout.release_dir

    def require_verified(self) -> None:
        """Raise unless the signature of this document was verified.

        Raises:
            VerificationError: With reason SKIPPED_BY_POLICY
        """
        if not self.signature.verified:
            raise VerificationError(
                f"Release {self.name} was accepted without signature verification",
                VerificationFailure.SKIPPED_BY_POLICY,
            )

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.valid_until is None:
            return False
        return (now or datetime.now(timezone.utc)) > self.valid_until

    def _identifiers(
        self, component: str | None, architecture: str | None
    ) -> tuple[Component | None, Architecture | None]:
        try:
            return (
                Component(component) if component is not None else None,
                Architecture(architecture) if architecture is not None else None,
            )
        except (TypeError, ValueError) as e:
            raise NotFoundError(f"Release {self.name} has no index for {component}/{architecture}: {e}") from e

    def _variants(self, base: str) -> dict[Compression, FileRef]:
        found: dict[Compression, FileRef] = {}
        for path, ref in self.files.items():
            if not path.startswith(base):
                continue
            compression = detect_compression(path)
            if compression is not None and path == base + compression.extension:
                found[compression] = ref
        return {compression: found[compression] for compression in PREFERENCE if compression in found}

    def package_index_files(
        self, component: str | None, architecture: str | None
    ) -> dict[Compression, FileRef]:
        """Declared variants of one index, in download preference order.

        Candidate paths come from the repository layout; the first path with
        any declared variant wins.
        """
        component, architecture = self._identifiers(component, architecture)
        for base in self.repository.layout.index_paths(component, architecture):
            variants = self._variants(base)
            if variants:
                return variants
        return {}

    def declared_pairs(self) -> list[tuple[Component | None, Architecture | None]]:
        """(component, architecture) pairs declared by this release.

        A flat repository that lists no per-component subtree has a single
        Packages index; its pair carries the component and architecture only
        when exactly one of each is declared.
        """
        architectures = [a for a in self.architectures if not a.is_source]
        pairs = [(c, a) for c in self.components for a in architectures]
        if self.is_flat and not any(self._variants(subtree_index_path(c, a)) for c, a in pairs):
            component = self.components[0] if len(self.components) == 1 else None
            architecture = architectures[0] if len(architectures) == 1 else None
            return [(component, architecture)]
        return pairs

    def _check_declared(self, component: Component | None, architecture: Architecture | None) -> None:
        if self.is_flat:
            return
        if component is None or component not in self.components:
            raise NotFoundError(f"Component {component} is not declared by release {self.name}")
        if architecture is None or (
            not architecture.is_source and architecture not in self.architectures
        ):
            raise NotFoundError(
                f"Architecture {architecture} is not declared by release {self.name}"
            )

    def candidate_links(self, component: str | None, architecture: str | None) -> list[IndexLink]:
        """Links to every declared variant of an index, best first.

        Raises:
            NotFoundError: If the pair is invalid, not declared or has no index
        """
        component, architecture = self._identifiers(component, architecture)
        self._check_declared(component, architecture)

        variants = self.package_index_files(component, architecture)
        if not variants:
            raise NotFoundError(
                f"Release {self.name} lists no index for {component or '-'}/{architecture or '-'}"
            )
        return [
            IndexLink(
                component=component,
                architecture=architecture,
                url=self.repository.index_url(ref.path),
                file_ref=ref,
                compression=compression,
            )
            for compression, ref in variants.items()
        ]

    def get_package_index_link(self, component: str | None, architecture: str | None) -> IndexLink:
        """Best declared index variant (.xz > .gz > .lzma > uncompressed).

        Pure lookup, nothing is probed. ``Architecture("source")`` resolves
        the Sources index of the component.

        Raises:
            NotFoundError: If the pair is not declared or has no index
        """
        return self.candidate_links(component, architecture)[0]

    def probe_package_link(
        self, transport: Transport, component: str | None, architecture: str | None
    ) -> IndexLink:
        """First declared variant of an index that exists on the server.

        Raises:
            NotFoundError: If no variant exists (or none could be probed)
        """
        for link in self.candidate_links(component, architecture):
            result = probe_url(transport, link.url)
            if result.exists:
                return link.model_copy(update={"probe": result})
        raise NotFoundError(
            f"No index variant of {component or '-'}/{architecture or '-'} exists on the server"
        )

    def get_package_links(self, transport: Transport) -> list[IndexLink]:
        """Probe every declared pair and return links for those that exist.

        Pairs without any existing variant are excluded and logged.
        """
        links = []
        for component, architecture in self.declared_pairs():
            try:
                links.append(self.probe_package_link(transport, component, architecture))
            except NotFoundError as e:
                logger.warning(f"Excluding {component or '-'}/{architecture or '-'}: {e}")
        logger.info(f"Release {self.name}: {len(links)} package indices available")
        return links

    def check_compliance(self, now: datetime | None = None) -> list[ComplianceViolation]:
        """Check the release against the Debian repository format.

        Args:
            now: Reference time for Valid-Until (default: current UTC time)

        Returns:
            List of violations (empty when compliant)
        """
        now = now or datetime.now(timezone.utc)
        violations: list[ComplianceViolation] = []

        def violation(code: ComplianceCode, message: str, path: str | None = None) -> None:
            violations.append(ComplianceViolation(code=code, message=message, path=path))

        if not self.is_flat:
            if not self.components:
                violation(ComplianceCode.MISSING_FIELD, "Components field is missing")
            if not self.architectures:
                violation(ComplianceCode.MISSING_FIELD, "Architectures field is missing")
        if not self.suite and not self.codename:
            violation(ComplianceCode.MISSING_FIELD, "Neither Suite nor Codename is set")
        if self.date is None:
            violation(ComplianceCode.MISSING_FIELD, "Date field is missing")

        if self.date and self.valid_until and self.date > self.valid_until:
            violation(
                ComplianceCode.TIMESTAMP_ORDER,
                f"Date {self.date.isoformat()} is after Valid-Until {self.valid_until.isoformat()}",
            )
        if self.is_expired(now):
            violation(ComplianceCode.EXPIRED, f"Release expired at {self.valid_until.isoformat()}")

        for component, architecture in self.declared_pairs():
            if not self.package_index_files(component, architecture):
                violation(
                    ComplianceCode.MISSING_INDEX,
                    f"No Packages index for {component or '-'}/{architecture or '-'}",
                )

        for path, ref in self.files.items():
            if ref.algorithms.isdisjoint(STRONG_ALGORITHMS):
                violation(
                    ComplianceCode.WEAK_CHECKSUM,
                    f"{path} has no SHA256 or SHA512 checksum",
                    path=path,
                )

        return violations

from __future__ import annotations

"""
Parsers for APT repository metadata files.

APT metadata uses RFC822-style format (similar to email headers):
- Field: value
- Multi-line values are indented with spaces
- Blank lines separate stanzas (package records)
"""

import logging
from collections.abc import Iterator
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from aptmeta.apt.checksums import Checksum, FileRef, HashAlgorithm
from aptmeta.apt.compression import Compression, decompress
from aptmeta.apt.layout import RepositoryLocation
from aptmeta.apt.models import (
    PackageRecord,
    ParsedIndex,
    ReleaseDocument,
    SourceIndex,
    SourceRecord,
    StanzaIssue,
)
from aptmeta.apt.signature import UNVERIFIED, SignatureInfo
from aptmeta.apt.types import Architecture, Component
from aptmeta.errors import MalformedDocumentError, MalformedStanzaError

logger = logging.getLogger(__name__)

PACKAGE_REQUIRED_FIELDS = ("Package", "Version", "Architecture")
SOURCE_REQUIRED_FIELDS = ("Package", "Version")

RELEASE_KNOWN_FIELDS = {
    "origin",
    "label",
    "suite",
    "codename",
    "version",
    "description",
    "date",
    "valid-until",
    "architectures",
    "components",
    "acquire-by-hash",
    "signed-by",
    "changelogs",
    "snapshots",
    "no-support-for-architecture-all",
} | {algorithm.release_field.lower() for algorithm in HashAlgorithm}


def parse_rfc822_stanza(text: str, ordinal: int | None = None) -> dict[str, str]:
    """
    Parse a single RFC822 stanza into an ordered dictionary.

    Args:
        text: RFC822-formatted text (single stanza)
        ordinal: Position of the stanza in its document, used in errors

    Returns:
        Dictionary of field names to values, in document order

    Raises:
        MalformedStanzaError: On a line without colon, a continuation line
            before the first field, or a duplicate field

    Example:
        >>> stanza = '''Package: nginx
        ... Version: 1.18.0
        ... Description: Small, powerful, scalable web/proxy server
        ...  This is a multi-line
        ...  description.'''
        >>> result = parse_rfc822_stanza(stanza)
        >>> result['Package']
        'nginx'
        >>> result['Description']
        'Small, powerful, scalable web/proxy server\\nThis is a multi-line\\ndescription.'
    """
    fields: dict[str, str] = {}
    seen: set[str] = set()
    current_field: str | None = None

    for line in text.split("\n"):
        line = line.rstrip("\r")
        if not line.strip() or line.startswith("#"):
            continue

        # Continuation line (starts with space or tab)
        if line[0] in (" ", "\t"):
            if current_field is None:
                raise MalformedStanzaError(f"continuation line without field: {line!r}", ordinal)
            fields[current_field] += "\n" + line.strip()
            continue

        field_name, sep, field_value = line.partition(":")
        field_name = field_name.strip()
        if not sep or not field_name or any(ch.isspace() for ch in field_name):
            raise MalformedStanzaError(f"invalid field line: {line!r}", ordinal)
        if field_name.lower() in seen:
            raise MalformedStanzaError(f"duplicate field {field_name!r}", ordinal)

        seen.add(field_name.lower())
        fields[field_name] = field_value.strip()
        current_field = field_name

    return fields


def iter_stanzas(content: str) -> Iterator[tuple[int, str]]:
    """
    Split RFC822 content into stanzas.

    Args:
        content: Full RFC822 file content

    Yields:
        (ordinal, stanza_text) with 1-based ordinals; comment-only blocks are skipped
    """
    ordinal = 0
    block: list[str] = []

    def has_fields(lines: list[str]) -> bool:
        return any(not line.startswith("#") for line in lines)

    for line in content.replace("\r\n", "\n").split("\n"):
        if line.strip():
            block.append(line)
            continue
        if block and has_fields(block):
            ordinal += 1
            yield ordinal, "\n".join(block)
        block = []

    if block and has_fields(block):
        ordinal += 1
        yield ordinal, "\n".join(block)


def _get(fields: dict[str, str], name: str) -> str | None:
    lowered = name.lower()
    for key, value in fields.items():
        if key.lower() == lowered:
            return value
    return None


def _missing_fields(fields: dict[str, str], required: tuple[str, ...]) -> list[str]:
    return [name for name in required if not _get(fields, name)]


def _parse_date(value: str | None, field_name: str) -> datetime | None:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError) as e:
        logger.warning(f"Ignoring unparsable {field_name} {value!r}: {e}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_bool(value: str | None) -> bool:
    return (value or "").strip().lower() == "yes"


def _parse_no_support_for_all(value: str | None) -> bool:
    # The only value defined by the format is "Packages"
    return (value or "").strip().lower() in ("packages", "yes")


def _parse_checksum_blocks(stanza: dict[str, str]) -> dict[str, FileRef]:
    """Merge the MD5Sum/SHA1/SHA256/SHA512 blocks into one FileRef per path."""
    files: dict[str, FileRef] = {}
    for algorithm in HashAlgorithm:
        block = _get(stanza, algorithm.release_field)
        if block is None:
            continue
        for line in block.split("\n"):
            parts = line.split()
            if not parts:
                continue
            if len(parts) != 3:
                raise MalformedDocumentError(
                    f"Invalid {algorithm.release_field} line in Release file: {line!r}"
                )
            digest, size, path = parts
            try:
                ref = FileRef(
                    path=path,
                    size=int(size),
                    checksums=(Checksum(algorithm=algorithm, digest=digest),),
                )
            except ValueError as e:
                raise MalformedDocumentError(
                    f"Invalid {algorithm.release_field} line in Release file: {line!r}"
                ) from e
            files[path] = files[path].merge(ref) if path in files else ref
    return files


def parse_release_file(
    content: bytes | str,
    repository: RepositoryLocation,
    signature: SignatureInfo = UNVERIFIED,
) -> ReleaseDocument:
    """
    Parse the payload of an InRelease file into a ReleaseDocument.

    Args:
        content: Signed payload (as returned by verify_inline)
        repository: Location the release was fetched from
        signature: Signature details of the payload

    Returns:
        ReleaseDocument object

    Raises:
        MalformedDocumentError: If the payload is not a single valid stanza

    Example:
        >>> content = '''Origin: Ubuntu
        ... Suite: jammy
        ... Architectures: amd64 arm64
        ... Components: main restricted
        ... SHA256:
        ...  abc123 12345 main/binary-amd64/Packages.gz'''
        >>> location = RepositoryLocation.default("http://archive.ubuntu.com/ubuntu", "jammy")
        >>> parse_release_file(content, location).suite
        'jammy'
    """
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedDocumentError(f"Release file is not valid UTF-8: {e}") from e

    stanzas = list(iter_stanzas(content))
    if not stanzas:
        raise MalformedDocumentError("Release file is empty")
    if len(stanzas) > 1:
        raise MalformedDocumentError(f"Release file contains {len(stanzas)} stanzas, expected one")
    stanza = parse_rfc822_stanza(stanzas[0][1])

    try:
        architectures = tuple(Architecture(a) for a in (_get(stanza, "Architectures") or "").split())
        components = tuple(Component(c) for c in (_get(stanza, "Components") or "").split())
    except ValueError as e:
        raise MalformedDocumentError(f"Invalid Release file: {e}") from e

    signed_by = tuple(
        s.strip() for s in (_get(stanza, "Signed-By") or "").split(",") if s.strip()
    )
    extra_fields = {k: v for k, v in stanza.items() if k.lower() not in RELEASE_KNOWN_FIELDS}

    release = ReleaseDocument(
        repository=repository,
        signature=signature,
        origin=_get(stanza, "Origin"),
        label=_get(stanza, "Label"),
        suite=_get(stanza, "Suite"),
        codename=_get(stanza, "Codename"),
        version=_get(stanza, "Version"),
        description=_get(stanza, "Description"),
        date=_parse_date(_get(stanza, "Date"), "Date"),
        valid_until=_parse_date(_get(stanza, "Valid-Until"), "Valid-Until"),
        architectures=architectures,
        components=components,
        acquire_by_hash=_parse_bool(_get(stanza, "Acquire-By-Hash")),
        signed_by=signed_by,
        changelogs=_get(stanza, "Changelogs"),
        snapshots=_get(stanza, "Snapshots"),
        no_support_for_architecture_all=_parse_no_support_for_all(
            _get(stanza, "No-Support-for-Architecture-all")
        ),
        files=_parse_checksum_blocks(stanza),
        extra_fields=extra_fields,
    )
    logger.debug(
        f"Parsed Release {release.name}: {len(release.components)} components, "
        f"{len(release.architectures)} architectures, {len(release.files)} files"
    )
    return release


def parse_packages_file(
    content: str,
    component: Component | None = None,
    architecture: Architecture | None = None,
) -> ParsedIndex:
    """
    Parse an APT Packages file.

    Stanzas that are malformed, miss Package, Version or Architecture, or
    carry an invalid Size or checksum field are skipped and recorded;
    parsing continues with the next stanza.

    Args:
        content: Content of Packages file (uncompressed)
        component: Component the index belongs to
        architecture: Architecture the index belongs to

    Returns:
        ParsedIndex with records in document order

    Example:
        >>> content = '''Package: nginx
        ... Version: 1.18.0-0ubuntu1
        ... Architecture: amd64
        ... Filename: pool/main/n/nginx/nginx_1.18.0-0ubuntu1_amd64.deb
        ... Size: 354232'''
        >>> parse_packages_file(content).records[0].name
        'nginx'
    """
    records: list[PackageRecord] = []
    issues: list[StanzaIssue] = []

    for ordinal, stanza_text in iter_stanzas(content):
        try:
            fields = parse_rfc822_stanza(stanza_text, ordinal)
            missing = _missing_fields(fields, PACKAGE_REQUIRED_FIELDS)
            if missing:
                raise MalformedStanzaError(
                    f"missing required field(s) {', '.join(missing)} "
                    f"(Package={_get(fields, 'Package')})",
                    ordinal,
                )
            record = PackageRecord(fields=fields, component=component)
            # Size and checksum fields must form a valid pool file reference
            try:
                record.file_ref
            except MalformedDocumentError as e:
                raise MalformedStanzaError(str(e), ordinal) from e
            records.append(record)
        except MalformedStanzaError as e:
            logger.warning(f"Skipping package record: {e}")
            issues.append(StanzaIssue(ordinal=ordinal, message=str(e)))

    logger.debug(f"Parsed {len(records)} package records, skipped {len(issues)}")
    return ParsedIndex(
        component=component,
        architecture=architecture,
        records=tuple(records),
        skipped=len(issues),
        issues=tuple(issues),
    )


def parse_sources_file(content: str, component: Component | None = None) -> SourceIndex:
    """
    Parse an APT Sources file.

    Args:
        content: Content of Sources file (uncompressed)
        component: Component the index belongs to

    Returns:
        SourceIndex with records in document order
    """
    records: list[SourceRecord] = []
    issues: list[StanzaIssue] = []

    for ordinal, stanza_text in iter_stanzas(content):
        try:
            fields = parse_rfc822_stanza(stanza_text, ordinal)
            missing = _missing_fields(fields, SOURCE_REQUIRED_FIELDS)
            if missing:
                raise MalformedStanzaError(
                    f"missing required field(s) {', '.join(missing)}", ordinal
                )
            records.append(SourceRecord(fields=fields, component=component))
        except MalformedStanzaError as e:
            logger.warning(f"Skipping source record: {e}")
            issues.append(StanzaIssue(ordinal=ordinal, message=str(e)))

    return SourceIndex(
        component=component,
        records=tuple(records),
        skipped=len(issues),
        issues=tuple(issues),
    )


def _decode_index(data: bytes, file_ref: FileRef, compression: Compression) -> str:
    """Verify, decompress and decode downloaded index bytes."""
    # Checksums in Release files cover the compressed bytes
    file_ref.check(data)
    raw = decompress(data, compression)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        logger.warning(f"{file_ref.path} is not valid UTF-8, replacing invalid bytes: {e}")
        return raw.decode("utf-8", errors="replace")


def parse_package_index(
    data: bytes,
    file_ref: FileRef,
    compression: Compression,
    component: Component | None = None,
    architecture: Architecture | None = None,
) -> ParsedIndex:
    """
    Verify and parse a downloaded Packages index.

    Args:
        data: Raw bytes as published (possibly compressed)
        file_ref: Expected size and checksums from the Release file
        compression: Compression variant of the download
        component: Component the index belongs to
        architecture: Architecture the index belongs to

    Returns:
        ParsedIndex

    Raises:
        ChecksumError: If the bytes do not match file_ref
        DecompressionError: If the compressed stream is malformed
    """
    index = parse_packages_file(_decode_index(data, file_ref, compression), component, architecture)
    logger.info(f"{file_ref.path}: {len(index)} packages ({index.skipped} skipped)")
    return index


def parse_source_index(
    data: bytes,
    file_ref: FileRef,
    compression: Compression,
    component: Component | None = None,
) -> SourceIndex:
    """
    Verify and parse a downloaded Sources index.

    Raises:
        ChecksumError: If the bytes do not match file_ref
        DecompressionError: If the compressed stream is malformed
    """
    index = parse_sources_file(_decode_index(data, file_ref, compression), component)
    logger.info(f"{file_ref.path}: {len(index)} source packages ({index.skipped} skipped)")
    return index

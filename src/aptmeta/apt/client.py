from __future__ import annotations

"""
APT repository metadata client.

Runs the trust pipeline for one repository:

    InRelease -> signature verification -> Release parsing
              -> index probing -> checksum verification -> decompression
              -> Packages parsing

Every step fails fast with a typed error from ``aptmeta.errors``; only
malformed stanzas inside an index are skipped and counted.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

from aptmeta.apt import keys
from aptmeta.apt.keys import NO_SIGNATURE_CHECK, TrustAnchor
from aptmeta.apt.layout import RepositoryLocation
from aptmeta.apt.models import IndexLink, PackageRecord, ParsedIndex, ReleaseDocument, SourceIndex
from aptmeta.apt.parsers import parse_package_index, parse_release_file, parse_source_index
from aptmeta.apt.signature import verify_inline
from aptmeta.apt.types import ARCH_SOURCE, Architecture, Component
from aptmeta.core.config import GlobalConfig, RepositoryConfig
from aptmeta.core.transport import RequestsTransport, Transport
from aptmeta.errors import MalformedDocumentError, NotFoundError

logger = logging.getLogger(__name__)


class AptRepositoryClient:
    """Client for the metadata of a single APT repository.

    Handles:
    - Fetching and verifying InRelease
    - Resolving and probing Packages/Sources indices
    - Downloading, verifying and parsing indices (optionally in parallel)
    - Downloading checksum-verified package payloads
    """

    def __init__(
        self,
        location: RepositoryLocation,
        trust_anchor: TrustAnchor,
        transport: Transport,
        max_workers: int = 1,
        components: list[str] | None = None,
        architectures: list[str] | None = None,
    ):
        """Initialize APT repository client.

        Args:
            location: Repository root URL and layout
            trust_anchor: Public key, or NO_SIGNATURE_CHECK
            transport: Transport used for all network access
            max_workers: Number of indices fetched concurrently
            components: Default component filter for fetch_package_indices
            architectures: Default architecture filter for fetch_package_indices
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.location = location
        self.trust_anchor = trust_anchor
        self.transport = transport
        self.max_workers = max_workers
        self.components = [Component(c) for c in components or []]
        self.architectures = [Architecture(a) for a in architectures or []]

    @classmethod
    def from_config(
        cls,
        repo_config: RepositoryConfig,
        global_config: GlobalConfig | None = None,
        transport: Transport | None = None,
    ) -> AptRepositoryClient:
        """Create a client from repository configuration.

        Per-repository proxy and SSL settings override the global ones. The
        signing key is loaded (and fetched, for URLs) immediately.

        Args:
            repo_config: Repository configuration
            global_config: Global configuration (download, proxy, ssl)
            transport: Transport to use instead of a RequestsTransport
        """
        global_config = global_config or GlobalConfig()

        if repo_config.distribution:
            location = RepositoryLocation.default(repo_config.url, repo_config.distribution)
        else:
            location = RepositoryLocation.flat(repo_config.url, repo_config.flat_path)

        if transport is None:
            transport = RequestsTransport(
                download_config=global_config.download,
                proxy_config=repo_config.proxy or global_config.proxy,
                ssl_config=repo_config.ssl or global_config.ssl,
                auth=repo_config.auth,
            )

        if repo_config.no_signature_check:
            trust_anchor: TrustAnchor = NO_SIGNATURE_CHECK
        else:
            trust_anchor = keys.from_url_or_path(repo_config.key, transport=transport)

        return cls(
            location=location,
            trust_anchor=trust_anchor,
            transport=transport,
            max_workers=global_config.download.parallel,
            components=repo_config.components,
            architectures=repo_config.architectures,
        )

    def fetch_release(self) -> ReleaseDocument:
        """Fetch, verify and parse the InRelease file.

        Raises:
            TransportError: If InRelease cannot be fetched
            VerificationError: If the signature is malformed, unknown or invalid
            MalformedDocumentError: If the signed payload is not a valid Release stanza
        """
        url = self.location.in_release_url()
        logger.info(f"Fetching {url}")
        data = self.transport.fetch(url)

        document = verify_inline(data, self.trust_anchor)
        release = parse_release_file(document.payload, self.location, document.signature)

        logger.info(
            f"Release {release.name}: components={' '.join(release.components) or '-'}, "
            f"architectures={' '.join(release.architectures) or '-'}"
        )
        return release

    def get_package_links(self, release: ReleaseDocument) -> list[IndexLink]:
        """Links to every declared index that exists on the server."""
        return release.get_package_links(self.transport)

    def _fetch_link(self, link: IndexLink) -> ParsedIndex:
        logger.info(f"Fetching {link.url}")
        data = self.transport.fetch(link.url)
        return parse_package_index(
            data, link.file_ref, link.compression, link.component, link.architecture
        )

    def fetch_package_index(
        self, release: ReleaseDocument, component: str | None, architecture: str | None
    ) -> ParsedIndex:
        """Fetch, verify and parse one Packages index.

        Raises:
            NotFoundError: If the index is not declared or no variant exists
            TransportError: If the download fails
            ChecksumError: If the download does not match the Release file
            DecompressionError: If the compressed stream is malformed
        """
        link = release.probe_package_link(self.transport, component, architecture)
        return self._fetch_link(link)

    def _selected(
        self,
        link: IndexLink,
        components: list[Component],
        architectures: list[Architecture],
    ) -> bool:
        if components and link.component is not None and link.component not in components:
            return False
        if architectures and link.architecture is not None and link.architecture not in architectures:
            return False
        return True

    def fetch_package_indices(
        self,
        release: ReleaseDocument,
        components: list[str] | None = None,
        architectures: list[str] | None = None,
    ) -> list[ParsedIndex]:
        """Fetch every existing Packages index, concurrently.

        Args:
            release: Release document from fetch_release()
            components: Restrict to these components (default: client filter)
            architectures: Restrict to these architectures (default: client filter)

        Returns:
            Parsed indices in declared (component, architecture) order

        Raises:
            The first error raised by any index pipeline, in declared order
        """
        wanted_components = [Component(c) for c in components] if components else self.components
        wanted_architectures = (
            [Architecture(a) for a in architectures] if architectures else self.architectures
        )

        links = [
            link
            for link in self.get_package_links(release)
            if self._selected(link, wanted_components, wanted_architectures)
        ]
        logger.info(f"Fetching {len(links)} package indices with {self.max_workers} worker(s)")

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self._fetch_link, link) for link in links]
            return [future.result() for future in futures]

    def fetch_source_index(self, release: ReleaseDocument, component: str | None) -> SourceIndex:
        """Fetch, verify and parse the Sources index of a component.

        Raises:
            NotFoundError: If the release lists no Sources index or none exists
        """
        link = release.probe_package_link(self.transport, component, ARCH_SOURCE)
        logger.info(f"Fetching {link.url}")
        data = self.transport.fetch(link.url)
        return parse_source_index(data, link.file_ref, link.compression, link.component)

    def fetch_package(self, record: PackageRecord) -> bytes:
        """Download the .deb described by a package record and verify it.

        Raises:
            MalformedDocumentError: If the record has no Filename or Size
            TransportError: If the download fails
            ChecksumError: If the payload does not match the record
        """
        file_ref = record.file_ref
        if file_ref is None:
            raise MalformedDocumentError(f"Package {record} has no Filename/Size fields")

        url = self.location.pool_url(file_ref.path)
        logger.info(f"Fetching {url}")
        data = self.transport.fetch(url)
        file_ref.check(data)
        return data

    def find_package(
        self, indices: list[ParsedIndex], name: str, constraint: str | None = None
    ) -> PackageRecord:
        """Newest record named name across indices.

        Raises:
            NotFoundError: If no index has a matching record
        """
        candidates = [
            r for r in (index.get(name, constraint) for index in indices) if r is not None
        ]
        if not candidates:
            wanted = f"{name} ({constraint})" if constraint else name
            raise NotFoundError(f"Package {wanted} not found")
        return max(candidates, key=lambda r: r.parsed_version)

    def close(self) -> None:
        """Close the transport if it holds resources."""
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> AptRepositoryClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

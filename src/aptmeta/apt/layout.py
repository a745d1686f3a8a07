"""
Repository topology.

An APT repository is either a *default* repository, where each distribution
lives under ``dists/<distribution>/`` and indices are split per component and
architecture, or a *flat* repository, where InRelease and the indices sit
directly in one directory. ``RepositoryLocation`` combines a root URL with a
layout and builds every URL the pipeline needs.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, field_validator

from aptmeta.apt.types import Architecture, Component
from aptmeta.core.transport import ProbeResult, ProbeStatus, Transport
from aptmeta.errors import TransportError

logger = logging.getLogger(__name__)


def join_url(base: str, path: str) -> str:
    """Join a base URL with a path.

    The path ``./`` is treated as empty and a leading ``/`` of path is dropped.

    Example:
        >>> join_url("http://archive.ubuntu.com", "ubuntu")
        'http://archive.ubuntu.com/ubuntu'
        >>> join_url("http://example.test/repo/", "./")
        'http://example.test/repo/'
    """
    if not base.endswith("/"):
        base += "/"
    if path == "./":
        path = ""
    elif path.startswith("./"):
        path = path[2:]
    path = path.lstrip("/")
    return base + path


def subtree_index_path(component: Component, architecture: Architecture) -> str:
    """Index path below a component directory, e.g. ``main/binary-amd64/Packages``."""
    if architecture.is_source:
        return f"{component}/source/Sources"
    return f"{component}/binary-{architecture}/Packages"


class RepositoryLayout(BaseModel):
    """Base for the two repository layouts."""

    model_config = ConfigDict(frozen=True)

    @property
    def release_dir(self) -> str:
        """Directory holding InRelease, relative to the repository root."""
        raise NotImplementedError

    def index_paths(self, component: Component | None, architecture: Architecture | None) -> list[str]:
        """Candidate paths of the uncompressed index, relative to ``release_dir``, best first."""
        raise NotImplementedError

    @property
    def is_flat(self) -> bool:
        return False


class DefaultLayout(RepositoryLayout):
    """Distribution-named layout: ``dists/<distribution>/<component>/binary-<arch>/``."""

    distribution: str

    @field_validator("distribution")
    @classmethod
    def validate_distribution(cls, v: str) -> str:
        """Strip slashes and reject empty names."""
        v = v.strip().strip("/")
        if not v:
            raise ValueError("distribution must not be empty")
        return v

    @property
    def release_dir(self) -> str:
        return f"dists/{self.distribution}"

    def index_paths(self, component: Component | None, architecture: Architecture | None) -> list[str]:
        if component is None or architecture is None:
            return []
        return [subtree_index_path(component, architecture)]


class FlatLayout(RepositoryLayout):
    """Flat layout: InRelease, Packages and Sources directly under ``path``.

    A path of ``./`` places them in the repository root, as in apt
    source lists. Some flat repositories keep the
    ``<component>/binary-<arch>/`` subtree below the path; it is used when
    the release declares it.
    """

    path: str

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Reject empty paths."""
        if not v.strip():
            raise ValueError("flat repository path must not be empty (use './' for the root)")
        return v.strip()

    @property
    def release_dir(self) -> str:
        return self.path

    def index_paths(self, component: Component | None, architecture: Architecture | None) -> list[str]:
        """The per-component subtree when both identifiers are known, then the bare index."""
        paths = []
        if component is not None and architecture is not None:
            paths.append(subtree_index_path(component, architecture))
        is_source = architecture is not None and architecture.is_source
        paths.append("Sources" if is_source else "Packages")
        return paths

    @property
    def is_flat(self) -> bool:
        return True


class RepositoryLocation(BaseModel):
    """Root URL plus layout; identifies the repository a release came from."""

    model_config = ConfigDict(frozen=True)

    url: str
    layout: DefaultLayout | FlatLayout

    @classmethod
    def default(cls, url: str, distribution: str) -> RepositoryLocation:
        return cls(url=url, layout=DefaultLayout(distribution=distribution))

    @classmethod
    def flat(cls, url: str, path: str) -> RepositoryLocation:
        return cls(url=url, layout=FlatLayout(path=path))

    @property
    def release_base_url(self) -> str:
        return join_url(self.url, self.layout.release_dir)

    def in_release_url(self) -> str:
        """URL of the InRelease file."""
        return join_url(self.release_base_url, "InRelease")

    def index_url(self, path: str) -> str:
        """URL of a file listed in the Release file (path relative to the release directory)."""
        return join_url(self.release_base_url, path)

    def pool_url(self, filename: str) -> str:
        """URL of a package payload (Filename fields are relative to the root)."""
        return join_url(self.url, filename)


def probe_url(transport: Transport, url: str) -> ProbeResult:
    """Probe a candidate URL, reporting transport failures as a status.

    The probe is advisory; downloaded content is always checksum-verified.
    """
    try:
        result = transport.probe(url)
    except TransportError as e:
        logger.warning(f"Probe of {url} failed: {e}")
        return ProbeResult(status=ProbeStatus.TRANSPORT_ERROR, error=str(e))
    logger.debug(f"Probe of {url}: {result.status.value}")
    return result

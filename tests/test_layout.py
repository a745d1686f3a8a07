"""Tests for repository layouts and URL building."""

import pytest
from pydantic import ValidationError

from aptmeta.apt.layout import DefaultLayout, FlatLayout, RepositoryLocation, join_url, probe_url
from aptmeta.apt.types import Architecture, Component
from aptmeta.core.transport import ProbeStatus
from aptmeta.errors import TransportError

from conftest import FakeTransport


class TestJoinUrl:
    """Tests for join_url."""

    @pytest.mark.parametrize(
        "base,path,expected",
        [
            ("http://h/repo", "dists", "http://h/repo/dists"),
            ("http://h/repo/", "dists", "http://h/repo/dists"),
            ("http://h/repo/", "/dists", "http://h/repo/dists"),
            ("http://h/repo", "./", "http://h/repo/"),
            ("http://h/repo", "./sub", "http://h/repo/sub"),
        ],
    )
    def test_join(self, base, path, expected):
        """Test a single separator between base and path."""
        assert join_url(base, path) == expected


class TestLayouts:
    """Tests for default and flat layouts."""

    def test_default_in_release_url(self):
        """Test the InRelease URL of a default repository."""
        location = RepositoryLocation.default("http://deb.debian.org/debian", "bookworm")
        assert location.in_release_url() == "http://deb.debian.org/debian/dists/bookworm/InRelease"

    def test_flat_in_release_url(self):
        """Test the InRelease URL of a flat repository in the root."""
        location = RepositoryLocation.flat("http://example.test/repo", "./")
        assert location.in_release_url() == "http://example.test/repo/InRelease"

    def test_flat_subdirectory(self):
        """Test a flat repository below the root."""
        location = RepositoryLocation.flat("http://example.test/repo/", "xUbuntu_22.04/")
        assert location.in_release_url() == "http://example.test/repo/xUbuntu_22.04/InRelease"
        assert location.index_url("Packages.gz") == "http://example.test/repo/xUbuntu_22.04/Packages.gz"

    def test_flat_dists_path_matches_default(self):
        """Test that a flat path of dists/jammy locates the same InRelease as distribution jammy."""
        flat = RepositoryLocation.flat("http://example.test/repo", "dists/jammy")
        default = RepositoryLocation.default("http://example.test/repo", "jammy")

        assert flat.in_release_url() == "http://example.test/repo/dists/jammy/InRelease"
        assert flat.in_release_url() == default.in_release_url()
        assert flat.index_url("main/binary-amd64/Packages.gz") == default.index_url("main/binary-amd64/Packages.gz")

    def test_default_index_paths(self):
        """Test binary and source index paths."""
        layout = DefaultLayout(distribution="/bookworm/")
        assert layout.distribution == "bookworm"
        assert layout.index_paths(Component("main"), Architecture("amd64")) == ["main/binary-amd64/Packages"]
        assert layout.index_paths(Component("main"), Architecture("source")) == ["main/source/Sources"]
        assert layout.index_paths(None, Architecture("amd64")) == []

    def test_flat_index_paths(self):
        """Test that flat indices sit directly under the path."""
        layout = FlatLayout(path="./")
        assert layout.is_flat
        assert layout.index_paths(None, Architecture("amd64")) == ["Packages"]
        assert layout.index_paths(None, Architecture("source")) == ["Sources"]
        assert layout.index_paths(None, None) == ["Packages"]

    def test_flat_index_paths_with_subtree(self):
        """Test that a known component and architecture try the subtree first."""
        layout = FlatLayout(path="dists/jammy")
        assert layout.index_paths(Component("main"), Architecture("amd64")) == [
            "main/binary-amd64/Packages",
            "Packages",
        ]
        assert layout.index_paths(Component("main"), Architecture("source")) == ["main/source/Sources", "Sources"]

    def test_pool_url_relative_to_root(self):
        """Test that package payload URLs are relative to the repository root."""
        location = RepositoryLocation.default("http://deb.debian.org/debian", "bookworm")
        assert (
            location.pool_url("pool/main/h/hello/hello_2.10-3_amd64.deb")
            == "http://deb.debian.org/debian/pool/main/h/hello/hello_2.10-3_amd64.deb"
        )

    def test_empty_layouts_rejected(self):
        """Test that empty distribution names and flat paths are invalid."""
        with pytest.raises(ValidationError):
            DefaultLayout(distribution="/")
        with pytest.raises(ValidationError):
            FlatLayout(path=" ")


class TestProbeUrl:
    """Tests for probe_url."""

    def test_existing_url(self):
        """Test probing an existing URL with an ETag."""
        transport = FakeTransport({"http://h/a": b"x"}, tags={"http://h/a": '"abc"'})
        result = probe_url(transport, "http://h/a")
        assert result.status == ProbeStatus.EXISTS_WITH_TAG
        assert result.tag == '"abc"'

    def test_transport_error_is_reported(self):
        """Test that transport failures become a transport-error status."""
        transport = FakeTransport(errors={"http://h/a": TransportError("boom")})
        result = probe_url(transport, "http://h/a")
        assert result.status == ProbeStatus.TRANSPORT_ERROR
        assert not result.exists

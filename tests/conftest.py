"""Shared fixtures: in-memory transport, repository builders and GnuPG keys."""

import gzip
import hashlib
import lzma
import shutil
from dataclasses import dataclass

import gnupg
import pytest

from aptmeta.core.transport import ProbeResult, Transport
from aptmeta.errors import TransportError


class FakeTransport(Transport):
    """Transport serving bytes from a dict, recording every call."""

    def __init__(self, files=None, errors=None, tags=None):
        self.files = dict(files or {})
        self.errors = dict(errors or {})
        self.tags = dict(tags or {})
        self.fetched = []
        self.probed = []

    def fetch(self, url):
        self.fetched.append(url)
        if url in self.errors:
            raise self.errors[url]
        if url not in self.files:
            raise TransportError(f"404 for {url}", url=url, status_code=404)
        return self.files[url]

    def probe(self, url):
        self.probed.append(url)
        if url in self.errors:
            raise self.errors[url]
        if url not in self.files:
            return ProbeResult.not_found()
        return ProbeResult.found(self.tags.get(url))


def checksum_lines(files, algorithm):
    """Lines of a Release checksum block for {path: bytes}."""
    lines = []
    for path, data in files.items():
        digest = hashlib.new(algorithm, data).hexdigest()
        lines.append(f" {digest} {len(data):>8} {path}")
    return "\n".join(lines)


def build_release(
    files,
    components="main",
    architectures="amd64",
    suite="stable",
    codename="bookworm",
    date="Sat, 10 Jun 2023 08:52:16 UTC",
    valid_until=None,
    algorithms=("md5", "sha256"),
    extra="",
):
    """Release stanza text listing files ({path: bytes}) with checksums."""
    fields = [
        "Origin: Test",
        "Label: Test",
    ]
    if suite:
        fields.append(f"Suite: {suite}")
    if codename:
        fields.append(f"Codename: {codename}")
    if date:
        fields.append(f"Date: {date}")
    if valid_until:
        fields.append(f"Valid-Until: {valid_until}")
    if architectures:
        fields.append(f"Architectures: {architectures}")
    if components:
        fields.append(f"Components: {components}")
    if extra:
        fields.append(extra)
    field_names = {"md5": "MD5Sum", "sha1": "SHA1", "sha256": "SHA256", "sha512": "SHA512"}
    for algorithm in algorithms:
        fields.append(f"{field_names[algorithm]}:")
        if files:
            fields.append(checksum_lines(files, algorithm))
    return "\n".join(fields) + "\n"


PACKAGES_MAIN = """Package: hello
Version: 2.10-3
Architecture: amd64
Maintainer: Santiago Vila <sanvila@debian.org>
Installed-Size: 280
Depends: libc6 (>= 2.34)
Section: devel
Priority: optional
Filename: pool/main/h/hello/hello_2.10-3_amd64.deb
Size: {hello_size}
SHA256: {hello_sha256}
Description: example package based on GNU hello
 The GNU hello program produces a familiar, friendly greeting.
 .
 Seriously, though: this is an example.

Package: hello
Version: 2.9-1
Architecture: amd64
Filename: pool/main/h/hello/hello_2.9-1_amd64.deb
Size: 10
SHA256: 0000000000000000000000000000000000000000000000000000000000000000
Description: older hello

Package: broken
Architecture: amd64
Description: missing a version
"""

HELLO_DEB = b"!<arch>\ndebian-binary   fake deb payload for hello\n"


def packages_text():
    return PACKAGES_MAIN.format(
        hello_size=len(HELLO_DEB), hello_sha256=hashlib.sha256(HELLO_DEB).hexdigest()
    )


SOURCES_MAIN = """Package: hello
Binary: hello
Version: 2.10-3
Architecture: any
Directory: pool/main/h/hello
Files:
 {md5} {size} hello_2.10-3.dsc
Checksums-Sha256:
 {sha256} {size} hello_2.10-3.dsc
"""

HELLO_DSC = b"Format: 3.0 (quilt)\nSource: hello\n"


def sources_text():
    return SOURCES_MAIN.format(
        md5=hashlib.md5(HELLO_DSC).hexdigest(),
        sha256=hashlib.sha256(HELLO_DSC).hexdigest(),
        size=len(HELLO_DSC),
    )


@dataclass
class FakeRepository:
    """An in-memory default-layout repository."""

    url: str
    distribution: str
    release_text: str
    transport: FakeTransport

    @property
    def dists_url(self):
        return f"{self.url}/dists/{self.distribution}"


@pytest.fixture
def fake_repository():
    """Repository with main/amd64 (xz and gz) and contrib/amd64 (declared, missing)."""
    url = "http://deb.example.test/debian"
    packages = packages_text().encode()
    sources = sources_text().encode()
    index_files = {
        "main/binary-amd64/Packages.xz": lzma.compress(packages, format=lzma.FORMAT_XZ),
        "main/binary-amd64/Packages.gz": gzip.compress(packages),
        "main/source/Sources.gz": gzip.compress(sources),
        "contrib/binary-amd64/Packages.gz": gzip.compress(b""),
    }
    release_text = build_release(index_files, components="main contrib")

    dists = f"{url}/dists/bookworm"
    served = {
        f"{dists}/InRelease": release_text.encode(),
        f"{dists}/main/binary-amd64/Packages.xz": index_files["main/binary-amd64/Packages.xz"],
        f"{dists}/main/binary-amd64/Packages.gz": index_files["main/binary-amd64/Packages.gz"],
        f"{dists}/main/source/Sources.gz": index_files["main/source/Sources.gz"],
        f"{url}/pool/main/h/hello/hello_2.10-3_amd64.deb": HELLO_DEB,
    }
    return FakeRepository(
        url=url,
        distribution="bookworm",
        release_text=release_text,
        transport=FakeTransport(served),
    )


@dataclass
class Signer:
    """A throwaway GnuPG key able to clearsign documents."""

    gpg: gnupg.GPG
    fingerprint: str

    def clearsign(self, text):
        result = self.gpg.sign(text, keyid=self.fingerprint, clearsign=True)
        assert result.data, result.stderr
        return result.data

    @property
    def public_armored(self):
        return self.gpg.export_keys(self.fingerprint).encode()

    @property
    def public_binary(self):
        return self.gpg.export_keys(self.fingerprint, armor=False)


def _make_signer(home, email):
    gpg = gnupg.GPG(gnupghome=str(home))
    key_input = gpg.gen_key_input(
        key_type="RSA",
        key_length=2048,
        name_real="aptmeta test",
        name_email=email,
        no_protection=True,
    )
    key = gpg.gen_key(key_input)
    assert key.fingerprint, key.stderr
    return Signer(gpg=gpg, fingerprint=key.fingerprint)


@pytest.fixture(scope="session")
def signer(tmp_path_factory):
    """Signing key of the test archive."""
    if shutil.which("gpg") is None:
        pytest.skip("gpg binary not available")
    return _make_signer(tmp_path_factory.mktemp("gnupg-archive"), "archive@example.test")


@pytest.fixture(scope="session")
def other_signer(tmp_path_factory):
    """A key nobody trusts."""
    if shutil.which("gpg") is None:
        pytest.skip("gpg binary not available")
    return _make_signer(tmp_path_factory.mktemp("gnupg-other"), "other@example.test")

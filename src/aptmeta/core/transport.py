from __future__ import annotations

"""
Transport and filesystem collaborators.

The metadata pipeline never talks to the network directly. It is handed a
``Transport`` that can fetch a URL and probe whether a URL exists, and a
``FileSystem`` that reads local key material. ``RequestsTransport`` is the
production implementation; tests inject in-memory fakes.
"""

import logging
import tempfile
from enum import Enum
from pathlib import Path

import requests
from pydantic import BaseModel, ConfigDict

from aptmeta.core.config import AuthConfig, DownloadConfig, ProxyConfig, SSLConfig
from aptmeta.errors import FileReadError, TransportError

logger = logging.getLogger(__name__)


class ProbeStatus(str, Enum):
    """Outcome of an existence probe."""

    EXISTS_WITH_TAG = "exists-with-tag"
    EXISTS_NO_TAG = "exists-no-tag"
    NOT_FOUND = "not-found"
    TRANSPORT_ERROR = "transport-error"


class ProbeResult(BaseModel):
    """Result of probing a URL for existence."""

    model_config = ConfigDict(frozen=True)

    status: ProbeStatus
    tag: str | None = None
    error: str | None = None

    @property
    def exists(self) -> bool:
        return self.status in (ProbeStatus.EXISTS_WITH_TAG, ProbeStatus.EXISTS_NO_TAG)

    @classmethod
    def found(cls, tag: str | None = None) -> ProbeResult:
        if tag:
            return cls(status=ProbeStatus.EXISTS_WITH_TAG, tag=tag)
        return cls(status=ProbeStatus.EXISTS_NO_TAG)

    @classmethod
    def not_found(cls) -> ProbeResult:
        return cls(status=ProbeStatus.NOT_FOUND)


class Transport:
    """Abstract byte transport."""

    def fetch(self, url: str) -> bytes:
        """Fetch the content of a URL.

        Args:
            url: Source URL

        Returns:
            Response body

        Raises:
            TransportError: On network errors or non-success status
        """
        raise NotImplementedError

    def probe(self, url: str) -> ProbeResult:
        """Check whether a URL exists without downloading it.

        Args:
            url: URL to check

        Returns:
            ProbeResult with status exists-with-tag, exists-no-tag or not-found

        Raises:
            TransportError: If the existence could not be determined
        """
        raise NotImplementedError


class FileSystem:
    """Abstract local file access."""

    def read(self, path: str) -> bytes:
        """Read a local file.

        Raises:
            FileReadError: If the file cannot be read
        """
        raise NotImplementedError


class LocalFileSystem(FileSystem):
    """FileSystem backed by the local disk."""

    def read(self, path: str) -> bytes:
        if path.startswith("file://"):
            path = path[len("file://") :]
        try:
            return Path(path).expanduser().read_bytes()
        except OSError as e:
            raise FileReadError(f"Reading {path} failed: {e}", path=path) from e


class RequestsTransport(Transport):
    """Transport using the requests library."""

    NOT_FOUND_STATUS = (404, 410)
    HEAD_UNSUPPORTED_STATUS = (405, 501)

    def __init__(
        self,
        download_config: DownloadConfig | None = None,
        proxy_config: ProxyConfig | None = None,
        ssl_config: SSLConfig | None = None,
        auth: AuthConfig | None = None,
    ):
        """Initialize requests transport.

        Args:
            download_config: Download configuration (timeout, retries)
            proxy_config: Optional proxy configuration
            ssl_config: Optional SSL/TLS configuration
            auth: Optional repository authentication
        """
        self.download_config = download_config or DownloadConfig()
        self.proxy_config = proxy_config
        self.ssl_config = ssl_config
        self.auth = auth
        self._temp_ca_file: str | None = None

        self.session = self._setup_session()

    def _setup_session(self) -> requests.Session:
        """Setup requests session with auth, SSL, and proxy configuration.

        Returns:
            Configured requests session
        """
        session = requests.Session()
        session.headers.update({"User-Agent": self.download_config.user_agent})

        if self.proxy_config:
            proxies = {}
            if self.proxy_config.http_proxy:
                proxies["http"] = self.proxy_config.http_proxy
            if self.proxy_config.https_proxy:
                proxies["https"] = self.proxy_config.https_proxy
            if self.proxy_config.no_proxy:
                proxies["no_proxy"] = self.proxy_config.no_proxy
            session.proxies.update(proxies)

            if self.proxy_config.username and self.proxy_config.password:
                session.auth = (self.proxy_config.username, self.proxy_config.password)

        if self.ssl_config:
            if not self.ssl_config.verify:
                logger.warning("TLS certificate verification is disabled")
                session.verify = False
            elif self.ssl_config.ca_cert:
                # Inline CA certificate - requests needs a file path
                ca_file = tempfile.NamedTemporaryFile(mode="w", suffix=".pem", delete=False)
                ca_file.write(self.ssl_config.ca_cert)
                ca_file.flush()
                ca_file.close()
                session.verify = ca_file.name
                self._temp_ca_file = ca_file.name
            elif self.ssl_config.ca_bundle:
                session.verify = self.ssl_config.ca_bundle

            if self.ssl_config.client_cert:
                if self.ssl_config.client_key:
                    session.cert = (self.ssl_config.client_cert, self.ssl_config.client_key)
                else:
                    session.cert = self.ssl_config.client_cert

        if self.auth:
            self._setup_auth(session, self.auth)

        return session

    def _setup_auth(self, session: requests.Session, auth: AuthConfig) -> None:
        """Setup authentication on session.

        Args:
            session: Requests session
            auth: Authentication configuration
        """
        if auth.type == "client_cert":
            if auth.cert_file and auth.key_file:
                session.cert = (auth.cert_file, auth.key_file)
                logger.debug("Using client certificate authentication")
        elif auth.type == "basic":
            if auth.username and auth.password:
                session.auth = (auth.username, auth.password)
                logger.debug(f"Using HTTP Basic authentication (user: {auth.username})")
        elif auth.type == "bearer":
            if auth.token:
                session.headers.update({"Authorization": f"Bearer {auth.token}"})
                logger.debug("Using Bearer token authentication")
        elif auth.type == "custom":
            if auth.headers:
                session.headers.update(auth.headers)
                logger.debug("Using custom HTTP headers")

    def fetch(self, url: str) -> bytes:
        """Fetch a URL with retries.

        Raises:
            TransportError: When the final attempt fails
        """
        attempts = self.download_config.retry_attempts + 1
        for attempt in range(attempts):
            try:
                response = self.session.get(url, timeout=self.download_config.timeout)
                response.raise_for_status()
                logger.debug(f"Fetched {url} ({len(response.content)} bytes)")
                return response.content
            except requests.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                # Client errors will not go away on retry
                if (status is not None and status < 500) or attempt == attempts - 1:
                    raise TransportError(
                        f"Download of {url} failed: {e}", url=url, status_code=status
                    ) from e
                logger.warning(f"Download of {url} failed (attempt {attempt + 1}/{attempts}): {e}")
            except requests.RequestException as e:
                if attempt == attempts - 1:
                    raise TransportError(f"Download of {url} failed: {e}", url=url) from e
                logger.warning(f"Download of {url} failed (attempt {attempt + 1}/{attempts}): {e}")

        raise TransportError(f"Download of {url} failed", url=url)

    def probe(self, url: str) -> ProbeResult:
        """Probe a URL with HEAD, falling back to a streamed GET."""
        try:
            response = self.session.head(
                url, timeout=self.download_config.timeout, allow_redirects=True
            )
            if response.status_code in self.HEAD_UNSUPPORTED_STATUS:
                response = self.session.get(url, timeout=self.download_config.timeout, stream=True)
                response.close()
        except requests.RequestException as e:
            raise TransportError(f"Probe of {url} failed: {e}", url=url) from e

        if response.status_code in self.NOT_FOUND_STATUS:
            return ProbeResult.not_found()
        if not response.ok:
            raise TransportError(
                f"Probe of {url} failed with status {response.status_code}",
                url=url,
                status_code=response.status_code,
            )
        return ProbeResult.found(response.headers.get("ETag"))

    def close(self) -> None:
        """Close the session and remove temporary files."""
        self.session.close()
        if self._temp_ca_file:
            Path(self._temp_ca_file).unlink(missing_ok=True)
            self._temp_ca_file = None

    def __enter__(self) -> RequestsTransport:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

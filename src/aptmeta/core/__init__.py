"""
Core functionality for aptmeta.

This package provides configuration management, the HTTP transport and
console output.
"""

from aptmeta.core.config import (
    AuthConfig,
    ConfigLoader,
    DownloadConfig,
    GlobalConfig,
    ProxyConfig,
    RepositoryConfig,
    SSLConfig,
    create_example_config,
    load_config,
)
from aptmeta.core.transport import (
    FileSystem,
    LocalFileSystem,
    ProbeResult,
    ProbeStatus,
    RequestsTransport,
    Transport,
)

__all__ = [
    "AuthConfig",
    "ConfigLoader",
    "DownloadConfig",
    "FileSystem",
    "GlobalConfig",
    "LocalFileSystem",
    "ProbeResult",
    "ProbeStatus",
    "ProxyConfig",
    "RepositoryConfig",
    "RequestsTransport",
    "SSLConfig",
    "Transport",
    "create_example_config",
    "load_config",
]

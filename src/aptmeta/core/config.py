"""
Configuration management for aptmeta.

This module provides Pydantic models for configuration validation and
YAML-based configuration loading with include support.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


class ProxyConfig(BaseModel):
    """HTTP proxy configuration."""

    http_proxy: Optional[str] = None
    https_proxy: Optional[str] = None
    no_proxy: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


class SSLConfig(BaseModel):
    """SSL/TLS configuration for HTTPS connections."""

    # Path to CA bundle file (PEM format)
    ca_bundle: Optional[str] = None

    # Inline CA certificates (PEM format, multiple certs separated by newlines)
    ca_cert: Optional[str] = None

    # Disable SSL verification (not recommended for production)
    verify: bool = True

    # Client certificate for mTLS
    client_cert: Optional[str] = None
    client_key: Optional[str] = None


class AuthConfig(BaseModel):
    """Repository authentication configuration."""

    type: str  # client_cert, basic, bearer, custom

    # Client certificate authentication
    cert_file: Optional[str] = None
    key_file: Optional[str] = None

    # HTTP Basic authentication
    username: Optional[str] = None
    password: Optional[str] = None

    # Bearer token authentication
    token: Optional[str] = None

    # Custom HTTP headers
    headers: Optional[Dict[str, str]] = None  # e.g., {"X-API-Key": "secret"}

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        """Validate authentication type."""
        valid_types = ["client_cert", "basic", "bearer", "custom"]
        if v not in valid_types:
            raise ValueError(f"Invalid auth type: {v}. Must be one of {valid_types}")
        return v


class DownloadConfig(BaseModel):
    """Download configuration for the HTTP transport."""

    parallel: int = 1  # Index pipelines run concurrently
    timeout: int = 60  # Request timeout in seconds
    retry_attempts: int = 2  # Number of retry attempts on transport failure
    user_agent: str = "aptmeta"

    @field_validator("parallel")
    @classmethod
    def validate_parallel(cls, v: int) -> int:
        """Validate parallel pipeline count."""
        if v < 1:
            raise ValueError("parallel must be at least 1")
        if v > 32:
            raise ValueError("parallel cannot exceed 32")
        return v

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        """Validate timeout value."""
        if v < 1:
            raise ValueError("timeout must be at least 1 second")
        return v

    @field_validator("retry_attempts")
    @classmethod
    def validate_retry_attempts(cls, v: int) -> int:
        """Validate retry attempts."""
        if v < 0:
            raise ValueError("retry_attempts cannot be negative")
        if v > 10:
            raise ValueError("retry_attempts cannot exceed 10")
        return v


class RepositoryConfig(BaseModel):
    """APT repository configuration.

    A repository is either a default repository (``distribution`` set,
    InRelease under ``dists/<distribution>/``) or a flat repository
    (``flat_path`` set, InRelease directly under that path).
    """

    id: str
    name: Optional[str] = None
    url: str  # repository root
    enabled: bool = True

    distribution: Optional[str] = None
    flat_path: Optional[str] = None

    # Signing key location (URL or local path); required unless verification is disabled
    key: Optional[str] = None
    no_signature_check: bool = False

    # Optional restrictions applied when fetching indices
    components: List[str] = Field(default_factory=list)
    architectures: List[str] = Field(default_factory=list)

    # Authentication
    auth: Optional[AuthConfig] = None

    # Per-repository proxy override (overrides global proxy config)
    proxy: Optional[ProxyConfig] = None

    # Per-repository SSL/TLS override (overrides global ssl config)
    ssl: Optional[SSLConfig] = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate repository URL scheme."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid repository URL: {v}. Must start with http:// or https://")
        return v

    @model_validator(mode="after")
    def validate_layout_and_key(self) -> "RepositoryConfig":
        """Validate that exactly one layout is configured and a key is given."""
        if bool(self.distribution) == bool(self.flat_path):
            raise ValueError(
                f"Repository '{self.id}': exactly one of 'distribution' or 'flat_path' must be set"
            )
        if not self.key and not self.no_signature_check:
            raise ValueError(
                f"Repository '{self.id}': 'key' is required unless 'no_signature_check' is true"
            )
        if self.key and self.no_signature_check:
            raise ValueError(
                f"Repository '{self.id}': 'key' and 'no_signature_check' are mutually exclusive"
            )
        return self

    @property
    def display_name(self) -> str:
        """Get display name (use name if set, otherwise id)."""
        return self.name or self.id


class GlobalConfig(BaseModel):
    """Global aptmeta configuration."""

    proxy: Optional[ProxyConfig] = None
    ssl: Optional[SSLConfig] = None
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    repositories: List[RepositoryConfig] = Field(default_factory=list)

    # Include pattern for additional config files
    include: Optional[str] = None

    @model_validator(mode="after")
    def validate_unique_ids(self) -> "GlobalConfig":
        """Reject duplicate repository ids."""
        seen = set()
        for repo in self.repositories:
            if repo.id in seen:
                raise ValueError(f"Duplicate repository id: {repo.id}")
            seen.add(repo.id)
        return self

    def get_repository(self, repo_id: str) -> Optional[RepositoryConfig]:
        """Get repository configuration by ID."""
        for repo in self.repositories:
            if repo.id == repo_id:
                return repo
        return None

    def get_enabled_repositories(self) -> List[RepositoryConfig]:
        """Get all enabled repositories."""
        return [repo for repo in self.repositories if repo.enabled]


class ConfigLoader:
    """Configuration file loader with include support."""

    def __init__(self, config_path: Path):
        """Initialize config loader.

        Args:
            config_path: Path to main configuration file
        """
        self.config_path = config_path

    def load(self) -> GlobalConfig:
        """Load configuration from YAML file.

        Returns:
            GlobalConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        # Load main config file
        try:
            with open(self.config_path) as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"YAML syntax error in {self.config_path}:\n{e}")

        # Handle includes
        if "include" in config_data:
            included_repos = self._load_includes(config_data["include"])
            if "repositories" not in config_data:
                config_data["repositories"] = []
            config_data["repositories"].extend(included_repos)

        # Validate and create GlobalConfig
        try:
            return GlobalConfig(**config_data)
        except Exception as e:
            raise ValueError(f"Configuration validation error in {self.config_path}:\n{e}")

    def _load_includes(self, include_pattern: str) -> List[Dict[str, Any]]:
        """Load repositories from included configuration files.

        Args:
            include_pattern: Glob pattern for include files (e.g., "conf.d/*.yaml")

        Returns:
            Repository definitions from included files
        """
        # Resolve pattern relative to main config directory
        config_dir = self.config_path.parent

        if "*" in include_pattern:
            # It's a glob pattern
            pattern_parts = Path(include_pattern).parts
            if len(pattern_parts) > 1:
                search_dir = config_dir / Path(*pattern_parts[:-1])
                pattern = pattern_parts[-1]
            else:
                search_dir = config_dir
                pattern = include_pattern

            config_files = sorted(search_dir.glob(pattern)) if search_dir.exists() else []
        else:
            # Single file
            include_path = config_dir / include_pattern
            config_files = [include_path] if include_path.exists() else []

        all_repos = []
        for config_file in config_files:
            if config_file.suffix in [".yaml", ".yml"]:
                try:
                    with open(config_file) as f:
                        data = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ValueError(f"YAML syntax error in {config_file}:\n{e}")
                all_repos.extend(data.get("repositories", []))

        return all_repos


def load_config(config_path: Optional[Path] = None) -> GlobalConfig:
    """Load configuration from file.

    Priority:
    1. Explicit config_path parameter (--config CLI flag)
    2. APTMETA_CONFIG environment variable
    3. Default locations (/etc/aptmeta/config.yaml, ~/.config/aptmeta/config.yaml, ./config.yaml)

    Args:
        config_path: Path to config file. If None, tries APTMETA_CONFIG env or default locations.

    Returns:
        GlobalConfig instance

    Raises:
        FileNotFoundError: If an explicitly requested config file is missing
    """
    import os

    default_paths = [
        Path("/etc/aptmeta/config.yaml"),
        Path.home() / ".config" / "aptmeta" / "config.yaml",
        Path("config.yaml"),
    ]

    if config_path:
        paths_to_try = [config_path]
    elif os.environ.get("APTMETA_CONFIG"):
        paths_to_try = [Path(os.environ["APTMETA_CONFIG"])]
    else:
        paths_to_try = default_paths

    for path in paths_to_try:
        if path.exists():
            return ConfigLoader(path).load()

    if config_path:
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    elif os.environ.get("APTMETA_CONFIG"):
        raise FileNotFoundError(
            f"Configuration file not found: {os.environ['APTMETA_CONFIG']} (from APTMETA_CONFIG)"
        )
    else:
        # Return default config if no file found
        return GlobalConfig()


def create_example_config(output_path: Path) -> None:
    """Create an example configuration file.

    Args:
        output_path: Path to write example config
    """
    example_config = {
        "download": {
            "parallel": 4,
            "timeout": 60,
            "retry_attempts": 2,
        },
        "proxy": {
            "http_proxy": "http://proxy.example.com:8080",
            "https_proxy": "http://proxy.example.com:8080",
            "no_proxy": "localhost,127.0.0.1",
        },
        "repositories": [
            {
                "id": "ubuntu-jammy",
                "name": "Ubuntu 22.04 (Jammy)",
                "url": "http://archive.ubuntu.com/ubuntu",
                "distribution": "jammy",
                "key": "/etc/apt/trusted.gpg.d/ubuntu-keyring-2018-archive.gpg",
                "components": ["main"],
                "architectures": ["amd64"],
            },
            {
                "id": "obs-flat",
                "url": "https://download.opensuse.org/repositories/home:/example/xUbuntu_22.04",
                "flat_path": "./",
                "key": "https://download.opensuse.org/repositories/home:/example/xUbuntu_22.04/Release.key",
            },
        ],
        "include": "conf.d/*.yaml",
    }

    with open(output_path, "w") as f:
        yaml.dump(example_config, f, default_flow_style=False, sort_keys=False)

"""Tests for configuration management."""

import tempfile
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from aptmeta.core.config import (
    AuthConfig,
    ConfigLoader,
    DownloadConfig,
    GlobalConfig,
    RepositoryConfig,
    create_example_config,
    load_config,
)


def make_repo(**kwargs):
    values = {
        "id": "test-repo",
        "url": "https://deb.example.com/debian",
        "distribution": "bookworm",
        "key": "/etc/apt/keyrings/test.gpg",
    }
    values.update(kwargs)
    return RepositoryConfig(**values)


def test_download_config_defaults():
    """Test download config with defaults."""
    config = DownloadConfig()
    assert config.parallel == 1
    assert config.timeout == 60
    assert config.retry_attempts == 2
    assert config.user_agent == "aptmeta"


def test_download_config_validation():
    """Test download limits."""
    with pytest.raises(ValueError, match="parallel must be at least 1"):
        DownloadConfig(parallel=0)
    with pytest.raises(ValueError, match="parallel cannot exceed 32"):
        DownloadConfig(parallel=33)
    with pytest.raises(ValueError, match="timeout must be at least 1 second"):
        DownloadConfig(timeout=0)
    with pytest.raises(ValueError, match="retry_attempts cannot be negative"):
        DownloadConfig(retry_attempts=-1)


def test_repository_config_default_layout():
    """Test a default repository configuration."""
    config = make_repo()
    assert config.distribution == "bookworm"
    assert config.flat_path is None
    assert config.enabled is True
    assert config.components == []


def test_repository_config_flat_layout():
    """Test a flat repository configuration."""
    config = make_repo(distribution=None, flat_path="./")
    assert config.flat_path == "./"


def test_repository_config_layout_validation():
    """Test that exactly one layout must be configured."""
    with pytest.raises(ValidationError, match="exactly one of 'distribution' or 'flat_path'"):
        make_repo(flat_path="./")
    with pytest.raises(ValidationError, match="exactly one of 'distribution' or 'flat_path'"):
        make_repo(distribution=None)


def test_repository_config_key_validation():
    """Test signing key requirements."""
    config = make_repo(key=None, no_signature_check=True)
    assert config.no_signature_check is True

    with pytest.raises(ValidationError, match="'key' is required"):
        make_repo(key=None)
    with pytest.raises(ValidationError, match="mutually exclusive"):
        make_repo(no_signature_check=True)


def test_repository_config_url_validation():
    """Test that only HTTP(S) repositories are accepted."""
    with pytest.raises(ValidationError, match="Invalid repository URL"):
        make_repo(url="ftp://deb.example.com/debian")


def test_repository_config_display_name():
    """Test repository display name."""
    assert make_repo(name="Debian Bookworm").display_name == "Debian Bookworm"
    assert make_repo().display_name == "test-repo"


def test_global_config_defaults():
    """Test global config with defaults."""
    config = GlobalConfig()
    assert config.repositories == []
    assert config.proxy is None
    assert config.download.parallel == 1


def test_global_config_get_repository():
    """Test getting repository by ID."""
    config = GlobalConfig(repositories=[make_repo(id="repo1"), make_repo(id="repo2")])

    assert config.get_repository("repo1").id == "repo1"
    assert config.get_repository("repo2").id == "repo2"
    assert config.get_repository("nonexistent") is None


def test_global_config_get_enabled_repositories():
    """Test getting only enabled repositories."""
    config = GlobalConfig(
        repositories=[
            make_repo(id="repo1"),
            make_repo(id="repo2", enabled=False),
            make_repo(id="repo3"),
        ]
    )

    enabled = config.get_enabled_repositories()
    assert [r.id for r in enabled] == ["repo1", "repo3"]


def test_global_config_duplicate_ids():
    """Test that repository ids must be unique."""
    with pytest.raises(ValidationError, match="Duplicate repository id"):
        GlobalConfig(repositories=[make_repo(), make_repo()])


def test_config_loader_basic():
    """Test basic configuration loading."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "config.yaml"

        config_yaml = """
download:
  parallel: 4
  timeout: 30

repositories:
  - id: debian
    url: http://deb.debian.org/debian
    distribution: bookworm
    key: /usr/share/keyrings/debian-archive-keyring.gpg
    components: [main, contrib]
    architectures: [amd64]
"""
        config_path.write_text(config_yaml)

        loader = ConfigLoader(config_path)
        config = loader.load()

        assert config.download.parallel == 4
        assert config.download.timeout == 30
        assert len(config.repositories) == 1
        assert config.repositories[0].components == ["main", "contrib"]


def test_config_loader_with_includes():
    """Test configuration loading with includes."""
    with tempfile.TemporaryDirectory() as tmpdir:
        tmpdir = Path(tmpdir)
        config_path = tmpdir / "config.yaml"
        conf_d = tmpdir / "conf.d"
        conf_d.mkdir()

        config_yaml = """
repositories:
  - id: main-repo
    url: https://example.com/main
    distribution: stable
    no_signature_check: true

include: conf.d/*.yaml
"""
        config_path.write_text(config_yaml)

        included_yaml = """
repositories:
  - id: included-repo-1
    url: https://example.com/included1
    flat_path: ./
    key: https://example.com/included1/Release.key
  - id: included-repo-2
    url: https://example.com/included2
    distribution: jammy
    no_signature_check: true
    enabled: false
"""
        (conf_d / "repos.yaml").write_text(included_yaml)
        (conf_d / "notes.txt").write_text("ignored")

        config = ConfigLoader(config_path).load()

        assert [r.id for r in config.repositories] == [
            "main-repo",
            "included-repo-1",
            "included-repo-2",
        ]


def test_config_loader_invalid_yaml(tmp_path):
    """Test that YAML syntax errors become ValueError."""
    config_path = tmp_path / "config.yaml"
    config_path.write_text("repositories: [unclosed\n")

    with pytest.raises(ValueError, match="YAML syntax error"):
        ConfigLoader(config_path).load()


def test_config_loader_invalid_repository(tmp_path):
    """Test that validation errors become ValueError."""
    config_path = tmp_path / "config.yaml"
    config_path.write_text("repositories:\n  - id: broken\n    url: https://example.com\n")

    with pytest.raises(ValueError, match="Configuration validation error"):
        ConfigLoader(config_path).load()


def test_config_loader_file_not_found():
    """Test loading non-existent config file."""
    loader = ConfigLoader(Path("/non/existent/config.yaml"))

    with pytest.raises(FileNotFoundError):
        loader.load()


def test_load_config_default_paths(tmp_path, monkeypatch):
    """Test load_config with default path fallback."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("APTMETA_CONFIG", raising=False)

    config = load_config(config_path=None)

    assert isinstance(config, GlobalConfig)
    assert config.repositories == []


def test_load_config_from_environment(tmp_path, monkeypatch):
    """Test that APTMETA_CONFIG selects the configuration file."""
    config_path = tmp_path / "custom.yaml"
    config_path.write_text("download:\n  retry_attempts: 5\n")
    monkeypatch.setenv("APTMETA_CONFIG", str(config_path))

    assert load_config().download.retry_attempts == 5

    monkeypatch.setenv("APTMETA_CONFIG", str(tmp_path / "missing.yaml"))
    with pytest.raises(FileNotFoundError, match="APTMETA_CONFIG"):
        load_config()


def test_create_example_config(tmp_path):
    """Test that the example configuration is valid."""
    output = tmp_path / "config.yaml"
    create_example_config(output)

    data = yaml.safe_load(output.read_text())
    data.pop("include")
    config = GlobalConfig(**data)

    assert config.get_repository("ubuntu-jammy").distribution == "jammy"
    assert config.get_repository("obs-flat").flat_path == "./"


def test_auth_config():
    """Test authentication configuration."""
    auth = AuthConfig(type="client_cert", cert_file="/etc/ssl/client.pem", key_file="/etc/ssl/client.key")
    assert auth.cert_file == "/etc/ssl/client.pem"

    auth = AuthConfig(type="basic", username="user", password="pass")
    assert auth.username == "user"
    assert auth.password == "pass"

    auth = AuthConfig(type="bearer", token="abc123")
    assert auth.token == "abc123"

    with pytest.raises(ValueError, match="Invalid auth type"):
        AuthConfig(type="kerberos")

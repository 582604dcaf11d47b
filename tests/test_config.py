import os
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from pydantic import ValidationError
from dockerfile_build.config import (
    ConfigLoader,
    ProjectConfig,
    RegistryConfig,
    expand_env_vars,
    get_registry_auth_for,
    load_config,
    registry_host,
)


class TestExpandEnvVars:
    def test_no_env_vars(self):
        """Literal string returned unchanged."""
        assert expand_env_vars("my-registry.com:5000") == "my-registry.com:5000"

    def test_single_env_var(self):
        """Single ${VAR} is expanded."""
        with patch.dict(os.environ, {"REGISTRY_URL": "prod.example.com:5000"}):
            assert expand_env_vars("${REGISTRY_URL}") == "prod.example.com:5000"

    def test_mixed_content(self):
        with patch.dict(os.environ, {"VERSION": "1.2.0"}):
            assert expand_env_vars("${VERSION}-SNAPSHOT") == "1.2.0-SNAPSHOT"

    def test_missing_env_var_returns_none(self):
        """Missing env var returns None."""
        with patch.dict(os.environ, {}, clear=True):
            assert expand_env_vars("${MISSING_VAR}") is None

    def test_empty_string(self):
        """Empty string returned unchanged."""
        assert expand_env_vars("") == ""

    def test_none_input(self):
        """None input returns None."""
        assert expand_env_vars(None) is None


def test_defaults():
    """Test ProjectConfig has sensible defaults"""
    config = ProjectConfig()
    assert config.tag == "latest"
    assert config.repository is None
    assert config.context == Path(".")
    assert config.build_dir == Path("target")
    assert config.goals.build.pull_newer_image is True
    assert config.goals.build.no_cache is False
    assert config.goals.rmi.prune is True
    assert config.goals.push.push_alternative_tag is True


def test_empty_tag_rejected():
    with pytest.raises(ValidationError):
        ProjectConfig(tag="")


def test_load_full_config(tmp_path):
    config_file = tmp_path / ".dockerfile-build.yml"
    config_file.write_text("""
context: docker
repository: spotify/foo
tag: "1.0.0"
version: "1.0.0"
snapshot_tag: dev
release_as_latest: true
build_dir: build
goals:
  build:
    pull_newer_image: false
    no_cache: true
    args:
      JAR_FILE: foo-1.0.0.jar
  rmi:
    force: true
    prune: false
registries:
  - url: registry.example.com
    username: deployer
    password: oc
""")

    config = ConfigLoader.load(config_file)
    assert config.context == Path("docker")
    assert config.repository == "spotify/foo"
    assert config.tag == "1.0.0"
    assert config.version == "1.0.0"
    assert config.snapshot_tag == "dev"
    assert config.release_as_latest is True
    assert config.build_dir == Path("build")
    assert config.goals.build.pull_newer_image is False
    assert config.goals.build.no_cache is True
    assert config.goals.build.args == {"JAR_FILE": "foo-1.0.0.jar"}
    assert config.goals.rmi.force is True
    assert config.goals.rmi.prune is False
    assert config.registries[0].password == "oc"


def test_env_vars_in_config(tmp_path):
    config_file = tmp_path / ".dockerfile-build.yml"
    config_file.write_text("""
version: "${PROJECT_VERSION}"
snapshot_tag: "${SNAPSHOT_TAG}"
registries:
  - url: "${REGISTRY}"
    username: "${REGISTRY_USER}"
    password: "${REGISTRY_PASSWORD}"
""")

    env = {"PROJECT_VERSION": "2.0.0-SNAPSHOT", "REGISTRY": "ghcr.io", "REGISTRY_USER": "bot", "REGISTRY_PASSWORD": "secret"}
    with patch.dict(os.environ, env, clear=True):
        config = ConfigLoader.load(config_file)

    assert config.version == "2.0.0-SNAPSHOT"
    # Undefined variable disables the substitution instead of failing
    assert config.snapshot_tag is None
    assert config.registries[0].url == "ghcr.io"
    assert config.registries[0].get_auth() == ("bot", "secret")


def test_load_config_without_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert load_config() == ProjectConfig()


def test_load_config_from_cwd(tmp_path, monkeypatch):
    (tmp_path / ".dockerfile-build.yml").write_text("repository: spotify/foo\n")
    monkeypatch.chdir(tmp_path)
    assert load_config().repository == "spotify/foo"


def test_load_config_explicit_path_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yml")


class TestRegistryAuth:
    def test_plain_credentials(self):
        assert RegistryConfig(url="ghcr.io", username="u", password="p").get_auth() == ("u", "p")

    def test_incomplete_credentials(self):
        assert RegistryConfig(url="ghcr.io", username="u").get_auth() is None

    def test_oc_keyword_uses_token(self):
        discoverer = MagicMock()
        discoverer.has_capability.return_value = True
        discoverer.get_authentication_token.return_value = "sha256~token"

        auth = RegistryConfig(url="registry.apps.example.com", username="deployer", password="oc").get_auth(discoverer)

        assert auth == ("deployer", "sha256~token")
        discoverer.get_authentication_username.assert_not_called()

    def test_oc_keyword_defaults_username(self):
        discoverer = MagicMock()
        discoverer.has_capability.return_value = True
        discoverer.get_authentication_token.return_value = "sha256~token"
        discoverer.get_authentication_username.return_value = "kube:admin"

        auth = RegistryConfig(url="registry.apps.example.com", password="oc").get_auth(discoverer)

        assert auth == ("kube:admin", "sha256~token")

    def test_oc_keyword_without_oc(self):
        discoverer = MagicMock()
        discoverer.has_capability.return_value = False

        assert RegistryConfig(url="r", username="u", password="oc").get_auth(discoverer) is None
        discoverer.get_authentication_token.assert_not_called()

    def test_oc_keyword_token_unavailable(self):
        discoverer = MagicMock()
        discoverer.has_capability.return_value = True
        discoverer.get_authentication_token.return_value = None

        assert RegistryConfig(url="r", username="u", password="oc").get_auth(discoverer) is None


class TestRegistryMatching:
    def test_registry_host(self):
        assert registry_host("ghcr.io/org/foo") == "ghcr.io"
        assert registry_host("localhost:5000/foo") == "localhost:5000"
        assert registry_host("spotify/foo") == "docker.io"
        assert registry_host("foo") == "docker.io"

    def test_match_by_prefix(self):
        config = ProjectConfig(registries=[
            RegistryConfig(url="quay.io", username="a", password="1"),
            RegistryConfig(url="ghcr.io/org", username="b", password="2"),
        ])
        assert get_registry_auth_for(config, "ghcr.io/org/foo") == ("b", "2")

    def test_match_docker_hub(self):
        config = ProjectConfig(registries=[RegistryConfig(url="docker.io", username="a", password="1")])
        assert get_registry_auth_for(config, "spotify/foo") == ("a", "1")

    def test_no_match(self):
        config = ProjectConfig(registries=[RegistryConfig(url="quay.io", username="a", password="1")])
        assert get_registry_auth_for(config, "ghcr.io/org/foo") is None

    def test_unresolved_url_skipped(self):
        with patch.dict(os.environ, {}, clear=True):
            config = ProjectConfig(registries=[RegistryConfig(url="${MISSING}", username="a", password="1")])
        assert get_registry_auth_for(config, "ghcr.io/org/foo") is None


class TestSnapshotTagOverride:
    def test_empty_snapshot_tag_is_absent(self):
        assert ProjectConfig(snapshot_tag="").snapshot_tag is None

    def test_unset_variable_is_absent(self):
        with patch.dict(os.environ, {}, clear=True):
            assert ProjectConfig(snapshot_tag="${SNAPSHOT_TAG}").snapshot_tag is None

    def test_variable_set_to_empty_is_absent(self):
        with patch.dict(os.environ, {"SNAPSHOT_TAG": ""}, clear=True):
            assert ProjectConfig(snapshot_tag="${SNAPSHOT_TAG}").snapshot_tag is None

    def test_expanded(self):
        with patch.dict(os.environ, {"BRANCH": "main"}):
            assert ProjectConfig(snapshot_tag="${BRANCH}-dev").snapshot_tag == "main-dev"


def test_multiple_env_vars():
    with patch.dict(os.environ, {"USER": "bot", "PASS": "secret"}):
        assert expand_env_vars("${USER}:${PASS}") == "bot:secret"


def test_env_var_value_not_expanded_again():
    with patch.dict(os.environ, {"A": "${B}", "B": "nested"}):
        assert expand_env_vars("${A}") == "${B}"

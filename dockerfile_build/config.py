"""Configuration loading from .dockerfile-build.yml."""

import os
import re
from pathlib import Path

from pydantic import BaseModel, field_validator
from pydantic_yaml import parse_yaml_file_as

from dockerfile_build.kubernetes import CredentialDiscoverer, OPENSHIFT_CLI_PASSWORD_KEYWORD, get_discoverer

CONFIG_FILE = ".dockerfile-build.yml"
DEFAULT_TAG = "latest"
DEFAULT_BUILD_DIR = "target"
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def expand_env_vars(value: str | None) -> str | None:
    """Expand ${VAR} references (e.g., '${VERSION}-SNAPSHOT') from the environment.

    Returns None if any referenced variable is unset, so an override that
    points at an unset variable reads as absent instead of as literal text.
    """
    if not value:
        return value

    if any(name not in os.environ for name in ENV_VAR_PATTERN.findall(value)):
        return None
    return ENV_VAR_PATTERN.sub(lambda match: os.environ[match.group(1)], value)


class RegistryConfig(BaseModel):
    """Credentials for a single registry"""
    url: str | None = None
    username: str | None = None
    password: str | None = None

    @field_validator("url", "username", "password", mode="before")
    @classmethod
    def _expand(cls, value):
        return expand_env_vars(value) if isinstance(value, str) else value

    def get_auth(self, discoverer: CredentialDiscoverer | None = None) -> tuple[str, str] | None:
        """Get (username, password) if both can be determined, None otherwise.

        A password of 'oc' is replaced by the token of the current oc login,
        and a missing username then defaults to the oc user.
        """
        username = self.username
        password = self.password

        if password == OPENSHIFT_CLI_PASSWORD_KEYWORD:
            discoverer = discoverer or get_discoverer()
            if not discoverer.has_capability():
                return None
            password = discoverer.get_authentication_token()
            if not username:
                username = discoverer.get_authentication_username()

        if not username or not password:
            return None
        return (username, password)


class BuildGoalConfig(BaseModel):
    """Options of the build goal"""
    skip: bool = False
    pull_newer_image: bool = True
    no_cache: bool = False
    args: dict[str, str] = {}


class TagGoalConfig(BaseModel):
    """Options of the tag goal"""
    skip: bool = False
    force: bool = False


class PushGoalConfig(BaseModel):
    """Options of the push goal"""
    skip: bool = False
    push_alternative_tag: bool = True


class RemoveGoalConfig(BaseModel):
    """Options of the rmi goal"""
    skip: bool = False
    force: bool = False
    prune: bool = True


class GoalsConfig(BaseModel):
    build: BuildGoalConfig = BuildGoalConfig()
    tag: TagGoalConfig = TagGoalConfig()
    push: PushGoalConfig = PushGoalConfig()
    rmi: RemoveGoalConfig = RemoveGoalConfig()


class ProjectConfig(BaseModel):
    """Root configuration from .dockerfile-build.yml"""
    context: Path = Path(".")
    repository: str | None = None
    tag: str = DEFAULT_TAG
    version: str | None = None
    snapshot_tag: str | None = None
    release_as_latest: bool = False
    verbose: bool = False
    build_dir: Path = Path(DEFAULT_BUILD_DIR)
    goals: GoalsConfig = GoalsConfig()
    registries: list[RegistryConfig] = []

    @field_validator("version", mode="before")
    @classmethod
    def _expand(cls, value):
        return expand_env_vars(value) if isinstance(value, str) else value

    @field_validator("snapshot_tag", mode="before")
    @classmethod
    def _expand_snapshot_tag(cls, value):
        # Empty or unset means the snapshot tag is never substituted
        if isinstance(value, str):
            return expand_env_vars(value) or None
        return value

    @field_validator("tag")
    @classmethod
    def _tag_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("tag must not be empty")
        return value


class ConfigLoader:
    """Loads and validates .dockerfile-build.yml files"""

    @staticmethod
    def load(path: Path) -> ProjectConfig:
        """Load and validate a config file"""
        return parse_yaml_file_as(ProjectConfig, path)


def load_config(path: Path | None = None) -> ProjectConfig:
    """Load the project config, defaults if no config file exists.

    Args:
        path: Explicit config file; defaults to .dockerfile-build.yml in the
            current directory, which may be absent

    Raises:
        FileNotFoundError: If an explicit path does not exist
    """
    if path is not None:
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        return ConfigLoader.load(path)

    default_path = Path.cwd() / CONFIG_FILE
    if not default_path.exists():
        return ProjectConfig()

    return ConfigLoader.load(default_path)


def registry_host(image_ref: str) -> str:
    """Get the registry host of an image reference ('docker.io' for Docker Hub images)."""
    first = image_ref.split("/")[0]
    if "/" in image_ref and ("." in first or ":" in first or first == "localhost"):
        return first
    return "docker.io"


def get_registry_auth_for(
    config: ProjectConfig,
    image_ref: str,
    discoverer: CredentialDiscoverer | None = None,
) -> tuple[str, str] | None:
    """Get authentication credentials for the registry of an image reference.

    Matches by URL prefix (e.g., 'ghcr.io' matches 'ghcr.io/myorg/myimage')
    or by registry host.

    Returns:
        (username, password) tuple if found, None otherwise
    """
    host = registry_host(image_ref)
    for reg in config.registries:
        if not reg.url:
            continue
        if image_ref.startswith(reg.url) or reg.url.split("/")[0] == host:
            return reg.get_auth(discoverer)

    return None

"""Build options passed to the Docker daemon's /build endpoint."""

import json
from dataclasses import dataclass
from typing import Mapping, Union
from urllib.parse import quote

# Query parameter carrying the encoded build arguments
BUILD_ARGS_KEY = "buildargs"


class BuildArgsEncodingError(Exception):
    """Raised when build arguments cannot be encoded for the daemon."""
    pass


@dataclass(frozen=True)
class PullNewerImage:
    """Always attempt to pull a newer version of the base image"""

    def as_param(self) -> tuple[str, str]:
        return ("pull", "1")


@dataclass(frozen=True)
class NoCache:
    """Do not use the build cache"""

    def as_param(self) -> tuple[str, str]:
        return ("nocache", "1")


@dataclass(frozen=True)
class BuildArgs:
    """Build-time variables, already JSON-serialized and percent-encoded"""
    payload: str

    def as_param(self) -> tuple[str, str]:
        return (BUILD_ARGS_KEY, self.payload)


BuildOption = Union[PullNewerImage, NoCache, BuildArgs]


def encode_build_args(build_args: Mapping[str, str]) -> str:
    """Serialize build arguments to JSON and percent-encode them as UTF-8.

    Raises:
        BuildArgsEncodingError: If the arguments cannot be represented in UTF-8
    """
    try:
        serialized = json.dumps(dict(build_args), ensure_ascii=False)
        return quote(serialized, safe="", encoding="utf-8", errors="strict")
    except (UnicodeEncodeError, TypeError, ValueError) as e:
        raise BuildArgsEncodingError(f"Could not encode build arguments: {e}") from e


def build_parameters(
    pull_newer_image: bool = False,
    no_cache: bool = False,
    build_args: Mapping[str, str] | None = None,
) -> list[BuildOption]:
    """Assemble the ordered build options for a build.

    Args:
        pull_newer_image: Pull a newer base image before building
        no_cache: Disable the build cache
        build_args: Build-time variables (omitted from the options when empty)

    Returns:
        Options in the order pull, no-cache, build args
    """
    options: list[BuildOption] = []
    if pull_newer_image:
        options.append(PullNewerImage())
    if no_cache:
        options.append(NoCache())
    if build_args:
        options.append(BuildArgs(encode_build_args(build_args)))
    return options

"""Access to the Docker daemon for build, tag, push and rmi."""

import os
from pathlib import Path
from typing import Any, Callable, Sequence

import docker
from docker.utils import tar

from dockerfile_build.parameters import BuildOption

ProgressHandler = Callable[[dict[str, Any]], None]


def get_docker_client() -> docker.APIClient:
    """Get a low-level Docker client for the host daemon."""
    return docker.from_env().api


def build_query(name: str | None, options: Sequence[BuildOption]) -> str:
    """Serialize the image name and build options into a /build query string.

    Option values are expected to be URL-safe already (build args arrive
    percent-encoded), so they are joined without further quoting.
    """
    params = [("rm", "1")]
    if name:
        params.append(("t", name))
    params.extend(option.as_param() for option in options)
    return "&".join(f"{key}={value}" for key, value in params)


def read_dockerignore(context_directory: Path) -> list[str] | None:
    """Read exclude patterns from .dockerignore, None if there is none."""
    dockerignore = context_directory / ".dockerignore"
    if not dockerignore.exists():
        return None
    lines = [line.strip() for line in dockerignore.read_text().splitlines()]
    return [line for line in lines if line and not line.startswith("#")]


class DockerEngine:
    """Thin wrapper around docker-py's APIClient used by the goals.

    Errors from docker-py and requests propagate unchanged; the goals decide
    how to report them.
    """

    def __init__(self, client: docker.APIClient | None = None):
        self._client = client

    @property
    def api(self) -> docker.APIClient:
        # Connect lazily so goals that don't talk to the daemon never need one
        if self._client is None:
            self._client = get_docker_client()
        return self._client

    def build(
        self,
        context_directory: Path,
        name: str | None,
        handler: ProgressHandler,
        options: Sequence[BuildOption],
    ) -> None:
        """Build an image, passing every progress message to handler."""
        api = self.api
        context = tar(os.fspath(context_directory), exclude=read_dockerignore(context_directory), gzip=False)
        response = None
        try:
            # APIClient.build() re-encodes buildargs, so the request is sent
            # through its private helpers. Pinned to docker>=7.1 in pyproject.
            url = f"{api._url('/build')}?{build_query(name, options)}"
            response = api._post(
                url,
                data=context,
                headers={"Content-Type": "application/tar"},
                stream=True,
                timeout=None,
            )
            api._raise_for_status(response)
            for message in api._stream_helper(response, decode=True):
                handler(message)
        finally:
            if response is not None:
                response.close()
            context.close()

    def tag(self, image: str, repository: str, tag: str, force: bool = False) -> bool:
        """Tag an existing image as repository:tag."""
        return self.api.tag(image, repository, tag=tag, force=force)

    def push(
        self,
        repository: str,
        tag: str,
        handler: ProgressHandler,
        auth_config: dict[str, str] | None = None,
    ) -> None:
        """Push repository:tag, passing every progress message to handler."""
        for message in self.api.push(repository, tag=tag, stream=True, decode=True, auth_config=auth_config):
            handler(message)

    def remove_image(self, image: str, force: bool = False, prune: bool = True) -> None:
        """Remove an image, optionally keeping its untagged parents."""
        self.api.remove_image(image, force=force, noprune=not prune)

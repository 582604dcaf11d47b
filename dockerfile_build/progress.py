"""Interpretation of the progress stream emitted by docker build and push."""

import logging
import re
from typing import Any, Iterable

logger = logging.getLogger(__name__)

# "Successfully built 2b5c2b3a8f5e" (classic builder, last line of a build)
IMAGE_ID_PATTERN = re.compile(r"Successfully built ([0-9a-fA-F]+)")

# "Digest: sha256:..." (pull) or "1.0: digest: sha256:... size: 528" (push)
DIGEST_PATTERN = re.compile(r"\b[Dd]igest: ([a-z0-9]+:[0-9a-fA-F]+)")

# Intermediate container chatter only shown in verbose mode
NOISE_PREFIXES = (
    "---> Running in",
    "Removing intermediate container",
)


class BuildStreamError(Exception):
    """Raised when the daemon reports an error in the progress stream."""
    pass


class ProgressStreamInterpreter:
    """Logs progress messages and extracts the built image id and digest.

    Instances are callables meant to be used as the sink of a build or push,
    invoked once per decoded message in arrival order. Later id/digest
    matches overwrite earlier ones, so a multi-stage build reports the image
    of its final stage.
    """

    def __init__(self, verbose: bool = False, log: logging.Logger | None = None):
        self.verbose = verbose
        self.log = log or logger
        self.image_id: str | None = None
        self.image_digest: str | None = None
        # Last status seen per layer id, used to collapse progress updates
        self._layer_status: dict[str, str] = {}

    def __call__(self, message: dict[str, Any] | str) -> None:
        self.handle(message)

    def consume(self, messages: Iterable[dict[str, Any] | str]) -> "ProgressStreamInterpreter":
        """Handle every message of a stream. Returns self for chaining."""
        for message in messages:
            self.handle(message)
        return self

    def handle(self, message: dict[str, Any] | str) -> None:
        """Handle a single progress message."""
        if isinstance(message, str):
            message = {"stream": message}

        if message.get("error") or message.get("errorDetail"):
            self._handle_error(message)
        elif message.get("progressDetail"):
            self._handle_progress(message)
        elif message.get("status") is not None or message.get("stream") is not None:
            self._handle_generic(message)

        self._extract(message)

    def _handle_error(self, message: dict[str, Any]) -> None:
        error = message.get("error")
        if not error:
            error = (message.get("errorDetail") or {}).get("message", "unknown error")
        self.log.error(str(error).strip())
        raise BuildStreamError(str(error).strip())

    def _handle_progress(self, message: dict[str, Any]) -> None:
        layer = message.get("id", "")
        status = message.get("status", "")

        if self.verbose:
            progress = message.get("progress")
            if progress:
                self.log.info(f"{layer}: {status} {progress}")
            else:
                self.log.info(f"{layer}: {status}")
            return

        if self._layer_status.get(layer) != status:
            self._layer_status[layer] = status
            self.log.info(f"{layer}: {status}")
        else:
            self.log.debug(f"{layer}: {status} {message.get('progress', '')}".rstrip())

    def _handle_generic(self, message: dict[str, Any]) -> None:
        parts = []
        if message.get("id"):
            parts.append(f"{message['id']}: ")
        if message.get("status") is not None:
            parts.append(str(message["status"]))
        if message.get("stream") is not None:
            parts.append(str(message["stream"]))
        line = "".join(parts).strip()

        if self.verbose:
            self.log.info(line)
        elif not line or line.startswith(NOISE_PREFIXES):
            self.log.debug(line)
        else:
            self.log.info(line)

    def _extract(self, message: dict[str, Any]) -> None:
        aux = message.get("aux")
        if isinstance(aux, dict):
            if aux.get("ID"):
                self.image_id = aux["ID"]
            if aux.get("Digest"):
                self.image_digest = aux["Digest"]

        stream = message.get("stream")
        if stream:
            match = IMAGE_ID_PATTERN.search(stream)
            if match:
                self.image_id = match.group(1)

        status = message.get("status")
        if status:
            match = DIGEST_PATTERN.search(status)
            if match:
                self.image_digest = match.group(1)

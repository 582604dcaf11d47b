"""Build metadata shared between the goals of one build."""

import logging
import os
import tempfile
from enum import Enum
from pathlib import Path

import yaml

from dockerfile_build.tagging import format_image_name

logger = logging.getLogger(__name__)

METADATA_DIR = "docker"
METADATA_FILE = "metadata.yml"


class Metadata(str, Enum):
    """Keys of the metadata record. Renaming any of them breaks later goals."""
    IMAGE_ID = "IMAGE_ID"
    IMAGE_DIGEST = "IMAGE_DIGEST"
    ALTERNATIVE_TAG = "ALTERNATIVE_TAG"
    REPOSITORY = "REPOSITORY"
    TAG = "TAG"
    IMAGE_NAME = "IMAGE_NAME"


class MetadataStore:
    """Key/value record persisted under the build directory.

    Written by the build goal and read by the tag, push and rmi goals
    invoked later in the same build. A record that was never written reads
    as empty.
    """

    def __init__(self, build_dir: Path):
        self.path = Path(build_dir) / METADATA_DIR / METADATA_FILE

    def read_all(self) -> dict[str, str]:
        """Read the whole record. Returns an empty dict if it doesn't exist."""
        if not self.path.exists():
            return {}

        try:
            data = yaml.safe_load(self.path.read_text())
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Ignoring unreadable build metadata {self.path}: {e}")
            return {}

        if not isinstance(data, dict):
            return {}

        return {str(key): str(value) for key, value in data.items() if value is not None}

    def read(self, key: Metadata | str) -> str | None:
        """Read a single value, None if it was never written."""
        return self.read_all().get(_key_name(key))

    def write(self, key: Metadata | str, value: str) -> None:
        """Write a value, replacing any previous value for the key."""
        record = self.read_all()
        record[_key_name(key)] = str(value)
        self._save(record)
        logger.debug(f"Wrote build metadata {_key_name(key)}={value}")

    def replace(self, values: dict[Metadata, str]) -> None:
        """Replace the whole record, dropping every key not in values."""
        self._save({_key_name(key): str(value) for key, value in values.items()})

    def write_image_info(self, repository: str, tag: str) -> None:
        """Record the repository and tag the image was built as."""
        record = self.read_all()
        record[Metadata.REPOSITORY.value] = repository
        record[Metadata.TAG.value] = tag
        record[Metadata.IMAGE_NAME.value] = format_image_name(repository, tag)
        self._save(record)

    def read_image_name(self) -> str | None:
        """Get the recorded 'repository:tag', None if the image was built without a name."""
        return self.read(Metadata.IMAGE_NAME)

    def _save(self, record: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Replace atomically so a concurrent reader never sees a partial file
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".metadata-", suffix=".yml")
        try:
            with os.fdopen(fd, "w") as f:
                yaml.safe_dump(record, f, default_flow_style=False, sort_keys=False)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def _key_name(key: Metadata | str) -> str:
    return key.value if isinstance(key, Metadata) else key

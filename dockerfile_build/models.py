from pathlib import Path
from dataclasses import dataclass, field

from dockerfile_build.config import ProjectConfig


@dataclass
class BuildRequest:
    """Everything the build goal needs to build one image"""
    context_directory: Path
    tag: str
    repository: str | None = None
    project_version: str | None = None
    snapshot_tag: str | None = None
    release_as_latest: bool = False
    pull_newer_image: bool = True
    no_cache: bool = False
    build_args: dict[str, str] = field(default_factory=dict)
    verbose: bool = False

    def __post_init__(self):
        if not self.tag:
            raise ValueError("Build tag must not be empty")

    @classmethod
    def from_config(cls, config: ProjectConfig) -> "BuildRequest":
        """Create a request from the project config"""
        build = config.goals.build
        return cls(
            context_directory=config.context,
            tag=config.tag,
            repository=config.repository,
            project_version=config.version,
            snapshot_tag=config.snapshot_tag,
            release_as_latest=config.release_as_latest,
            pull_newer_image=build.pull_newer_image,
            no_cache=build.no_cache,
            build_args=dict(build.args),
            verbose=config.verbose,
        )


@dataclass
class BuildOutcome:
    """What a finished build produced"""
    image_id: str | None = None
    image_digest: str | None = None
    alternative_tag: str | None = None

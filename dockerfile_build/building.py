"""The build goal: build the Dockerfile and record what was built."""

import logging
from pathlib import Path

from docker.errors import DockerException
from requests.exceptions import RequestException

from dockerfile_build.config import ProjectConfig
from dockerfile_build.engine import DockerEngine
from dockerfile_build.metadata import Metadata, MetadataStore
from dockerfile_build.models import BuildOutcome, BuildRequest
from dockerfile_build.parameters import BuildArgsEncodingError, BuildOption, build_parameters
from dockerfile_build.progress import BuildStreamError, ProgressStreamInterpreter
from dockerfile_build.tagging import format_image_name, resolve_tag

logger = logging.getLogger(__name__)

DOCKERFILE_NAMES = ("Dockerfile", "dockerfile")

# Errors of the daemon connection and of the build itself
TRANSPORT_ERRORS = (DockerException, RequestException, OSError, BuildStreamError)


class GoalError(Exception):
    """Raised when a goal cannot complete."""
    pass


class MissingDockerfileError(GoalError):
    """Raised when the build context has no Dockerfile."""
    pass


class BuildError(GoalError):
    """Raised when the daemon fails to build, tag, push or remove an image."""
    pass


def find_dockerfile(context_directory: Path) -> Path:
    """Find the Dockerfile in a build context.

    Raises:
        MissingDockerfileError: If neither 'Dockerfile' nor 'dockerfile' exists
    """
    for name in DOCKERFILE_NAMES:
        candidate = context_directory / name
        if candidate.is_file():
            return candidate

    logger.error(f"Missing Dockerfile in context directory: {context_directory}")
    raise MissingDockerfileError(f"Missing Dockerfile in context directory: {context_directory}")


def build_image(
    engine: DockerEngine,
    context_directory: Path,
    name: str | None,
    options: list[BuildOption],
    verbose: bool = False,
) -> BuildOutcome:
    """Build an image and extract its id and digest from the progress stream.

    Args:
        engine: Daemon access
        context_directory: Directory containing the Dockerfile
        name: Image reference to build as, None to build without a name
        options: Build options
        verbose: Log every progress message

    Returns:
        BuildOutcome with image id and digest (both may be None)
    """
    interpreter = ProgressStreamInterpreter(verbose=verbose)

    logger.info("")  # Spacing around build progress
    if name:
        logger.info(f"Image will be built as {name}")
    else:
        logger.info("Image will be built without a name")
    logger.info("")

    try:
        engine.build(context_directory, name, interpreter, options)
    except TRANSPORT_ERRORS as e:
        raise BuildError(f"Could not build image: {e}") from e
    logger.info("")

    return BuildOutcome(image_id=interpreter.image_id, image_digest=interpreter.image_digest)


def run_build(request: BuildRequest, engine: DockerEngine, store: MetadataStore) -> BuildOutcome:
    """Build an image from a request and write its metadata.

    Metadata is written only after a successful build so that later goals
    never pick up a tag that doesn't exist.

    Returns:
        BuildOutcome of the build, including the alternative tag if one was applied
    """
    context_directory = request.context_directory
    logger.info(f"Building Docker context {context_directory}")

    # Both checks run before anything is sent to the daemon
    find_dockerfile(context_directory)

    resolved = resolve_tag(
        tag=request.tag,
        project_version=request.project_version,
        release_as_latest=request.release_as_latest,
        snapshot_tag=request.snapshot_tag,
    )
    if resolved.tag != request.tag:
        logger.info(f"Using snapshot tag {resolved.tag} instead of {request.tag}")

    try:
        options = build_parameters(
            pull_newer_image=request.pull_newer_image,
            no_cache=request.no_cache,
            build_args=request.build_args,
        )
    except BuildArgsEncodingError as e:
        logger.error(str(e))
        raise BuildError(str(e)) from e

    name = format_image_name(request.repository, resolved.tag) if request.repository else None
    outcome = build_image(engine, context_directory, name, options, verbose=request.verbose)

    # Each build owns the whole record, keys of an earlier build never survive it
    record: dict[Metadata, str] = {}
    if outcome.image_id is None:
        logger.warning("Docker build was successful, but no image was built")
    else:
        logger.info(f"Detected build of image with id {outcome.image_id}")
        record[Metadata.IMAGE_ID] = outcome.image_id

    if outcome.image_digest is not None:
        record[Metadata.IMAGE_DIGEST] = outcome.image_digest

    if request.repository:
        record[Metadata.REPOSITORY] = request.repository
        record[Metadata.TAG] = resolved.tag
        record[Metadata.IMAGE_NAME] = name

    if name and resolved.alternative_tag:
        record[Metadata.ALTERNATIVE_TAG] = resolved.alternative_tag
    store.replace(record)

    if name and resolved.alternative_tag:
        # The image just built is tagged again, nothing is rebuilt
        logger.info(f"Tagging {name} as {format_image_name(request.repository, resolved.alternative_tag)}")
        try:
            engine.tag(name, request.repository, resolved.alternative_tag, force=True)
        except TRANSPORT_ERRORS as e:
            raise BuildError(f"Could not tag image as {resolved.alternative_tag}: {e}") from e
        outcome.alternative_tag = resolved.alternative_tag

    if name:
        logger.info(f"Successfully built {name}")
    else:
        logger.info(f"Successfully built {outcome.image_id}")

    return outcome


def execute_build(config: ProjectConfig, engine: DockerEngine | None = None) -> BuildOutcome | None:
    """Run the build goal for a project config. Returns None if skipped."""
    if config.goals.build.skip:
        logger.info("Skipping execution because 'goals.build.skip' is set")
        return None

    request = BuildRequest.from_config(config)
    return run_build(request, engine or DockerEngine(), MetadataStore(config.build_dir))

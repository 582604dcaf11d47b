"""Goals that act on an image built earlier in the same build: tag, push, rmi."""

import logging

from dockerfile_build.building import TRANSPORT_ERRORS, BuildError, GoalError
from dockerfile_build.config import ProjectConfig, get_registry_auth_for
from dockerfile_build.engine import DockerEngine
from dockerfile_build.kubernetes import (
    CONTEXT_FLAG,
    SERVER_FLAG,
    TOKEN_FLAG,
    USERNAME_FLAG,
    CredentialDiscoverer,
    get_discoverer,
)
from dockerfile_build.metadata import Metadata, MetadataStore
from dockerfile_build.progress import ProgressStreamInterpreter
from dockerfile_build.tagging import format_image_name, parse_image_name, resolve_tag

logger = logging.getLogger(__name__)

WHOAMI_FIELDS = {
    "token": TOKEN_FLAG,
    "username": USERNAME_FLAG,
    "context": CONTEXT_FLAG,
    "server": SERVER_FLAG,
}


def execute_tag(config: ProjectConfig, engine: DockerEngine | None = None) -> str | None:
    """Tag the image built by the build goal as repository:tag.

    Returns:
        The applied image name, None if the goal was skipped
    """
    if config.goals.tag.skip:
        logger.info("Skipping execution because 'goals.tag.skip' is set")
        return None

    store = MetadataStore(config.build_dir)
    image_id = store.read(Metadata.IMAGE_ID)
    if image_id is None:
        raise GoalError("Cannot tag: no Docker image was built")

    if not config.repository:
        raise GoalError("Cannot tag: no repository is configured")

    resolved = resolve_tag(
        tag=config.tag,
        project_version=config.version,
        release_as_latest=config.release_as_latest,
        snapshot_tag=config.snapshot_tag,
    )
    name = format_image_name(config.repository, resolved.tag)
    logger.info(f"Tagging image {image_id} as {name}")

    engine = engine or DockerEngine()
    try:
        engine.tag(image_id, config.repository, resolved.tag, force=config.goals.tag.force)
    except TRANSPORT_ERRORS as e:
        raise BuildError(f"Could not tag Docker image: {e}") from e

    store.write_image_info(config.repository, resolved.tag)
    return name


def _resolve_push_name(config: ProjectConfig, store: MetadataStore) -> str:
    image_name = store.read_image_name()
    if image_name:
        return image_name

    if not config.repository:
        raise GoalError("Cannot push: image repository is not known, build or tag the image first")

    resolved = resolve_tag(
        tag=config.tag,
        project_version=config.version,
        release_as_latest=config.release_as_latest,
        snapshot_tag=config.snapshot_tag,
    )
    return format_image_name(config.repository, resolved.tag)


def _push_one(
    engine: DockerEngine,
    repository: str,
    tag: str,
    auth_config: dict[str, str] | None,
    verbose: bool,
) -> str | None:
    interpreter = ProgressStreamInterpreter(verbose=verbose)
    logger.info(f"Pushing {format_image_name(repository, tag)}")
    try:
        engine.push(repository, tag, interpreter, auth_config=auth_config)
    except TRANSPORT_ERRORS as e:
        raise BuildError(f"Could not push image {format_image_name(repository, tag)}: {e}") from e
    return interpreter.image_digest


def execute_push(
    config: ProjectConfig,
    engine: DockerEngine | None = None,
    discoverer: CredentialDiscoverer | None = None,
) -> list[str]:
    """Push the built image, and its alternative tag if one was applied.

    Returns:
        Names of the pushed images (empty if the goal was skipped)
    """
    if config.goals.push.skip:
        logger.info("Skipping execution because 'goals.push.skip' is set")
        return []

    store = MetadataStore(config.build_dir)
    repository, tag = parse_image_name(_resolve_push_name(config, store))

    tags = [tag]
    alternative_tag = store.read(Metadata.ALTERNATIVE_TAG)
    if config.goals.push.push_alternative_tag and alternative_tag and alternative_tag != tag:
        tags.append(alternative_tag)

    auth = get_registry_auth_for(config, repository, discoverer)
    auth_config = {"username": auth[0], "password": auth[1]} if auth else None

    engine = engine or DockerEngine()
    pushed = []
    for push_tag in tags:
        digest = _push_one(engine, repository, push_tag, auth_config, config.verbose)
        # The digest of the primary tag identifies the pushed manifest
        if digest and push_tag == tag:
            store.write(Metadata.IMAGE_DIGEST, digest)
        pushed.append(format_image_name(repository, push_tag))

    return pushed


def execute_remove(config: ProjectConfig, engine: DockerEngine | None = None) -> str | None:
    """Remove the image built by the build goal.

    Returns:
        The removed image id, None if skipped or nothing was built
    """
    rmi = config.goals.rmi
    if rmi.skip:
        logger.info("Skipping execution because 'goals.rmi.skip' is set")
        return None

    image_id = MetadataStore(config.build_dir).read(Metadata.IMAGE_ID)
    if image_id is None:
        logger.info("No Docker image was built: Nothing to remove.")
        return None

    message = f"Removing image {image_id}"
    if rmi.force:
        message += " with all tags"
    if rmi.prune:
        message += ", deleting untagged parents"
    logger.info(message)

    engine = engine or DockerEngine()
    try:
        engine.remove_image(image_id, force=rmi.force, prune=rmi.prune)
    except TRANSPORT_ERRORS as e:
        raise BuildError(f"Could not remove Docker image: {e}") from e

    return image_id


def execute_whoami(fields: list[str], discoverer: CredentialDiscoverer | None = None) -> dict[str, str | None]:
    """Look up identity fields of the current oc login.

    Args:
        fields: Names from WHOAMI_FIELDS

    Returns:
        Mapping of field name to value; all None if oc is not available
    """
    discoverer = discoverer or get_discoverer()
    unknown = [name for name in fields if name not in WHOAMI_FIELDS]
    if unknown:
        raise ValueError(f"Unknown identity field(s): {', '.join(unknown)}. Supported: {', '.join(WHOAMI_FIELDS)}")

    if not discoverer.has_capability():
        logger.warning("The oc command is not available, no cluster credentials discovered")
        return {name: None for name in fields}

    return {name: discoverer.retrieve_field(WHOAMI_FIELDS[name]) for name in fields}

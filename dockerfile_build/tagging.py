"""Tag policy for release and snapshot builds."""

from dataclasses import dataclass

SNAPSHOT_SUFFIX = "-SNAPSHOT"
LATEST_TAG = "latest"


class InvalidReferenceError(ValueError):
    """Raised when an image reference cannot be formed or parsed."""
    pass


@dataclass(frozen=True)
class ResolvedTag:
    """Effective tag for a build plus the optional tag applied on top of it"""
    tag: str
    alternative_tag: str | None = None


def is_snapshot(tag: str) -> bool:
    """Check if a tag is a snapshot (pre-release) version."""
    return tag.endswith(SNAPSHOT_SUFFIX)


def resolve_tag(
    tag: str,
    project_version: str | None,
    release_as_latest: bool = False,
    snapshot_tag: str | None = None,
    snapshot: bool | None = None,
) -> ResolvedTag:
    """Resolve the effective tag and alternative tag for a build.

    Release builds of the project version may additionally be tagged
    'latest'. Snapshot builds of the project version may have their tag
    replaced by a fixed snapshot tag (e.g. 'dev'), so that every snapshot
    build overwrites the same image tag.

    Args:
        tag: Configured tag (e.g., '1.2.0' or '1.3.0-SNAPSHOT')
        project_version: Declared version of the project being built
        release_as_latest: Also tag release builds of the project version as 'latest'
        snapshot_tag: Tag to use instead of a snapshot project version; None or
            empty disables the substitution
        snapshot: Whether the tag is a snapshot; derived from the tag if None

    Returns:
        ResolvedTag with the effective tag and optional alternative tag
    """
    if snapshot is None:
        snapshot = is_snapshot(tag)

    matches_version = project_version is not None and tag == project_version

    if not snapshot and release_as_latest and matches_version:
        return ResolvedTag(tag=tag, alternative_tag=LATEST_TAG)

    if snapshot and matches_version and snapshot_tag:
        return ResolvedTag(tag=snapshot_tag)

    return ResolvedTag(tag=tag)


def format_image_name(repository: str | None, tag: str | None) -> str:
    """Combine repository and tag into an image reference (e.g., 'spotify/foo:latest')."""
    if not repository:
        raise InvalidReferenceError("Invalid image reference: repository must not be empty")
    if not tag:
        raise InvalidReferenceError(f"Invalid image reference for '{repository}': tag must not be empty")
    return f"{repository}:{tag}"


def parse_image_name(image_name: str) -> tuple[str, str]:
    """Split an image reference into (repository, tag).

    Registry ports stay part of the repository:
    'localhost:5000/foo:1.0' -> ('localhost:5000/foo', '1.0').
    References without a tag get 'latest'.
    """
    if not image_name:
        raise InvalidReferenceError("Invalid image reference: must not be empty")

    # Only a ':' after the last '/' separates the tag
    slash = image_name.rfind("/")
    colon = image_name.rfind(":")
    if colon > slash:
        repository, tag = image_name[:colon], image_name[colon + 1:]
    else:
        repository, tag = image_name, LATEST_TAG

    if not repository or not tag:
        raise InvalidReferenceError(f"Invalid image reference '{image_name}', expected format: repository:tag")

    return repository, tag

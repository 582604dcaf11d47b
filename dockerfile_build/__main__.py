"""Unified CLI for dockerfile-build."""

import sys
from pathlib import Path

from dockerfile_build.building import GoalError, execute_build
from dockerfile_build.config import ProjectConfig, load_config
from dockerfile_build.lifecycle import WHOAMI_FIELDS, execute_push, execute_remove, execute_tag, execute_whoami
from dockerfile_build.logger import setup_logger

# Options accepted by every goal: flag -> ProjectConfig field
COMMON_VALUE_OPTIONS = {
    "--context": "context",
    "--repository": "repository",
    "--tag": "tag",
    "--version": "version",
    "--snapshot-tag": "snapshot_tag",
    "--build-dir": "build_dir",
}
COMMON_FLAG_OPTIONS = {
    "--release-as-latest": "release_as_latest",
    "--verbose": "verbose",
    "-v": "verbose",
}


def print_usage() -> None:
    """Print main usage information."""
    print("Usage: dockerfile-build <command> [options]")
    print()
    print("Commands:")
    print("  build               Build the Dockerfile in the context directory")
    print("  tag                 Tag the built image as <repository>:<tag>")
    print("  push                Push the built image (and its alternative tag)")
    print("  rmi                 Remove the built image")
    print("  whoami [fields]     Show the identity of the current oc login")
    print()
    print("Options (build, tag, push, rmi):")
    print("  --config PATH       Config file (default: .dockerfile-build.yml)")
    print("  --context DIR       Directory containing the Dockerfile")
    print("  --repository REPO   Repository to build/tag as (e.g., spotify/foo)")
    print("  --tag TAG           Tag to apply (default: latest)")
    print("  --version VERSION   Project version the tag is compared against")
    print("  --snapshot-tag TAG  Tag used instead of a -SNAPSHOT project version")
    print("  --release-as-latest Also tag release builds of the project version as 'latest'")
    print("  --build-dir DIR     Where build metadata is kept (default: target)")
    print("  -v, --verbose       Log every progress message")
    print("  --skip              Make the goal a no-op")
    print()
    print("Build options:")
    print("  --no-pull           Don't pull newer base images")
    print("  --no-cache          Disable the build cache")
    print("  --build-arg K=V     Set a build-time variable (repeatable)")
    print()
    print("Tag options:")
    print("  --force             Move the tag if it already exists")
    print()
    print("Push options:")
    print("  --no-alternative-tag  Only push the primary tag")
    print()
    print("Rmi options:")
    print("  --force             Remove the image with all its tags")
    print("  --no-prune          Keep untagged parents")
    print()
    print("Whoami fields:")
    print(f"  {', '.join('--' + name for name in WHOAMI_FIELDS)} (default: --username)")
    print()
    print("Examples:")
    print("  dockerfile-build build --repository spotify/foo --tag 1.0.0")
    print("  dockerfile-build build --tag 1.1.0-SNAPSHOT --version 1.1.0-SNAPSHOT --snapshot-tag dev")
    print("  dockerfile-build push")
    print("  dockerfile-build rmi --force")
    print("  dockerfile-build whoami --token --server")


def parse_options(
    args: list[str],
    value_options: dict[str, str] | None = None,
    flag_options: dict[str, str] | None = None,
) -> dict | None:
    """Parse goal options into a dict keyed by destination name.

    Common options are always accepted. '--config' is returned as 'config'
    and repeated '--build-arg' values are collected in 'build_args'.

    Returns:
        Parsed options, None if an unknown or incomplete argument was found
    """
    values = {**COMMON_VALUE_OPTIONS, **(value_options or {})}
    flags = {**COMMON_FLAG_OPTIONS, **(flag_options or {})}
    opts: dict = {}

    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--config" and i + 1 < len(args):
            opts["config"] = Path(args[i + 1])
            i += 2
        elif arg == "--build-arg" and "--build-arg" in values and i + 1 < len(args):
            key, sep, value = args[i + 1].partition("=")
            if not key or not sep:
                print(f"Invalid build argument: {args[i + 1]} (expected KEY=VALUE)", file=sys.stderr)
                return None
            opts.setdefault("build_args", {})[key] = value
            i += 2
        elif arg in values and i + 1 < len(args):
            opts[values[arg]] = args[i + 1]
            i += 2
        elif arg in flags:
            name = flags[arg]
            # '--no-*' flags turn a default-on setting off
            opts[name] = not arg.startswith("--no-")
            i += 1
        else:
            print(f"Unknown argument: {arg}", file=sys.stderr)
            return None

    return opts


def load_project_config(opts: dict, goal: str | None = None) -> ProjectConfig:
    """Load the config file and apply command line overrides.

    Args:
        opts: Result of parse_options
        goal: Goal whose section receives goal-specific options
    """
    config = load_config(opts.pop("config", None))

    top_level = {}
    for name in set(COMMON_VALUE_OPTIONS.values()) | set(COMMON_FLAG_OPTIONS.values()):
        if name in opts:
            top_level[name] = opts.pop(name)
    for name in ("context", "build_dir"):
        if name in top_level:
            top_level[name] = Path(top_level[name])
    if "tag" in top_level and not top_level["tag"]:
        raise ValueError("tag must not be empty")

    config = config.model_copy(update=top_level)

    if goal is not None:
        section = getattr(config.goals, goal)
        update = dict(opts)
        if "build_args" in update:
            update["args"] = {**section.args, **update.pop("build_args")}
        section = section.model_copy(update=update)
        config = config.model_copy(update={"goals": config.goals.model_copy(update={goal: section})})

    return config


def _run_goal(args: list[str], goal: str, value_options: dict, flag_options: dict, execute) -> int:
    opts = parse_options(args, value_options, flag_options)
    if opts is None:
        return 1

    try:
        config = load_project_config(opts, goal)
        setup_logger(debug=config.verbose)
        execute(config)
    except (GoalError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


def cmd_build(args: list[str]) -> int:
    """Build the Dockerfile."""
    return _run_goal(
        args,
        "build",
        value_options={"--build-arg": "build_args"},
        flag_options={"--no-pull": "pull_newer_image", "--no-cache": "no_cache", "--skip": "skip"},
        execute=execute_build,
    )


def cmd_tag(args: list[str]) -> int:
    """Tag the built image."""
    return _run_goal(
        args,
        "tag",
        value_options={},
        flag_options={"--force": "force", "--skip": "skip"},
        execute=execute_tag,
    )


def cmd_push(args: list[str]) -> int:
    """Push the built image."""
    return _run_goal(
        args,
        "push",
        value_options={},
        flag_options={"--no-alternative-tag": "push_alternative_tag", "--skip": "skip"},
        execute=execute_push,
    )


def cmd_rmi(args: list[str]) -> int:
    """Remove the built image."""
    return _run_goal(
        args,
        "rmi",
        value_options={},
        flag_options={"--force": "force", "--no-prune": "prune", "--skip": "skip"},
        execute=execute_remove,
    )


def cmd_whoami(args: list[str]) -> int:
    """Show identity fields of the current oc login."""
    fields = []
    verbose = False

    for arg in args:
        if arg in ("-v", "--verbose"):
            verbose = True
        elif arg.startswith("--") and arg[2:] in WHOAMI_FIELDS:
            fields.append(arg[2:])
        else:
            print(f"Unknown argument: {arg}", file=sys.stderr)
            return 1

    setup_logger(debug=verbose)
    values = execute_whoami(fields or ["username"])

    missing = [name for name, value in values.items() if value is None]
    for name, value in values.items():
        if value is not None:
            print(f"{name}: {value}")

    if missing:
        print(f"Could not determine: {', '.join(missing)}", file=sys.stderr)
        return 1

    return 0


def main():
    if len(sys.argv) < 2:
        print_usage()
        sys.exit(1)

    command = sys.argv[1]
    args = sys.argv[2:]

    if command in ("--help", "-h"):
        print_usage()
        sys.exit(0)
    elif command == "build":
        sys.exit(cmd_build(args))
    elif command == "tag":
        sys.exit(cmd_tag(args))
    elif command == "push":
        sys.exit(cmd_push(args))
    elif command == "rmi":
        sys.exit(cmd_rmi(args))
    elif command == "whoami":
        sys.exit(cmd_whoami(args))
    else:
        print(f"Unknown command: {command}", file=sys.stderr)
        print_usage()
        sys.exit(1)


if __name__ == "__main__":
    main()

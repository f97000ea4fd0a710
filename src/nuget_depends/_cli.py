"""Command-line interface for nuget-depends."""

from __future__ import annotations

import json
import logging
import sys
from typing import TYPE_CHECKING

from . import __version__ as nuget_depends_version
from .config import Settings
from .errors import InvalidIdentity
from .logger import setup_logger
from .registry import NuGetRegistryClient
from .resolver import DependencyResolver

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


def parse_target(description: str) -> tuple[str, str, str]:
    """Split ``NAME@VERSION:FRAMEWORK`` into its three parts.

    Only the shape is checked here; the version and framework are validated
    when the root is resolved.

    Raises:
        InvalidIdentity: If the description does not have that shape

    """
    name, _, tail = description.strip().partition("@")
    version, _, framework = tail.partition(":")
    if not name or not version or not framework:
        msg = f"Can not parse package description <{description}>; expected NAME@VERSION:FRAMEWORK"
        raise InvalidIdentity(msg)
    return name.strip(), version.strip(), framework.strip()


def load_targets(path: Path) -> list[tuple[str, str, str]]:
    """Read root packages from a JSON list of ``{"name", "version", "framework"}`` objects."""
    with path.open() as f:
        entries = json.load(f)
    if not isinstance(entries, list):
        msg = f"{path} must contain a JSON list of packages"
        raise InvalidIdentity(msg)
    targets = []
    for entry in entries:
        try:
            targets.append((str(entry["name"]), str(entry["version"]), str(entry["framework"])))
        except (KeyError, TypeError) as e:
            msg = f"Invalid package entry in {path}: {entry!r}"
            raise InvalidIdentity(msg) from e
    return targets


def main(argv: list[str] | None = None) -> int:
    """Resolve the requested roots and write their dependency trees as JSON.

    Returns:
        0 if every root resolved, 1 if any root failed, 2 on invalid input

    """
    settings = Settings(_cli_parse_args=argv)  # type: ignore[call-arg]
    setup_logger(settings.log_level)

    if settings.version:
        logger.info("nuget-depends version %s", nuget_depends_version)
        return 0

    try:
        targets = [parse_target(t) for t in settings.targets]
        if settings.input_file is not None:
            targets.extend(load_targets(settings.input_file))
    except (InvalidIdentity, OSError, ValueError) as e:
        logger.error("%s", e)  # noqa: TRY400
        return 2
    if not targets:
        logger.error("No packages to resolve; pass --targets or --input-file")
        return 2

    if settings.output_file is not None and not settings.force and settings.output_file.exists():
        logger.error("%s already exists!\nRe-run with `--force` to overwrite the file.\n", settings.output_file)
        return 2

    registry = NuGetRegistryClient(settings.source, timeout=settings.timeout)
    with DependencyResolver(registry, max_workers=settings.max_workers) as resolver:
        results = resolver.resolve_all(targets)

    output = json.dumps([r.to_obj() for r in results], indent=4)
    if settings.output_file is None:
        sys.stdout.write(output + "\n")
    else:
        settings.output_file.write_text(output)
        logger.info("Output saved to %s", settings.output_file.absolute())

    return 0 if all(r.succeeded for r in results) else 1

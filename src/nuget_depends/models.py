"""Core data models for dependency resolution."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from semantic_version import Version

from .errors import InvalidIdentity
from .versioning import format_version, parse_version

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .errors import NuGetDependsError
    from .frameworks import FrameworkTag
    from .versioning import VersionRange

UNKNOWN_RANGE = "Unknown"


class PackageIdentity:
    """A package name at an exact version.

    Names compare case-insensitively, versions compare exactly.
    """

    __slots__ = ("name", "version")

    def __init__(self, name: str, version: str | Version) -> None:
        """Initialize a package identity.

        Args:
            name: Package id as published in the registry
            version: Parsed version, or a NuGet version string

        Raises:
            InvalidIdentity: If the name is empty or the version cannot be parsed

        """
        if not isinstance(name, str) or not name.strip():
            msg = f"Invalid package name: {name!r}"
            raise InvalidIdentity(msg)
        if isinstance(version, str):
            try:
                version = parse_version(version)
            except ValueError as e:
                msg = f"Invalid version {version!r} for package {name}"
                raise InvalidIdentity(msg) from e
        elif not isinstance(version, Version):
            msg = f"Invalid version {version!r} for package {name}"
            raise InvalidIdentity(msg)
        self.name: str = name.strip()
        self.version: Version = version

    @property
    def version_string(self) -> str:
        """Get the normalized NuGet version string."""
        return format_version(self.version)

    def __eq__(self, other: object) -> bool:
        """Check equality with another identity."""
        if isinstance(other, PackageIdentity):
            return self.name.lower() == other.name.lower() and self.version == other.version
        return False

    def __hash__(self) -> int:
        """Compute hash for identity."""
        return hash((self.name.lower(), self.version))

    def __str__(self) -> str:
        """Return ``name@version``."""
        return f"{self.name}@{self.version_string}"

    def __repr__(self) -> str:
        """Return a debugging representation."""
        return f"PackageIdentity({self.name!r}, {self.version_string!r})"


@dataclass(frozen=True)
class DependencyRange:
    """A dependency on ``package_name`` constrained to ``version_range``.

    ``version_range`` is None when the registry declared a range that could not be parsed.
    """

    package_name: str
    version_range: VersionRange | None = None

    @property
    def normalized_range(self) -> str:
        """Get the normalized range, or ``Unknown`` when there is none."""
        if self.version_range is None:
            return UNKNOWN_RANGE
        return self.version_range.to_normalized_string()


@dataclass(frozen=True)
class DependencyGroup:
    """Dependencies declared by a package version for one target framework."""

    framework: FrameworkTag
    ranges: tuple[DependencyRange, ...] = ()


@dataclass(frozen=True)
class DependencyInfo:
    """Everything the registry knows about the dependencies of one package version."""

    identity: PackageIdentity
    dependency_groups: tuple[DependencyGroup, ...] = ()


class ResolvedPackage:
    """A node in a resolved dependency tree."""

    def __init__(
        self,
        identity: PackageIdentity,
        framework: FrameworkTag,
        children: Iterable[ResolvedPackage] = (),
    ) -> None:
        """Initialize a resolved package.

        Args:
            identity: The package and the version chosen for it
            framework: Framework the package was resolved for
            children: Direct dependencies, already expanded

        """
        self.identity: PackageIdentity = identity
        self.framework: FrameworkTag = framework
        self.children: list[ResolvedPackage] = list(children)

    @property
    def name(self) -> str:
        """Get the package name."""
        return self.identity.name

    @property
    def version(self) -> Version:
        """Get the resolved version."""
        return self.identity.version

    def walk(self) -> Iterable[ResolvedPackage]:
        """Yield this node and every descendant, depth-first in child order."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_obj(self) -> dict[str, Any]:
        """Convert the tree to nested records."""
        return {
            "name": self.name,
            "version": self.identity.version_string,
            "framework": self.framework.short_folder_name,
            "dependencies": [child.to_obj() for child in self.children],
        }

    def dumps(self) -> str:
        """Serialize the tree to a JSON string."""
        return json.dumps(self.to_obj())

    def __eq__(self, other: object) -> bool:
        """Check equality of two trees."""
        return (
            isinstance(other, ResolvedPackage)
            and self.identity == other.identity
            and self.framework == other.framework
            and self.children == other.children
        )

    __hash__ = None  # type: ignore[assignment]

    def __str__(self) -> str:
        """Return ``name@version``."""
        return str(self.identity)

    def __repr__(self) -> str:
        """Return a debugging representation."""
        return f"ResolvedPackage({self.identity!s}, {self.framework!s}, children={len(self.children)})"


@dataclass(frozen=True)
class UnmatchedDependency:
    """Warning raised when no available version satisfies a dependency range."""

    package_name: str
    version_range: str
    required_by: PackageIdentity
    framework: FrameworkTag

    @property
    def message(self) -> str:
        """Get a human readable description of the warning."""
        return (
            f"Could not find a matching version for dependency {self.package_name} "
            f"with version range {self.version_range}"
        )

    def to_obj(self) -> dict[str, str]:
        """Convert the warning to a dictionary."""
        return {
            "package": self.package_name,
            "version_range": self.version_range,
            "required_by": str(self.required_by),
            "framework": self.framework.short_folder_name,
        }


@dataclass
class RootResolution:
    """Outcome of resolving one root package of a batch."""

    name: str
    version: str
    framework: str
    package: ResolvedPackage | None = None
    warnings: list[UnmatchedDependency] = field(default_factory=list)
    error: NuGetDependsError | None = None

    @property
    def succeeded(self) -> bool:
        """Check whether the root was resolved."""
        return self.error is None and self.package is not None

    def to_obj(self) -> dict[str, Any]:
        """Convert the outcome to a dictionary."""
        return {
            "name": self.name,
            "version": self.version,
            "framework": self.framework,
            "resolved": self.package.to_obj() if self.package is not None else None,
            "warnings": [w.to_obj() for w in self.warnings],
            "error": str(self.error) if self.error is not None else None,
        }

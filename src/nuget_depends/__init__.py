"""The `nuget-depends` APIs."""

__version__ = "0.1.0"

from .errors import InvalidIdentity, NuGetDependsError, RegistryUnavailable  # noqa: E402
from .frameworks import ANY_FRAMEWORK, FrameworkTag  # noqa: E402
from .models import (  # noqa: E402
    DependencyGroup,
    DependencyInfo,
    DependencyRange,
    PackageIdentity,
    ResolvedPackage,
    RootResolution,
    UnmatchedDependency,
)
from .registry import InMemoryRegistryClient, NuGetRegistryClient, RegistryClient  # noqa: E402
from .resolver import DependencyResolver, VisitedSet  # noqa: E402
from .versioning import VersionRange, format_version, parse_version  # noqa: E402

__all__ = [
    "ANY_FRAMEWORK",
    "DependencyGroup",
    "DependencyInfo",
    "DependencyRange",
    "DependencyResolver",
    "FrameworkTag",
    "InMemoryRegistryClient",
    "InvalidIdentity",
    "NuGetDependsError",
    "NuGetRegistryClient",
    "PackageIdentity",
    "RegistryClient",
    "RegistryUnavailable",
    "ResolvedPackage",
    "RootResolution",
    "UnmatchedDependency",
    "VersionRange",
    "VisitedSet",
    "format_version",
    "parse_version",
]

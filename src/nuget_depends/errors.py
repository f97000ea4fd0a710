"""Exceptions raised while resolving NuGet dependency graphs."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .frameworks import FrameworkTag
    from .models import PackageIdentity


class NuGetDependsError(Exception):
    """Base class for all errors raised by nuget-depends."""


class InvalidIdentity(NuGetDependsError, ValueError):  # noqa: N818
    """A root package name, version, or target framework could not be parsed."""


class RegistryUnavailable(NuGetDependsError):  # noqa: N818
    """The package registry could not be reached or returned an unusable response.

    This is distinct from a package or version being absent from the registry,
    which is never an error.
    """

    def __init__(
        self,
        message: str,
        *,
        package: str | None = None,
        version: str | None = None,
        framework: str | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Description of the transport failure
            package: Name of the package being expanded when the failure occurred
            version: Version of that package
            framework: Target framework of the resolution

        """
        super().__init__(message)
        self.message = message
        self.package = package
        self.version = version
        self.framework = framework

    def with_context(self, identity: PackageIdentity, framework: FrameworkTag) -> RegistryUnavailable:
        """Attach the package being expanded, unless a deeper node already did."""
        if self.package is None:
            self.package = identity.name
            self.version = identity.version_string
            self.framework = framework.short_folder_name
        return self

    def __str__(self) -> str:
        """Return the message followed by the package context, if any."""
        if self.package is None:
            return self.message
        return f"{self.message} (while resolving {self.package}@{self.version} for {self.framework})"

"""Registry clients: where package versions and their declared dependencies come from."""

from __future__ import annotations

import logging
import urllib.parse
from abc import ABC, abstractmethod
from collections import defaultdict
from threading import Lock
from typing import TYPE_CHECKING
from xml.etree import ElementTree as ET

from requests import RequestException, Response, Session

from . import __version__
from .errors import InvalidIdentity, RegistryUnavailable
from .frameworks import ANY_FRAMEWORK, FrameworkTag
from .models import DependencyGroup, DependencyInfo, DependencyRange, PackageIdentity
from .versioning import VersionRange, format_version, parse_version, version_key

if TYPE_CHECKING:
    from collections.abc import Iterable

    from semantic_version import Version

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "https://api.nuget.org/v3/index.json"
PACKAGE_BASE_ADDRESS = "PackageBaseAddress/3.0.0"
DEFAULT_TIMEOUT = 30.0

_HTTP_NOT_FOUND = 404


class RegistryClient(ABC):
    """The two lookups the resolver needs from a package registry.

    Both raise :class:`RegistryUnavailable` on transport failures. A package
    or version the registry does not know is not an error.
    """

    @abstractmethod
    def get_dependency_info(self, identity: PackageIdentity) -> DependencyInfo | None:
        """Return the dependency groups of an exact package version, or None if it is unknown."""
        raise NotImplementedError

    @abstractmethod
    def get_all_versions(self, name: str) -> list[Version]:
        """Return every known version of ``name``; empty if the package is unknown."""
        raise NotImplementedError


class InMemoryRegistryClient(RegistryClient):
    """A registry held in memory, keyed case-insensitively by package name."""

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._packages: dict[str, dict[Version, tuple[DependencyGroup, ...]]] = defaultdict(dict)
        self._names: dict[str, str] = {}
        self._unavailable: set[str] = set()
        self._lock = Lock()
        self.requests: list[tuple[str, str]] = []

    def add(
        self,
        name: str,
        version: str | Version,
        dependencies: Iterable[DependencyGroup] = (),
    ) -> InMemoryRegistryClient:
        """Publish ``name`` at ``version`` with the given dependency groups.

        Returns:
            Self for method chaining

        """
        if isinstance(version, str):
            version = parse_version(version)
        key = name.lower()
        self._names.setdefault(key, name)
        self._packages[key][version] = tuple(dependencies)
        return self

    def set_unavailable(self, name: str) -> None:
        """Make every lookup that touches ``name`` fail as if the registry were unreachable."""
        self._unavailable.add(name.lower())

    def _record(self, lookup: str, target: str) -> None:
        with self._lock:
            self.requests.append((lookup, target))
        if target.split("@", 1)[0].lower() in self._unavailable:
            msg = f"Registry unavailable for {target}"
            raise RegistryUnavailable(msg)

    def get_dependency_info(self, identity: PackageIdentity) -> DependencyInfo | None:
        """Return the dependency groups registered for ``identity``."""
        self._record("dependency_info", str(identity))
        groups = self._packages.get(identity.name.lower(), {}).get(identity.version)
        if groups is None:
            return None
        return DependencyInfo(identity=identity, dependency_groups=groups)

    def get_all_versions(self, name: str) -> list[Version]:
        """Return the registered versions of ``name`` in ascending order."""
        self._record("all_versions", name)
        return sorted(self._packages.get(name.lower(), {}), key=version_key)


def _local_name(tag: str) -> str:
    """Strip the XML namespace from an element tag; nuspec schemas vary by version."""
    return tag.rsplit("}", 1)[-1]


def _parse_dependency(element: ET.Element) -> DependencyRange | None:
    package_id = (element.get("id") or "").strip()
    if not package_id:
        logger.debug("Ignoring nuspec dependency without an id")
        return None
    version_text = element.get("version")
    if version_text is None or not version_text.strip():
        return DependencyRange(package_id, VersionRange.all())
    try:
        return DependencyRange(package_id, VersionRange.parse(version_text))
    except ValueError:
        logger.debug("Unparseable version range %r for dependency %s", version_text, package_id)
        return DependencyRange(package_id, None)


def _parse_group_framework(text: str | None) -> FrameworkTag:
    if text is None or not text.strip():
        return ANY_FRAMEWORK
    try:
        return FrameworkTag.parse(text)
    except InvalidIdentity:
        logger.debug("Unsupported target framework %r in nuspec dependency group", text)
        return FrameworkTag.unsupported(text)


def parse_nuspec(content: str | bytes, identity: PackageIdentity) -> DependencyInfo:
    """Extract the dependency groups from a ``.nuspec`` manifest.

    Dependencies listed directly under ``<dependencies>`` (the pre-NuGet 2.0
    layout) form a single group that applies to every framework.

    Args:
        content: The nuspec XML
        identity: The package the manifest describes

    Returns:
        The package's dependency information

    Raises:
        RegistryUnavailable: If the manifest is not well-formed XML

    """
    try:
        root = ET.fromstring(content)  # noqa: S314
    except ET.ParseError as e:
        msg = f"Malformed nuspec for {identity}: {e}"
        raise RegistryUnavailable(msg) from e

    dependencies = next((el for el in root.iter() if _local_name(el.tag) == "dependencies"), None)
    if dependencies is None:
        return DependencyInfo(identity=identity)

    groups: list[DependencyGroup] = []
    flat: list[DependencyRange] = []
    for child in dependencies:
        kind = _local_name(child.tag)
        if kind == "group":
            ranges = (
                _parse_dependency(el) for el in child if _local_name(el.tag) == "dependency"
            )
            groups.append(
                DependencyGroup(
                    framework=_parse_group_framework(child.get("targetFramework")),
                    ranges=tuple(r for r in ranges if r is not None),
                )
            )
        elif kind == "dependency":
            dep = _parse_dependency(child)
            if dep is not None:
                flat.append(dep)
    if flat:
        groups.insert(0, DependencyGroup(framework=ANY_FRAMEWORK, ranges=tuple(flat)))
    return DependencyInfo(identity=identity, dependency_groups=tuple(groups))


class NuGetRegistryClient(RegistryClient):
    """Client for a NuGet V3 feed, using its flat container (``PackageBaseAddress``) resource."""

    def __init__(
        self,
        source: str = DEFAULT_SOURCE,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        session: Session | None = None,
    ) -> None:
        """Initialize a NuGet registry client.

        Args:
            source: URL of the feed's V3 service index
            timeout: Timeout in seconds for each HTTP request
            session: HTTP session to use; a new one is created if not provided

        """
        self.source = source
        self.timeout = timeout
        self.session = session if session is not None else Session()
        self.session.headers["Accept"] = "application/json"
        self.session.headers["User-Agent"] = f"nuget-depends/{__version__}"
        self._base_address: str | None = None
        self._lock = Lock()

    def _get(self, url: str) -> Response | None:
        """GET ``url``, returning None on 404 and raising RegistryUnavailable on any other failure."""
        logger.debug("GET %s", url)
        try:
            response = self.session.get(url, timeout=self.timeout)
        except RequestException as e:
            msg = f"Could not reach {url}: {e}"
            raise RegistryUnavailable(msg) from e
        if response.status_code == _HTTP_NOT_FOUND:
            return None
        if not response.ok:
            msg = f"{url} returned HTTP {response.status_code}"
            raise RegistryUnavailable(msg)
        return response

    def _get_json(self, url: str) -> dict | None:
        response = self._get(url)
        if response is None:
            return None
        try:
            data = response.json()
        except ValueError as e:
            msg = f"{url} did not return valid JSON"
            raise RegistryUnavailable(msg) from e
        if not isinstance(data, dict):
            msg = f"{url} returned an unexpected JSON document"
            raise RegistryUnavailable(msg)
        return data

    @property
    def base_address(self) -> str:
        """Get the flat container base URL, discovering it from the service index on first use."""
        with self._lock:
            if self._base_address is None:
                index = self._get_json(self.source)
                if index is None:
                    msg = f"No service index at {self.source}"
                    raise RegistryUnavailable(msg)
                resources = index.get("resources", [])
                if not isinstance(resources, list) or not all(isinstance(r, dict) for r in resources):
                    msg = f"Service index {self.source} has a malformed resources list"
                    raise RegistryUnavailable(msg)
                for resource in resources:
                    if resource.get("@type") == PACKAGE_BASE_ADDRESS and isinstance(resource.get("@id"), str) and resource["@id"]:
                        base = resource["@id"]
                        self._base_address = base if base.endswith("/") else f"{base}/"
                        break
                else:
                    msg = f"Service index {self.source} has no {PACKAGE_BASE_ADDRESS} resource"
                    raise RegistryUnavailable(msg)
            return self._base_address

    def get_all_versions(self, name: str) -> list[Version]:
        """List the versions published for ``name``."""
        package_id = urllib.parse.quote(name.lower(), safe="")
        data = self._get_json(f"{self.base_address}{package_id}/index.json")
        if data is None:
            return []
        entries = data.get("versions")
        if not isinstance(entries, list):
            msg = f"Version index of {name} has no list of versions"
            raise RegistryUnavailable(msg)
        versions: list[Version] = []
        for text in entries:
            try:
                versions.append(parse_version(text))
            except ValueError:
                logger.debug("Skipping unparseable version %r of %s", text, name)
        return versions

    def get_dependency_info(self, identity: PackageIdentity) -> DependencyInfo | None:
        """Download and parse the nuspec of ``identity``."""
        package_id = urllib.parse.quote(identity.name.lower(), safe="")
        version = urllib.parse.quote(format_version(identity.version, metadata=False).lower(), safe="")
        response = self._get(f"{self.base_address}{package_id}/{version}/{package_id}.nuspec")
        if response is None:
            return None
        return parse_nuspec(response.content, identity)

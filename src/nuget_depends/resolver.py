"""Transitive dependency resolution."""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, as_completed, wait
from multiprocessing import cpu_count
from threading import Lock
from typing import TYPE_CHECKING, Callable

from tqdm import tqdm

from .errors import InvalidIdentity, NuGetDependsError, RegistryUnavailable
from .frameworks import FrameworkTag
from .models import PackageIdentity, ResolvedPackage, RootResolution, UnmatchedDependency

if TYPE_CHECKING:
    from collections.abc import Iterable

    from semantic_version import Version

    from .models import DependencyRange
    from .registry import RegistryClient

logger = logging.getLogger(__name__)

WarningHandler = Callable[[UnmatchedDependency], None]


def log_unmatched(warning: UnmatchedDependency) -> None:
    """Report an unmatched dependency through the logger."""
    logger.warning(
        "%s (required by %s for %s)",
        warning.message,
        warning.required_by,
        warning.framework,
    )


class VisitedSet:
    """Package names already expanded during one root resolution, compared case-insensitively."""

    def __init__(self) -> None:
        """Initialize an empty set."""
        self._names: set[str] = set()
        self._lock = Lock()

    def claim(self, name: str) -> bool:
        """Mark ``name`` as visited.

        Returns:
            True if this call claimed the name, False if it was already visited

        """
        key = name.lower()
        with self._lock:
            if key in self._names:
                return False
            self._names.add(key)
            return True

    def __contains__(self, name: object) -> bool:
        """Check whether ``name`` was visited."""
        if not isinstance(name, str):
            return False
        with self._lock:
            return name.lower() in self._names

    def __len__(self) -> int:
        """Return the number of visited names."""
        with self._lock:
            return len(self._names)


def _as_identity(root: PackageIdentity | tuple[str, str]) -> PackageIdentity:
    if isinstance(root, PackageIdentity):
        return root
    try:
        name, version = root
    except (TypeError, ValueError) as e:
        msg = f"Expected a PackageIdentity or a (name, version) pair, got {root!r}"
        raise InvalidIdentity(msg) from e
    return PackageIdentity(name, version)


def _as_framework(framework: FrameworkTag | str) -> FrameworkTag:
    if isinstance(framework, FrameworkTag):
        return framework
    return FrameworkTag.parse(framework)


class DependencyResolver:
    """Expand a package into the tree of its transitive dependencies.

    Each package name is expanded at most once per root: the first time a
    name is reached, depth-first in declared order, it is expanded with the
    version chosen there; every later occurrence, whatever its version, is
    kept as a leaf. This also cuts dependency cycles.

    The version lookups for the dependencies of one package run concurrently
    on a thread pool; the children are still expanded one after another in
    declared order, so the resulting tree does not depend on timing.

    The resolver owns a thread pool and should be closed after use, e.g.
    with a ``with`` statement.
    """

    def __init__(
        self,
        registry: RegistryClient,
        *,
        max_workers: int | None = None,
        on_warning: WarningHandler | None = None,
    ) -> None:
        """Initialize a resolver.

        Args:
            registry: Where versions and dependency groups are looked up
            max_workers: Number of concurrent registry lookups; defaults to
                the number of CPUs. Values of 1 or less disable concurrency.
            on_warning: Called with every unmatched dependency; defaults to
                logging a warning

        """
        self.registry = registry
        self.max_workers: int = cpu_count() if max_workers is None or max_workers < 0 else max_workers
        self.on_warning: WarningHandler = on_warning if on_warning is not None else log_unmatched
        self._pool: ThreadPoolExecutor | None = None
        self._pool_lock = Lock()

    def __enter__(self) -> DependencyResolver:
        """Enter context manager."""
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: object) -> None:
        """Exit context manager."""
        self.close()

    def close(self) -> None:
        """Shut down the lookup thread pool."""
        with self._pool_lock:
            if self._pool is not None:
                self._pool.shutdown(wait=True, cancel_futures=True)
                self._pool = None

    def _executor(self) -> ThreadPoolExecutor | None:
        if self.max_workers <= 1:
            return None
        with self._pool_lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix="nuget-depends-lookup"
                )
            return self._pool

    def resolve_transitive(
        self,
        root: PackageIdentity | tuple[str, str],
        framework: FrameworkTag | str,
        warnings: list[UnmatchedDependency] | None = None,
    ) -> ResolvedPackage:
        """Resolve the full dependency tree of ``root`` for ``framework``.

        Args:
            root: The package to resolve, or a ``(name, version)`` pair
            framework: Target framework, or a framework moniker such as ``net8.0``
            warnings: If given, unmatched dependencies are also appended to it

        Returns:
            The tree rooted at ``root``

        Raises:
            InvalidIdentity: If ``root`` or ``framework`` cannot be parsed;
                raised before the registry is contacted
            RegistryUnavailable: If the registry fails during the resolution

        """
        identity = _as_identity(root)
        tag = _as_framework(framework)
        logger.info("Resolving %s for %s", identity, tag)
        visited = VisitedSet()
        visited.claim(identity.name)
        children = self._expand_claimed(identity, tag, visited, warnings)
        return ResolvedPackage(identity, tag, children)

    def expand(
        self,
        identity: PackageIdentity,
        framework: FrameworkTag,
        visited: VisitedSet,
        warnings: list[UnmatchedDependency] | None = None,
    ) -> list[ResolvedPackage]:
        """Return the expanded direct dependencies of ``identity``.

        Returns an empty list if ``identity.name`` was already visited.
        """
        if not visited.claim(identity.name):
            logger.debug("%s was already expanded", identity.name)
            return []
        return self._expand_claimed(identity, framework, visited, warnings)

    def _expand_claimed(
        self,
        identity: PackageIdentity,
        framework: FrameworkTag,
        visited: VisitedSet,
        warnings: list[UnmatchedDependency] | None,
    ) -> list[ResolvedPackage]:
        try:
            info = self.registry.get_dependency_info(identity)
            if info is None:
                logger.debug("No dependency information for %s", identity)
                return []
            ranges = [
                dependency
                for group in info.dependency_groups
                if group.framework.is_compatible(framework)
                for dependency in group.ranges
            ]
            matches = self._best_matches(ranges)
        except RegistryUnavailable as e:
            e.with_context(identity, framework)
            raise

        children: list[ResolvedPackage] = []
        for dependency, match in zip(ranges, matches):
            if match is None:
                self._warn(
                    UnmatchedDependency(
                        package_name=dependency.package_name,
                        version_range=dependency.normalized_range,
                        required_by=identity,
                        framework=framework,
                    ),
                    warnings,
                )
                continue
            child = PackageIdentity(dependency.package_name, match)
            children.append(ResolvedPackage(child, framework, self.expand(child, framework, visited, warnings)))
        return children

    def _best_match(self, dependency: DependencyRange) -> Version | None:
        versions = self.registry.get_all_versions(dependency.package_name)
        if dependency.version_range is None:
            return None
        return dependency.version_range.find_best_match(versions)

    def _best_matches(self, ranges: list[DependencyRange]) -> list[Version | None]:
        """Look up the best version for every range, in the order of ``ranges``.

        The first failed lookup cancels the ones that have not started and is re-raised.
        """
        pool = self._executor()
        if pool is None or len(ranges) <= 1:
            return [self._best_match(dependency) for dependency in ranges]
        futures: list[Future[Version | None]] = [pool.submit(self._best_match, dependency) for dependency in ranges]
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)
        for future in futures:
            if future in done and future.exception() is not None:
                for other in pending:
                    other.cancel()
                raise future.exception()  # type: ignore[misc]
        return [future.result() for future in futures]

    def _warn(self, warning: UnmatchedDependency, warnings: list[UnmatchedDependency] | None) -> None:
        if warnings is not None:
            warnings.append(warning)
        self.on_warning(warning)

    def resolve_root(self, name: str, version: str, framework: str) -> RootResolution:
        """Resolve one root of a batch, capturing its warnings and any fatal error."""
        result = RootResolution(name=name, version=version, framework=framework)
        try:
            result.package = self.resolve_transitive((name, version), framework, warnings=result.warnings)
        except NuGetDependsError as e:
            logger.error("Failed to resolve %s@%s for %s: %s", name, version, framework, e)  # noqa: TRY400
            result.error = e
        return result

    def resolve_all(self, targets: Iterable[tuple[str, str, str]]) -> list[RootResolution]:
        """Resolve a batch of ``(name, version, framework)`` roots.

        Every root gets its own visited set, so nothing is shared between
        roots. A root that fails does not affect the others.

        Returns:
            One result per target, in the order of ``targets``

        """
        targets = list(targets)
        with tqdm(desc="resolving", total=len(targets), leave=False, unit=" packages") as t:
            if self.max_workers <= 1 or len(targets) <= 1:
                results = []
                for target in targets:
                    results.append(self.resolve_root(*target))
                    t.update(1)
                return results
            with ThreadPoolExecutor(
                max_workers=min(self.max_workers, len(targets)), thread_name_prefix="nuget-depends-root"
            ) as pool:
                futures = {pool.submit(self.resolve_root, *target): i for i, target in enumerate(targets)}
                results_by_index: dict[int, RootResolution] = {}
                for future in as_completed(futures):
                    t.update(1)
                    results_by_index[futures[future]] = future.result()
            return [results_by_index[i] for i in range(len(targets))]

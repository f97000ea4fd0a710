"""Unit tests for transitive dependency resolution."""

from __future__ import annotations

import random
import threading
import time
from unittest import TestCase
from unittest.mock import Mock

import pytest

from nuget_depends.errors import InvalidIdentity, RegistryUnavailable
from nuget_depends.frameworks import ANY_FRAMEWORK, FrameworkTag
from nuget_depends.models import DependencyGroup, DependencyRange, PackageIdentity, ResolvedPackage
from nuget_depends.registry import InMemoryRegistryClient
from nuget_depends.resolver import DependencyResolver, VisitedSet
from nuget_depends.versioning import VersionRange

NET8 = FrameworkTag.parse("net8.0")
NET472 = FrameworkTag.parse("net472")


def group(framework: FrameworkTag, *dependencies: tuple[str, str | None]) -> DependencyGroup:
    return DependencyGroup(
        framework=framework,
        ranges=tuple(
            DependencyRange(name, None if text is None else VersionRange.parse(text)) for name, text in dependencies
        ),
    )


def shape(package: ResolvedPackage) -> tuple:
    """Reduce a tree to nested ``(name@version, [children])`` tuples."""
    return (str(package.identity), [shape(child) for child in package.children])


class SlowRegistry(InMemoryRegistryClient):
    """Answers version lookups after a random delay so concurrent lookups finish out of order."""

    def get_all_versions(self, name):  # noqa: ANN001, ANN201
        time.sleep(random.uniform(0, 0.02))  # noqa: S311
        return super().get_all_versions(name)


class ResolverTestCase(TestCase):
    max_workers = 1

    def setUp(self) -> None:
        self.registry = InMemoryRegistryClient()
        self.on_warning = Mock()

    def resolve(self, name: str, version: str, framework: str | FrameworkTag = NET8, **kwargs) -> ResolvedPackage:  # noqa: ANN003
        with DependencyResolver(self.registry, max_workers=self.max_workers, on_warning=self.on_warning) as resolver:
            return resolver.resolve_transitive((name, version), framework, **kwargs)


class TestResolveTransitive(ResolverTestCase):
    def test_picks_highest_version_within_half_open_range(self) -> None:
        self.registry.add("App", "1.0.0", [group(NET8, ("Lib", "[1.0.0,2.0.0)"))])
        for version in ("1.0.0", "1.5.0", "2.0.0"):
            self.registry.add("Lib", version)

        tree = self.resolve("App", "1.0.0")

        assert shape(tree) == ("App@1.0.0", [("Lib@1.5.0", [])])
        assert tree.framework == NET8
        assert tree.children[0].framework == NET8
        self.on_warning.assert_not_called()

    def test_unmatched_dependency_warns_and_leaves_no_children(self) -> None:
        self.registry.add("App", "1.0.0", [group(NET8, ("Lib", "[1.0.0,2.0.0)"))])
        self.registry.add("Lib", "1.5.0", [group(ANY_FRAMEWORK, ("Util", "[1.0.0,)"))])
        self.registry.add("Util", "0.9.0")
        warnings: list = []

        tree = self.resolve("App", "1.0.0", warnings=warnings)

        assert shape(tree) == ("App@1.0.0", [("Lib@1.5.0", [])])
        assert len(warnings) == 1
        warning = warnings[0]
        assert warning.package_name == "Util"
        assert warning.version_range == "[1.0.0, )"
        assert warning.required_by == PackageIdentity("Lib", "1.5.0")
        assert warning.framework == NET8
        self.on_warning.assert_called_once_with(warning)

    def test_unmatched_dependency_does_not_stop_siblings(self) -> None:
        self.registry.add(
            "App",
            "1.0.0",
            [group(NET8, ("Missing", "[1.0.0]"), ("Lib", "1.0.0"), ("Gone", "[2.0.0, )"), ("Util", "1.0.0"))],
        )
        self.registry.add("Lib", "1.0.0").add("Util", "1.1.0").add("Gone", "1.0.0")

        tree = self.resolve("App", "1.0.0")

        assert shape(tree) == ("App@1.0.0", [("Lib@1.0.0", []), ("Util@1.1.0", [])])
        assert [call.args[0].package_name for call in self.on_warning.call_args_list] == ["Missing", "Gone"]

    def test_missing_range_is_reported_as_unknown(self) -> None:
        self.registry.add("App", "1.0.0", [group(NET8, ("Lib", None))])
        self.registry.add("Lib", "1.0.0")
        warnings: list = []

        tree = self.resolve("App", "1.0.0", warnings=warnings)

        assert tree.children == []
        assert [w.version_range for w in warnings] == ["Unknown"]

    def test_no_matching_group_means_no_children(self) -> None:
        self.registry.add("App", "1.0.0", [group(NET472, ("Lib", "1.0.0"))])
        self.registry.add("Lib", "1.0.0")

        tree = self.resolve("App", "1.0.0")

        assert tree.children == []
        assert ("all_versions", "Lib") not in self.registry.requests

    def test_package_without_groups_has_empty_children(self) -> None:
        self.registry.add("App", "1.0.0")
        assert self.resolve("App", "1.0.0").children == []

    def test_unknown_package_is_not_an_error(self) -> None:
        tree = self.resolve("Ghost", "1.0.0")
        assert tree.children == []
        assert str(tree.identity) == "Ghost@1.0.0"

    def test_every_compatible_group_contributes_in_order(self) -> None:
        self.registry.add(
            "App",
            "1.0.0",
            [
                group(NET8, ("First", "1.0.0")),
                group(NET472, ("Legacy", "1.0.0")),
                group(ANY_FRAMEWORK, ("Second", "1.0.0")),
                group(FrameworkTag.parse(".NETCoreApp8.0"), ("Third", "1.0.0")),
            ],
        )
        for name in ("First", "Legacy", "Second", "Third"):
            self.registry.add(name, "1.0.0")

        tree = self.resolve("App", "1.0.0")

        assert [child.name for child in tree.children] == ["First", "Second", "Third"]

    def test_cycle_terminates(self) -> None:
        self.registry.add("A", "1.0.0", [group(NET8, ("B", "1.0.0"))])
        self.registry.add("B", "1.0.0", [group(NET8, ("A", "1.0.0"))])

        tree = self.resolve("A", "1.0.0")

        assert shape(tree) == ("A@1.0.0", [("B@1.0.0", [("A@1.0.0", [])])])
        assert self.registry.requests.count(("dependency_info", "A@1.0.0")) == 1

    def test_name_is_expanded_once_whatever_the_version(self) -> None:
        # A -> B -> D[1.x] -> E and A -> C -> d[2.x] -> F: only the first D is expanded
        self.registry.add("A", "1.0.0", [group(NET8, ("B", "1.0.0"), ("C", "1.0.0"))])
        self.registry.add("B", "1.0.0", [group(NET8, ("D", "[1.0.0,2.0.0)"))])
        self.registry.add("C", "1.0.0", [group(NET8, ("d", "[2.0.0,3.0.0)"))])
        self.registry.add("D", "1.2.0", [group(NET8, ("E", "1.0.0"))])
        self.registry.add("D", "2.1.0", [group(NET8, ("F", "1.0.0"))])
        self.registry.add("E", "1.0.0").add("F", "1.0.0")

        tree = self.resolve("A", "1.0.0")

        assert shape(tree) == (
            "A@1.0.0",
            [
                ("B@1.0.0", [("D@1.2.0", [("E@1.0.0", [])])]),
                ("C@1.0.0", [("d@2.1.0", [])]),
            ],
        )
        assert ("dependency_info", "d@2.1.0") not in self.registry.requests
        assert ("all_versions", "F") not in self.registry.requests

    def test_sibling_expansion_suppresses_later_duplicates(self) -> None:
        # A -> B -> C and A -> C: C is expanded under B, which comes first
        self.registry.add("A", "1.0.0", [group(NET8, ("B", "1.0.0"), ("C", "1.0.0"))])
        self.registry.add("B", "1.0.0", [group(NET8, ("C", "1.0.0"))])
        self.registry.add("C", "1.0.0", [group(NET8, ("Leaf", "1.0.0"))])
        self.registry.add("Leaf", "1.0.0")

        tree = self.resolve("A", "1.0.0")

        assert shape(tree) == (
            "A@1.0.0",
            [("B@1.0.0", [("C@1.0.0", [("Leaf@1.0.0", [])])]), ("C@1.0.0", [])],
        )

    def test_accepts_identity_and_framework_objects(self) -> None:
        self.registry.add("App", "1.0.0", [group(NET8, ("Lib", "1.0.0"))]).add("Lib", "1.0.0")
        with DependencyResolver(self.registry, max_workers=1, on_warning=self.on_warning) as resolver:
            tree = resolver.resolve_transitive(PackageIdentity("app", "1.0.0"), NET8)
        assert [child.name for child in tree.children] == ["Lib"]

    def test_invalid_version_fails_before_registry_access(self) -> None:
        with pytest.raises(InvalidIdentity):
            self.resolve("App", "not-a-version")
        assert self.registry.requests == []

    def test_invalid_framework_fails_before_registry_access(self) -> None:
        with pytest.raises(InvalidIdentity):
            self.resolve("App", "1.0.0", framework="windows95")
        assert self.registry.requests == []

    def test_registry_failure_is_fatal_and_names_the_package(self) -> None:
        self.registry.add("App", "1.0.0", [group(NET8, ("Lib", "1.0.0"))])
        self.registry.add("Lib", "1.0.0", [group(NET8, ("Broken", "1.0.0"))])
        self.registry.set_unavailable("Broken")

        with pytest.raises(RegistryUnavailable) as excinfo:
            self.resolve("App", "1.0.0")

        assert excinfo.value.package == "Lib"
        assert excinfo.value.version == "1.0.0"
        assert excinfo.value.framework == "net8.0"
        assert "while resolving Lib@1.0.0 for net8.0" in str(excinfo.value)


class TestConcurrentResolution(ResolverTestCase):
    max_workers = 8

    def setUp(self) -> None:
        super().setUp()
        self.registry = SlowRegistry()

    def build_graph(self) -> None:
        names = [f"Pkg{i}" for i in range(12)]
        self.registry.add("App", "1.0.0", [group(NET8, *((name, "[1.0.0, 2.0.0)") for name in names))])
        for i, name in enumerate(names):
            # every package also depends on the next two, so the name-once policy decides the shape
            deps = [(other, "[1.0.0, 2.0.0)") for other in names[i + 1 : i + 3]]
            self.registry.add(name, "1.0.0", [group(ANY_FRAMEWORK, *deps)])
            self.registry.add(name, "1.5.0", [group(ANY_FRAMEWORK, *deps)])
            self.registry.add(name, "2.0.0")

    def sequential(self) -> ResolvedPackage:
        with DependencyResolver(self.registry, max_workers=1, on_warning=self.on_warning) as resolver:
            return resolver.resolve_transitive(("App", "1.0.0"), NET8)

    def test_tree_does_not_depend_on_lookup_timing(self) -> None:
        self.build_graph()
        expected = shape(self.sequential())
        for _ in range(3):
            assert shape(self.resolve("App", "1.0.0")) == expected

    def test_children_keep_declared_order(self) -> None:
        self.build_graph()
        tree = self.resolve("App", "1.0.0")
        assert [child.name for child in tree.children] == [f"Pkg{i}" for i in range(12)]
        assert str(tree.children[0].identity) == "Pkg0@1.5.0"
        assert [child.name for child in tree.children[0].children] == ["Pkg1", "Pkg2"]

    def test_failed_sibling_lookup_aborts_the_root(self) -> None:
        self.registry.add("App", "1.0.0", [group(NET8, ("Slow1", "1.0.0"), ("Broken", "1.0.0"), ("Slow2", "1.0.0"))])
        self.registry.add("Slow1", "1.0.0").add("Slow2", "1.0.0")
        self.registry.set_unavailable("Broken")

        with pytest.raises(RegistryUnavailable) as excinfo:
            self.resolve("App", "1.0.0")

        assert excinfo.value.package == "App"
        assert ("dependency_info", "Slow1@1.0.0") not in self.registry.requests


class TestResolveAll(TestCase):
    def setUp(self) -> None:
        self.registry = InMemoryRegistryClient()
        self.registry.add("App", "1.0.0", [group(NET8, ("Lib", "[1.0.0, )"))])
        self.registry.add("Tool", "2.0.0", [group(NET8, ("Lib", "[1.0.0, )"))])
        self.registry.add("Lib", "1.0.0", [group(NET8, ("Util", "1.0.0"))])
        self.registry.add("Util", "1.0.0")

    def resolve_all(self, targets: list[tuple[str, str, str]], max_workers: int = 4) -> list:
        with DependencyResolver(self.registry, max_workers=max_workers, on_warning=Mock()) as resolver:
            return resolver.resolve_all(targets)

    def test_roots_do_not_share_visited_names(self) -> None:
        for max_workers in (1, 4):
            with self.subTest(max_workers=max_workers):
                self.registry.requests.clear()
                app, tool = self.resolve_all([("App", "1.0.0", "net8.0"), ("Tool", "2.0.0", "net8.0")], max_workers)
                expected_lib = ("Lib@1.0.0", [("Util@1.0.0", [])])
                assert shape(app.package) == ("App@1.0.0", [expected_lib])
                assert shape(tool.package) == ("Tool@2.0.0", [expected_lib])
                assert self.registry.requests.count(("dependency_info", "Lib@1.0.0")) == 2

    def test_failures_are_isolated_per_root(self) -> None:
        self.registry.add("Broken", "1.0.0")
        self.registry.set_unavailable("Broken")

        results = self.resolve_all(
            [
                ("App", "1.0.0", "net8.0"),
                ("App", "latest", "net8.0"),
                ("Broken", "1.0.0", "net8.0"),
                ("Tool", "2.0.0", "not-a-framework"),
                ("Tool", "2.0.0", "net8.0"),
            ]
        )

        assert [r.succeeded for r in results] == [True, False, False, False, True]
        assert isinstance(results[1].error, InvalidIdentity)
        assert isinstance(results[2].error, RegistryUnavailable)
        assert results[2].error.package == "Broken"
        assert isinstance(results[3].error, InvalidIdentity)
        assert results[4].package is not None
        assert [child.name for child in results[4].package.children] == ["Lib"]

    def test_warnings_are_collected_per_root(self) -> None:
        self.registry.add("Needy", "1.0.0", [group(NET8, ("Util", "[9.0.0, )"))])

        needy, app = self.resolve_all([("Needy", "1.0.0", "net8.0"), ("App", "1.0.0", "net8.0")])

        assert [w.package_name for w in needy.warnings] == ["Util"]
        assert app.warnings == []

    def test_results_keep_input_order(self) -> None:
        targets = [("Util", "1.0.0", "net8.0"), ("Tool", "2.0.0", "net8.0"), ("App", "1.0.0", "net8.0")]
        results = self.resolve_all(targets)
        assert [(r.name, r.version, r.framework) for r in results] == targets


class TestVisitedSet(TestCase):
    def test_claim_is_case_insensitive(self) -> None:
        visited = VisitedSet()
        assert visited.claim("Newtonsoft.Json")
        assert not visited.claim("newtonsoft.json")
        assert "NEWTONSOFT.JSON" in visited
        assert len(visited) == 1

    def test_exactly_one_concurrent_claim_wins(self) -> None:
        visited = VisitedSet()
        barrier = threading.Barrier(16)
        wins: list[bool] = []
        lock = threading.Lock()

        def claim() -> None:
            barrier.wait()
            won = visited.claim("Contended")
            with lock:
                wins.append(won)

        threads = [threading.Thread(target=claim) for _ in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert wins.count(True) == 1
        assert len(wins) == 16

from __future__ import annotations

from pathlib import Path

import pytest

from pytest_impact.graph import DependencyGraph, affected_dependents
from pytest_impact.modules import Module


def module(path: str, *deps: str) -> Module:
    return Module(path=path, directory=Path("/repo") / path.strip(":").replace(":", "/"), dependencies=frozenset(deps))


class TestFromModules:
    def test_reverse_edges(self) -> None:
        graph = DependencyGraph.from_modules([module(":core"), module(":lib", ":core")])
        assert graph.dependents_of(":core") == {":lib"}
        assert graph.dependents_of(":lib") == frozenset()

    def test_shared_dependency_has_many_dependents(self) -> None:
        graph = DependencyGraph.from_modules(
            [module(":core"), module(":a", ":core"), module(":b", ":core")]
        )
        assert graph.dependents_of(":core") == {":a", ":b"}

    def test_unknown_dependency_ignored(self) -> None:
        graph = DependencyGraph.from_modules([module(":lib", ":external")])
        assert graph.dependents_of(":external") == frozenset()
        assert len(graph) == 0

    def test_self_dependency_dropped(self) -> None:
        graph = DependencyGraph.from_modules([module(":lib", ":lib")])
        assert graph.dependents_of(":lib") == frozenset()

    def test_reverse_map_is_read_only(self) -> None:
        graph = DependencyGraph.from_modules([module(":core"), module(":lib", ":core")])
        with pytest.raises(TypeError):
            graph.reverse[":x"] = frozenset()  # type: ignore[index]

    def test_edges_sorted(self) -> None:
        graph = DependencyGraph.from_modules(
            [module(":core"), module(":b", ":core"), module(":a", ":core")]
        )
        assert graph.edges() == [(":core", ":a"), (":core", ":b")]


class TestAffectedDependents:
    def chain(self) -> DependencyGraph:
        # app depends on lib, lib depends on core
        return DependencyGraph({":core": {":lib"}, ":lib": {":app"}})

    def test_dependents_flow_from_dependency(self) -> None:
        assert affected_dependents({":core"}, self.chain()) == {":lib", ":app"}

    def test_top_of_chain_has_no_dependents(self) -> None:
        assert affected_dependents({":app"}, self.chain()) == set()

    def test_start_module_not_included(self) -> None:
        assert ":core" not in affected_dependents({":core"}, self.chain())

    def test_start_module_included_when_reached(self) -> None:
        assert affected_dependents({":core", ":lib"}, self.chain()) == {":lib", ":app"}

    def test_idempotent(self) -> None:
        graph = self.chain()
        assert affected_dependents({":core"}, graph) == affected_dependents({":core"}, graph)

    def test_cycle_terminates(self) -> None:
        graph = DependencyGraph({":a": {":b"}, ":b": {":a"}})
        assert affected_dependents({":a"}, graph) == {":a", ":b"}

    def test_self_edge_is_harmless(self) -> None:
        graph = DependencyGraph({":a": {":a", ":b"}})
        assert affected_dependents({":a"}, graph) == {":b"}

    def test_diamond(self) -> None:
        # top depends on left and right, both depend on base
        graph = DependencyGraph({":base": {":left", ":right"}, ":left": {":top"}, ":right": {":top"}})
        assert affected_dependents({":base"}, graph) == {":left", ":right", ":top"}

    def test_empty_direct_set(self) -> None:
        assert affected_dependents(set(), self.chain()) == set()

    def test_no_dependents_anywhere(self) -> None:
        assert affected_dependents({":x"}, DependencyGraph({})) == set()

    def test_deep_chain_does_not_recurse(self) -> None:
        depth = 5000
        graph = DependencyGraph({f":m{i}": {f":m{i + 1}"} for i in range(depth)})
        result = affected_dependents({":m0"}, graph)
        assert len(result) == depth

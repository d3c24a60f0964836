from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from pytest_impact.modules import Module


class DependencyGraph:
    """Reverse module dependency map: dependency -> modules declaring it directly."""

    def __init__(self, reverse: Mapping[str, Iterable[str]]) -> None:
        cleaned = {dep: frozenset(d for d in dependents if d != dep) for dep, dependents in reverse.items()}
        self._reverse: Mapping[str, frozenset[str]] = MappingProxyType(
            {dep: dependents for dep, dependents in cleaned.items() if dependents}
        )

    @classmethod
    def from_modules(cls, modules: Iterable[Module]) -> DependencyGraph:
        modules = list(modules)
        known = {m.path for m in modules}
        reverse: dict[str, set[str]] = {}
        for module in modules:
            for dep in module.dependencies:
                # Only edges between modules of this tree
                if dep not in known:
                    continue
                reverse.setdefault(dep, set()).add(module.path)
        return cls(reverse)

    @property
    def reverse(self) -> Mapping[str, frozenset[str]]:
        return self._reverse

    def dependents_of(self, path: str) -> frozenset[str]:
        return self._reverse.get(path, frozenset())

    def edges(self) -> list[tuple[str, str]]:
        return sorted(
            (dep, dependent)
            for dep, dependents in self._reverse.items()
            for dependent in dependents
        )

    def __len__(self) -> int:
        return len(self._reverse)


def affected_dependents(direct: Iterable[str], graph: DependencyGraph) -> set[str]:
    """Every module that transitively depends on one of ``direct``.

    A start module is only part of the result when some other reached module
    depends on it. Each module's dependents are expanded at most once, so
    cycles terminate.
    """
    visited: set[str] = set()
    result: set[str] = set()
    queue = deque(sorted(set(direct)))
    while queue:
        node = queue.popleft()
        if node in visited:
            continue
        visited.add(node)
        for dependent in graph.dependents_of(node):
            result.add(dependent)
            if dependent not in visited:
                queue.append(dependent)
    return result

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from pytest_impact.changes import ChangeSet
from pytest_impact.config import ChangeMode
from pytest_impact.graph import DependencyGraph, affected_dependents
from pytest_impact.modules import ModuleTreeIndex

Log = Callable[[str], None]


def _silent(msg: str) -> None:
    pass


@dataclass(frozen=True)
class RunDecisionSet:
    """The per-module run decision of one invocation."""

    modules: frozenset[str] = field(default_factory=frozenset)
    affects_all: bool = False
    direct: frozenset[str] = field(default_factory=frozenset)
    dependents: frozenset[str] = field(default_factory=frozenset)
    always_run: frozenset[str] = field(default_factory=frozenset)
    never_run: frozenset[str] = field(default_factory=frozenset)
    no_op: bool = False

    @property
    def affected(self) -> frozenset[str]:
        return self.direct | self.dependents

    def should_run(self, path: str) -> bool:
        if self.no_op or path in self.never_run:
            return False
        return self.affects_all or path in self.affected or path in self.always_run

    def modules_to_run(self) -> list[str]:
        return sorted(p for p in self.modules if self.should_run(p))

    def as_mapping(self) -> dict[str, bool]:
        return {p: self.should_run(p) for p in sorted(self.modules)}


def resolve_overrides(configured: Iterable[str], index: ModuleTreeIndex, log: Log = _silent) -> frozenset[str]:
    configured = set(configured)
    unknown = configured - index.paths
    if unknown:
        log(f"Ignoring unknown module paths: {sorted(unknown)}")
    return frozenset(configured & index.paths)


def resolve_direct(changes: ChangeSet, index: ModuleTreeIndex, log: Log = _silent) -> frozenset[str]:
    direct: set[str] = set()
    for file in changes.files:
        owner = index.owner_of(file)
        if owner is None:
            log(f"Dropping {file}: outside of {index.root}")
            continue
        if index.is_fallback(file):
            log(f"No module more specific than the root owns {file}")
        direct.add(owner.path)
    return frozenset(direct)


def resolve(
    changes: ChangeSet,
    index: ModuleTreeIndex,
    graph: DependencyGraph,
    *,
    mode: ChangeMode = ChangeMode.INCLUDE_DEPENDENTS,
    always_run: Iterable[str] = (),
    never_run: Iterable[str] = (),
    log: Log = _silent,
) -> RunDecisionSet:
    modules = index.paths

    if changes.is_empty:
        log("No changes after filtering -- nothing to run")
        return RunDecisionSet(modules=modules, no_op=True)

    always = resolve_overrides(always_run, index, log)
    never = resolve_overrides(never_run, index, log)
    log(f"Always run modules: {sorted(always)}")
    log(f"Never run modules: {sorted(never)}")

    # Everything runs, ownership and closure are irrelevant
    if changes.affects_all:
        log("Changes affect all modules")
        return RunDecisionSet(
            modules=modules,
            affects_all=True,
            always_run=always,
            never_run=never,
        )

    direct = resolve_direct(changes, index, log)
    log(f"Directly affected modules: {sorted(direct)}")

    dependents: frozenset[str] = frozenset()
    if mode is ChangeMode.INCLUDE_DEPENDENTS:
        dependents = frozenset(affected_dependents(direct, graph))
        log(f"Dependent affected modules: {sorted(dependents)}")

    return RunDecisionSet(
        modules=modules,
        direct=direct,
        dependents=dependents,
        always_run=always,
        never_run=never,
    )

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

from pytest_impact.config import MODULE_SEPARATOR

ROOT_MODULE_PATH = MODULE_SEPARATOR


@dataclass(frozen=True)
class Module:
    path: str
    directory: Path
    name: str = ""
    dependencies: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_root(self) -> bool:
        return self.path == ROOT_MODULE_PATH


def canonical_path(path: str | Path) -> Path:
    # strict=False so deleted files still resolve
    return Path(path).expanduser().resolve(strict=False)


def module_path_for(root: Path, directory: Path) -> str:
    rel = canonical_path(directory).relative_to(canonical_path(root))
    if not rel.parts:
        return ROOT_MODULE_PATH
    return MODULE_SEPARATOR + MODULE_SEPARATOR.join(rel.parts)


def _is_within(path: Path, directory: Path) -> bool:
    # Segment-wise containment: /foo2/x is not within /foo
    return path == directory or directory in path.parents


class ModuleTreeIndex:
    """Answers "which module owns this file" for a fixed set of modules.

    Built once, after every module is known. The owner of a file is the module
    with the deepest directory containing it; equal-length directories resolve
    to the lexicographically smallest module path.
    """

    def __init__(self, modules: Iterable[Module], root: str | Path) -> None:
        self.root = canonical_path(root)
        by_path: dict[str, Module] = {}
        for module in modules:
            by_path[module.path] = Module(
                path=module.path,
                directory=canonical_path(module.directory),
                name=module.name,
                dependencies=module.dependencies,
            )
        if ROOT_MODULE_PATH not in by_path:
            by_path[ROOT_MODULE_PATH] = Module(path=ROOT_MODULE_PATH, directory=self.root)
        self._modules = dict(sorted(by_path.items()))
        # Deepest directory first, then smallest path for ties
        self._by_depth = sorted(
            self._modules.values(),
            key=lambda m: (-len(str(m.directory)), m.path),
        )

    def __contains__(self, path: object) -> bool:
        return path in self._modules

    def __iter__(self) -> Iterator[Module]:
        return iter(self._modules.values())

    def __len__(self) -> int:
        return len(self._modules)

    @property
    def root_module(self) -> Module:
        return self._modules[ROOT_MODULE_PATH]

    @property
    def paths(self) -> frozenset[str]:
        return frozenset(self._modules)

    def get(self, path: str) -> Module | None:
        return self._modules.get(path)

    def owner_of(self, file_path: str | Path) -> Module | None:
        """Return the module owning ``file_path``, or None if it lies outside the root."""
        path = canonical_path(file_path)
        if not _is_within(path, self.root):
            return None
        for module in self._by_depth:
            if _is_within(path, module.directory):
                return module
        return self.root_module

    def is_fallback(self, file_path: str | Path) -> bool:
        """True when ``file_path`` only matched the root module despite nested modules."""
        if len(self._modules) == 1:
            return False
        owner = self.owner_of(file_path)
        return owner is not None and owner.is_root

    def nested_directories(self, path: str) -> list[Path]:
        """Directories of the modules nested inside the module at ``path``."""
        outer = self._modules[path]
        return [
            m.directory
            for m in self
            if m.path != path and m.directory != outer.directory and _is_within(m.directory, outer.directory)
        ]

    def describe(self) -> list[str]:
        return [f"{m.path} -> {m.directory}" for m in self]

from __future__ import annotations

import re
import tomllib
from pathlib import Path

from pytest_impact.config import ImpactConfigurationError
from pytest_impact.modules import Module, canonical_path, module_path_for

PYPROJECT = "pyproject.toml"

SKIP_DIRS = frozenset({
    ".venv",
    "venv",
    ".env",
    "env",
    "__pycache__",
    ".git",
    ".hg",
    ".svn",
    "node_modules",
    "build",
    "dist",
    ".eggs",
    ".tox",
    ".nox",
    ".mypy_cache",
    ".ruff_cache",
    ".pytest_cache",
    "site-packages",
})

_NAME_RE = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")


def normalize_name(name: str) -> str:
    # PEP 503
    return re.sub(r"[-_.]+", "-", name).lower()


def requirement_name(requirement: str) -> str | None:
    match = _NAME_RE.match(requirement)
    if not match:
        return None
    return normalize_name(match.group(1))


def load_pyproject(path: Path) -> dict:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as e:
        raise ImpactConfigurationError(f"Failed to parse {path}: {e}") from e


def declared_requirements(data: dict) -> set[str]:
    project = data.get("project", {})
    requirements = list(project.get("dependencies", []))
    for extra in project.get("optional-dependencies", {}).values():
        requirements.extend(extra)
    names = {requirement_name(r) for r in requirements if isinstance(r, str)}
    names.discard(None)
    return names  # type: ignore[return-value]


def find_module_dirs(root: Path) -> list[Path]:
    result: list[Path] = []
    for pyproject in root.rglob(PYPROJECT):
        parts = pyproject.relative_to(root).parts
        if any(part in SKIP_DIRS or part.startswith(".") for part in parts[:-1]):
            continue
        result.append(pyproject.parent)
    return sorted(result)


def discover_modules(root: str | Path) -> list[Module]:
    """Snapshot every module of the tree rooted at ``root``.

    A module is a directory holding a ``pyproject.toml``; the root always is
    one. Dependencies are the requirements naming another module's project.
    """
    root = canonical_path(root)
    dirs = find_module_dirs(root)
    if root not in dirs:
        dirs.insert(0, root)

    raw: dict[str, tuple[Path, str, set[str]]] = {}
    for directory in dirs:
        pyproject = directory / PYPROJECT
        data = load_pyproject(pyproject) if pyproject.is_file() else {}
        name = data.get("project", {}).get("name") or directory.name
        raw[module_path_for(root, directory)] = (directory, normalize_name(name), declared_requirements(data))

    by_name: dict[str, str] = {}
    for path, (_, name, _) in sorted(raw.items()):
        by_name.setdefault(name, path)

    modules: list[Module] = []
    for path, (directory, name, requirements) in sorted(raw.items()):
        dependencies = frozenset(
            by_name[req] for req in requirements if req in by_name and by_name[req] != path
        )
        modules.append(Module(path=path, directory=directory, name=name, dependencies=dependencies))
    return modules

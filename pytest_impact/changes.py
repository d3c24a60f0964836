from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from pytest_impact.config import compile_patterns

__all__ = ["ChangeSet", "compile_patterns", "filter_changes"]


@dataclass(frozen=True)
class ChangeSet:
    files: tuple[Path, ...] = ()
    affects_all: bool = False
    ignored: tuple[str, ...] = field(default=(), compare=False)

    @property
    def is_empty(self) -> bool:
        return not self.files and not self.affects_all


def _matches_any(path: str, patterns: list[re.Pattern[str]]) -> bool:
    # Whole-path match, not search
    return any(p.fullmatch(path) for p in patterns)


def filter_changes(
    changed: Iterable[str],
    git_root: str | Path,
    ignored: Iterable[str | re.Pattern[str]] = (),
    affects_all: Iterable[str | re.Pattern[str]] = (),
) -> ChangeSet:
    """Drop ignored paths, then check the remainder for affects-all matches.

    ``changed`` holds paths relative to ``git_root`` as reported by git.
    """
    ignored_patterns = compile_patterns(ignored)
    affects_all_patterns = compile_patterns(affects_all)
    root = Path(git_root)

    kept: list[str] = []
    dropped: list[str] = []
    for rel in changed:
        rel = Path(rel).as_posix()
        if _matches_any(rel, ignored_patterns):
            dropped.append(rel)
        else:
            kept.append(rel)

    return ChangeSet(
        files=tuple(root / rel for rel in kept),
        affects_all=any(_matches_any(rel, affects_all_patterns) for rel in kept),
        ignored=tuple(dropped),
    )

from __future__ import annotations

import subprocess
from enum import Enum
from pathlib import Path

from pytest_impact.config import ImpactConfigurationError

HEAD = "HEAD"
BASE_DIFF_COMMAND = ("git", "diff", "--name-only")


class ChangeSourceError(Exception):
    pass


class GitDiffMode(Enum):
    COMMIT = "commit"
    BRANCH = "branch"
    BRANCH_TWO_DOT = "branchTwoDotted"
    BRANCH_THREE_DOT = "branchThreeDotted"

    @classmethod
    def from_option(cls, option: str) -> GitDiffMode:
        for mode in cls:
            if mode.value == option:
                return mode
        available = ", ".join(sorted(m.value for m in cls))
        raise ImpactConfigurationError(f"Unknown compare mode {option} available [{available}]")


def build_diff_command(
    mode: GitDiffMode, commit: str | None = None, prev_commit: str | None = None
) -> list[str]:
    """Return the ``git diff`` argv listing the files changed for ``mode``."""
    if mode is GitDiffMode.COMMIT:
        # A lone commit means the diff of that one commit
        if commit and prev_commit:
            return [*BASE_DIFF_COMMAND, f"{prev_commit}~", commit]
        if commit:
            return [*BASE_DIFF_COMMAND, f"{commit}~", commit]
        if prev_commit:
            raise ChangeSourceError(
                f"[{mode.name}] When using --impact-prev-commit then --impact-commit must also be specified"
            )
        return [*BASE_DIFF_COMMAND, f"{HEAD}~", HEAD]

    if not prev_commit:
        raise ChangeSourceError(f"[{mode.name}] --impact-prev-commit must always be specified")

    if mode is GitDiffMode.BRANCH:
        return [*BASE_DIFF_COMMAND, prev_commit, commit or HEAD]
    if mode is GitDiffMode.BRANCH_TWO_DOT:
        return [*BASE_DIFF_COMMAND, f"{prev_commit}..{commit or ''}"]
    return [*BASE_DIFF_COMMAND, f"{prev_commit}...{commit or ''}"]


def run_git_command(*args: str, cwd: str | Path | None = None) -> str:
    try:
        completed = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            encoding="utf-8",
            check=False,
        )
    except FileNotFoundError as e:
        raise ChangeSourceError("Git is not installed or not on PATH") from e
    if completed.returncode != 0:
        raise ChangeSourceError(
            f"Git command failed: git {' '.join(args)}\n{completed.stderr.strip()}"
        )
    return completed.stdout


def find_git_root(start: str | Path) -> Path:
    current = Path(start).resolve()
    for directory in (current, *current.parents):
        if (directory / ".git").exists():
            return directory
    raise ChangeSourceError(f"{start} is not inside a git repository")


def get_changed_files(
    git_root: str | Path,
    mode: GitDiffMode = GitDiffMode.COMMIT,
    commit: str | None = None,
    prev_commit: str | None = None,
) -> list[str]:
    """Paths changed according to ``mode``, relative to ``git_root``, in git's order."""
    command = build_diff_command(mode, commit, prev_commit)
    # Unquoted, NUL separated: non-ASCII and whitespace survive as-is
    args = ["-c", "core.quotepath=false", *command[1:3], "-z", *command[3:]]
    out = run_git_command(*args, cwd=git_root)
    changed = [path for path in out.split("\0") if path]
    if not changed:
        raise ChangeSourceError(
            f"Git diff returned no results this must be a mistake: {' '.join(command)}"
        )
    return changed

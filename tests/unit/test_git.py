"""Tests for the git module."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from pytest_impact.config import ImpactConfigurationError
from pytest_impact.git import (
    ChangeSourceError,
    GitDiffMode,
    build_diff_command,
    find_git_root,
    get_changed_files,
    run_git_command,
)

CURR = "curr"
PREV = "prev"


def git(path: Path, *args: str) -> None:
    subprocess.run(["git", *args], cwd=path, capture_output=True, check=True)


def init_repo(path: Path) -> None:
    git(path, "init")
    git(path, "config", "user.email", "test@test.com")
    git(path, "config", "user.name", "Test")


def commit_all(path: Path, message: str) -> None:
    git(path, "add", ".")
    git(path, "commit", "-m", message)


class TestGitDiffMode:
    def test_from_option(self) -> None:
        assert GitDiffMode.from_option("commit") is GitDiffMode.COMMIT
        assert GitDiffMode.from_option("branchThreeDotted") is GitDiffMode.BRANCH_THREE_DOT

    def test_unknown_option_lists_available(self) -> None:
        with pytest.raises(
            ImpactConfigurationError,
            match=r"Unknown compare mode nope available \[branch, branchThreeDotted, branchTwoDotted, commit\]",
        ):
            GitDiffMode.from_option("nope")


class TestBuildDiffCommand:
    @pytest.mark.parametrize(
        ("commit", "prev", "mode", "expected"),
        [
            (None, None, GitDiffMode.COMMIT, "git diff --name-only HEAD~ HEAD"),
            (CURR, None, GitDiffMode.COMMIT, "git diff --name-only curr~ curr"),
            (CURR, PREV, GitDiffMode.COMMIT, "git diff --name-only prev~ curr"),
            (CURR, PREV, GitDiffMode.BRANCH, "git diff --name-only prev curr"),
            (None, PREV, GitDiffMode.BRANCH, "git diff --name-only prev HEAD"),
            (CURR, PREV, GitDiffMode.BRANCH_TWO_DOT, "git diff --name-only prev..curr"),
            (None, PREV, GitDiffMode.BRANCH_TWO_DOT, "git diff --name-only prev.."),
            (CURR, PREV, GitDiffMode.BRANCH_THREE_DOT, "git diff --name-only prev...curr"),
            (None, PREV, GitDiffMode.BRANCH_THREE_DOT, "git diff --name-only prev..."),
        ],
    )
    def test_command(self, commit, prev, mode, expected) -> None:
        assert " ".join(build_diff_command(mode, commit, prev)) == expected

    @pytest.mark.parametrize(
        ("commit", "prev", "mode", "message"),
        [
            (None, PREV, GitDiffMode.COMMIT, "[COMMIT] When using --impact-prev-commit then --impact-commit must also be specified"),
            (None, None, GitDiffMode.BRANCH, "[BRANCH] --impact-prev-commit must always be specified"),
            (CURR, None, GitDiffMode.BRANCH, "[BRANCH] --impact-prev-commit must always be specified"),
            (None, None, GitDiffMode.BRANCH_TWO_DOT, "[BRANCH_TWO_DOT] --impact-prev-commit must always be specified"),
            (CURR, None, GitDiffMode.BRANCH_TWO_DOT, "[BRANCH_TWO_DOT] --impact-prev-commit must always be specified"),
            (None, None, GitDiffMode.BRANCH_THREE_DOT, "[BRANCH_THREE_DOT] --impact-prev-commit must always be specified"),
            (CURR, None, GitDiffMode.BRANCH_THREE_DOT, "[BRANCH_THREE_DOT] --impact-prev-commit must always be specified"),
        ],
    )
    def test_invalid_combination(self, commit, prev, mode, message) -> None:
        with pytest.raises(ChangeSourceError) as excinfo:
            build_diff_command(mode, commit, prev)
        assert str(excinfo.value) == message


class TestRunGitCommand:
    """Tests for run_git_command."""

    def test_successful_command(self, tmp_path: Path) -> None:
        """Test running a successful git command."""
        init_repo(tmp_path)

        result = run_git_command("status", cwd=tmp_path)
        assert "No commits yet" in result or "nothing to commit" in result

    def test_failed_command_raises(self, tmp_path: Path) -> None:
        """Test that a failed command raises ChangeSourceError."""
        with pytest.raises(ChangeSourceError, match="Git command failed"):
            run_git_command("log", cwd=tmp_path)

    def test_git_not_found(self) -> None:
        """Test that a missing git binary raises ChangeSourceError."""
        with patch("subprocess.run", side_effect=FileNotFoundError()):
            with pytest.raises(ChangeSourceError, match="not installed"):
                run_git_command("status")


class TestFindGitRoot:
    def test_from_subdirectory(self, tmp_path: Path) -> None:
        init_repo(tmp_path)
        subdir = tmp_path / "libs" / "core"
        subdir.mkdir(parents=True)

        assert find_git_root(subdir) == tmp_path.resolve()

    def test_not_a_repository(self, tmp_path: Path) -> None:
        with patch.object(Path, "exists", return_value=False):
            with pytest.raises(ChangeSourceError, match="not inside a git repository"):
                find_git_root(tmp_path)


class TestGetChangedFiles:
    """Tests for get_changed_files."""

    def test_changes_of_head(self, tmp_path: Path) -> None:
        init_repo(tmp_path)
        (tmp_path / "a.py").write_text("# a")
        commit_all(tmp_path, "first")

        (tmp_path / "b.py").write_text("# b")
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "c.py").write_text("# c")
        (tmp_path / "a.py").write_text("# a modified")
        commit_all(tmp_path, "second")

        changed = get_changed_files(tmp_path)
        assert sorted(changed) == ["a.py", "b.py", "sub/c.py"]

    def test_branch_mode(self, tmp_path: Path) -> None:
        init_repo(tmp_path)
        (tmp_path / "a.py").write_text("# a")
        commit_all(tmp_path, "first")
        git(tmp_path, "tag", "base")
        (tmp_path / "b.py").write_text("# b")
        commit_all(tmp_path, "second")
        (tmp_path / "c.py").write_text("# c")
        commit_all(tmp_path, "third")

        changed = get_changed_files(tmp_path, GitDiffMode.BRANCH, prev_commit="base")
        assert sorted(changed) == ["b.py", "c.py"]

    def test_empty_diff_is_an_error(self, tmp_path: Path) -> None:
        init_repo(tmp_path)
        (tmp_path / "a.py").write_text("# a")
        commit_all(tmp_path, "first")
        git(tmp_path, "commit", "--allow-empty", "-m", "empty")

        with pytest.raises(ChangeSourceError, match="returned no results"):
            get_changed_files(tmp_path)

    def test_unknown_revision(self, tmp_path: Path) -> None:
        init_repo(tmp_path)
        (tmp_path / "a.py").write_text("# a")
        commit_all(tmp_path, "first")

        with pytest.raises(ChangeSourceError, match="Git command failed"):
            get_changed_files(tmp_path, GitDiffMode.BRANCH, prev_commit="does-not-exist")

    def test_non_ascii_and_spaced_paths_are_not_quoted(self, tmp_path: Path) -> None:
        init_repo(tmp_path)
        (tmp_path / "a.py").write_text("# a")
        commit_all(tmp_path, "first")
        (tmp_path / "libs" / "café").mkdir(parents=True)
        (tmp_path / "libs" / "café" / "cafe.py").write_text("# café")
        (tmp_path / "my docs").mkdir()
        (tmp_path / "my docs" / "notes.md").write_text("notes")
        commit_all(tmp_path, "second")

        changed = get_changed_files(tmp_path)
        assert sorted(changed) == ["libs/café/cafe.py", "my docs/notes.md"]

from __future__ import annotations

import subprocess
import sys
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from pytest_impact.modules import ModuleTreeIndex
from pytest_impact.resolver import RunDecisionSet

# A module without tests is not a failure
PASSING_EXIT_CODES = frozenset({pytest.ExitCode.OK, pytest.ExitCode.NO_TESTS_COLLECTED})


class ModuleCommandError(Exception):
    pass


def module_command(index: ModuleTreeIndex, path: str, args: Sequence[str] = ()) -> list[str]:
    """Return the argv running the tests of the module at ``path`` in a fresh pytest.

    Nested modules are ignored so each test file runs under exactly one module.
    """
    module = index.get(path)
    if module is None:
        raise ModuleCommandError(f"Unknown module {path}")
    command = [sys.executable, "-m", "pytest", str(module.directory)]
    command.extend(f"--ignore={directory}" for directory in index.nested_directories(path))
    command.extend(args)
    return command


def run_module_commands(
    decisions: RunDecisionSet,
    index: ModuleTreeIndex,
    args: Sequence[str] = (),
    cwd: str | Path | None = None,
    write: Callable[[str], None] = print,
) -> list[str]:
    """Run the tests of every module that should run, one pytest process each.

    Stops at the first module whose run fails and raises ``ModuleCommandError``.
    Returns the module paths that ran.
    """
    ran: list[str] = []
    for path in decisions.modules_to_run():
        command = module_command(index, path, args)
        write(f"Running {' '.join(command)}")
        completed = subprocess.run(
            command,
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
        if completed.stdout:
            write(completed.stdout.rstrip())
        if completed.stderr:
            write(completed.stderr.rstrip())
        if completed.returncode not in PASSING_EXIT_CODES:
            raise ModuleCommandError(
                f"Executing command failed for {path}: exit code {completed.returncode}"
            )
        ran.append(path)
    return ran

from __future__ import annotations

import re
import shlex
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import pytest

MODULE_SEPARATOR = ":"


class ImpactConfigurationError(Exception):
    pass


def compile_patterns(values: Iterable[str | re.Pattern[str]]) -> list[re.Pattern[str]]:
    patterns: list[re.Pattern[str]] = []
    for value in values:
        try:
            patterns.append(re.compile(value))
        except re.error as e:
            raise ImpactConfigurationError(f"Invalid regex {value!r}: {e}") from e
    return patterns


class ChangeMode(Enum):
    """Which modules a change affects."""

    # Only the modules owning a changed file
    ONLY_DIRECTLY = "ONLY_DIRECTLY"
    # The owning modules and every module depending on them, transitively
    INCLUDE_DEPENDENTS = "INCLUDE_DEPENDENTS"

    @classmethod
    def parse(cls, value: str | None) -> ChangeMode:
        if not value:
            return cls.INCLUDE_DEPENDENTS
        try:
            return cls(value.strip())
        except ValueError:
            raise ImpactConfigurationError(
                f"impact mode must be either {cls.ONLY_DIRECTLY.value} or "
                f"{cls.INCLUDE_DEPENDENTS.value}, got {value!r}"
            ) from None


@dataclass
class ImpactConfig:
    enabled: bool = False
    task: str | None = None
    always_run: list[str] = field(default_factory=list)
    never_run: list[str] = field(default_factory=list)
    affects_all_patterns: list[str] = field(default_factory=list)
    ignored_patterns: list[str] = field(default_factory=list)
    mode: str = ChangeMode.INCLUDE_DEPENDENTS.value
    compare_mode: str = "commit"
    commit: str | None = None
    prev_commit: str | None = None
    report_file: Path | None = None
    command_line: bool = False
    command_args: list[str] = field(default_factory=list)
    debug: bool = False
    root_path: Path = field(default_factory=Path.cwd)

    @classmethod
    def from_pytest_config(cls, config: pytest.Config) -> ImpactConfig:
        root_path = config.rootpath

        report_opt = config.getoption("impact_report", default=None)
        report_file: Path | None = None
        if report_opt is not None:
            report_file = Path(report_opt)
            if not report_file.is_absolute():
                report_file = root_path / report_file

        task = config.getoption("impact_task", default=None) or config.getini("impact_task")
        mode = config.getoption("impact_mode", default=None) or config.getini("impact_mode")

        return cls(
            enabled=config.getoption("impact", default=False),
            task=task or None,
            always_run=_clean_lines(config.getini("impact_always_run")),
            never_run=_clean_lines(config.getini("impact_never_run")),
            affects_all_patterns=_clean_lines(config.getini("impact_affects_all")),
            ignored_patterns=_clean_lines(config.getini("impact_ignored")),
            mode=mode or ChangeMode.INCLUDE_DEPENDENTS.value,
            compare_mode=config.getoption("impact_compare_mode", default=None) or "commit",
            commit=config.getoption("impact_commit", default=None),
            prev_commit=config.getoption("impact_prev_commit", default=None),
            report_file=report_file,
            command_line=bool(config.getoption("impact_command_line", default=False)),
            command_args=shlex.split(config.getoption("impact_command_args", default=None) or ""),
            debug=bool(
                config.getoption("impact_debug", default=False) or config.getini("impact_debug")
            ),
            root_path=root_path,
        )

    @property
    def change_mode(self) -> ChangeMode:
        return ChangeMode.parse(self.mode)

    def validate(self) -> None:
        if not self.task:
            raise ImpactConfigurationError("impact_task is required")
        if self.task.startswith(MODULE_SEPARATOR):
            raise ImpactConfigurationError(
                f"impact_task should not start with {MODULE_SEPARATOR}, got {self.task!r}"
            )
        for name, paths in (("impact_always_run", self.always_run), ("impact_never_run", self.never_run)):
            for path in paths:
                if not path.startswith(MODULE_SEPARATOR):
                    raise ImpactConfigurationError(
                        f"{name} entry {path!r} must start with {MODULE_SEPARATOR}"
                    )
        ChangeMode.parse(self.mode)
        compile_patterns(self.ignored_patterns)
        compile_patterns(self.affects_all_patterns)

    def print_summary(self) -> None:
        if not self.debug:
            return
        self.debug_print("Printing configuration")
        self.debug_print(f"Task to run {self.task}")
        self.debug_print(f"Always run modules {sorted(self.always_run)}")
        self.debug_print(f"Never run modules {sorted(self.never_run)}")
        self.debug_print(f"Affects all regex {self.affects_all_patterns}")
        self.debug_print(f"Ignored regex {self.ignored_patterns}")
        self.debug_print(f"Mode {self.change_mode.value}")
        if self.command_line:
            self.debug_print(f"Command line arguments {self.command_args}")

    def debug_print(self, msg: str) -> None:
        if self.debug:
            print(f"[pytest-impact] {msg}")


def _clean_lines(values: list[str] | None) -> list[str]:
    return [v.strip() for v in values or [] if v and v.strip()]

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import msgpack

from pytest_impact.config import MODULE_SEPARATOR
from pytest_impact.modules import ROOT_MODULE_PATH
from pytest_impact.resolver import RunDecisionSet

SCHEMA_VERSION = 1


class ReportFileError(Exception):
    pass


def task_path(module_path: str, task: str) -> str:
    if module_path == ROOT_MODULE_PATH:
        return f"{MODULE_SEPARATOR}{task}"
    return f"{module_path}{MODULE_SEPARATOR}{task}"


@dataclass
class RunReport:
    version: int = SCHEMA_VERSION
    task: str = ""
    affects_all: bool = False
    modules: dict[str, bool] = field(default_factory=dict)

    @property
    def tasks(self) -> list[str]:
        return [task_path(p, self.task) for p, run in sorted(self.modules.items()) if run]

    @classmethod
    def from_decisions(cls, decisions: RunDecisionSet, task: str) -> RunReport:
        return cls(task=task, affects_all=decisions.affects_all, modules=decisions.as_mapping())

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "task": self.task,
            "affects_all": self.affects_all,
            "modules": dict(sorted(self.modules.items())),
            "tasks": self.tasks,
        }

    @classmethod
    def from_dict(cls, data: dict) -> RunReport:
        version = data.get("version", 0)
        if version > SCHEMA_VERSION:
            raise ReportFileError(
                f"Report version {version} is newer than supported version {SCHEMA_VERSION}. "
                "Please update pytest-impact."
            )
        return cls(
            version=version,
            task=data.get("task", ""),
            affects_all=bool(data.get("affects_all", False)),
            modules={k: bool(v) for k, v in data.get("modules", {}).items()},
        )


def load_report(path: Path) -> RunReport | None:
    if not path.exists():
        return None
    try:
        with open(path, "rb") as f:
            data = msgpack.unpack(f, raw=False)
        return RunReport.from_dict(data)
    except (msgpack.UnpackException, msgpack.ExtraData, TypeError, ValueError, KeyError, AttributeError) as e:
        raise ReportFileError(f"Failed to load report file: {e}") from e


def save_report(path: Path, decisions: RunDecisionSet, task: str) -> RunReport:
    report = RunReport.from_decisions(decisions, task)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            msgpack.pack(report.to_dict(), f, use_bin_type=True)
    except (OSError, msgpack.PackException) as e:
        raise ReportFileError(f"Failed to save report file: {e}") from e
    return report

from __future__ import annotations

import re

import pytest

from pytest_impact.changes import ChangeSet, filter_changes
from pytest_impact.config import ChangeMode, ImpactConfig, ImpactConfigurationError, compile_patterns
from pytest_impact.discovery import discover_modules
from pytest_impact.git import ChangeSourceError, GitDiffMode, find_git_root, get_changed_files
from pytest_impact.graph import DependencyGraph
from pytest_impact.modules import ModuleTreeIndex
from pytest_impact.report import ReportFileError, save_report, task_path
from pytest_impact.resolver import RunDecisionSet, resolve
from pytest_impact.runner import ModuleCommandError, run_module_commands


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("impact", "Run only the tests of modules affected by a change")
    group.addoption(
        "--impact",
        action="store_true",
        default=False,
        help="Enable change impact filtering (only run tests of affected modules).",
    )
    group.addoption(
        "--impact-task",
        action="store",
        default=None,
        help="Name of the task the run decision is made for (overrides impact_task).",
    )
    group.addoption(
        "--impact-commit",
        action="store",
        default=None,
        help="Commit to diff (default: HEAD).",
    )
    group.addoption(
        "--impact-prev-commit",
        action="store",
        default=None,
        help="Commit or branch to compare against.",
    )
    group.addoption(
        "--impact-compare-mode",
        action="store",
        default=None,
        help="How commits are compared: commit, branch, branchTwoDotted or branchThreeDotted "
        "(default: commit).",
    )
    group.addoption(
        "--impact-mode",
        action="store",
        default=None,
        help="ONLY_DIRECTLY or INCLUDE_DEPENDENTS (overrides impact_mode).",
    )
    group.addoption(
        "--impact-report",
        action="store",
        default=None,
        help="Write the run decision of every module to this msgpack file.",
    )
    group.addoption(
        "--impact-command-line",
        action="store_true",
        default=False,
        help="Run the tests of each affected module in its own pytest process.",
    )
    group.addoption(
        "--impact-command-args",
        action="store",
        default=None,
        help="Extra arguments for each module's pytest process (e.g. --impact-command-args=\"-x -q\").",
    )
    group.addoption(
        "--impact-debug",
        action="store_true",
        default=False,
        help="Print debug information about impact filtering.",
    )

    parser.addini("impact_task", "Task the run decision is made for.", default="")
    parser.addini("impact_always_run", "Module paths that run on any not ignored change.", type="linelist", default=[])
    parser.addini("impact_never_run", "Module paths that never run.", type="linelist", default=[])
    parser.addini("impact_affects_all", "Regexes of changed paths that affect every module.", type="linelist", default=[])
    parser.addini("impact_ignored", "Regexes of changed paths to ignore.", type="linelist", default=[])
    parser.addini("impact_mode", "ONLY_DIRECTLY or INCLUDE_DEPENDENTS.", default=ChangeMode.INCLUDE_DEPENDENTS.value)
    parser.addini("impact_debug", "Print debug information about impact filtering.", type="bool", default=False)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "impact_always: mark test to always run regardless of which modules are affected.",
    )

    try:
        _configure(config)
    except (ImpactConfigurationError, ChangeSourceError, ReportFileError) as e:
        raise pytest.UsageError(f"pytest-impact: {e}") from e


def _configure(config: pytest.Config) -> None:
    impact_config = ImpactConfig.from_pytest_config(config)
    config._impact_config = impact_config  # type: ignore[attr-defined]
    config._impact_index: ModuleTreeIndex | None = None  # type: ignore[attr-defined]
    config._impact_decisions: RunDecisionSet | None = None  # type: ignore[attr-defined]
    config._impact_nothing_selected = False  # type: ignore[attr-defined]

    if not impact_config.enabled:
        return

    # Configuration errors abort before any git call
    impact_config.validate()
    ignored = compile_patterns(impact_config.ignored_patterns)
    affects_all = compile_patterns(impact_config.affects_all_patterns)
    compare_mode = GitDiffMode.from_option(impact_config.compare_mode)
    impact_config.debug_print("Plugin enabled")
    impact_config.print_summary()

    modules = discover_modules(impact_config.root_path)
    index = ModuleTreeIndex(modules, impact_config.root_path)
    graph = DependencyGraph.from_modules(index)
    config._impact_index = index  # type: ignore[attr-defined]

    if impact_config.debug:
        impact_config.debug_print("Modules:")
        for line in index.describe():
            impact_config.debug_print(f"  {line}")
        impact_config.debug_print("Module dependents:")
        for dep, dependent in graph.edges():
            impact_config.debug_print(f"  {dependent} depends on {dep}")

    changes = _collect_changes(impact_config, compare_mode, ignored, affects_all)

    decisions = resolve(
        changes,
        index,
        graph,
        mode=impact_config.change_mode,
        always_run=impact_config.always_run,
        never_run=impact_config.never_run,
        log=impact_config.debug_print,
    )
    config._impact_decisions = decisions  # type: ignore[attr-defined]

    to_run = decisions.modules_to_run()
    impact_config.debug_print(f"Modules to run: {len(to_run)} of {len(index)}")
    if impact_config.debug:
        for path in to_run:
            impact_config.debug_print(f"  {task_path(path, impact_config.task or '')}")

    if impact_config.report_file is not None:
        save_report(impact_config.report_file, decisions, impact_config.task or "")
        impact_config.debug_print(f"Saved report: {impact_config.report_file}")


def _collect_changes(
    impact_config: ImpactConfig,
    compare_mode: GitDiffMode,
    ignored: list[re.Pattern[str]],
    affects_all: list[re.Pattern[str]],
) -> ChangeSet:
    git_root = find_git_root(impact_config.root_path)
    changed = get_changed_files(
        git_root,
        compare_mode,
        commit=impact_config.commit,
        prev_commit=impact_config.prev_commit,
    )
    changes = filter_changes(
        changed,
        git_root,
        ignored=ignored,
        affects_all=affects_all,
    )
    impact_config.debug_print(
        f"Changed: {len(changed)}, Ignored: {len(changes.ignored)}, Affects all: {changes.affects_all}"
    )
    if impact_config.debug:
        for file in changes.files:
            impact_config.debug_print(f"  {file}")
    return changes


def pytest_report_header(config: pytest.Config) -> str | None:
    decisions: RunDecisionSet | None = getattr(config, "_impact_decisions", None)
    if decisions is None:
        return None
    if decisions.no_op:
        return "impact: no relevant changes"
    if decisions.affects_all:
        return "impact: all modules affected"
    to_run = decisions.modules_to_run()
    return f"impact: {len(to_run)} of {len(decisions.modules)} modules to run: {', '.join(to_run)}"


def pytest_collection_modifyitems(
    session: pytest.Session,
    config: pytest.Config,
    items: list[pytest.Item],
) -> None:
    impact_config: ImpactConfig | None = getattr(config, "_impact_config", None)
    if not impact_config or not impact_config.enabled:
        return

    decisions: RunDecisionSet | None = getattr(config, "_impact_decisions", None)
    index: ModuleTreeIndex | None = getattr(config, "_impact_index", None)
    if decisions is None or index is None:
        return

    # In command line mode every module runs in its own process instead
    if impact_config.command_line:
        if items:
            config.hook.pytest_deselected(items=list(items))
        items[:] = []
        config._impact_nothing_selected = True  # type: ignore[attr-defined]
        return

    selected: list[pytest.Item] = []
    deselected: list[pytest.Item] = []

    for item in items:
        if item.get_closest_marker("impact_always"):
            selected.append(item)
            continue

        owner = index.owner_of(item.path)
        # Tests outside the tree are not ours to filter
        if owner is None or decisions.should_run(owner.path):
            selected.append(item)
        else:
            deselected.append(item)

    impact_config.debug_print(f"Selected: {len(selected)}, Deselected: {len(deselected)}")

    items[:] = selected
    if deselected:
        config.hook.pytest_deselected(items=deselected)
    config._impact_nothing_selected = not selected  # type: ignore[attr-defined]


@pytest.hookimpl(tryfirst=True)
def pytest_runtestloop(session: pytest.Session) -> bool | None:
    config = session.config
    impact_config: ImpactConfig | None = getattr(config, "_impact_config", None)
    if not impact_config or not impact_config.enabled or not impact_config.command_line:
        return None

    decisions: RunDecisionSet | None = getattr(config, "_impact_decisions", None)
    index: ModuleTreeIndex | None = getattr(config, "_impact_index", None)
    if decisions is None or index is None:
        return None

    reporter = config.pluginmanager.get_plugin("terminalreporter")
    write = reporter.write_line if reporter is not None else impact_config.debug_print
    try:
        ran = run_module_commands(
            decisions,
            index,
            impact_config.command_args,
            cwd=impact_config.root_path,
            write=write,
        )
    except ModuleCommandError as e:
        write(f"impact: {e}")
        session.testsfailed += 1
        return True

    impact_config.debug_print(f"Ran {len(ran)} module(s) on the command line")
    return True


@pytest.hookimpl(trylast=True)
def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    config = session.config
    impact_config: ImpactConfig | None = getattr(config, "_impact_config", None)
    if not impact_config or not impact_config.enabled:
        return

    # Nothing affected is a successful run, not "no tests collected"
    if getattr(config, "_impact_nothing_selected", False) and exitstatus == pytest.ExitCode.NO_TESTS_COLLECTED:
        session.exitstatus = pytest.ExitCode.OK
        impact_config.debug_print("No affected tests -- exit 0")

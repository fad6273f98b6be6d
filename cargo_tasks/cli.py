"""Command line interface for the cargo task orchestrator."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Sequence
import sys

from .core.command_runner import CommandRunner, RecordingCommandRunner, SubprocessCommandRunner
from .core.console import Console

from .config import OrchestratorConfig, load_config
from .errors import ConfigurationError
from .matrix import Matrix, build_matrix
from .packager import ArtifactPackager, PackageResult, PackageStatus
from .runners import CrossRunnerResolver
from .tasks import (
    FeatureSelection,
    Operation,
    TaskDispatcher,
    TaskRequest,
    TaskResult,
    TaskStatus,
    exit_code_for,
)
from .validation import ValidationScope, ValidationSequencer
from .workspace import WorkspaceMember, find_member, resolve_members

SINGLE_TASKS = tuple(operation.value for operation in Operation)
VALIDATION_TASKS = ("validate", "validate_strict")


def _make_runner(dry_run: bool) -> SubprocessCommandRunner | RecordingCommandRunner:
    return RecordingCommandRunner() if dry_run else SubprocessCommandRunner()


@dataclass
class CliContext:
    args: Namespace
    config: OrchestratorConfig
    console: Console
    runner: CommandRunner
    dispatcher: TaskDispatcher
    packaging: List[PackageResult] = field(default_factory=list)
    _members: frozenset[WorkspaceMember] | None = field(default=None, repr=False)

    @property
    def features(self) -> FeatureSelection:
        return FeatureSelection(self.config.features, self.config.all_features)

    def members(self) -> frozenset[WorkspaceMember]:
        if self._members is None:
            self._members = resolve_members(self.config.root, self.config.declared_members)
        return self._members

    def selected_members(self) -> frozenset[WorkspaceMember]:
        if self.config.member:
            return frozenset({find_member(self.members(), self.config.member)})
        return self.members()

    def matrix(self) -> Matrix:
        return build_matrix(self.selected_members(), self.config.target_spec, self.config.host_triple)

    def packager(self) -> ArtifactPackager:
        return ArtifactPackager(
            members=self.selected_members(),
            host_triple=self.config.host_triple,
            target_dir=self.config.resolved_target_dir,
            dist_dir=self.config.resolved_dist_dir,
            release=self.config.release,
            dry_run=self.args.dry_run,
            console=self.console,
        )

    def sequencer(self) -> ValidationSequencer:
        return ValidationSequencer(
            dispatcher=self.dispatcher,
            members=self.members,
            release=self.config.release,
            features=self.features,
            keep_going=self.config.keep_going,
        )


def _add_common_options(parser: ArgumentParser) -> None:
    parser.add_argument("--root", type=Path, default=None, help="Workspace root (default: current directory)")
    parser.add_argument(
        "-C",
        "--config",
        dest="config_path",
        type=Path,
        default=None,
        metavar="PATH",
        help="Configuration file (default: cargo-tasks.toml/.json/.yaml in the root)",
    )
    parser.add_argument("-n", "--dry-run", action="store_true", help="Print commands without executing them")
    parser.add_argument(
        "--log",
        "-l",
        choices=list(Console.LEVELS),
        default="info",
        help="Set log level (default: info)",
    )
    parser.add_argument("--host", default=None, help="Host target triple (default: ask rustc)")
    parser.add_argument("--targets", default=None, help="Space separated target triples (overrides TARGETS)")
    parser.add_argument("--release", action="store_const", const=True, default=None, help="Build in release mode")
    parser.add_argument("--strict", action="store_const", const=True, default=None, help="Use the strict lint policy")
    parser.add_argument("--features", default=None, help="Comma separated feature list (overrides FEATURES)")
    parser.add_argument("--all-features", action="store_const", const=True, default=None, help="Enable all features")
    parser.add_argument(
        "--keep-going",
        action="store_const",
        const=True,
        default=None,
        help="Run every validation step even after a failure",
    )
    scope = parser.add_mutually_exclusive_group()
    scope.add_argument("--workspace", action="store_true", help="Run for all workspace members")
    scope.add_argument("-p", "--member", default=None, help="Restrict the task to one workspace member")


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    parser = ArgumentParser(prog="cargo-tasks", description="Build-task orchestrator for Cargo workspaces")
    subparsers = parser.add_subparsers(dest="command", required=True)

    descriptions = {
        "build": "Build with short messages",
        "check": "Run cargo check",
        "test": "Run unit tests",
        "lint": "Run clippy checks (strict policy when STRICT is set)",
        "lint_strict": "Run clippy checks in pedantic mode",
        "format": "Check code formatting",
        "format_fix": "Fix code formatting",
        "fix": "Run cargo fix",
        "fix_edition": "Run cargo fix with edition migration",
        "fix_clippy": "Run cargo fix with clippy suggestions",
        "build_targets": "Build every member for every target and package the binaries",
        "test_targets": "Test every member for every target, skipping targets without a runner",
        "package_targets": "Copy already built binaries into dist/<target>/",
        "validate": "Run build, test, format, check and clippy in order",
        "validate_strict": "Run the validation sequence with strict clippy",
        "list_members": "List all workspace members",
    }
    for name, help_text in descriptions.items():
        sub = subparsers.add_parser(name, help=help_text, description=help_text)
        _add_common_options(sub)

    for_each = subparsers.add_parser(
        "for_each_member",
        help="Run a task for each workspace member",
        description="Run a task for each workspace member. Ex: 'cargo-tasks for_each_member build'",
    )
    for_each.add_argument("task", choices=[*SINGLE_TASKS, *VALIDATION_TASKS], help="Task to run per member")
    _add_common_options(for_each)

    return parser.parse_args(list(argv))


def _overrides(args: Namespace) -> Dict[str, object]:
    return {
        "host": args.host,
        "targets": args.targets,
        "release": args.release,
        "strict": args.strict,
        "features": args.features,
        "all_features": args.all_features,
        "keep_going": args.keep_going,
        "member": args.member,
    }


def _create_context(args: Namespace, env: Mapping[str, str] | None) -> CliContext:
    console = Console(args.log, dry_run=args.dry_run)
    root = args.root or Path.cwd()
    config = load_config(root=root, env=env, config_path=args.config_path, overrides=_overrides(args))
    if args.workspace:
        # --workspace wins over a MEMBER taken from the environment
        config = replace(config, member=None)
    runner = _make_runner(args.dry_run)
    resolver = CrossRunnerResolver(host_triple=config.host_triple, bindings=config.runners, console=console)
    dispatcher = TaskDispatcher(command_runner=runner, root=config.root, runner_resolver=resolver, console=console)
    return CliContext(args=args, config=config, console=console, runner=runner, dispatcher=dispatcher)


def _scope_request(ctx: CliContext, operation: Operation) -> TaskRequest:
    member: WorkspaceMember | None = None
    if ctx.config.member:
        member = find_member(ctx.members(), ctx.config.member)
    return TaskRequest(
        operation=operation,
        member=member,
        release=ctx.config.release,
        features=ctx.features,
        workspace=bool(ctx.args.workspace),
    )


def _handle_single(ctx: CliContext, task: str) -> List[TaskResult]:
    operation = Operation(task)
    if operation is Operation.LINT and ctx.config.strict:
        operation = Operation.LINT_STRICT
    return [ctx.dispatcher.execute(_scope_request(ctx, operation))]


def _handle_build_targets(ctx: CliContext) -> List[TaskResult]:
    matrix = ctx.matrix()
    packager = ctx.packager()
    results: List[TaskResult] = []
    for request in ctx.dispatcher.requests_for(
        matrix, Operation.BUILD, release=ctx.config.release, features=ctx.features
    ):
        result = ctx.dispatcher.execute(request, matrix=matrix)
        results.append(result)
        if result.status is TaskStatus.SUCCESS and request.member is not None and request.target:
            ctx.packaging.append(packager.package_member(request.target, request.member))
    return results


def _handle_test_targets(ctx: CliContext) -> List[TaskResult]:
    return ctx.dispatcher.execute_matrix(
        ctx.matrix(), Operation.TEST, release=ctx.config.release, features=ctx.features
    )


def _handle_package_targets(ctx: CliContext) -> List[TaskResult]:
    matrix = ctx.matrix()
    packager = ctx.packager()
    for member, target in matrix:
        ctx.packaging.append(packager.package_member(target, member))
    return []


def _handle_validate(ctx: CliContext, strict: bool) -> List[TaskResult]:
    strict = strict or ctx.config.strict
    if ctx.config.member:
        scope = ValidationScope.for_member(ctx.config.member)
    elif ctx.args.workspace:
        scope = ValidationScope.workspace()
    else:
        scope = ValidationScope.single()
    label = "strict validation" if strict else "validation"
    ctx.console.info(f"Running {label} sequence for {scope.describe()}...")
    report = ctx.sequencer().validate(strict, scope)
    if report.succeeded:
        ctx.console.info(f"{label.capitalize()} complete for {scope.describe()}!")
    return report.results


def _handle_list_members(ctx: CliContext) -> List[TaskResult]:
    members = sorted(ctx.members(), key=lambda member: member.name)
    rows = [{"Member": member.name, "Path": member.path.as_posix()} for member in members]
    print("Workspace members:")
    _print_table(["Member", "Path"], rows)
    return []


def _handle_for_each_member(ctx: CliContext) -> List[TaskResult]:
    task: str = ctx.args.task
    results: List[TaskResult] = []
    for member in sorted(ctx.members(), key=lambda member: member.name):
        ctx.console.info(f"Running {task} for workspace member: {member.name}")
        if task in VALIDATION_TASKS:
            report = ctx.sequencer().validate(
                task == "validate_strict" or ctx.config.strict, ValidationScope.for_member(member.name)
            )
            member_results = report.results
        else:
            operation = Operation(task)
            if operation is Operation.LINT and ctx.config.strict:
                operation = Operation.LINT_STRICT
            request = TaskRequest(
                operation=operation,
                member=member,
                release=ctx.config.release,
                features=ctx.features,
            )
            member_results = [ctx.dispatcher.execute(request)]
        results.extend(member_results)
        if exit_code_for(member_results) and not ctx.config.keep_going:
            break
    return results


def _print_table(headers: List[str], rows: List[Dict[str, str]]) -> None:
    widths = {header: len(header) for header in headers}
    for row in rows:
        for header in headers:
            widths[header] = max(widths[header], len(row.get(header, "")))

    def _format(row: Dict[str, str]) -> str:
        return "  ".join(row.get(header, "").ljust(widths[header]) for header in headers).rstrip()

    print(_format({header: header for header in headers}))
    print("  ".join("-" * widths[header] for header in headers))
    for row in rows:
        print(_format(row))


def _package_row(result: PackageResult) -> Dict[str, str]:
    if result.status is PackageStatus.PACKAGED and not result.reason:
        detail = ", ".join(artifact.destination.name for artifact in result.artifacts)
    else:
        detail = result.reason or ""
    return {
        "Task": "package",
        "Member": result.member.name,
        "Target": result.target,
        "Status": result.status.value,
        "Detail": detail,
    }


def _print_summary(results: List[TaskResult], packaging: Sequence[PackageResult] = ()) -> None:
    if not results and not packaging:
        return
    rows: List[Dict[str, str]] = []
    for result in results:
        request = result.request
        if result.status is TaskStatus.FAILURE:
            detail = f"exit code {result.exit_code}"
        else:
            detail = result.reason or ""
        rows.append(
            {
                "Task": request.operation.value,
                "Member": request.member.name if request.member else ("workspace" if request.workspace else "-"),
                "Target": request.target or "host",
                "Status": result.status.value,
                "Detail": detail,
            }
        )
    rows.extend(_package_row(result) for result in packaging)
    print("Summary:")
    _print_table(["Task", "Member", "Target", "Status", "Detail"], rows)


def _emit_dry_run_output(runner: RecordingCommandRunner, *, workspace: Path) -> None:
    for line in runner.iter_formatted(workspace=workspace):
        print(line)


def _exit_code(results: List[TaskResult], packaging: Sequence[PackageResult]) -> int:
    code = exit_code_for(results)
    if code == 0 and any(not result.ok for result in packaging):
        return 1
    return code


_HANDLERS: Dict[str, Callable[[CliContext], List[TaskResult]]] = {
    "build_targets": _handle_build_targets,
    "test_targets": _handle_test_targets,
    "package_targets": _handle_package_targets,
    "validate": lambda ctx: _handle_validate(ctx, strict=False),
    "validate_strict": lambda ctx: _handle_validate(ctx, strict=True),
    "list_members": _handle_list_members,
    "for_each_member": _handle_for_each_member,
}


def main(argv: Iterable[str] | None = None, *, env: Mapping[str, str] | None = None) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)

    try:
        ctx = _create_context(args, env)
        handler = _HANDLERS.get(args.command)
        if handler is not None:
            results = handler(ctx)
        else:
            results = _handle_single(ctx, args.command)
    except ConfigurationError as exc:
        print(f"Error: {exc}")
        return 2
    except KeyboardInterrupt:
        print("Interrupted; remaining tasks were not run", file=sys.stderr)
        return 130

    if args.dry_run and isinstance(ctx.runner, RecordingCommandRunner):
        _emit_dry_run_output(ctx.runner, workspace=ctx.config.root)
    _print_summary(results, ctx.packaging)
    return _exit_code(results, ctx.packaging)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

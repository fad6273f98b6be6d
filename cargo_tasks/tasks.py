"""Task requests and their translation into cargo invocations."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple

from .core.command_runner import CommandRunner
from .core.console import Console

from .errors import ConfigurationError
from .matrix import Matrix
from .runners import CrossRunnerResolver, Skip, runner_variable
from .workspace import WorkspaceMember

MESSAGE_FORMAT = "--message-format=short"

STRICT_LINT_DENY: Tuple[str, ...] = ("warnings", "clippy::pedantic", "clippy::nursery")
STRICT_LINT_ALLOW: Tuple[str, ...] = (
    "clippy::wildcard_imports",
    "clippy::used_underscore_binding",
    "clippy::missing_docs_in_private_items",
    "clippy::missing_panics_doc",
    "clippy::missing_errors_doc",
    "clippy::missing_safety_doc",
    "clippy::doc_markdown",
)


class Operation(str, Enum):
    BUILD = "build"
    CHECK = "check"
    TEST = "test"
    LINT = "lint"
    LINT_STRICT = "lint_strict"
    FORMAT = "format"
    FORMAT_FIX = "format_fix"
    FIX = "fix"
    FIX_EDITION = "fix_edition"
    FIX_CLIPPY = "fix_clippy"

    @property
    def is_format(self) -> bool:
        return self in {Operation.FORMAT, Operation.FORMAT_FIX}


_SUBCOMMANDS: Dict[Operation, str] = {
    Operation.BUILD: "build",
    Operation.CHECK: "check",
    Operation.TEST: "test",
    Operation.LINT: "clippy",
    Operation.LINT_STRICT: "clippy",
    Operation.FIX: "fix",
    Operation.FIX_EDITION: "fix",
    Operation.FIX_CLIPPY: "clippy",
}


class FeaturePolicy(str, Enum):
    NONE = "none"
    EXPLICIT = "explicit"
    ALL = "all"


@dataclass(frozen=True, slots=True)
class FeatureSelection:
    features: Tuple[str, ...] = ()
    all_features: bool = False

    @property
    def policy(self) -> FeaturePolicy:
        if self.features and self.all_features:
            raise ConfigurationError(
                "An explicit feature list and all-features are mutually exclusive: "
                f"features={','.join(self.features)}"
            )
        if self.all_features:
            return FeaturePolicy.ALL
        if self.features:
            return FeaturePolicy.EXPLICIT
        return FeaturePolicy.NONE

    def validate(self) -> FeaturePolicy:
        return self.policy

    def flags(self) -> List[str]:
        policy = self.policy
        if policy is FeaturePolicy.ALL:
            return ["--all-features"]
        if policy is FeaturePolicy.EXPLICIT:
            flags: List[str] = []
            for feature in self.features:
                flags.extend(["--features", feature])
            return flags
        return []


@dataclass(frozen=True, slots=True)
class TaskRequest:
    operation: Operation
    member: WorkspaceMember | None = None
    target: str | None = None
    release: bool = False
    features: FeatureSelection = field(default_factory=FeatureSelection)
    workspace: bool = True

    def describe(self) -> str:
        if self.member is not None:
            scope = f"member '{self.member.name}'"
        elif self.workspace:
            scope = "workspace"
        else:
            scope = "crate"
        target = f" for {self.target}" if self.target else ""
        return f"{self.operation.value} {scope}{target}"


class TaskStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


@dataclass(slots=True)
class TaskResult:
    request: TaskRequest
    status: TaskStatus
    exit_code: int = 0
    output: str = ""
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is not TaskStatus.FAILURE


class TaskDispatcher:
    """Runs one cargo invocation per :class:`TaskRequest`.

    Failures are reported, never retried. Test requests for targets the host
    cannot execute are skipped without starting a process.
    """

    def __init__(
        self,
        *,
        command_runner: CommandRunner,
        root: Path,
        runner_resolver: CrossRunnerResolver,
        console: Console | None = None,
    ) -> None:
        self._command_runner = command_runner
        self._root = root
        self._runner_resolver = runner_resolver
        self._console = console or Console("none")

    @property
    def host_triple(self) -> str:
        return self._runner_resolver.host_triple

    def _scope_flags(self, request: TaskRequest) -> List[str]:
        if request.member is not None:
            return ["-p", request.member.name]
        if not request.workspace:
            return []
        return ["--all"] if request.operation.is_format else ["--workspace"]

    def command_for(self, request: TaskRequest) -> List[str]:
        features = request.features.flags()
        operation = request.operation

        if operation.is_format:
            cmd = ["cargo", "fmt", *self._scope_flags(request)]
            if operation is Operation.FORMAT:
                cmd.extend(["--", "--check"])
            return cmd

        cmd = ["cargo", _SUBCOMMANDS[operation], MESSAGE_FORMAT, *self._scope_flags(request)]
        if request.target and request.target != self.host_triple:
            cmd.extend(["--target", request.target])
        if request.release:
            cmd.append("--release")
        cmd.extend(features)

        if operation is Operation.LINT:
            cmd.extend(["--all-targets", "--", "-D", "warnings"])
        elif operation is Operation.LINT_STRICT:
            cmd.append("--")
            for lint in STRICT_LINT_DENY:
                cmd.extend(["--deny", lint])
            for lint in STRICT_LINT_ALLOW:
                cmd.extend(["--allow", lint])
        elif operation is Operation.FIX:
            cmd.extend(["--allow-dirty", "--lib"])
        elif operation is Operation.FIX_EDITION:
            cmd.extend(["--allow-dirty", "--lib", "--edition"])
        elif operation is Operation.FIX_CLIPPY:
            cmd.extend(["--all-targets", "--fix", "--allow-dirty", "--", "-D", "warnings"])
        return cmd

    def execute(self, request: TaskRequest, *, matrix: Matrix | None = None) -> TaskResult:
        if matrix is not None:
            cell = (request.member, request.target or self.host_triple)
            if cell not in matrix:
                raise ConfigurationError(f"Refusing to run {request.describe()}: cell is not part of the target matrix")

        # Raises on conflicting feature flags before anything runs.
        command = self.command_for(request)
        description = request.describe()

        env: Dict[str, str] = {}
        if request.operation is Operation.TEST:
            decision = self._runner_resolver.can_test(request.target or self.host_triple)
            if isinstance(decision, Skip):
                return TaskResult(request=request, status=TaskStatus.SKIPPED, reason=decision.reason)
            if decision.command:
                env[runner_variable(request.target or self.host_triple)] = decision.command

        self._console.info(f"Running {description}: {self._command_runner.format_command(command)}")
        try:
            result = self._command_runner.run(
                command,
                cwd=self._root,
                env=env or None,
                check=False,
                note=description,
                stream=True,
            )
        except FileNotFoundError as exc:
            self._console.error(f"{description} could not start: {exc}")
            return TaskResult(request=request, status=TaskStatus.FAILURE, exit_code=127, output=str(exc))

        if result.returncode != 0:
            self._console.error(f"{description} failed with exit code {result.returncode}")
            return TaskResult(
                request=request,
                status=TaskStatus.FAILURE,
                exit_code=result.returncode,
                output=result.output,
            )
        return TaskResult(request=request, status=TaskStatus.SUCCESS, output=result.output)

    def requests_for(
        self,
        matrix: Matrix,
        operation: Operation,
        *,
        release: bool = False,
        features: FeatureSelection | None = None,
    ) -> Iterable[TaskRequest]:
        selection = features or FeatureSelection()
        for member, target in matrix:
            yield TaskRequest(
                operation=operation,
                member=member,
                target=target,
                release=release,
                features=selection,
            )

    def execute_matrix(
        self,
        matrix: Matrix,
        operation: Operation,
        *,
        release: bool = False,
        features: FeatureSelection | None = None,
    ) -> List[TaskResult]:
        """Run ``operation`` for every cell of ``matrix``, in matrix order."""

        selection = features or FeatureSelection()
        selection.validate()
        return [
            self.execute(request, matrix=matrix)
            for request in self.requests_for(matrix, operation, release=release, features=selection)
        ]


def first_failure(results: Sequence[TaskResult]) -> TaskResult | None:
    for result in results:
        if result.status is TaskStatus.FAILURE:
            return result
    return None


def exit_code_for(results: Sequence[TaskResult]) -> int:
    failure = first_failure(results)
    if failure is None:
        return 0
    if failure.exit_code < 0:
        # killed by a signal
        return 128 - failure.exit_code
    return failure.exit_code or 1


__all__ = [
    "FeaturePolicy",
    "FeatureSelection",
    "MESSAGE_FORMAT",
    "Operation",
    "STRICT_LINT_ALLOW",
    "STRICT_LINT_DENY",
    "TaskDispatcher",
    "TaskRequest",
    "TaskResult",
    "TaskStatus",
    "exit_code_for",
    "first_failure",
]

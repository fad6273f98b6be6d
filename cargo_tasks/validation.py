"""Full validation sequences: build, test, format check, check, lint."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Tuple

from .tasks import (
    FeatureSelection,
    Operation,
    TaskDispatcher,
    TaskRequest,
    TaskResult,
    TaskStatus,
    exit_code_for,
    first_failure,
)
from .workspace import WorkspaceMember, find_member


class ScopeKind(str, Enum):
    SINGLE = "single"
    WORKSPACE = "workspace"
    MEMBER = "member"


@dataclass(frozen=True, slots=True)
class ValidationScope:
    kind: ScopeKind
    member: str | None = None

    @classmethod
    def single(cls) -> "ValidationScope":
        return cls(ScopeKind.SINGLE)

    @classmethod
    def workspace(cls) -> "ValidationScope":
        return cls(ScopeKind.WORKSPACE)

    @classmethod
    def for_member(cls, name: str) -> "ValidationScope":
        return cls(ScopeKind.MEMBER, name)

    def describe(self) -> str:
        if self.kind is ScopeKind.MEMBER:
            return f"member '{self.member}'"
        return self.kind.value


def validation_steps(strict: bool) -> Tuple[Operation, ...]:
    lint = Operation.LINT_STRICT if strict else Operation.LINT
    return (Operation.BUILD, Operation.TEST, Operation.FORMAT, Operation.CHECK, lint)


@dataclass(slots=True)
class ValidationReport:
    scope: ValidationScope
    strict: bool
    keep_going: bool
    results: List[TaskResult] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return first_failure(self.results) is None

    @property
    def failures(self) -> List[TaskResult]:
        return [result for result in self.results if result.status is TaskStatus.FAILURE]

    @property
    def exit_code(self) -> int:
        return exit_code_for(self.results)


class ValidationSequencer:
    """Runs the fixed validation order for one scope.

    By default the sequence stops at the first failing step and reports the
    remaining steps as skipped; with ``keep_going`` every step runs and all
    failures are aggregated. Either way every step appears in the report.
    """

    def __init__(
        self,
        *,
        dispatcher: TaskDispatcher,
        members: Callable[[], Iterable[WorkspaceMember]],
        release: bool = False,
        features: FeatureSelection | None = None,
        keep_going: bool = False,
    ) -> None:
        self._dispatcher = dispatcher
        self._members = members
        self._release = release
        self._features = features or FeatureSelection()
        self._keep_going = keep_going

    def _request(self, operation: Operation, scope: ValidationScope, member: WorkspaceMember | None) -> TaskRequest:
        return TaskRequest(
            operation=operation,
            member=member,
            release=self._release,
            features=self._features,
            workspace=scope.kind is not ScopeKind.SINGLE,
        )

    def validate(self, strict: bool, scope: ValidationScope, *, keep_going: bool | None = None) -> ValidationReport:
        keep_going = self._keep_going if keep_going is None else keep_going
        self._features.validate()
        member: WorkspaceMember | None = None
        if scope.kind is ScopeKind.MEMBER:
            member = find_member(self._members(), scope.member or "")

        report = ValidationReport(scope=scope, strict=strict, keep_going=keep_going)
        failed: TaskResult | None = None
        for operation in validation_steps(strict):
            request = self._request(operation, scope, member)
            if failed is not None and not keep_going:
                report.results.append(
                    TaskResult(
                        request=request,
                        status=TaskStatus.SKIPPED,
                        reason=f"not run after {failed.request.operation.value} failed",
                    )
                )
                continue
            result = self._dispatcher.execute(request)
            report.results.append(result)
            if result.status is TaskStatus.FAILURE and failed is None:
                failed = result
        return report


__all__ = [
    "ScopeKind",
    "ValidationReport",
    "ValidationScope",
    "ValidationSequencer",
    "validation_steps",
]

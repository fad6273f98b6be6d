"""Decide whether tests for a target triple can execute on this host."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping
import re

from .core.console import Console

RUNNER_PREFIX = "CARGO_TARGET_"
RUNNER_SUFFIX = "_RUNNER"

_SEPARATORS = re.compile(r"[^A-Za-z0-9]")


def runner_variable(target: str) -> str:
    """``aarch64-unknown-linux-musl`` -> ``CARGO_TARGET_AARCH64_UNKNOWN_LINUX_MUSL_RUNNER``."""

    return f"{RUNNER_PREFIX}{_SEPARATORS.sub('_', target).upper()}{RUNNER_SUFFIX}"


def is_runner_variable(name: str) -> bool:
    return name.startswith(RUNNER_PREFIX) and name.endswith(RUNNER_SUFFIX) and len(name) > len(RUNNER_PREFIX + RUNNER_SUFFIX)


@dataclass(frozen=True, slots=True)
class Run:
    command: str | None = None


@dataclass(frozen=True, slots=True)
class Skip:
    reason: str


RunnerDecision = Run | Skip


class CrossRunnerResolver:
    """Looks up execution runners for cross-compiled test binaries.

    ``bindings`` maps runner variable names (see :func:`runner_variable`) to the
    configured command. The host triple always runs natively.
    """

    def __init__(self, *, host_triple: str, bindings: Mapping[str, str], console: Console | None = None) -> None:
        self._host_triple = host_triple
        self._bindings = bindings
        self._console = console

    @property
    def host_triple(self) -> str:
        return self._host_triple

    def can_test(self, target: str) -> RunnerDecision:
        if target == self._host_triple:
            return Run(None)

        variable = runner_variable(target)
        command = (self._bindings.get(variable) or "").strip()
        if command:
            if self._console:
                self._console.debug(f"Tests for {target} run through {variable}={command}")
            return Run(command)

        decision = Skip(f"no runner configured for {target} (set {variable})")
        if self._console:
            self._console.info(f"Skipping tests for {target}: {decision.reason}")
        return decision


__all__ = [
    "CrossRunnerResolver",
    "Run",
    "RunnerDecision",
    "Skip",
    "is_runner_variable",
    "runner_variable",
]

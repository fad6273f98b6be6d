"""Target matrix expansion and host triple discovery."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Tuple

from .core.command_runner import CommandError, CommandRunner, SubprocessCommandRunner
from .core.config_loader import normalize_string_list

from .errors import ConfigurationError
from .workspace import WorkspaceMember

Cell = Tuple[WorkspaceMember, str]


def query_host_triple(runner: CommandRunner | None = None) -> str:
    """Ask the installed ``rustc`` for its native compilation target."""

    runner = runner or SubprocessCommandRunner()
    try:
        result = runner.run(["rustc", "-vV"], check=True, note="Query host triple")
    except FileNotFoundError as exc:
        raise ConfigurationError("rustc was not found on PATH; cannot determine the host target triple") from exc
    except CommandError as exc:
        raise ConfigurationError(f"Could not determine the host target triple: {exc}") from exc

    for line in result.stdout.splitlines():
        key, _, value = line.partition(":")
        if key.strip() == "host" and value.strip():
            return value.strip()
    raise ConfigurationError("rustc -vV did not report a 'host:' line")


def parse_targets(target_spec: str | Iterable[str] | None, host_triple: str) -> Tuple[str, ...]:
    targets: list[str] = []
    for target in normalize_string_list(target_spec, field_name="targets"):
        if target not in targets:
            targets.append(target)
    return tuple(targets) if targets else (host_triple,)


@dataclass(frozen=True, slots=True)
class Matrix:
    """The (member, target) cells of one orchestration run."""

    cells: frozenset[Cell]
    host_triple: str

    def __iter__(self) -> Iterator[Cell]:
        return iter(sorted(self.cells, key=lambda cell: (cell[0].name, cell[1])))

    def __len__(self) -> int:
        return len(self.cells)

    def __contains__(self, cell: object) -> bool:
        return cell in self.cells

    @property
    def members(self) -> Tuple[WorkspaceMember, ...]:
        return tuple(sorted({member for member, _ in self.cells}, key=lambda member: member.name))

    @property
    def targets(self) -> Tuple[str, ...]:
        return tuple(sorted({target for _, target in self.cells}))

    def cells_for_target(self, target: str) -> Tuple[Cell, ...]:
        return tuple(cell for cell in self if cell[1] == target)


def build_matrix(
    members: Iterable[WorkspaceMember],
    target_spec: str | Iterable[str] | None,
    host_triple: str,
) -> Matrix:
    """Expand ``members`` x targets; an empty target spec means the host only."""

    targets = parse_targets(target_spec, host_triple)
    cells = frozenset((member, target) for member in members for target in targets)
    return Matrix(cells=cells, host_triple=host_triple)


__all__ = ["Cell", "Matrix", "build_matrix", "parse_targets", "query_host_triple"]

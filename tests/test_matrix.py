from __future__ import annotations

from pathlib import Path
import unittest

from cargo_tasks.core.command_runner import RecordingCommandRunner

from cargo_tasks.errors import ConfigurationError
from cargo_tasks.matrix import build_matrix, parse_targets, query_host_triple
from cargo_tasks.workspace import WorkspaceMember

HOST = "x86_64-unknown-linux-gnu"

RUSTC_VV = """rustc 1.79.0 (129f3b996 2024-06-10)
binary: rustc
commit-hash: 129f3b9964af4d4a709d1383930ade12dfe7c081
host: x86_64-unknown-linux-gnu
release: 1.79.0
LLVM version: 18.1.7
"""


def _member(name: str) -> WorkspaceMember:
    return WorkspaceMember(name=name, root=Path("/ws") / name, path=Path(name))


class TargetMatrixTests(unittest.TestCase):
    def setUp(self) -> None:
        self.m1 = _member("m1")
        self.m2 = _member("m2")

    def test_cross_product_of_members_and_targets(self) -> None:
        matrix = build_matrix({self.m1, self.m2}, "t1 t2", HOST)

        self.assertEqual(len(matrix), 4)
        self.assertEqual(
            set(matrix),
            {(self.m1, "t1"), (self.m1, "t2"), (self.m2, "t1"), (self.m2, "t2")},
        )

    def test_empty_spec_equals_explicit_host_spec(self) -> None:
        members = {self.m1, self.m2}
        self.assertEqual(build_matrix(members, "", HOST), build_matrix(members, HOST, HOST))
        self.assertEqual(build_matrix(members, None, HOST), build_matrix(members, HOST, HOST))
        self.assertEqual(build_matrix(members, "   ", HOST).targets, (HOST,))

    def test_iteration_order_is_deterministic(self) -> None:
        matrix = build_matrix({self.m2, self.m1}, "t2 t1", HOST)

        cells = [(member.name, target) for member, target in matrix]
        self.assertEqual(cells, [("m1", "t1"), ("m1", "t2"), ("m2", "t1"), ("m2", "t2")])
        self.assertEqual([member.name for member in matrix.members], ["m1", "m2"])
        self.assertEqual([target for _, target in matrix.cells_for_target("t2")], ["t2", "t2"])

    def test_membership(self) -> None:
        matrix = build_matrix({self.m1}, "t1", HOST)

        self.assertIn((self.m1, "t1"), matrix)
        self.assertNotIn((self.m1, HOST), matrix)
        self.assertNotIn((self.m2, "t1"), matrix)

    def test_parse_targets_deduplicates(self) -> None:
        self.assertEqual(parse_targets("t1 t2  t1", HOST), ("t1", "t2"))


class HostTripleTests(unittest.TestCase):
    def test_reads_host_line_from_rustc(self) -> None:
        runner = RecordingCommandRunner()
        runner.respond(["rustc", "-vV"], stdout=RUSTC_VV)

        self.assertEqual(query_host_triple(runner), HOST)
        self.assertEqual(runner.commands[0].command, ["rustc", "-vV"])

    def test_missing_host_line_is_a_configuration_error(self) -> None:
        runner = RecordingCommandRunner()
        runner.respond(["rustc"], stdout="rustc 1.79.0\n")

        with self.assertRaises(ConfigurationError):
            query_host_triple(runner)

    def test_failing_rustc_is_a_configuration_error(self) -> None:
        runner = RecordingCommandRunner()
        runner.respond(["rustc"], returncode=1, stderr="error: no default toolchain")

        with self.assertRaises(ConfigurationError) as ctx:
            query_host_triple(runner)
        self.assertIn("host target triple", str(ctx.exception))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()

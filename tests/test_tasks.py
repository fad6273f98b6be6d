from __future__ import annotations

from pathlib import Path
import unittest

from cargo_tasks.core.command_runner import RecordingCommandRunner

from cargo_tasks.errors import ConfigurationError
from cargo_tasks.matrix import build_matrix
from cargo_tasks.runners import CrossRunnerResolver
from cargo_tasks.tasks import (
    FeaturePolicy,
    FeatureSelection,
    Operation,
    TaskDispatcher,
    TaskRequest,
    TaskStatus,
    exit_code_for,
)
from cargo_tasks.workspace import WorkspaceMember

HOST = "x86_64-unknown-linux-gnu"
ARM = "aarch64-unknown-linux-gnu"
ROOT = Path("/ws")


def _member(name: str) -> WorkspaceMember:
    return WorkspaceMember(name=name, root=ROOT / name, path=Path(name))


class FeatureSelectionTests(unittest.TestCase):
    def test_policies(self) -> None:
        self.assertIs(FeatureSelection().policy, FeaturePolicy.NONE)
        self.assertIs(FeatureSelection(("a",)).policy, FeaturePolicy.EXPLICIT)
        self.assertIs(FeatureSelection(all_features=True).policy, FeaturePolicy.ALL)

    def test_explicit_list_becomes_repeated_flags(self) -> None:
        self.assertEqual(
            FeatureSelection(("serde", "tls")).flags(),
            ["--features", "serde", "--features", "tls"],
        )

    def test_conflicting_selection_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            FeatureSelection(("serde",), all_features=True).flags()


class TaskDispatcherCommandTests(unittest.TestCase):
    def setUp(self) -> None:
        self.runner = RecordingCommandRunner()
        self.dispatcher = TaskDispatcher(
            command_runner=self.runner,
            root=ROOT,
            runner_resolver=CrossRunnerResolver(host_triple=HOST, bindings={}),
        )
        self.core = _member("core")

    def command(self, **kwargs) -> list[str]:
        return self.dispatcher.command_for(TaskRequest(**kwargs))

    def test_build_whole_workspace(self) -> None:
        self.assertEqual(
            self.command(operation=Operation.BUILD),
            ["cargo", "build", "--message-format=short", "--workspace"],
        )

    def test_build_single_crate_has_no_scope_flag(self) -> None:
        self.assertEqual(
            self.command(operation=Operation.BUILD, workspace=False),
            ["cargo", "build", "--message-format=short"],
        )

    def test_member_target_release_and_features(self) -> None:
        self.assertEqual(
            self.command(
                operation=Operation.CHECK,
                member=self.core,
                target=ARM,
                release=True,
                features=FeatureSelection(all_features=True),
            ),
            [
                "cargo",
                "check",
                "--message-format=short",
                "-p",
                "core",
                "--target",
                ARM,
                "--release",
                "--all-features",
            ],
        )

    def test_host_target_omits_target_flag(self) -> None:
        self.assertNotIn("--target", self.command(operation=Operation.TEST, target=HOST))

    def test_lint_denies_warnings(self) -> None:
        self.assertEqual(
            self.command(operation=Operation.LINT, member=self.core),
            ["cargo", "clippy", "--message-format=short", "-p", "core", "--all-targets", "--", "-D", "warnings"],
        )

    def test_strict_lint_denies_groups_and_allows_noisy_lints(self) -> None:
        cmd = self.command(operation=Operation.LINT_STRICT)
        tail = cmd[cmd.index("--") + 1 :]
        self.assertEqual(
            tail[:6],
            ["--deny", "warnings", "--deny", "clippy::pedantic", "--deny", "clippy::nursery"],
        )
        self.assertIn("clippy::missing_errors_doc", tail)
        self.assertEqual(tail.count("--allow"), 7)

    def test_format_commands(self) -> None:
        self.assertEqual(self.command(operation=Operation.FORMAT), ["cargo", "fmt", "--all", "--", "--check"])
        self.assertEqual(self.command(operation=Operation.FORMAT_FIX, member=self.core), ["cargo", "fmt", "-p", "core"])
        self.assertEqual(
            self.command(operation=Operation.FORMAT, workspace=False, release=True),
            ["cargo", "fmt", "--", "--check"],
        )

    def test_fix_variants(self) -> None:
        self.assertEqual(
            self.command(operation=Operation.FIX, member=self.core),
            ["cargo", "fix", "--message-format=short", "-p", "core", "--allow-dirty", "--lib"],
        )
        self.assertEqual(self.command(operation=Operation.FIX_EDITION)[-1], "--edition")
        self.assertEqual(
            self.command(operation=Operation.FIX_CLIPPY)[-6:],
            ["--all-targets", "--fix", "--allow-dirty", "--", "-D", "warnings"],
        )


class TaskDispatcherExecutionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.runner = RecordingCommandRunner()
        self.resolver = CrossRunnerResolver(
            host_triple=HOST,
            bindings={"CARGO_TARGET_ARMV7_UNKNOWN_LINUX_GNUEABIHF_RUNNER": "qemu-arm -L /usr/arm-linux-gnueabihf"},
        )
        self.dispatcher = TaskDispatcher(command_runner=self.runner, root=ROOT, runner_resolver=self.resolver)
        self.core = _member("core")

    def test_success_runs_in_workspace_root(self) -> None:
        result = self.dispatcher.execute(TaskRequest(operation=Operation.BUILD))

        self.assertIs(result.status, TaskStatus.SUCCESS)
        self.assertEqual(self.runner.commands[0].cwd, str(ROOT))
        self.assertTrue(self.runner.commands[0].stream)

    def test_failure_surfaces_exit_code_and_output_without_retry(self) -> None:
        self.runner.respond(["cargo", "test"], returncode=101, stdout="test result: FAILED")

        result = self.dispatcher.execute(TaskRequest(operation=Operation.TEST, member=self.core))

        self.assertIs(result.status, TaskStatus.FAILURE)
        self.assertEqual(result.exit_code, 101)
        self.assertIn("FAILED", result.output)
        self.assertEqual(len(self.runner.commands), 1)

    def test_conflicting_features_rejected_before_dispatch(self) -> None:
        request = TaskRequest(operation=Operation.BUILD, features=FeatureSelection(("a",), all_features=True))

        with self.assertRaises(ConfigurationError):
            self.dispatcher.execute(request)
        self.assertEqual(self.runner.commands, [])

    def test_cross_test_without_runner_is_skipped_and_never_attempted(self) -> None:
        result = self.dispatcher.execute(TaskRequest(operation=Operation.TEST, member=self.core, target=ARM))

        self.assertIs(result.status, TaskStatus.SKIPPED)
        self.assertIn(ARM, result.reason or "")
        self.assertEqual(self.runner.commands, [])

    def test_cross_test_with_runner_injects_runner_variable(self) -> None:
        target = "armv7-unknown-linux-gnueabihf"
        result = self.dispatcher.execute(TaskRequest(operation=Operation.TEST, member=self.core, target=target))

        self.assertIs(result.status, TaskStatus.SUCCESS)
        recorded = self.runner.commands[0]
        self.assertIn("--target", recorded.command)
        self.assertEqual(
            recorded.env,
            {"CARGO_TARGET_ARMV7_UNKNOWN_LINUX_GNUEABIHF_RUNNER": "qemu-arm -L /usr/arm-linux-gnueabihf"},
        )

    def test_cross_build_does_not_consult_runner(self) -> None:
        result = self.dispatcher.execute(TaskRequest(operation=Operation.BUILD, member=self.core, target=ARM))

        self.assertIs(result.status, TaskStatus.SUCCESS)
        self.assertEqual(self.runner.commands[0].env, {})

    def test_cells_outside_matrix_are_refused(self) -> None:
        matrix = build_matrix({self.core}, HOST, HOST)
        request = TaskRequest(operation=Operation.BUILD, member=self.core, target=ARM)

        with self.assertRaises(ConfigurationError):
            self.dispatcher.execute(request, matrix=matrix)
        self.assertEqual(self.runner.commands, [])

    def test_execute_matrix_covers_every_cell(self) -> None:
        cli = _member("cli")
        matrix = build_matrix({self.core, cli}, f"{HOST} {ARM}", HOST)

        results = self.dispatcher.execute_matrix(matrix, Operation.TEST)

        statuses = {(r.request.member.name, r.request.target): r.status for r in results}
        self.assertEqual(
            statuses,
            {
                ("cli", ARM): TaskStatus.SKIPPED,
                ("cli", HOST): TaskStatus.SUCCESS,
                ("core", ARM): TaskStatus.SKIPPED,
                ("core", HOST): TaskStatus.SUCCESS,
            },
        )
        self.assertEqual(len(self.runner.commands), 2)
        self.assertEqual(exit_code_for(results), 0)

    def test_missing_cargo_is_reported_as_failure(self) -> None:
        def missing(command):
            raise FileNotFoundError(2, "No such file or directory", "cargo")

        self.runner.responders.append(missing)

        result = self.dispatcher.execute(TaskRequest(operation=Operation.CHECK))

        self.assertIs(result.status, TaskStatus.FAILURE)
        self.assertEqual(result.exit_code, 127)

    def test_child_killed_by_signal_maps_to_shell_exit_code(self) -> None:
        self.runner.respond(["cargo", "build"], returncode=-9)

        results = [self.dispatcher.execute(TaskRequest(operation=Operation.BUILD))]

        self.assertEqual(results[0].exit_code, -9)
        self.assertEqual(exit_code_for(results), 137)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()

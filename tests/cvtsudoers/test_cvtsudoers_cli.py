import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest.mock import patch

from cvtsudoers import SUDOERS_GRAMMAR_VERSION
from cvtsudoers.cli.main import main as cvt_main
from cvtsudoers.core.errors import ContextError
from cvtsudoers.core.execution_context import ExecutionContext, Identity

CTX = ExecutionContext(
    identity=Identity(name="alice", uid=1000, gid=1000, home="/home/alice", shell="/bin/sh"),
    canonical_hostname="web1.example.com",
    short_hostname="web1",
)

POLICY = "Defaults env_reset\nroot ALL=(ALL:ALL) ALL\n%sudo ALL=(ALL) NOPASSWD: /usr/bin/apt\n"


class TestCvtsudoersCli(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.td = Path(self._td.name)
        self.conf = self.td / "cvtsudoers.yml"
        self.conf.write_text("", encoding="utf-8")
        self.src = self.td / "sudoers"
        self.src.write_text(POLICY, encoding="utf-8")
        self.out = self.td / "out.json"

        self._env = patch.dict(os.environ, {"CVTSUDOERS_CONF": str(self.conf)})
        self._env.start()
        self._ctx = patch("cvtsudoers.cli.main.build_execution_context", return_value=CTX)
        self.build_ctx = self._ctx.start()

    def tearDown(self) -> None:
        self._ctx.stop()
        self._env.stop()
        self._td.cleanup()

    def _run(self, argv):
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            rc = cvt_main(argv)
        return rc, out.getvalue(), err.getvalue()

    def test_converts_file_to_output(self) -> None:
        rc, _, err = self._run(["-f", "JSON", "-o", str(self.out), str(self.src)])
        self.assertEqual(rc, 0, err)
        doc = json.loads(self.out.read_text(encoding="utf-8"))
        self.assertEqual(doc["Defaults"], [{"Options": [{"env_reset": True}]}])
        self.assertEqual(doc["User_Specs"][1]["User_List"], [{"usergroup": "sudo"}])
        self.assertEqual(doc["User_Specs"][1]["Cmnd_Specs"][0]["Options"], [{"authenticate": False}])

    def test_lowercase_format_accepted(self) -> None:
        rc, out, _ = self._run(["--format=json", str(self.src)])
        self.assertEqual(rc, 0)
        self.assertIn("User_Specs", json.loads(out))

    def test_reads_stdin_when_no_input(self) -> None:
        with patch("sys.stdin", io.StringIO("alice ALL = /bin/ls\n")):
            rc, out, _ = self._run([])
        self.assertEqual(rc, 0)
        self.assertEqual(json.loads(out)["User_Specs"][0]["User_List"], [{"username": "alice"}])

    def test_unsupported_format_writes_nothing(self) -> None:
        for fmt in ("xml", "LDIF", "csv"):
            rc, out, err = self._run(["-f", fmt, "-o", str(self.out), str(self.src)])
            self.assertEqual(rc, 1)
            self.assertIn("unsupported output format {}".format(fmt), err)
            self.assertIn("usage: cvtsudoers", err)
            self.assertEqual(out, "")
            self.assertFalse(self.out.exists())
        self.build_ctx.assert_not_called()

    def test_too_many_inputs(self) -> None:
        rc, _, err = self._run(["-o", str(self.out), str(self.src), str(self.src)])
        self.assertEqual(rc, 1)
        self.assertIn("usage:", err)
        self.assertFalse(self.out.exists())
        self.build_ctx.assert_not_called()

    def test_unknown_option(self) -> None:
        rc, _, err = self._run(["-q"])
        self.assertEqual(rc, 1)
        self.assertIn("usage:", err)

    def test_help_touches_nothing(self) -> None:
        missing = str(self.td / "missing")
        rc, out, _ = self._run(["-h", "-o", str(self.out), missing])
        self.assertEqual(rc, 0)
        self.assertIn("convert between sudoers file formats", out)
        self.assertIn("-o, --output=output_file", out)
        self.assertFalse(self.out.exists())
        self.build_ctx.assert_not_called()

    def test_version(self) -> None:
        rc, out, _ = self._run(["-V", str(self.td / "missing")])
        self.assertEqual(rc, 0)
        self.assertIn("grammar version {}".format(SUDOERS_GRAMMAR_VERSION), out)
        self.build_ctx.assert_not_called()

    def test_context_failure_is_fatal(self) -> None:
        self.build_ctx.side_effect = ContextError(code="context.no_identity", message="you do not exist in the passwd database")
        rc, _, err = self._run(["-o", str(self.out), str(self.src)])
        self.assertEqual(rc, 1)
        self.assertIn("context.no_identity", err)
        self.assertFalse(self.out.exists())

    def test_parse_failure_exit_code(self) -> None:
        self.src.write_text("root ALL = (ALL\n", encoding="utf-8")
        rc, _, err = self._run(["-o", str(self.out), str(self.src)])
        self.assertEqual(rc, 1)
        self.assertIn("parse error", err)

    def test_invalid_config_is_fatal(self) -> None:
        self.conf.write_text("debug:\n  verbose: true\n", encoding="utf-8")
        rc, _, err = self._run(["-o", str(self.out), str(self.src)])
        self.assertEqual(rc, 1)
        self.assertIn("config.schema_invalid", err)
        self.assertFalse(self.out.exists())

    def test_trace_written_when_configured(self) -> None:
        trace_path = self.td / "trace" / "cvt.jsonl"
        self.conf.write_text('debug:\n  trace_path: "{}"\n  run_id: "run_cli"\n'.format(trace_path), encoding="utf-8")
        rc, _, _ = self._run(["-o", str(self.out), str(self.src)])
        self.assertEqual(rc, 0)
        events = [json.loads(l) for l in trace_path.read_text(encoding="utf-8").splitlines() if l.strip()]
        event_types = [e["event_type"] for e in events]
        self.assertEqual(event_types[0], "invocation_started")
        self.assertIn("context_built", event_types)
        self.assertIn("defaults_initialized", event_types)
        self.assertEqual(event_types[-1], "conversion_finished")
        self.assertTrue(all(e["run_id"] == "run_cli" for e in events))

    def test_unwritable_trace_path_is_reported(self) -> None:
        # The parent of the trace file is a regular file, so it cannot be created.
        trace_path = self.src / "trace" / "cvt.jsonl"
        self.conf.write_text('debug:\n  trace_path: "{}"\n'.format(trace_path), encoding="utf-8")
        rc, out, err = self._run(["-o", str(self.out), str(self.src)])
        self.assertEqual(rc, 1)
        self.assertEqual(out, "")
        self.assertIn("config.trace_unwritable", err)
        self.assertNotIn("Traceback", err)
        self.assertFalse(self.out.exists())
        self.build_ctx.assert_not_called()

    def test_non_finite_defaults_value_fails(self) -> None:
        self.src.write_text("Defaults passwd_timeout=inf\nroot ALL = ALL\n", encoding="utf-8")
        rc, out, err = self._run([str(self.src)])
        self.assertEqual(rc, 1)
        self.assertEqual(out, "")
        self.assertIn("parse error", err)
        self.assertIn("near line 1", err)

    def test_trace_records_invocation_details(self) -> None:
        trace_path = self.td / "cvt.jsonl"
        self.conf.write_text('debug:\n  trace_path: "{}"\n'.format(trace_path), encoding="utf-8")
        with patch("sys.stdin", io.StringIO("root ALL = ALL\n")):
            rc, _, _ = self._run([])
        self.assertEqual(rc, 0)
        events = {e["event_type"]: e for e in (json.loads(l) for l in trace_path.read_text(encoding="utf-8").splitlines())}
        started = events["invocation_started"]["data"]
        self.assertEqual((started["input"], started["output"]), ("<stdin>", "<stdout>"))
        self.assertEqual(started["config"], str(self.conf))
        self.assertEqual(events["defaults_initialized"]["data"]["values"]["passwd_tries"], 3)


if __name__ == "__main__":
    unittest.main()

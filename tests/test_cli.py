from __future__ import annotations

import contextlib
import io
import json
import tempfile
import unittest
from unittest import mock
from pathlib import Path

from abi_fixtures import DumpBuilder, abi_core
from abi_viewer_core import cli


def make_payload(first_id: int = 1, point_size: int = 8) -> dict[str, object]:
    builder = DumpBuilder(first_id=first_id)
    int_id = builder.int_type()
    double = builder.double_type()
    pair = builder.record("Pair", [("a", double, 0), ("b", double, 8)], 16)
    builder.record("Point", [("x", int_id, 0), ("y", int_id, 4)], point_size)
    builder.function(
        "_Z4makeii",
        params=[("x", int_id), ("y", int_id)],
        returns=pair,
        registers={"0": "rdi", "1": "rsi"},
        short_name="make",
    )
    builder.variable("counter", int_id, 4)
    return builder.payload()


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.old_path = self.root / "old.json"
        self.new_path = self.root / "new.json"
        self.old_path.write_text(json.dumps(make_payload()), encoding="utf-8")
        self.new_path.write_text(json.dumps(make_payload(first_id=500, point_size=12)), encoding="utf-8")

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def run_cli(self, *argv: str) -> tuple[int, str, str]:
        stdout = io.StringIO()
        stderr = io.StringIO()
        with contextlib.redirect_stdout(stdout), contextlib.redirect_stderr(stderr):
            code = cli.main(list(argv))
        return code, stdout.getvalue(), stderr.getvalue()

    def test_view_json_for_one_symbol(self) -> None:
        code, out, _ = self.run_cli("view", str(self.old_path), "--symbol", "make", "--json")
        self.assertEqual(code, 0)
        report = json.loads(out)
        self.assertEqual([entry["symbol"] for entry in report["symbols"]], ["_Z4makeii"])
        sequence = report["symbols"][0]["calling_sequence"]
        self.assertEqual(
            [(part["subject"], part["passed"]) for part in sequence],
            [("x", "%rdi"), ("y", "%rsi"), (".retval.a", "%xmm0"), (".retval.b", "%xmm1")],
        )

    def test_view_text_and_output_file(self) -> None:
        output = self.root / "view" / "report.json"
        code, out, _ = self.run_cli("view", str(self.old_path), "--output", str(output))
        self.assertEqual(code, 0)
        self.assertIn("_Z4makeii", out)
        self.assertIn("Calling sequence:", out)
        payload = json.loads(output.read_text(encoding="utf-8"))
        self.assertEqual(sorted(entry["symbol"] for entry in payload["symbols"]), ["_Z4makeii", "counter"])

    def test_view_unknown_symbol_is_an_error(self) -> None:
        code, _, err = self.run_cli("view", str(self.old_path), "--symbol", "missing")
        self.assertEqual(code, 2)
        self.assertIn("abi-viewer error: Symbol 'missing' is not found", err)

    def test_diff_writes_reports(self) -> None:
        report_path = self.root / "diff.json"
        markdown_path = self.root / "diff.md"
        code, out, _ = self.run_cli(
            "diff",
            str(self.old_path),
            str(self.new_path),
            "--report",
            str(report_path),
            "--markdown-report",
            str(markdown_path),
        )
        self.assertEqual(code, 0)
        self.assertIn("ABI diff status: changed", out)
        self.assertIn("Changed types: 1", out)
        report = json.loads(report_path.read_text(encoding="utf-8"))
        self.assertEqual(report["changed_types"], ["Point"])
        self.assertIn("ledger", report)
        self.assertIn("## Changed Types", markdown_path.read_text(encoding="utf-8"))

    def test_diff_fail_on_changes(self) -> None:
        code, _, _ = self.run_cli("diff", str(self.old_path), str(self.new_path), "--fail-on-changes")
        self.assertEqual(code, 1)
        code, _, _ = self.run_cli("diff", str(self.old_path), str(self.old_path), "--fail-on-changes")
        self.assertEqual(code, 0)

    def test_diff_uses_config_options(self) -> None:
        config_path = self.root / "config.json"
        config_path.write_text(json.dumps({"options": {"fail_on_changes": True}}), encoding="utf-8")
        code, _, _ = self.run_cli("diff", str(self.old_path), str(self.new_path), "--config", str(config_path))
        self.assertEqual(code, 1)

    def test_invalid_dump_exits_with_two(self) -> None:
        broken = json.loads(self.old_path.read_text(encoding="utf-8"))
        broken["ExtraDump"] = "Off"
        broken_path = self.root / "broken.json"
        broken_path.write_text(json.dumps(broken), encoding="utf-8")

        code, _, err = self.run_cli("diff", str(self.old_path), str(broken_path))
        self.assertEqual(code, 2)
        self.assertIn("-extra-dump", err)

    def test_missing_input_exits_with_two(self) -> None:
        code, _, err = self.run_cli("view", str(self.root / "nope.dump"))
        self.assertEqual(code, 2)
        self.assertIn("Input does not exist", err)

    def test_dump_command(self) -> None:
        library = self.root / "libdemo.so.1"
        library.write_bytes(abi_core.ELF_MAGIC + b"\x00" * 16)
        output_dir = self.root / "dump"
        dump_text = self.old_path.read_text(encoding="utf-8")

        def fake_create_dump(object_path: Path, output_dir: Path, **kwargs: object) -> Path:
            output_dir.mkdir(parents=True, exist_ok=True)
            target = output_dir / "ABI.dump"
            target.write_text(dump_text, encoding="utf-8")
            self.assertEqual(kwargs["library_version"], "1")
            return target

        with mock.patch("abi_viewer_core.commands.dump.create_dump", side_effect=fake_create_dump):
            code, out, _ = self.run_cli("dump", str(library), "--output-dir", str(output_dir))

        self.assertEqual(code, 0)
        self.assertIn(f"ABI dump: {output_dir.resolve() / 'ABI.dump'}", out)
        self.assertIn("Symbols: 2", out)

    def test_shared_object_input_is_dumped_first(self) -> None:
        library = self.root / "libdemo.so.1"
        library.write_bytes(abi_core.ELF_MAGIC + b"\x00" * 16)
        dump_text = self.old_path.read_text(encoding="utf-8")
        calls: list[Path] = []

        def fake_create_dump(object_path: Path, output_dir: Path, **kwargs: object) -> Path:
            calls.append(object_path)
            output_dir.mkdir(parents=True, exist_ok=True)
            target = output_dir / "ABI.dump"
            target.write_text(dump_text, encoding="utf-8")
            return target

        work_dir = self.root / "work"
        with mock.patch("abi_viewer_core.commands.common.create_dump", side_effect=fake_create_dump):
            code, out, _ = self.run_cli("view", str(library), "--work-dir", str(work_dir), "--json")

        self.assertEqual(code, 0)
        self.assertEqual(calls, [library.resolve()])
        self.assertTrue((work_dir / library.name / "ABI.dump").is_file())
        self.assertEqual(json.loads(out)["library"], "libdemo.so")


class ConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_options_from_config_and_overrides(self) -> None:
        config = {"options": {"skip_std": True, "count_unanchored_anonymous": False}}
        abi_core.validate_config_payload(config)
        options = abi_core.build_viewer_options(config, show_private=True, skip_std=None)
        self.assertEqual(
            options,
            abi_core.ViewerOptions(skip_std=True, show_private=True, count_unanchored_anonymous=False),
        )

    def test_invalid_config_values(self) -> None:
        with self.assertRaisesRegex(abi_core.AbiViewerError, "must be boolean"):
            abi_core.validate_config_payload({"options": {"skip_std": "yes"}})
        with self.assertRaisesRegex(abi_core.AbiViewerError, "not a known option"):
            abi_core.validate_config_payload({"options": {"colour": True}})
        with self.assertRaisesRegex(abi_core.AbiViewerError, "must be an object"):
            abi_core.validate_config_payload({"options": []})

    def test_load_config_reports_bad_json(self) -> None:
        path = self.root / "config.json"
        path.write_text("{not json", encoding="utf-8")
        with self.assertRaisesRegex(abi_core.AbiViewerError, "Invalid JSON"):
            abi_core.load_config(path)


class SchemaTests(unittest.TestCase):
    def setUp(self) -> None:
        try:
            import jsonschema  # noqa: F401
        except ImportError:
            self.skipTest("jsonschema is not installed")

    def test_report_matches_schema(self) -> None:
        builder = DumpBuilder()
        builder.function("_Z1fv", returns=builder.int_type())
        abi = builder.build()
        report = abi_core.build_report(abi_core.compare_dumps(abi, abi))
        validated, reason = abi_core.validate_with_jsonschema_if_available("report", report)
        self.assertTrue(validated, reason)

    def test_schema_rejects_bad_report(self) -> None:
        with self.assertRaises(abi_core.AbiViewerError):
            abi_core.validate_with_jsonschema_if_available("report", {"status": "maybe"})


if __name__ == "__main__":
    unittest.main()

from __future__ import annotations

import json
import tempfile
import unittest
from unittest import mock
from pathlib import Path

from abi_fixtures import DumpBuilder, abi_core
from abi_viewer_core import _core_compare

Kind = abi_core.EntityKind
Status = abi_core.StatusField


def make_library(
    first_id: int = 1,
    arch: str = "x86_64",
    point_fields: list[tuple[str, str, int]] | None = None,
    point_size: int = 8,
    green: str = "1",
) -> DumpBuilder:
    builder = DumpBuilder(arch=arch, first_id=first_id)
    int_id = builder.int_type()
    builder.record("Point", point_fields or [("x", int_id, 0), ("y", int_id, 4)], point_size)
    builder.enum("Color", [("RED", "0"), ("GREEN", green)])
    builder.function(
        "_Z3addii",
        params=[("a", int_id), ("b", int_id)],
        returns=int_id,
        registers={"0": "rdi", "1": "rsi"},
        short_name="add",
    )
    return builder


def make_shaped_library(first_id: int = 1) -> DumpBuilder:
    builder = make_library(first_id=first_id)
    int_id = builder.int_type()
    long_id = builder.long_type()
    float_id = builder.float_type()
    double = builder.double_type()
    ints = builder.add_type("Array", "int[2]", 8, base=int_id)
    pair = builder.record("Pair", [("a", double, 0), ("b", double, 8)], 16)
    mixed = builder.record("Mixed", [("a", ints, 0), ("d", double, 8)], 16)
    inner = builder.record("Inner", [("a", float_id, 0), ("b", float_id, 4)], 8)
    outer = builder.record("Outer", [("in", inner, 0), ("z", double, 8)], 16)
    longs = builder.record("Longs", [("lo", long_id, 0), ("hi", long_id, 8)], 16)
    builder.function("_Z8makePairv", returns=pair)
    builder.function("_Z3getv", returns=mixed)
    builder.function("_Z9makeOuterv", returns=outer)
    builder.function("_Z4take5Longs", params=[("value", longs)], registers={"0": "rdi", "0+8": "rsi"})
    return builder


class CompareDumpsTests(unittest.TestCase):
    def test_identical_aggregate_shapes_have_no_changes(self) -> None:
        result = abi_core.compare_dumps(make_shaped_library().build("old"), make_shaped_library(500).build("new"))

        self.assertFalse(result.has_changes, result.symbol_changes)
        self.assertEqual(result.symbol_changes, {})
        self.assertEqual(result.warnings, [])
        old_get = result.old_index.symbol_ids["_Z3getv"]
        new_get = result.new_index.symbol_ids["_Z3getv"]
        self.assertEqual(result.ledger.get(Kind.PART, 1, old_get, ".retval.a[1]", Status.MAPPED), ".retval.a[1]")
        self.assertFalse(result.ledger.has(Kind.PART, 2, new_get, ".retval.a[0]", Status.ADDED))

    def test_array_member_parts_follow_member_rename(self) -> None:
        old_builder = make_library()
        old_ints = old_builder.add_type("Array", "int[2]", 8, base=old_builder.int_type())
        old_mixed = old_builder.record("Mixed", [("a", old_ints, 0), ("d", old_builder.double_type(), 8)], 16)
        old_builder.function("_Z3getv", returns=old_mixed)
        new_builder = make_library(first_id=500)
        new_ints = new_builder.add_type("Array", "int[2]", 8, base=new_builder.int_type())
        new_mixed = new_builder.record("Mixed", [("values", new_ints, 0), ("d", new_builder.double_type(), 8)], 16)
        new_builder.function("_Z3getv", returns=new_mixed)

        result = abi_core.compare_dumps(old_builder.build("old"), new_builder.build("new"))

        self.assertEqual(
            result.symbol_changes["_Z3getv"],
            ["'.retval.a[0]' renamed to '.retval.values[0]'", "'.retval.a[1]' renamed to '.retval.values[1]'"],
        )

    def test_identical_dumps_have_no_changes(self) -> None:
        old = make_library().build("old")
        new = make_library(first_id=500).build("new")
        result = abi_core.compare_dumps(old, new)

        self.assertFalse(result.has_changes)
        self.assertEqual(result.warnings, [])
        self.assertEqual(abi_core.build_report(result)["status"], "unchanged")
        old_add = result.old_index.symbol_ids["_Z3addii"]
        new_add = result.new_index.symbol_ids["_Z3addii"]
        self.assertEqual(result.ledger.get(Kind.SYMBOL, 1, old_add, 0, Status.MAPPED), 0)
        self.assertEqual(result.ledger.get(Kind.PART, 2, new_add, ".retval", Status.MAPPED), ".retval")

    def test_added_and_removed_symbols(self) -> None:
        old_builder = make_library()
        new_builder = make_library(first_id=500)
        int_id = old_builder.int_type()
        old_builder.function("_Z3subii", params=[("a", int_id), ("b", int_id)], returns=int_id)
        new_int = new_builder.int_type()
        new_builder.function("_Z3mulii", params=[("a", new_int), ("b", new_int)], returns=new_int)
        new_builder.function("_Z6hiddenv", returns=new_int, bind=None)

        result = abi_core.compare_dumps(old_builder.build("old"), new_builder.build("new"))

        self.assertEqual(result.removed_symbols, {"_Z3subii"})
        self.assertEqual(result.added_symbols, {"_Z3mulii", "_Z6hiddenv"})
        self.assertTrue(result.has_changes)

    def test_unbound_symbols_are_listed_but_not_compared(self) -> None:
        old_builder = make_library()
        old_builder.function("_Z5localv", returns=old_builder.int_type(), bind=None)
        new_builder = make_library(first_id=500)
        new_builder.function("_Z5localv", returns=new_builder.double_type(), bind=None)

        result = abi_core.compare_dumps(old_builder.build("old"), new_builder.build("new"))

        self.assertEqual(result.added_symbols, set())
        self.assertEqual(result.removed_symbols, set())
        self.assertNotIn("_Z5localv", result.symbol_changes)
        self.assertFalse(result.has_changes)

    def test_member_added_changes_type(self) -> None:
        old = make_library().build("old")
        # the first type of a library built from id 500 is "int"
        new = make_library(
            first_id=500,
            point_fields=[("x", "500", 0), ("y", "500", 4), ("z", "500", 8)],
            point_size=12,
        ).build("new")
        self.assertEqual(new.types["500"].name, "int")

        result = abi_core.compare_dumps(old, new)

        self.assertEqual(result.changed_types, {"Point"})
        self.assertIn("member 'z' added", result.type_changes["Point"])
        self.assertIn("size changed from 8 to 12", result.type_changes["Point"])
        new_point = result.new_index.type_ids["Point"]
        self.assertTrue(result.ledger.get(Kind.TYPE, 2, new_point, 2, Status.ADDED))
        self.assertEqual(result.ledger.get(Kind.TYPE, 2, new_point, 2, Status.MAPPED_REL), 2)

    def test_member_type_change_is_recorded_on_both_sides(self) -> None:
        old = make_library().build("old")
        new_builder = DumpBuilder(first_id=500)
        int_id = new_builder.int_type()
        long_id = new_builder.long_type()
        new_builder.record("Point", [("x", long_id, 0), ("y", int_id, 8)], 16)
        new_builder.enum("Color", [("RED", "0"), ("GREEN", "1")])
        new_builder.function("_Z3addii", params=[("a", int_id), ("b", int_id)], returns=int_id, registers={"0": "rdi", "1": "rsi"})
        new = new_builder.build("new")

        result = abi_core.compare_dumps(old, new)

        reasons = result.type_changes["Point"]
        self.assertIn("type of member 'x' changed from 'int' to 'long'", reasons)
        self.assertIn("size of member 'x' changed from 4 to 8", reasons)
        self.assertIn("offset of member 'y' changed from 4 to 8", reasons)
        self.assertIn("size changed from 8 to 16", reasons)
        old_point = result.old_index.type_ids["Point"]
        new_point = result.new_index.type_ids["Point"]
        self.assertTrue(result.ledger.has(Kind.TYPE, 1, old_point, 0, Status.CHANGED_TYPE))
        self.assertTrue(result.ledger.has(Kind.TYPE, 2, new_point, 0, Status.CHANGED_TYPE))
        self.assertFalse(result.ledger.has(Kind.TYPE, 1, old_point, 1, Status.CHANGED_TYPE))

    def test_enum_value_change(self) -> None:
        result = abi_core.compare_dumps(make_library().build("old"), make_library(first_id=500, green="2").build("new"))
        self.assertEqual(result.changed_types, {"Color"})
        self.assertEqual(result.type_changes["Color"], ["value of 'GREEN' changed from 1 to 2"])

    def test_private_types_are_hidden_unless_requested(self) -> None:
        old_builder = make_library()
        old_builder.record("Impl", [("state", old_builder.int_type(), 0)], 4, PrivateABI=1)
        new_builder = make_library(first_id=500)
        new_builder.record("Impl", [("state", new_builder.long_type(), 0)], 8, PrivateABI=1)
        old = old_builder.build("old")
        new = new_builder.build("new")

        self.assertEqual(abi_core.compare_dumps(old, new).changed_types, set())
        shown = abi_core.compare_dumps(old, new, abi_core.ViewerOptions(show_private=True))
        self.assertEqual(shown.changed_types, {"Impl"})

    def test_skip_std_hides_std_symbols_and_types(self) -> None:
        old = make_library().build("old")
        new_builder = make_library(first_id=500)
        vector = new_builder.record("std::vector<int>", [("data", new_builder.int_type(), 0)], 24, kind="Class")
        new_builder.function("_ZNSt6vectorIiE9push_backEi", params=[("this", vector)])
        new = new_builder.build("new")

        result = abi_core.compare_dumps(old, new)
        self.assertIn("_ZNSt6vectorIiE9push_backEi", result.added_symbols)
        self.assertIn("std::vector<int>", result.added_types)

        skipped = abi_core.compare_dumps(old, new, abi_core.ViewerOptions(skip_std=True))
        self.assertEqual(skipped.added_symbols, set())
        self.assertEqual(skipped.added_types, set())

    def test_cross_architecture_diff_warns(self) -> None:
        result = abi_core.compare_dumps(make_library().build("old"), make_library(first_id=500, arch="x86").build("new"))
        self.assertTrue(result.warnings[0].startswith("Comparing dumps of different architectures"))

    def test_failing_symbol_becomes_warning(self) -> None:
        old = make_library().build("old")
        new = make_library(first_id=500).build("new")
        with mock.patch.object(_core_compare, "compare_symbol", side_effect=abi_core.AbiViewerError("boom")):
            result = abi_core.compare_dumps(old, new)

        self.assertEqual(result.changed_symbols, set())
        self.assertIn("Symbol '_Z3addii' was not compared: boom", result.warnings)


class SymbolComparisonTests(unittest.TestCase):
    def test_parameter_retyped_moves_to_another_register(self) -> None:
        old_builder = make_library()
        old_builder.function("_Z5scalei", params=[("v", old_builder.int_type())], registers={"0": "rdi"})
        new_builder = make_library(first_id=500)
        new_builder.function("_Z5scalei", params=[("v", new_builder.double_type())], registers={"0": "xmm0"})

        result = abi_core.compare_dumps(old_builder.build("old"), new_builder.build("new"))

        reasons = result.symbol_changes["_Z5scalei"]
        self.assertIn("type of 'v' changed from 'int' to 'double'", reasons)
        self.assertIn("size of 'v' changed from 4 to 8", reasons)
        self.assertIn("'v' is passed in '%xmm0' instead of '%rdi'", reasons)
        old_id = result.old_index.symbol_ids["_Z5scalei"]
        self.assertTrue(result.ledger.has(Kind.PART, 1, old_id, "v", Status.CHANGED_TYPE))

    def test_parameter_added(self) -> None:
        old_builder = make_library()
        int_id = old_builder.int_type()
        old_builder.function("_Z4initi", params=[("a", int_id)], returns=int_id, registers={"0": "rdi"})
        new_builder = make_library(first_id=500)
        new_int = new_builder.int_type()
        new_builder.function(
            "_Z4initi",
            params=[("a", new_int), ("b", new_int)],
            returns=new_int,
            registers={"0": "rdi", "1": "rsi"},
        )

        result = abi_core.compare_dumps(old_builder.build("old"), new_builder.build("new"))

        self.assertEqual(result.symbol_changes["_Z4initi"], ["parameter 'b' added"])
        new_id = result.new_index.symbol_ids["_Z4initi"]
        self.assertTrue(result.ledger.get(Kind.SYMBOL, 2, new_id, 1, Status.ADDED))
        self.assertTrue(result.ledger.get(Kind.PART, 2, new_id, "b", Status.ADDED))

    def test_return_value_moved_to_memory(self) -> None:
        old_builder = make_library()
        double = old_builder.double_type()
        pair = old_builder.record("Pair", [("a", double, 0), ("b", double, 8)], 16)
        old_builder.function("_Z4makev", returns=pair)
        new_builder = make_library(first_id=500)
        new_double = new_builder.double_type()
        new_pair = new_builder.record("Pair", [("a", new_double, 0), ("b", new_double, 8), ("c", new_double, 16)], 24)
        new_builder.function("_Z4makev", returns=new_pair)

        result = abi_core.compare_dumps(old_builder.build("old"), new_builder.build("new"))

        self.assertIn("'.retval' became completely passed", result.symbol_changes["_Z4makev"])
        self.assertIn("Pair", result.changed_types)
        old_id = result.old_index.symbol_ids["_Z4makev"]
        new_id = result.new_index.symbol_ids["_Z4makev"]
        self.assertTrue(result.ledger.get(Kind.PART, 1, old_id, ".retval.a", Status.REMOVED))
        self.assertTrue(result.ledger.get(Kind.PART, 2, new_id, ".result_ptr", Status.ADDED))

    def test_split_parameter_follows_member_alignment(self) -> None:
        old_builder = make_library()
        old_long = old_builder.long_type()
        old_longs = old_builder.record("Longs", [("lo", old_long, 0), ("hi", old_long, 8)], 16)
        old_builder.function("_Z4take5Longs", params=[("value", old_longs)], registers={"0": "rdi", "0+8": "rsi"})
        new_builder = make_library(first_id=500)
        new_long = new_builder.long_type()
        new_longs = new_builder.record("Longs", [("low", new_long, 0), ("hi", new_long, 8)], 16)
        new_builder.function("_Z4take5Longs", params=[("value", new_longs)], registers={"0": "rdi", "0+8": "rsi"})

        result = abi_core.compare_dumps(old_builder.build("old"), new_builder.build("new"))

        self.assertEqual(result.symbol_changes["_Z4take5Longs"], ["'value.lo' renamed to 'value.low'"])
        old_id = result.old_index.symbol_ids["_Z4take5Longs"]
        self.assertEqual(result.ledger.get(Kind.PART, 1, old_id, "value.lo", Status.MAPPED), "value.low")
        self.assertEqual(result.type_changes["Longs"], ["member 'lo' renamed to 'low'"])

    def test_global_variable_size_and_type(self) -> None:
        old_builder = make_library()
        old_builder.variable("counter", old_builder.int_type(), 4)
        new_builder = make_library(first_id=500)
        new_builder.variable("counter", new_builder.long_type(), 8)

        result = abi_core.compare_dumps(old_builder.build("old"), new_builder.build("new"))

        self.assertEqual(
            result.symbol_changes["counter"],
            ["size changed from 4 to 8", "type changed from 'int' to 'long'"],
        )


def add_class_hierarchy(builder: DumpBuilder, bases: list[str], vtable: dict[str, str]) -> str:
    int_id = builder.int_type()
    ids = {
        name: builder.record(name, [("id", int_id, 0)], 4, kind="Class")
        for name in ("Base", "Mixin")
    }
    return builder.record(
        "Derived",
        [("x", int_id, 8)],
        16,
        kind="Class",
        Base={ids[name]: {"pos": position} for position, name in enumerate(bases)},
        VTable=vtable,
    )


class ClassLayoutTests(unittest.TestCase):
    VTABLE = {
        "0": "(int (*)(...)) 0",
        "8": "(int (*)(...)) (& typeinfo for Derived)",
        "16": "Derived::run [_ZN7Derived3runEv]",
    }

    def test_identical_classes_are_unchanged(self) -> None:
        old_builder = make_library()
        add_class_hierarchy(old_builder, ["Base"], self.VTABLE)
        new_builder = make_library(first_id=500)
        add_class_hierarchy(new_builder, ["Base"], self.VTABLE)

        result = abi_core.compare_dumps(old_builder.build("old"), new_builder.build("new"))
        self.assertFalse(result.has_changes)

    def test_base_classes_and_vtable_changes(self) -> None:
        old_builder = make_library()
        add_class_hierarchy(old_builder, ["Base"], self.VTABLE)
        new_builder = make_library(first_id=500)
        new_vtable = dict(self.VTABLE)
        new_vtable["16"] = "Derived::start [_ZN7Derived5startEv]"
        new_vtable["24"] = "Derived::stop [_ZN7Derived4stopEv]"
        add_class_hierarchy(new_builder, ["Mixin", "Base"], new_vtable)

        result = abi_core.compare_dumps(old_builder.build("old"), new_builder.build("new"))

        self.assertEqual(
            result.type_changes["Derived"],
            [
                "position of base class 'Base' changed from 0 to 1",
                "base class 'Mixin' added",
                "vtable entry at offset 16 changed from 'Derived::run' to 'Derived::start'",
                "vtable entry at offset 24 added ('Derived::stop')",
            ],
        )

    def test_view_report_lists_class_layout(self) -> None:
        builder = make_library()
        add_class_hierarchy(builder, ["Base"], self.VTABLE)
        report = abi_core.build_view_report(builder.build("lib"))

        types = {entry["name"]: entry for entry in report["types"]}
        derived = types["Derived"]
        self.assertEqual(derived["members"], [{"name": "x", "type": "int", "offset": 8, "size": "4"}])
        self.assertEqual(derived["base_classes"], [{"name": "Base", "position": 0}])
        self.assertEqual(
            derived["vtable"],
            [
                {"offset": 0, "entry": "0"},
                {"offset": 8, "entry": "& typeinfo for Derived"},
                {"offset": 16, "entry": "Derived::run"},
            ],
        )
        self.assertEqual(types["Color"]["values"], [{"name": "RED", "value": "0"}, {"name": "GREEN", "value": "1"}])
        self.assertNotIn("vtable", types["Point"])

    def test_removed_base_class_and_vtable_entry(self) -> None:
        old_builder = make_library()
        add_class_hierarchy(old_builder, ["Base", "Mixin"], self.VTABLE)
        new_builder = make_library(first_id=500)
        add_class_hierarchy(new_builder, ["Base"], {"0": self.VTABLE["0"], "8": self.VTABLE["8"]})

        result = abi_core.compare_dumps(old_builder.build("old"), new_builder.build("new"))

        self.assertEqual(
            result.type_changes["Derived"],
            ["base class 'Mixin' removed", "vtable entry at offset 16 removed ('Derived::run')"],
        )


class AnonymousTypeTests(unittest.TestCase):
    def _library(self, first_id: int, anon_name: str, with_container: bool = True) -> "abi_core.AbiDump":
        builder = make_library(first_id=first_id)
        anon = builder.record(anon_name, [("v", builder.int_type(), 0)], 4)
        if with_container:
            builder.record("Outer", [("u", anon, 0)], 4)
        return builder.build(f"lib-{first_id}")

    def test_anonymous_type_is_paired_through_container(self) -> None:
        old = self._library(1, "anon-struct-demo.h-3")
        new = self._library(500, "anon-struct-demo.h-7")
        result = abi_core.compare_dumps(old, new)

        self.assertEqual(result.added_types, set())
        self.assertEqual(result.removed_types, set())
        self.assertEqual(result.unanchored_anonymous, {"removed": set(), "added": set()})
        old_anon = result.old_index.type_ids["anon-struct-demo.h-3"]
        new_anon = result.new_index.type_ids["anon-struct-demo.h-7"]
        self.assertEqual(result.mapped_types[old_anon], new_anon)

    def test_unanchored_anonymous_type_counting(self) -> None:
        old = self._library(1, "anon-struct-demo.h-3", with_container=False)
        new = make_library(first_id=500).build("new")

        with self.assertLogs("abi_viewer", level="WARNING"):
            counted = abi_core.compare_dumps(old, new)
        self.assertEqual(counted.removed_types, {"anon-struct-demo.h-3"})
        self.assertEqual(counted.unanchored_anonymous["removed"], {"anon-struct-demo.h-3"})

        options = abi_core.ViewerOptions(count_unanchored_anonymous=False)
        with self.assertLogs("abi_viewer", level="WARNING"):
            uncounted = abi_core.compare_dumps(old, new, options)
        self.assertEqual(uncounted.removed_types, set())
        self.assertEqual(uncounted.unanchored_anonymous["removed"], {"anon-struct-demo.h-3"})
        self.assertIn("anon-struct-demo.h-3", uncounted.removed_types_all)


class ReportTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_report_and_markdown(self) -> None:
        result = abi_core.compare_dumps(make_library().build("old"), make_library(first_id=500, green="2").build("new"))
        report = abi_core.build_report(result)

        self.assertEqual(report["status"], "changed")
        self.assertEqual(report["summary"]["changed_types"], 1)
        self.assertEqual(report["type_changes"], {"Color": ["value of 'GREEN' changed from 1 to 2"]})
        self.assertTrue(report["ledger"])
        json.dumps(report)

        self.assertNotIn("ledger", abi_core.build_report(result, include_ledger=False))

        markdown_path = self.root / "out" / "report.md"
        abi_core.write_markdown_report(markdown_path, report)
        text = markdown_path.read_text(encoding="utf-8")
        self.assertTrue(text.startswith("# ABI Diff Report (changed)"))
        self.assertIn("## Changed Types", text)
        self.assertIn("  - value of 'GREEN' changed from 1 to 2", text)


if __name__ == "__main__":
    unittest.main()

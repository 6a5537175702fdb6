from __future__ import annotations

import unittest

from abi_fixtures import abi_core

Element = abi_core.AlignedElement


def elements(*items: tuple[str, str]) -> list["abi_core.AlignedElement"]:
    return [Element(position, name, signature) for position, (name, signature) in enumerate(items)]


class LongestCommonSubstringTests(unittest.TestCase):
    def test_lengths(self) -> None:
        lcs = abi_core.longest_common_substring
        self.assertEqual(lcs("abcdef", "xbcdy"), 3)
        self.assertEqual(lcs("same", "same"), 4)
        self.assertEqual(lcs("count", "counter"), 5)
        self.assertEqual(lcs("", "anything"), 0)
        self.assertEqual(lcs("abc", "xyz"), 0)
        self.assertGreaterEqual(lcs("hello_world", "world_hello"), 5)
        self.assertEqual(lcs("hello_world", "hello_world"), len("hello_world"))


class NameAndTypeAlignmentTests(unittest.TestCase):
    def test_identical_lists_map_one_to_one(self) -> None:
        items = elements(("a", "int"), ("b", "long"))
        mapping = abi_core.align_by_name_and_type(items, items)
        self.assertEqual(mapping.forward, {0: 0, 1: 1})
        self.assertEqual(mapping.removed, [])
        self.assertEqual(mapping.added, [])
        self.assertFalse(mapping.is_moved(0))
        self.assertFalse(mapping.is_moved(1))

    def test_renamed_member_is_matched_by_type(self) -> None:
        old = elements(("a", "int"), ("b", "int"), ("c", "long"))
        new = elements(("a", "int"), ("bb", "int"), ("c", "long"))
        mapping = abi_core.align_by_name_and_type(old, new)
        self.assertEqual(mapping.forward, {0: 0, 2: 2, 1: 1})
        self.assertEqual(mapping.backward, {0: 0, 2: 2, 1: 1})

    def test_insertion_keeps_relative_position(self) -> None:
        old = elements(("a", "int"), ("b", "int"))
        new = elements(("a", "int"), ("x", "long"), ("b", "int"))
        mapping = abi_core.align_by_name_and_type(old, new)
        self.assertEqual(mapping.forward, {0: 0, 1: 2})
        self.assertEqual(mapping.added, [1])
        self.assertEqual(mapping.relative_position, {0: 0, 1: 1, 2: 1})
        self.assertFalse(mapping.is_moved(1))

    def test_swapped_members_are_moved(self) -> None:
        old = elements(("a", "int"), ("b", "int"))
        new = elements(("b", "int"), ("a", "int"))
        mapping = abi_core.align_by_name_and_type(old, new)
        self.assertEqual(mapping.forward, {0: 1, 1: 0})
        self.assertTrue(mapping.is_moved(0))
        self.assertTrue(mapping.is_moved(1))

    def test_longest_common_substring_breaks_ties(self) -> None:
        old = elements(("count", "int"))
        new = elements(("total", "int"), ("counter", "int"))
        mapping = abi_core.align_by_name_and_type(old, new)
        self.assertEqual(mapping.forward, {0: 1})
        self.assertEqual(mapping.added, [0])

    def test_mapping_is_total_and_one_to_one(self) -> None:
        old = elements(("a", "int"), ("b", "char"), ("c", "long"), ("d", "int"))
        new = elements(("d", "int"), ("e", "char"), ("a", "double"))
        mapping = abi_core.align_by_name_and_type(old, new)

        self.assertEqual(set(mapping.forward) | set(mapping.removed), {0, 1, 2, 3})
        self.assertFalse(set(mapping.forward) & set(mapping.removed))
        self.assertEqual(set(mapping.backward) | set(mapping.added), {0, 1, 2})
        self.assertEqual(len(set(mapping.forward.values())), len(mapping.forward))
        self.assertEqual(mapping.forward, {0: 2, 3: 0, 1: 1})
        self.assertEqual(mapping.removed, [2])


class NameAndValueAlignmentTests(unittest.TestCase):
    def test_renamed_enumerator_is_matched_by_value(self) -> None:
        old = elements(("RED", "0"), ("GREEN", "1"))
        new = elements(("RED", "0"), ("LIME", "1"))
        mapping = abi_core.align_by_name_and_value(old, new)
        self.assertEqual(mapping.forward, {0: 0, 1: 1})

    def test_value_match_skips_names_that_still_exist(self) -> None:
        old = elements(("A", "0"), ("B", "1"), ("C", "2"))
        new = elements(("A", "0"), ("C", "1"), ("D", "1"))
        mapping = abi_core.align_by_name_and_value(old, new)
        self.assertEqual(mapping.forward, {0: 0, 2: 1, 1: 2})
        self.assertEqual(mapping.removed, [])
        self.assertEqual(mapping.added, [])

    def test_unmatched_values_are_removed_and_added(self) -> None:
        old = elements(("A", "0"), ("B", "1"))
        new = elements(("A", "0"), ("Z", "9"))
        mapping = abi_core.align_by_name_and_value(old, new)
        self.assertEqual(mapping.forward, {0: 0})
        self.assertEqual(mapping.removed, [1])
        self.assertEqual(mapping.added, [1])


if __name__ == "__main__":
    unittest.main()

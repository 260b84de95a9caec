from __future__ import annotations

import unittest

from fsconnector.mapping.filters import GlobPattern, PathFilter, is_visible


class GlobPatternTests(unittest.TestCase):
    def test_pattern_without_slash_matches_leaf_at_any_depth(self) -> None:
        pattern = GlobPattern.compile("*.txt")

        self.assertTrue(pattern.matches("a.txt"))
        self.assertTrue(pattern.matches("dir1/dir2/b.txt"))
        self.assertFalse(pattern.matches("dir1/b.json"))
        self.assertFalse(pattern.anchored)

    def test_trailing_double_star_requires_a_component_below(self) -> None:
        pattern = GlobPattern.compile("dir3/**")

        self.assertFalse(pattern.matches("dir3"))
        self.assertTrue(pattern.matches("dir3/simple.txt"))
        self.assertTrue(pattern.matches("dir3/a/b"))
        self.assertFalse(pattern.matches("dir30/x"))

    def test_single_star_stays_within_one_component(self) -> None:
        pattern = GlobPattern.compile("docs/*.md")

        self.assertTrue(pattern.matches("docs/readme.md"))
        self.assertFalse(pattern.matches("docs/nested/readme.md"))

    def test_leading_double_star_spans_directories(self) -> None:
        pattern = GlobPattern.compile("**/build/*")

        self.assertTrue(pattern.matches("build/out.o"))
        self.assertTrue(pattern.matches("a/b/build/out.o"))

    def test_may_contain_prunes_non_matching_prefixes(self) -> None:
        pattern = GlobPattern.compile("dir3/sub/*.txt")

        self.assertTrue(pattern.may_contain("dir3"))
        self.assertTrue(pattern.may_contain("dir3/sub"))
        self.assertFalse(pattern.may_contain("dir1"))
        self.assertFalse(pattern.may_contain("dir3/other"))

    def test_empty_pattern_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            GlobPattern.compile("  / ")


class VisibilityTests(unittest.TestCase):
    def test_inclusion_filter_shows_only_matching_subtree(self) -> None:
        inclusion = PathFilter(["dir3/**"])
        exclusion = PathFilter()

        self.assertTrue(is_visible("dir3", True, inclusion, exclusion))
        self.assertTrue(is_visible("dir3/simple.json", False, inclusion, exclusion))
        self.assertTrue(is_visible("dir3/simple.txt", False, inclusion, exclusion))
        self.assertFalse(is_visible("dir1", True, inclusion, exclusion))
        self.assertFalse(is_visible("dir2", True, inclusion, exclusion))

    def test_exclusion_filter_hides_children_but_keeps_directory(self) -> None:
        inclusion = PathFilter()
        exclusion = PathFilter(["dir3/**"])

        self.assertTrue(is_visible("dir1", True, inclusion, exclusion))
        self.assertTrue(is_visible("dir3", True, inclusion, exclusion))
        self.assertFalse(is_visible("dir3/simple.json", False, inclusion, exclusion))
        self.assertFalse(is_visible("dir3/simple.txt", False, inclusion, exclusion))

    def test_excluded_directory_hides_entire_subtree(self) -> None:
        exclusion = PathFilter(["target"])

        self.assertFalse(is_visible("target", True, PathFilter(), exclusion))
        self.assertFalse(is_visible("target/classes/A.class", False, PathFilter(), exclusion))
        self.assertTrue(is_visible("src/A.java", False, PathFilter(), exclusion))

    def test_exclusion_is_evaluated_after_inclusion(self) -> None:
        inclusion = PathFilter(["*.txt"])
        exclusion = PathFilter(["secret.txt"])

        self.assertTrue(is_visible("notes.txt", False, inclusion, exclusion))
        self.assertFalse(is_visible("secret.txt", False, inclusion, exclusion))
        self.assertFalse(is_visible("data.json", False, inclusion, exclusion))

    def test_root_is_always_visible(self) -> None:
        self.assertTrue(is_visible("", True, PathFilter(["nothing/**"]), PathFilter(["*"])))


if __name__ == "__main__":
    unittest.main()

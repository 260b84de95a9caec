from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from fsconnector.extra_properties.store import ExtraPropertyStore
from fsconnector.mapping.path_mapper import PathMapper
from fsconnector.pager import DirectoryPager, decode_page_token, encode_page_token, page_names


def _pager(root: Path, page_size: int | None = None, **mapper_kwargs) -> DirectoryPager:
    store = ExtraPropertyStore("json", root)
    mapper = PathMapper("store", root, "/store", is_reserved_name=store.is_reserved_name, **mapper_kwargs)
    return DirectoryPager(mapper, page_size)


def _collect(pager: DirectoryPager, relative_dir: str, page_size: int) -> list[str]:
    out: list[str] = []
    token = None
    while True:
        page = pager.page(relative_dir, token, page_size)
        out.extend(page.names)
        if page.next_token is None:
            return out
        token = page.next_token


class DirectoryPagerTests(unittest.TestCase):
    def test_every_child_appears_exactly_once_for_any_page_size(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            names = [f"file{idx:03d}.txt" for idx in range(53)] + ["Alpha", "beta"]
            for name in names:
                (root / name).write_text(name, encoding="utf-8")
            pager = _pager(root)

            for page_size in (1, 7, 10, 54, 55, 100):
                with self.subTest(page_size=page_size):
                    collected = _collect(pager, "", page_size)
                    self.assertEqual(len(collected), len(names))
                    self.assertEqual(sorted(collected), sorted(names))

    def test_order_is_case_insensitive_and_deterministic(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            for name in ("b.txt", "A.txt", "a.md", "C"):
                (root / name).write_text("x", encoding="utf-8")
            pager = _pager(root)

            self.assertEqual(pager.children(""), ["a.md", "A.txt", "b.txt", "C"])
            self.assertEqual(pager.children(""), pager.children(""))

    def test_sidecars_and_filtered_entries_are_not_listed(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            (root / "a.txt").write_text("a", encoding="utf-8")
            (root / "a.txt.modeshape.json").write_text("{}", encoding="utf-8")
            (root / "a.txt.modeshape.content.json").write_text("{}", encoding="utf-8")
            (root / ".a.txt.modeshape.json.xyz.tmp").write_text("", encoding="utf-8")
            (root / "skip.log").write_text("", encoding="utf-8")
            pager = _pager(root, exclusion=["*.log"])

            self.assertEqual(pager.children(""), ["a.txt"])

    def test_token_stays_valid_when_earlier_children_change(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            for name in ("b", "d", "f", "h"):
                (root / name).write_text(name, encoding="utf-8")
            pager = _pager(root)

            first = pager.page("", page_size=2)
            (root / "b").unlink()
            (root / "a").write_text("a", encoding="utf-8")
            second = pager.page("", first.next_token, page_size=2)

            self.assertEqual(first.names, ["b", "d"])
            self.assertEqual(second.names, ["f", "h"])
            self.assertIsNone(second.next_token)

    def test_missing_or_file_directory_raises(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            (root / "a.txt").write_text("a", encoding="utf-8")
            pager = _pager(root)

            with self.assertRaises(FileNotFoundError):
                pager.children("missing")
            with self.assertRaises(NotADirectoryError):
                pager.children("a.txt")

    def test_default_page_size_comes_from_projection(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            for idx in range(5):
                (root / f"f{idx}").write_text("x", encoding="utf-8")
            pager = _pager(root, page_size=2)

            page = pager.page("")

            self.assertEqual(page.names, ["f0", "f1"])
            self.assertIsNotNone(page.next_token)


class PageTokenTests(unittest.TestCase):
    def test_tokens_decode_to_last_served_name(self) -> None:
        self.assertEqual(decode_page_token(encode_page_token("dir/é name")), "dir/é name")

    def test_malformed_tokens_raise_value_error(self) -> None:
        for token in ("%%%", "bm90LWpzb24", encode_page_token("x")[:-2] + "!!"):
            with self.subTest(token=token):
                with self.assertRaises(ValueError):
                    decode_page_token(token)

    def test_page_names_without_size_serves_everything(self) -> None:
        page = page_names(["b", "a"], None, 0)

        self.assertEqual(page.names, ["a", "b"])
        self.assertIsNone(page.next_token)


if __name__ == "__main__":
    unittest.main()

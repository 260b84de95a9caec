"""Sidecar store behavior for the none, json and legacy kinds."""

from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from fsconnector.errors import UnsupportedOperation
from fsconnector.extra_properties.store import ExtraPropertyStore
from fsconnector.model.types import ExtraPropertyStoreKind


class JsonSidecarStoreTests(unittest.TestCase):
    def test_set_then_get_round_trips_through_sidecar_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            (root / "docs").mkdir()
            (root / "docs" / "a.txt").write_text("a", encoding="utf-8")
            store = ExtraPropertyStore("json", root)

            store.set("docs/a.txt", {"ms:title": "A", "tags": ["x", "y"]})

            self.assertTrue((root / "docs" / "a.txt.modeshape.json").is_file())
            self.assertEqual(store.get("docs/a.txt"), {"ms:title": "A", "tags": ["x", "y"]})
            self.assertEqual(store.get("docs/a.txt", resource=True), {})

    def test_resource_properties_use_distinct_sidecar(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            store = ExtraPropertyStore(ExtraPropertyStoreKind.JSON, root)

            store.set("a.txt", {"encoding": "utf-8"}, resource=True)

            self.assertTrue((root / "a.txt.modeshape.content.json").is_file())
            self.assertEqual(store.get("a.txt", resource=True), {"encoding": "utf-8"})
            self.assertEqual(store.get("a.txt"), {})

    def test_root_sidecar_lives_inside_root(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            store = ExtraPropertyStore("json", root)

            store.set("", {"owner": "me"})

            self.assertTrue((root / ".modeshape.json").is_file())
            self.assertEqual(store.owner_of_sidecar(".modeshape.json"), ("", False))
            self.assertEqual(store.get(""), {"owner": "me"})

    def test_update_merges_and_none_deletes(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            store = ExtraPropertyStore("json", root)
            store.set("a.txt", {"one": 1, "two": 2})

            merged = store.update("a.txt", {"two": None, "three": 3})

            self.assertEqual(merged, {"one": 1, "three": 3})
            self.assertEqual(store.get("a.txt"), {"one": 1, "three": 3})

    def test_empty_mapping_removes_sidecar(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            store = ExtraPropertyStore("json", root)
            store.set("a.txt", {"one": 1})

            store.set("a.txt", {})

            self.assertFalse((root / "a.txt.modeshape.json").exists())
            self.assertEqual(store.get("a.txt"), {})

    def test_malformed_sidecar_reads_as_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            (root / "a.txt.modeshape.json").write_text("{broken", encoding="utf-8")
            store = ExtraPropertyStore("json", root)

            with self.assertLogs("fsconnector.extra_properties.store", level="WARNING"):
                self.assertEqual(store.get("a.txt"), {})

    def test_failed_write_keeps_previous_sidecar_and_leaves_no_temp_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            store = ExtraPropertyStore("json", root)
            store.set("a.txt", {"version": 1})

            with mock.patch("fsconnector.extra_properties.atomic.os.replace", side_effect=OSError("disk full")):
                with self.assertRaises(OSError):
                    store.set("a.txt", {"version": 2})

            self.assertEqual(store.get("a.txt"), {"version": 1})
            self.assertEqual(sorted(os.listdir(root)), ["a.txt.modeshape.json"])

    def test_move_copy_and_remove_follow_the_owner(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            store = ExtraPropertyStore("json", root)
            store.set("a.txt", {"one": 1})
            store.set("a.txt", {"enc": "x"}, resource=True)

            store.copy("a.txt", "b.txt")
            store.move("a.txt", "c.txt")

            self.assertEqual(store.get("a.txt"), {})
            self.assertEqual(store.get("b.txt"), {"one": 1})
            self.assertEqual(store.get("c.txt", resource=True), {"enc": "x"})

            store.remove("c.txt")
            self.assertEqual(store.get("c.txt"), {})
            self.assertEqual(store.get("c.txt", resource=True), {})

    def test_reserved_names_cover_sidecars_and_their_temp_files(self) -> None:
        store = ExtraPropertyStore("json", Path("/"))

        self.assertTrue(store.is_reserved_name("a.txt.modeshape.json"))
        self.assertTrue(store.is_reserved_name("a.txt.modeshape.content.json"))
        self.assertTrue(store.is_reserved_name(".a.txt.modeshape.json.k2j3h4.tmp"))
        self.assertFalse(store.is_reserved_name("a.txt"))
        self.assertEqual(store.owner_of_sidecar("docs/a.txt.modeshape.content.json"), ("docs/a.txt", True))
        self.assertIsNone(store.owner_of_sidecar("docs/a.txt"))


class LegacySidecarStoreTests(unittest.TestCase):
    def test_legacy_kind_uses_legacy_suffixes(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            store = ExtraPropertyStore("legacy", root)

            store.set("a.txt", {"ms:title": "A"})
            store.set("a.txt", {"ratio": 0.5}, resource=True)

            self.assertTrue((root / "a.txt.modeshape").is_file())
            self.assertTrue((root / "a.txt.content.modeshape").is_file())
            self.assertEqual(store.get("a.txt"), {"ms:title": "A"})
            self.assertEqual(store.get("a.txt", resource=True), {"ratio": 0.5})
            self.assertEqual(store.owner_of_sidecar("a.txt.content.modeshape"), ("a.txt", True))
            self.assertFalse(store.is_reserved_name("a.txt.modeshape.json.bak"))


class NoneStoreTests(unittest.TestCase):
    def test_none_kind_rejects_property_writes(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            store = ExtraPropertyStore("none", root)

            with self.assertRaises(UnsupportedOperation):
                store.set("a.txt", {"ms:title": "A"})

            store.set("a.txt", {})
            self.assertEqual(store.get("a.txt"), {})
            self.assertFalse(store.is_reserved_name("a.txt.modeshape.json"))
            self.assertEqual(os.listdir(root), [])


if __name__ == "__main__":
    unittest.main()

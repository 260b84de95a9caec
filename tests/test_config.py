from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from fsconnector import config
from fsconnector.errors import ConfigurationError
from fsconnector.model.types import BinaryStrategyKind, ExtraPropertyStoreKind


class ConfigBehaviorTests(unittest.TestCase):
    def test_missing_or_malformed_file_loads_as_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config_path = Path(tmp) / "fsconnector.json"
            with mock.patch("fsconnector.config.CONFIG_PATH", config_path):
                self.assertEqual(config.load_config(), {})

                config_path.write_text("{not json", encoding="utf-8")
                with self.assertLogs("fsconnector.config", level="WARNING"):
                    self.assertEqual(config.load_config(), {})

                config_path.write_text("[1, 2]", encoding="utf-8")
                self.assertEqual(config.load_config(), {})

    def test_camel_case_keys_are_accepted(self) -> None:
        entry = config.ProjectionConfig.from_mapping(
            {
                "name": "store",
                "mountAddress": "/testRoot/store/",
                "nativeRootPath": "/srv/data",
                "readOnly": True,
                "inclusionFilter": "dir3/**",
                "extraPropertyStoreKind": "legacy",
                "binaryStrategyKind": "location",
                "pagingPageSize": 5,
            },
        )

        self.assertEqual(entry.mount_address, "/testRoot/store")
        self.assertEqual(entry.native_root, Path("/srv/data"))
        self.assertTrue(entry.read_only)
        self.assertEqual(entry.inclusion_filter, ("dir3/**",))
        self.assertEqual(entry.extra_properties, ExtraPropertyStoreKind.LEGACY)
        self.assertEqual(entry.binary_strategy, BinaryStrategyKind.LOCATION)
        self.assertEqual(entry.to_projection().page_size, 5)

    def test_invalid_entries_raise_configuration_error(self) -> None:
        invalid = [
            {"mount_address": "/a", "native_root": "/tmp"},
            {"name": "a", "mount_address": "relative", "native_root": "/tmp"},
            {"name": "a", "mount_address": "/a"},
            {"name": "a", "mount_address": "/a", "native_root": "/tmp", "page_size": -1},
            {"name": "a", "mount_address": "/a", "native_root": "/tmp", "read_only": "yes"},
            {"name": "a", "mount_address": "/a", "native_root": "/tmp", "extra_properties": "xml"},
            {"name": "a", "mount_address": "/a", "native_root": "/tmp", "exclusion_filter": [1]},
        ]
        for raw in invalid:
            with self.subTest(raw=raw):
                with self.assertRaises(ConfigurationError):
                    config.ProjectionConfig.from_mapping(raw)

    def test_malformed_projection_entries_are_skipped(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config_path = Path(tmp) / "fsconnector.json"
            config_path.write_text(
                json.dumps(
                    {
                        "projections": [
                            {"name": "good", "mount_address": "/good", "native_root": tmp},
                            {"name": "bad"},
                            "not an object",
                        ],
                    },
                ),
                encoding="utf-8",
            )

            with self.assertLogs("fsconnector.config", level="WARNING") as logs:
                entries = config.load_projection_configs(config_path)

            self.assertEqual([entry.name for entry in entries], ["good"])
            self.assertEqual(len(logs.records), 2)

    def test_save_and_load_round_trip_keeps_other_keys(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config_path = Path(tmp) / "nested" / "fsconnector.json"
            with mock.patch("fsconnector.config.CONFIG_PATH", config_path):
                config.save_config({"theme": "dark"})
                entry = config.ProjectionConfig.from_mapping(
                    {"name": "a", "mount_address": "/a", "native_root": tmp, "exclusion_filter": ["*.log"]},
                )

                config.save_projection_configs([entry])

                self.assertEqual(config.load_projection_configs(), [entry])
                self.assertEqual(config.load_config().get("theme"), "dark")


if __name__ == "__main__":
    unittest.main()

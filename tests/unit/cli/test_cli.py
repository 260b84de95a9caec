"""Command-line behavior against an ad-hoc ``--root`` projection or a config file."""

from __future__ import annotations

import hashlib
import io
import json
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from fsconnector import binaries, cli


def _run(argv: list[str]) -> tuple[int, bytes]:
    stdout = io.TextIOWrapper(io.BytesIO(), encoding="utf-8")
    with mock.patch.object(sys, "stdout", stdout):
        status = cli.main(argv)
        stdout.flush()
    return status, stdout.buffer.getvalue()


class CliCommandTests(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.root = Path(tmp.name).resolve()
        (self.root / "docs").mkdir()
        (self.root / "a.txt").write_bytes(b"alpha\n")

    def test_mounts_lists_ad_hoc_projection(self) -> None:
        status, out = _run(["--root", str(self.root), "--mount", "/data", "--read-only", "mounts"])

        self.assertEqual(status, 0)
        mount, name, mode, native = out.decode("utf-8").strip().split("\t")
        self.assertEqual((mount, name, mode), ("/data", self.root.name, "ro"))
        self.assertEqual(Path(native), self.root)

    def test_ls_prints_child_names(self) -> None:
        status, out = _run(["--root", str(self.root), "--mount", "/data", "ls", "/data"])

        self.assertEqual(status, 0)
        self.assertEqual(out.decode("utf-8").splitlines(), ["a.txt", "docs"])

    def test_cat_and_checksum_report_file_bytes(self) -> None:
        _status, cat_out = _run(["--root", str(self.root), "--mount", "/data", "cat", "/data/a.txt"])
        _status, sum_out = _run(["--root", str(self.root), "--mount", "/data", "checksum", "/data/a.txt"])

        self.assertEqual(cat_out, b"alpha\n")
        self.assertEqual(sum_out.decode("ascii").strip(), hashlib.sha1(b"alpha\n").hexdigest())

    def test_cat_streams_large_files_in_blocks(self) -> None:
        payload = bytes(range(256)) * (binaries.BLOCK_SIZE * 3 // 256) + b"tail!"
        (self.root / "big.bin").write_bytes(payload)

        with mock.patch("fsconnector.cli.iter_file_blocks", wraps=binaries.iter_file_blocks) as blocks:
            status, out = _run(["--root", str(self.root), "--mount", "/data", "cat", "/data/big.bin"])

        self.assertEqual(status, 0)
        self.assertEqual(out, payload)
        blocks.assert_called_once()

    def test_malformed_page_token_exits_with_message(self) -> None:
        with self.assertRaises(SystemExit) as caught:
            _run(["--root", str(self.root), "--mount", "/data", "ls", "/data", "--page-token", "%%%"])

        self.assertTrue(str(caught.exception.code).startswith("error: "))

    def test_props_prints_json(self) -> None:
        status, out = _run(["--root", str(self.root), "--mount", "/data", "props", "/data/a.txt"])

        self.assertEqual(status, 0)
        properties = json.loads(out.decode("utf-8"))
        self.assertEqual(properties["jcr:primaryType"], "nt:file")
        self.assertIn("jcr:created", properties)

    def test_connector_errors_exit_with_message(self) -> None:
        with self.assertRaises(SystemExit) as caught:
            _run(["--root", str(self.root), "--mount", "/data", "props", "/data/missing.txt"])

        self.assertTrue(str(caught.exception.code).startswith("error: "))

    def test_projections_come_from_config_file(self) -> None:
        config_path = self.root / "config.json"
        config_path.write_text(
            json.dumps({"projections": [{"name": "docs", "mountAddress": "/mnt/docs", "nativeRootPath": str(self.root)}]}),
            encoding="utf-8",
        )

        status, out = _run(["--config", str(config_path), "ls", "/mnt"])

        self.assertEqual(status, 0)
        self.assertEqual(out.decode("utf-8").splitlines(), ["docs"])


class CliParserTests(unittest.TestCase):
    def test_watch_seconds_must_be_positive(self) -> None:
        parser = cli.build_parser()

        with mock.patch("sys.stderr", io.StringIO()):
            with self.assertRaises(SystemExit):
                parser.parse_args(["watch", "--seconds", "0"])

        self.assertEqual(parser.parse_args(["watch", "--seconds", "1.5"]).seconds, 1.5)


if __name__ == "__main__":
    unittest.main()

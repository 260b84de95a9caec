from __future__ import annotations

import hashlib
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from fsconnector import binaries
from fsconnector.binaries import BinaryContentStrategy, DigestCache, InternalBinary
from fsconnector.errors import StaleHandle
from fsconnector.model.types import BinaryStrategyKind


def _write(path: Path, data: bytes) -> Path:
    path.write_bytes(data)
    return path


class ContentAddressedStrategyTests(unittest.TestCase):
    def test_small_files_are_digested_eagerly(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            target = _write(Path(tmp) / "a.bin", b"hello world")
            strategy = BinaryContentStrategy("content", large_file_threshold=1024)

            handle = strategy.handle_for(target)

            self.assertTrue(handle.checksum_cached)
            self.assertEqual(handle.key, hashlib.sha1(b"hello world").hexdigest())
            self.assertEqual(strategy.checksum_of(handle), hashlib.sha1(b"hello world").hexdigest())

    def test_large_files_are_digested_once_on_first_request(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            data = os.urandom(binaries.BLOCK_SIZE * 3 + 17)
            target = _write(Path(tmp) / "large.bin", data)
            strategy = BinaryContentStrategy("content", large_file_threshold=1024)

            handle = strategy.handle_for(target)
            self.assertFalse(handle.checksum_cached)

            with mock.patch("fsconnector.binaries.file_digest", wraps=binaries.file_digest) as digest:
                first = handle.checksum()
                second = handle.checksum()
                rehandled = strategy.handle_for(target).checksum()

            self.assertEqual(first, hashlib.sha1(data).hexdigest())
            self.assertEqual(first, second)
            self.assertEqual(first, rehandled)
            self.assertEqual(digest.call_count, 1)

    def test_identical_content_shares_handle_identity(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            first = _write(Path(tmp) / "a.bin", b"same bytes")
            second = _write(Path(tmp) / "b.bin", b"same bytes")
            strategy = BinaryContentStrategy(BinaryStrategyKind.CONTENT)

            self.assertEqual(strategy.handle_for(first), strategy.handle_for(second))
            self.assertEqual(len({strategy.handle_for(first), strategy.handle_for(second)}), 1)

    def test_changed_file_makes_content_handle_stale(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            target = _write(Path(tmp) / "a.bin", b"one")
            strategy = BinaryContentStrategy("content")
            handle = strategy.handle_for(target)

            _write(target, b"three")
            os.utime(target, ns=(handle.mtime_ns + 5_000_000_000, handle.mtime_ns + 5_000_000_000))

            with self.assertRaises(StaleHandle):
                handle.open()

    def test_removed_file_makes_handle_stale(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            target = _write(Path(tmp) / "a.bin", b"one")
            strategy = BinaryContentStrategy("location")
            handle = strategy.handle_for(target)
            target.unlink()

            with self.assertRaises(StaleHandle):
                handle.read_bytes()
            with self.assertRaises(StaleHandle):
                handle.checksum()


class LocationAddressedStrategyTests(unittest.TestCase):
    def test_handle_keys_native_path_and_caches_checksum_per_handle(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            target = _write(Path(tmp) / "a.bin", b"payload")
            strategy = BinaryContentStrategy("location")

            handle = strategy.handle_for(target)
            self.assertEqual(handle.key, str(target))
            self.assertFalse(handle.checksum_cached)
            self.assertIsNone(strategy.digest_cache)

            with mock.patch("fsconnector.binaries.file_digest", wraps=binaries.file_digest) as digest:
                self.assertEqual(handle.checksum(), handle.checksum())
                strategy.handle_for(target).checksum()

            self.assertEqual(digest.call_count, 2)

    def test_stream_reads_current_bytes(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            target = _write(Path(tmp) / "a.bin", b"payload")
            strategy = BinaryContentStrategy("location")
            handle = strategy.handle_for(target)

            with strategy.stream_of(handle) as stream:
                self.assertEqual(stream.read(), b"payload")


class DigestCacheTests(unittest.TestCase):
    def test_least_recently_used_entries_are_evicted(self) -> None:
        cache = DigestCache(max_entries=2)
        cache.put(("a", 1, 1), "da")
        cache.put(("b", 1, 1), "db")
        self.assertEqual(cache.get(("a", 1, 1)), "da")

        cache.put(("c", 1, 1), "dc")

        self.assertIsNone(cache.get(("b", 1, 1)))
        self.assertEqual(cache.get(("a", 1, 1)), "da")
        self.assertEqual(len(cache), 2)


class InternalBinaryTests(unittest.TestCase):
    def test_internal_binary_is_not_external(self) -> None:
        value = InternalBinary.from_stream(mock.Mock(read=mock.Mock(side_effect=[b"ab", b"c", b""])))

        self.assertFalse(value.external)
        self.assertEqual(value.read_bytes(), b"abc")
        self.assertEqual(value.checksum(), hashlib.sha1(b"abc").hexdigest())
        with value.open() as stream:
            self.assertEqual(stream.read(), b"abc")


if __name__ == "__main__":
    unittest.main()

from __future__ import annotations

import os
from pathlib import Path
from tempfile import TemporaryDirectory
from types import SimpleNamespace
from unittest import TestCase
from unittest.mock import patch

from supfit.services.local_store import PENDING_SAVE_KEY, TARGETS_CACHE_KEY, LocalStore

NO_REDIS = {
    "UPSTASH_REDIS_URL": "",
    "UPSTASH_REDIS_REST_URL": "",
    "UPSTASH_REDIS_REST_TOKEN": "",
}


class LocalStoreFilesystemTests(TestCase):
    def setUp(self) -> None:
        self.tmpdir = TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)
        self.env_patch = patch.dict(os.environ, NO_REDIS, clear=False)
        self.env_patch.start()
        self.addCleanup(self.env_patch.stop)
        self.store = LocalStore(self.tmpdir.name)

    def test_set_get_delete_round_trip(self) -> None:
        self.store.set("user-1", TARGETS_CACHE_KEY, {"steps": 9000})

        self.assertEqual({"steps": 9000}, self.store.get("user-1", TARGETS_CACHE_KEY))
        self.assertTrue(Path(self.tmpdir.name, "user-1_user_targets_cache.json").exists())

        self.store.delete("user-1", TARGETS_CACHE_KEY)
        self.assertIsNone(self.store.get("user-1", TARGETS_CACHE_KEY))

    def test_keys_are_scoped_per_user(self) -> None:
        self.store.set("user-1", PENDING_SAVE_KEY, {"steps": 1000})

        self.assertIsNone(self.store.get("user-2", PENDING_SAVE_KEY))

    def test_corrupt_json_reads_as_missing(self) -> None:
        Path(self.tmpdir.name, "user-1_pending_targets_save.json").write_text("{not json")

        self.assertIsNone(self.store.get("user-1", PENDING_SAVE_KEY))

    def test_delete_missing_key_is_noop(self) -> None:
        self.store.delete("nobody", PENDING_SAVE_KEY)


class LocalStoreRedisTests(TestCase):
    def test_redis_used_when_configured(self) -> None:
        redis_store = {}

        class _FakeRedis:
            def set(self, key: str, value: str) -> None:
                redis_store[key] = value

            def get(self, key: str):
                return redis_store.get(key)

            def delete(self, key: str) -> None:
                redis_store.pop(key, None)

        fake_module = SimpleNamespace(from_url=lambda *args, **kwargs: _FakeRedis())

        with TemporaryDirectory() as tmpdir:
            environ = dict(NO_REDIS, UPSTASH_REDIS_URL="redis://localhost:6379")
            with patch.dict(os.environ, environ, clear=False):
                with patch("supfit.services.local_store.redis", fake_module):
                    store = LocalStore(tmpdir)

            store.set("user@example.com", TARGETS_CACHE_KEY, {"steps": 12000})

            self.assertEqual({"steps": 12000}, store.get("user@example.com", TARGETS_CACHE_KEY))
            self.assertIn("supfit:user@example.com_user_targets_cache.json", redis_store)
            self.assertFalse(Path(tmpdir, "user@example.com_user_targets_cache.json").exists())

            store.delete("user@example.com", TARGETS_CACHE_KEY)
            self.assertEqual({}, redis_store)

    def test_redis_failure_falls_back_to_files(self) -> None:
        class _BrokenRedis:
            def set(self, key: str, value: str) -> None:
                raise ConnectionError("redis down")

            def get(self, key: str):
                raise ConnectionError("redis down")

        fake_module = SimpleNamespace(from_url=lambda *args, **kwargs: _BrokenRedis())

        with TemporaryDirectory() as tmpdir:
            environ = dict(NO_REDIS, UPSTASH_REDIS_URL="redis://localhost:6379")
            with patch.dict(os.environ, environ, clear=False):
                with patch("supfit.services.local_store.redis", fake_module):
                    store = LocalStore(tmpdir)

            with self.assertLogs("supfit.services.local_store", level="WARNING"):
                store.set("user-1", PENDING_SAVE_KEY, {"steps": 2000})

            self.assertTrue(Path(tmpdir, "user-1_pending_targets_save.json").exists())
            self.assertEqual({"steps": 2000}, store.get("user-1", PENDING_SAVE_KEY))

    def test_delete_removes_value_written_during_redis_outage(self) -> None:
        redis_store = {}
        outage = {"set": 1}

        class _FlakyRedis:
            def set(self, key: str, value: str) -> None:
                if outage["set"]:
                    outage["set"] -= 1
                    raise ConnectionError("redis down")
                redis_store[key] = value

            def get(self, key: str):
                return redis_store.get(key)

            def delete(self, key: str) -> None:
                redis_store.pop(key, None)

        fake_module = SimpleNamespace(from_url=lambda *args, **kwargs: _FlakyRedis())

        with TemporaryDirectory() as tmpdir:
            environ = dict(NO_REDIS, UPSTASH_REDIS_URL="redis://localhost:6379")
            with patch.dict(os.environ, environ, clear=False):
                with patch("supfit.services.local_store.redis", fake_module):
                    store = LocalStore(tmpdir)

            with self.assertLogs("supfit.services.local_store", level="WARNING"):
                store.set("user-1", PENDING_SAVE_KEY, {"steps": 2000})
            self.assertTrue(Path(tmpdir, "user-1_pending_targets_save.json").exists())

            store.delete("user-1", PENDING_SAVE_KEY)

            self.assertIsNone(store.get("user-1", PENDING_SAVE_KEY))
            self.assertFalse(Path(tmpdir, "user-1_pending_targets_save.json").exists())

"""Tests for aws_activate.cache"""

from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest
from conftest import make_store

from aws_activate.cache import ProfileCache, fuzzy_match


@pytest.mark.parametrize(
    "target, text, expected",
    [
        ("production", "", True),
        ("production", "prod", True),
        ("production", "pdn", True),
        ("production", "PRD", True),
        ("production", "ndp", False),
        ("dev", "devel", False),
        ("prod-admin", "p-a", True),
        ("staging", "x", False),
    ],
)
def test_fuzzy_match(target: str, text: str, expected: bool) -> None:
    assert fuzzy_match(target, text) is expected


class CountingLoader:
    def __init__(self, names, delay=0.0):
        self.names = names
        self.delay = delay
        self.calls = 0

    def __call__(self):
        self.calls += 1
        time.sleep(self.delay)
        return list(self.names)


class TestProfileCache:
    def test_loads_once(self) -> None:
        loader = CountingLoader(["a", "b"])
        cache = ProfileCache(loader)
        assert cache.names() == ["a", "b"]
        assert cache.names() == ["a", "b"]
        assert loader.calls == 1

    def test_returned_list_is_a_copy(self) -> None:
        cache = ProfileCache(CountingLoader(["a"]))
        cache.names().append("z")
        assert cache.names() == ["a"]

    def test_invalidate_reloads(self) -> None:
        loader = CountingLoader(["a"])
        cache = ProfileCache(loader)
        cache.names()
        loader.names = ["a", "b"]

        cache.invalidate()

        assert cache.names() == ["a", "b"]
        assert loader.calls == 2

    def test_concurrent_misses_load_once(self) -> None:
        loader = CountingLoader(["a", "b"], delay=0.05)
        cache = ProfileCache(loader)
        results = []

        threads = [threading.Thread(target=lambda: results.append(cache.names())) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert loader.calls == 1
        assert results == [["a", "b"]] * 8

    def test_complete_filters_and_excludes(self) -> None:
        cache = ProfileCache(CountingLoader(["dev", "prod", "prod-admin", "sso-session-x"]))
        assert cache.complete("prd") == ["prod", "prod-admin"]
        assert cache.complete("", exclude=("sso-session",)) == ["dev", "prod", "prod-admin"]

    def test_store_write_invalidates(self, tmp_path: Path) -> None:
        store = make_store(tmp_path, "[profile dev]\nregion = us-east-1\n")
        cache = ProfileCache(store.list_profiles)
        store.add_change_listener(cache.invalidate)
        assert cache.names() == ["dev"]

        # Edited behind the cache's back, then a write through the store.
        store.config_path.write_text("[profile dev]\nregion = us-east-1\n[profile new]\n")
        assert cache.names() == ["dev"]
        store.set_profile_region("dev", "eu-west-1")

        assert cache.names() == ["dev", "new"]

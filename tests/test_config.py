from pathlib import Path

import pytest

from respcache.config import CacheSettings, ConfigLoader
from respcache.keys import cache_key, parent_collection, scope_of


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)


def test_defaults_written_on_first_run(tmp_path: Path) -> None:
    loader = ConfigLoader(global_dir=tmp_path / "global", project_dir=None, environ={})
    assert (tmp_path / "global" / "config.toml").exists()
    settings = CacheSettings.from_config(loader)
    assert settings.default_ttl == 300
    assert settings.store_backend == "file"
    assert settings.store_path == tmp_path / "global" / "store"

    # The generated file parses back to the same values.
    reloaded = CacheSettings.from_config(ConfigLoader(global_dir=tmp_path / "global", project_dir=None, environ={}))
    assert reloaded == settings


def test_project_config_overrides_global(tmp_path: Path) -> None:
    global_dir = tmp_path / "global"
    project_dir = tmp_path / "project" / ".respcache"
    global_dir.mkdir()
    project_dir.mkdir(parents=True)
    (global_dir / "config.toml").write_text("[cache]\ndefault_ttl = 120\n[memory]\nmax_entries = 64\n")
    (project_dir / "config.toml").write_text('[cache]\ndefault_ttl = 30\n[cache.ttl_rules]\n"/items" = 5\n')

    settings = CacheSettings.from_config(ConfigLoader(global_dir=global_dir, project_dir=project_dir, environ={}))
    assert settings.default_ttl == 30
    assert settings.ttl_rules == {"/items": 5.0}
    assert settings.memory_max_entries == 64


def test_environment_overrides(tmp_path: Path) -> None:
    environ = {
        "RESPCACHE_STORE_MAX_BYTES": "2048",
        "RESPCACHE_STORE_BACKEND": "sqlite",
        "RESPCACHE_REFRESH_KEYS": "/items, /orders",
        "UNRELATED": "1",
    }
    loader = ConfigLoader(global_dir=tmp_path, project_dir=None, environ=environ, create_defaults=False)
    settings = CacheSettings.from_config(loader)
    assert settings.store_max_bytes == 2048
    assert settings.store_backend == "sqlite"
    assert settings.refresh_keys == ["/items", "/orders"]
    assert not (tmp_path / "config.toml").exists()


def test_zero_limits_mean_unbounded(tmp_path: Path) -> None:
    environ = {"RESPCACHE_STORE_MAX_ENTRIES": "0"}
    settings = CacheSettings.from_config(ConfigLoader(global_dir=tmp_path, project_dir=None, environ=environ))
    assert settings.store_max_entries is None


def test_cache_key_is_order_independent() -> None:
    assert cache_key("items", {"q": "lamp", "page": 2}) == cache_key("/items/", {"page": 2, "q": "lamp"})
    assert cache_key("/items", {"page": 2, "q": "lamp"}) == "/items?page=2&q=lamp"
    assert cache_key("/items", {"tag": ["a", "b"], "skip": None}) == "/items?tag=a&tag=b"
    assert cache_key("/items") == "/items"


def test_scope_helpers() -> None:
    assert scope_of("/items/5") == (["/items/5"], ["/items/5?", "/items/5/"])
    assert parent_collection("/items/5") == "/items"
    assert parent_collection("/items") is None

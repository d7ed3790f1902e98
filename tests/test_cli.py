import asyncio
from pathlib import Path

import pytest
from click.testing import CliRunner

from respcache import cli
from respcache.cache.manager import ResponseCache
from respcache.store import FileStore


@pytest.fixture
def env(tmp_path: Path, monkeypatch) -> dict:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)
    return {
        "XDG_CONFIG_HOME": str(tmp_path / "config"),
        "RESPCACHE_STORE_PATH": str(tmp_path / "store"),
        "RESPCACHE_HTTP_BASE_URL": "http://origin.invalid",
    }


def _seed(store_path: str, *items) -> None:
    async def seed():
        async with ResponseCache(FileStore(store_path)) as cache:
            for key, body in items:
                await cache.put(key, body, validator='"v1"', ttl=600)

    asyncio.run(seed())


def test_get_serves_fresh_entry_from_disk(env) -> None:
    _seed(env["RESPCACHE_STORE_PATH"], ("/items?page=2", b'["lamp"]'))
    result = CliRunner().invoke(cli.main, ["get", "/items", "-p", "page=2"], env=env)
    assert result.exit_code == 0, result.output
    assert '["lamp"]' in result.output
    assert "[fresh] /items?page=2 (source: persistent)" in result.output


def test_show_and_invalidate(env) -> None:
    _seed(env["RESPCACHE_STORE_PATH"], ("/items", b"[]"))
    runner = CliRunner()

    shown = runner.invoke(cli.main, ["show", "/items"], env=env)
    assert shown.exit_code == 0
    assert '"v1"' in shown.output
    assert "fresh:     yes" in shown.output

    assert runner.invoke(cli.main, ["invalidate", "/items"], env=env).exit_code == 0
    gone = runner.invoke(cli.main, ["show", "/items"], env=env)
    assert "not cached" in gone.output


def test_invalidate_prefix_and_clear(env) -> None:
    _seed(env["RESPCACHE_STORE_PATH"], ("/items?page=1", b"1"), ("/items?page=2", b"2"), ("/orders", b"o"))
    runner = CliRunner()

    result = runner.invoke(cli.main, ["invalidate", "--prefix", "/items?"], env=env)
    assert "Invalidated 2 entries" in result.output

    stats = runner.invoke(cli.main, ["stats"], env=env)
    assert "entries:  1 / 1000" in stats.output

    assert runner.invoke(cli.main, ["clear"], env=env).exit_code == 0
    stats = runner.invoke(cli.main, ["stats"], env=env)
    assert "entries:  0 / 1000" in stats.output


def test_bad_param_is_usage_error(env) -> None:
    result = CliRunner().invoke(cli.main, ["get", "/items", "-p", "page"], env=env)
    assert result.exit_code == 2
    assert "NAME=VALUE" in result.output


def test_refresh_requires_keys(env) -> None:
    result = CliRunner().invoke(cli.main, ["refresh", "--once"], env=env)
    assert result.exit_code == 2

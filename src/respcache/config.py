"""Configuration loader for respcache (global + project with TOML-based defaults)."""

from __future__ import annotations

import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for Python <3.11
    import tomli as tomllib  # type: ignore

ENV_PREFIX = "RESPCACHE_"


class ConfigLoader:
    """
    Handles configuration loading from multiple sources with priority resolution.

    Priority (highest → lowest):
    1. Command-line arguments (not handled here)
    2. Environment variables (RESPCACHE_<SECTION>_<KEY>)
    3. Project config (.respcache/config.toml)
    4. Global config (~/.config/respcache/config.toml)
    5. Built-in defaults
    """

    def __init__(
        self,
        global_dir: Optional[Path] = None,
        project_dir: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
        create_defaults: bool = True,
    ) -> None:
        self.global_dir = global_dir or self.get_global_config_dir()
        self.project_dir = project_dir if project_dir is not None else self.get_project_config_dir()
        self.environ = os.environ if environ is None else environ
        self.create_defaults = create_defaults

        self.config: Dict[str, Any] = {}
        self._load_all()

    # ------------------------------------------------------------------ #
    # Public getters
    # ------------------------------------------------------------------ #
    def get(self, key: str, default: Any = None) -> Any:
        """Get config value by dot-separated key."""
        keys = key.split(".")
        value: Any = self.config
        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default
        return value if value is not None else default

    # ------------------------------------------------------------------ #
    # Load/merge helpers
    # ------------------------------------------------------------------ #
    def _load_all(self) -> None:
        """Load all configuration files with proper priority."""
        self.config = self._get_default_config()
        self._load_global_config()
        if self.project_dir:
            self._load_project_config()
        self._apply_env_overrides()

    def _load_global_config(self) -> None:
        config_file = self.global_dir / "config.toml"
        if config_file.exists():
            with open(config_file, "rb") as f:
                self._deep_merge(self.config, tomllib.load(f))
        elif self.create_defaults:
            self._create_default_config()

    def _load_project_config(self) -> None:
        config_file = self.project_dir / "config.toml"
        if config_file.exists():
            with open(config_file, "rb") as f:
                self._deep_merge(self.config, tomllib.load(f))

    def _apply_env_overrides(self) -> None:
        """Apply RESPCACHE_<SECTION>_<KEY> overrides, e.g. RESPCACHE_STORE_MAX_BYTES -> store.max_bytes."""
        for name, value in self.environ.items():
            if not name.startswith(ENV_PREFIX):
                continue
            section, _, key = name[len(ENV_PREFIX) :].lower().partition("_")
            if not section or not key:
                continue
            self.config.setdefault(section, {})[key] = value

    # ------------------------------------------------------------------ #
    # Static paths/helpers
    # ------------------------------------------------------------------ #
    @staticmethod
    def get_global_config_dir() -> Path:
        """Get platform-specific global config directory following XDG spec."""
        system = platform.system()
        if system == "Windows":
            base = Path(os.environ.get("APPDATA", "~\\AppData\\Roaming")).expanduser()
        elif system == "Darwin":
            xdg = os.environ.get("XDG_CONFIG_HOME")
            base = Path(xdg) if xdg else Path.home() / ".config"
        else:
            base = Path(os.environ.get("XDG_CONFIG_HOME", "~/.config")).expanduser()
        return base / "respcache"

    @staticmethod
    def get_project_config_dir() -> Path | None:
        """Find .respcache directory in current or parent directories."""
        current = Path.cwd()
        for parent in [current] + list(current.parents):
            config_dir = parent / ".respcache"
            if config_dir.is_dir():
                return config_dir
        return None

    def _create_default_config(self) -> None:
        self.global_dir.mkdir(parents=True, exist_ok=True)
        config_file = self.global_dir / "config.toml"
        with open(config_file, "w", encoding="utf-8") as f:
            f.write(self._get_default_config_toml())

    # ------------------------------------------------------------------ #
    # Default content
    # ------------------------------------------------------------------ #
    def _get_default_config(self) -> Dict[str, Any]:
        return {
            "general": {
                "log_level": "warning",
                "log_format": "console",
            },
            "cache": {
                "default_ttl": 300,
                "ttl_rules": {},
            },
            "memory": {
                "max_entries": 512,
            },
            "store": {
                "backend": "file",
                "path": str(self.global_dir / "store"),
                "max_entries": 1000,
                "max_bytes": 50 * 1024 * 1024,
            },
            "http": {
                "base_url": "",
                "timeout": 10.0,
            },
            "refresh": {
                "interval": 60,
                "keys": [],
            },
        }

    def _get_default_config_toml(self) -> str:
        """Default config TOML text for first-run creation."""
        default = self._get_default_config()
        return "\n".join(
            [
                "[general]",
                f'log_level = "{default["general"]["log_level"]}"',
                f'log_format = "{default["general"]["log_format"]}"',
                "",
                "[cache]",
                f"default_ttl = {default['cache']['default_ttl']}",
                "",
                "# Per-prefix TTLs in seconds; the longest matching prefix wins.",
                "[cache.ttl_rules]",
                '# "/items" = 60',
                "",
                "[memory]",
                f"max_entries = {default['memory']['max_entries']}",
                "",
                "[store]",
                f'backend = "{default["store"]["backend"]}"  # file | sqlite | memory',
                f'path = "{Path(default["store"]["path"]).as_posix()}"',
                f"max_entries = {default['store']['max_entries']}",
                f"max_bytes = {default['store']['max_bytes']}",
                "",
                "[http]",
                'base_url = ""',
                f"timeout = {default['http']['timeout']}",
                "",
                "[refresh]",
                f"interval = {default['refresh']['interval']}",
                "keys = []",
                "",
            ]
        )

    # ------------------------------------------------------------------ #
    # Utility helpers
    # ------------------------------------------------------------------ #
    def _deep_merge(self, base: dict, override: dict) -> None:
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value


def _optional_int(value: Any) -> Optional[int]:
    if value in (None, "", 0, "0"):
        return None
    return int(value)


def _as_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return [str(item) for item in value or []]


@dataclass
class CacheSettings:
    """Typed view over the merged configuration."""

    default_ttl: float = 300.0
    ttl_rules: Dict[str, float] = field(default_factory=dict)
    memory_max_entries: int = 512
    store_backend: str = "file"
    store_path: Optional[Path] = None
    store_max_entries: Optional[int] = 1000
    store_max_bytes: Optional[int] = 50 * 1024 * 1024
    base_url: str = ""
    http_timeout: float = 10.0
    refresh_interval: float = 60.0
    refresh_keys: List[str] = field(default_factory=list)
    log_level: str = "warning"
    log_format: str = "console"

    @classmethod
    def from_config(cls, loader: ConfigLoader) -> "CacheSettings":
        store_path = loader.get("store.path")
        return cls(
            default_ttl=float(loader.get("cache.default_ttl", 300)),
            ttl_rules={str(k): float(v) for k, v in (loader.get("cache.ttl_rules", {}) or {}).items()},
            memory_max_entries=int(loader.get("memory.max_entries", 512)),
            store_backend=str(loader.get("store.backend", "file")),
            store_path=Path(store_path).expanduser() if store_path else None,
            store_max_entries=_optional_int(loader.get("store.max_entries")),
            store_max_bytes=_optional_int(loader.get("store.max_bytes")),
            base_url=str(loader.get("http.base_url", "")),
            http_timeout=float(loader.get("http.timeout", 10.0)),
            refresh_interval=float(loader.get("refresh.interval", 60)),
            refresh_keys=_as_list(loader.get("refresh.keys", [])),
            log_level=str(loader.get("general.log_level", "warning")),
            log_format=str(loader.get("general.log_format", "console")),
        )


__all__ = ["ConfigLoader", "CacheSettings"]

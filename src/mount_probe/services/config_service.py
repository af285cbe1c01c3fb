from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable

from mount_probe.collectors.mount_table import ALLOWED_FS_TYPES
from mount_probe.collectors.providers import MOUNTS_PROVIDERS, USAGE_PROVIDERS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfigPaths:
    path: Path


class ConfigService:
    """JSON settings file under the user's XDG config directory."""

    def __init__(self, paths: ConfigPaths | None = None) -> None:
        self.paths = paths or ConfigPaths(path=self.default_path())

    @staticmethod
    def default_path() -> Path:
        base = Path(os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config")
        return base / "mount_probe" / "config.json"

    def exists(self) -> bool:
        return self.paths.path.exists()

    def load(self) -> dict[str, Any]:
        p = self.paths.path
        if not p.exists():
            return {}
        try:
            obj = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("Failed to read config %s: %s", p, e)
            return {}
        if not isinstance(obj, dict):
            logger.error("Ignoring config %s: top level is not an object", p)
            return {}
        return obj

    def save(self, cfg: dict[str, Any]) -> None:
        p = self.paths.path
        p.parent.mkdir(parents=True, exist_ok=True)
        tmp = p.with_suffix(p.suffix + ".tmp")
        tmp.write_text(json.dumps(cfg, ensure_ascii=False, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(p)

    def ensure_exists(self, defaults: dict[str, Any]) -> bool:
        """Write ``defaults`` when there is no config file yet. Returns True if written."""
        if self.exists():
            return False
        try:
            self.save(defaults)
        except OSError as e:
            logger.warning("Could not write default config %s: %s", self.paths.path, e)
            return False
        logger.info("Wrote default config to %s", self.paths.path)
        return True


def _as_bool(v: Any) -> bool:
    if not isinstance(v, bool):
        raise TypeError(f"expected true/false, got {v!r}")
    return v


def _as_fs_types(v: Any) -> frozenset[str]:
    if not isinstance(v, (list, tuple)):
        raise TypeError(f"expected a list of filesystem types, got {v!r}")
    return frozenset(str(x) for x in v)


def _one_of(names: frozenset[str]) -> Callable[[Any], str]:
    def conv(v: Any) -> str:
        if v not in names:
            raise ValueError(f"expected one of {sorted(names)}, got {v!r}")
        return str(v)

    return conv


@dataclass(frozen=True)
class ProbeSettings:
    warning_threshold: int = 90
    allowed_fs_types: frozenset[str] = field(default=ALLOWED_FS_TYPES)
    color_normal: str = "#2e7d32"
    color_warning: str = "#c62828"
    component_aware_match: bool = False
    mounts_provider: str = "psutil"
    usage_provider: str = "psutil"
    command_timeout_s: float = 5.0
    max_workers: int = 2

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ProbeSettings:
        d = cls()

        def pick(key: str, conv: Any, default: Any) -> Any:
            if key not in raw:
                return default
            try:
                return conv(raw[key])
            except (TypeError, ValueError):
                logger.warning("Ignoring invalid config value %s=%r", key, raw[key])
                return default

        threshold = min(100, max(0, pick("warning_threshold", int, d.warning_threshold)))
        allowed = pick("allowed_fs_types", _as_fs_types, d.allowed_fs_types)
        return cls(
            warning_threshold=threshold,
            allowed_fs_types=allowed,
            color_normal=pick("color_normal", str, d.color_normal),
            color_warning=pick("color_warning", str, d.color_warning),
            component_aware_match=pick("component_aware_match", _as_bool, d.component_aware_match),
            mounts_provider=pick("mounts_provider", _one_of(MOUNTS_PROVIDERS), d.mounts_provider),
            usage_provider=pick("usage_provider", _one_of(USAGE_PROVIDERS), d.usage_provider),
            command_timeout_s=pick("command_timeout_s", float, d.command_timeout_s),
            max_workers=max(1, pick("max_workers", int, d.max_workers)),
        )

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["allowed_fs_types"] = sorted(self.allowed_fs_types)
        return out


_settings: ProbeSettings | None = None
_settings_lock = threading.Lock()


def init_settings(settings: ProbeSettings | None = None, config: ConfigService | None = None) -> ProbeSettings:
    """Initialize the process-wide settings once.

    The first call wins; later calls return the settings already in place, so
    edits to the config file are only seen by a new process. When settings are
    read from the config file and none exists yet, the defaults are written out.
    """
    global _settings
    with _settings_lock:
        if _settings is None:
            if settings is None:
                config = config or ConfigService()
                config.ensure_exists(ProbeSettings().to_dict())
                settings = ProbeSettings.from_dict(config.load())
            _settings = settings
            logger.debug("Settings initialized: %s", _settings)
        return _settings


def get_settings() -> ProbeSettings:
    if _settings is not None:
        return _settings
    return init_settings()


def reset_settings() -> None:
    global _settings
    with _settings_lock:
        _settings = None

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
import os
from pathlib import Path
from typing import Any, Callable

from lyrics_sync.sync.engine import SyncSettings

logger = logging.getLogger(__name__)

ENV_PREFIX = "LYRICS_SYNC_"


def _config_dir() -> Path:
    xdg = os.getenv("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "lyrics-sync"
    return Path.home() / ".config" / "lyrics-sync"


def _config_file() -> Path:
    return _config_dir() / "config.json"


@dataclass(frozen=True)
class AppConfig:
    config_dir: Path

    # Sync
    scroll_lookahead_ms: int = 300
    highlight_lookahead_ms: int = 190
    max_active_lines: int = 3
    seek_threshold_ms: int = 1000
    user_scroll_idle_ms: int = 4000

    # Parsing / post-processing
    lrc_last_line_ms: int = 5000
    retime_overlap_threshold_ms: int = 100
    retime_max_extension_ms: int = 1300
    gap_lines: bool = True
    gap_min_ms: int = 7000

    # Rendering
    refresh_hz: float = 30.0
    context_lines: int = 1  # lines above/below current
    use_alt_screen: bool = True

    def sync_settings(self) -> SyncSettings:
        return SyncSettings(
            scroll_lookahead_ms=self.scroll_lookahead_ms,
            highlight_lookahead_ms=self.highlight_lookahead_ms,
            max_active_lines=self.max_active_lines,
            seek_threshold_ms=self.seek_threshold_ms,
            user_scroll_idle_ms=self.user_scroll_idle_ms,
        )


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    s = str(value).strip().lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _non_negative(cast: Callable[[Any], Any]) -> Callable[[Any], Any]:
    def convert(value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError(f"not a number: {value!r}")
        v = cast(value)
        if v < 0:
            raise ValueError(f"must be >= 0: {value!r}")
        return v

    return convert


def _positive(cast: Callable[[Any], Any]) -> Callable[[Any], Any]:
    check = _non_negative(cast)

    def convert(value: Any) -> Any:
        v = check(value)
        if v == 0:
            raise ValueError(f"must be > 0: {value!r}")
        return v

    return convert


_FIELDS: dict[str, Callable[[Any], Any]] = {
    "scroll_lookahead_ms": _non_negative(int),
    "highlight_lookahead_ms": _non_negative(int),
    "max_active_lines": _positive(int),
    "seek_threshold_ms": _non_negative(int),
    "user_scroll_idle_ms": _non_negative(int),
    "lrc_last_line_ms": _non_negative(int),
    "retime_overlap_threshold_ms": _non_negative(int),
    "retime_max_extension_ms": _non_negative(int),
    "gap_lines": _to_bool,
    "gap_min_ms": _non_negative(int),
    "refresh_hz": _positive(float),
    "context_lines": _non_negative(int),
    "use_alt_screen": _to_bool,
}


def _load_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable config file %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config file %s: top level is not an object", path)
        return {}
    return data


def load_config() -> AppConfig:
    # Priority: config.json → LYRICS_SYNC_* env → defaults
    config_dir = _config_dir()
    cfg_path = _config_file()
    file_data = _load_file(cfg_path)

    values: dict[str, Any] = {}
    for name, convert in _FIELDS.items():
        env_name = ENV_PREFIX + name.upper()
        for origin, raw in ((str(cfg_path), file_data.get(name)), (env_name, os.getenv(env_name))):
            if raw is None or raw == "":
                continue
            try:
                values[name] = convert(raw)
                break
            except (TypeError, ValueError) as e:
                logger.warning("Ignoring invalid %s in %s: %s", name, origin, e)
    return AppConfig(config_dir=config_dir, **values)

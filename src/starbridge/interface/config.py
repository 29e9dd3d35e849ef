"""
User configuration persistence.

Stores settings like the content directory and log level in a JSON file
inside the data directory.
"""

import json
import logging
from pathlib import Path
from typing import Any, TypedDict

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = "starbridge_data"


class Config(TypedDict, total=False):
    """User configuration."""
    data_dir: str  # saves, progress and imported content
    content_dir: str | None  # extra episodes/ and campaigns/ to load
    max_propagation_depth: int
    log_level: str  # DEBUG, INFO, WARNING...
    rng_seed: int | None  # fixed seed for reproducible runs
    show_module_panel: bool  # module summaries after each choice


DEFAULT_CONFIG: Config = {
    "data_dir": DEFAULT_DATA_DIR,
    "content_dir": None,
    "max_propagation_depth": 8,
    "log_level": "WARNING",
    "rng_seed": None,
    "show_module_panel": True,
}


def get_config_path(data_dir: Path | str = DEFAULT_DATA_DIR) -> Path:
    """Get path to config file."""
    return Path(data_dir) / ".starbridge_config.json"


def load_config(data_dir: Path | str = DEFAULT_DATA_DIR) -> Config:
    """Load config from file, or return defaults if not found."""
    path = get_config_path(data_dir)

    if not path.exists():
        return DEFAULT_CONFIG.copy()

    try:
        with open(path, "r", encoding="utf-8") as f:
            saved = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Ignoring unreadable config %s: %s", path, e)
        return DEFAULT_CONFIG.copy()

    if not isinstance(saved, dict):
        logger.warning("Ignoring config %s: not a JSON object", path)
        return DEFAULT_CONFIG.copy()

    # Merge with defaults to handle missing keys
    config = DEFAULT_CONFIG.copy()
    config.update({k: v for k, v in saved.items() if k in DEFAULT_CONFIG})
    return config


def save_config(config: Config, data_dir: Path | str = DEFAULT_DATA_DIR) -> bool:
    """Save config to file. Returns True on success."""
    path = get_config_path(data_dir)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        return True
    except OSError:
        logger.error("Failed to save config to %s", path, exc_info=True)
        return False


def _set(key: str, value: Any, data_dir: Path | str) -> bool:
    config = load_config(data_dir)
    config[key] = value  # type: ignore[literal-required]
    return save_config(config, data_dir)


def set_content_dir(content_dir: str | None, data_dir: Path | str = DEFAULT_DATA_DIR) -> bool:
    """Save the extra content directory."""
    return _set("content_dir", content_dir, data_dir)


def set_log_level(level: str, data_dir: Path | str = DEFAULT_DATA_DIR) -> bool:
    """Save log level preference."""
    level = level.upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"Unknown log level: {level}")
    return _set("log_level", level, data_dir)


def set_rng_seed(seed: int | None, data_dir: Path | str = DEFAULT_DATA_DIR) -> bool:
    return _set("rng_seed", seed, data_dir)


def set_max_propagation_depth(depth: int, data_dir: Path | str = DEFAULT_DATA_DIR) -> bool:
    if depth < 1:
        raise ValueError("Propagation depth must be at least 1")
    return _set("max_propagation_depth", depth, data_dir)


def set_show_module_panel(show: bool, data_dir: Path | str = DEFAULT_DATA_DIR) -> bool:
    """Save module panel visibility preference."""
    return _set("show_module_panel", show, data_dir)


# key -> (parser for the string form, setter)
SETTERS = {
    "content_dir": (lambda s: s or None, set_content_dir),
    "log_level": (str, set_log_level),
    "rng_seed": (lambda s: int(s) if s else None, set_rng_seed),
    "max_propagation_depth": (int, set_max_propagation_depth),
    "show_module_panel": (lambda s: s.lower() in ("1", "true", "yes", "on"), set_show_module_panel),
}


def set_from_string(key: str, raw: str, data_dir: Path | str = DEFAULT_DATA_DIR) -> bool:
    """Apply ``key=value`` as typed on the command line. Raises ValueError on bad input."""
    if key not in SETTERS:
        raise ValueError(f"Unknown setting: {key} (choose from {', '.join(sorted(SETTERS))})")
    parse, setter = SETTERS[key]
    return setter(parse(raw), data_dir)

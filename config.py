from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from isa import MEM_CELLS, PC_BASE

"""Config loader and validator.

Provides `load_config` which accepts either a path to a YAML file,
a dictionary or None and returns a normalized configuration dict
using DEFAULTS for missing values.
"""


DEFAULTS: dict[str, Any] = {
    "pc_base": PC_BASE,
    "mem_cells": MEM_CELLS,
    "tick_limit": None,
    "lenient_log": False,
}


class ConfigError(ValueError):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


def _to_int(v: Any) -> int:
    # YAML users tend to write addresses as "0x3000" strings
    if isinstance(v, str):
        return int(v, 0)
    return int(v)


_TRUE_WORDS = ("true", "yes", "on", "1")
_FALSE_WORDS = ("false", "no", "off", "0")


def _to_bool(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, int) and v in (0, 1):
        return bool(v)
    if isinstance(v, str):
        word = v.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    msg = f"expected a boolean, got {v!r}"
    raise ValueError(msg)


def _convert_types(cfg: dict[str, Any]) -> None:
    """Normalize types for configuration values in-place.

    Raises ConfigError on conversion failure.
    """
    try:
        cfg["pc_base"] = _to_int(cfg.get("pc_base", DEFAULTS["pc_base"]))
        cfg["mem_cells"] = _to_int(cfg.get("mem_cells", DEFAULTS["mem_cells"]))

        # tick_limit: None means run until halted
        tl = cfg.get("tick_limit")
        cfg["tick_limit"] = None if tl is None else _to_int(tl)

        cfg["lenient_log"] = _to_bool(cfg.get("lenient_log", DEFAULTS["lenient_log"]))
    except (TypeError, ValueError) as e:
        msg = f"Bad types in config: {e}"
        raise ConfigError(msg) from e


def _validate_cfg(cfg: dict[str, Any]) -> None:
    """Perform semantic validation on normalized config dict.

    Raises ConfigError on invalid values.
    """
    if not (0 < cfg["mem_cells"] <= MEM_CELLS):
        msg = f"mem_cells must be in range 1..{MEM_CELLS}"
        raise ConfigError(msg)

    if not (0 <= cfg["pc_base"] < cfg["mem_cells"]):
        max_idx = cfg["mem_cells"] - 1
        msg = f"pc_base ({cfg['pc_base']:#06x}) out of memory range (0..{max_idx:#06x})"
        raise ConfigError(msg)

    if cfg["tick_limit"] is not None and cfg["tick_limit"] < 0:
        msg = "tick_limit must be non-negative or null"
        raise ConfigError(msg)


def load_config(path_or_dict: str | dict[str, Any] | None = None) -> dict[str, Any]:
    """Load and normalize configuration.

    Accepts:
      - None -> returns DEFAULTS copy
      - dict -> overlay DEFAULTS with provided dict
      - str (path) -> load YAML and overlay DEFAULTS

    Returns a normalized dict or raises ConfigError.
    """
    if path_or_dict is None:
        cfg: dict[str, Any] = dict(DEFAULTS)
    elif isinstance(path_or_dict, dict):
        cfg = dict(DEFAULTS)
        cfg.update(path_or_dict)
    elif isinstance(path_or_dict, str):
        p = Path(path_or_dict)
        if not p.exists():
            msg = f"Config file not found: {path_or_dict}"
            raise ConfigError(msg)
        try:
            with p.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            msg = f"Failed to load config file {path_or_dict}: {e}"
            raise ConfigError(msg) from e
        if not isinstance(data, dict):
            msg = f"Config file {path_or_dict} does not contain a mapping"
            raise ConfigError(msg)
        cfg = dict(DEFAULTS)
        cfg.update(data)
    else:
        msg = "Unsupported config input"
        raise ConfigError(msg)

    unknown = sorted(set(cfg) - set(DEFAULTS))
    if unknown:
        msg = f"Unknown config keys: {', '.join(unknown)}"
        raise ConfigError(msg)

    _convert_types(cfg)
    _validate_cfg(cfg)

    return cfg

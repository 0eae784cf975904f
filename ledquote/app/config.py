from __future__ import annotations

import os
import json
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

try:
    import tomllib  # py3.11+
except Exception:  # pragma: no cover
    tomllib = None  # type: ignore

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_CATALOG_PATH = PACKAGE_ROOT / "data" / "catalog.json"


class AttrDict(dict):
    """Dict with attribute access (x.y)."""
    def __getattr__(self, name: str):
        try:
            return self[name]
        except KeyError as e:
            raise AttributeError(name) from e
    def __setattr__(self, name: str, value: Any) -> None:
        self[name] = value
    def __delattr__(self, name: str) -> None:
        del self[name]


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes", "on"}


# ------------------------------------------------------------------
# DEFAULT_CONFIG carries both shapes:
# - Flat, UPPERCASE keys (read by Flask and database.py)
# - Nested sections (read by the engine settings helper)
# ------------------------------------------------------------------
DEFAULT_CONFIG: AttrDict = AttrDict({
    # Flat ---------------------------------
    "DATABASE_URL": os.getenv("DATABASE_URL", "sqlite:///./data/quotations.db"),
    "DATABASE_ECHO": _env_flag("DATABASE_ECHO", "false"),
    "CATALOG_PATH": os.getenv("LEDQUOTE_CATALOG_PATH", str(DEFAULT_CATALOG_PATH)),
    "QUOTATION_ID_PREFIX": os.getenv("QUOTATION_ID_PREFIX", "ORION"),
    "QUOTATION_ID_MAX_ATTEMPTS": int(os.getenv("QUOTATION_ID_MAX_ATTEMPTS", "3")),
    "GST_RATE": os.getenv("GST_RATE", "0.18"),
    "SERVER_HOST": os.getenv("SERVER_HOST", "0.0.0.0"),
    "SERVER_PORT": int(os.getenv("SERVER_PORT", "5234")),
    "DEBUG": _env_flag("DEBUG", "false"),
    "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO"),
    # Nested -------------------------------
    "server": {
        "host": os.getenv("SERVER_HOST", "0.0.0.0"),
        "port": int(os.getenv("SERVER_PORT", "5234")),
        "debug": _env_flag("DEBUG", "false"),
    },
    "database": {
        "url": os.getenv("DATABASE_URL", "sqlite:///./data/quotations.db"),
        "echo": _env_flag("DATABASE_ECHO", "false"),
    },
    "catalog": {
        "path": os.getenv("LEDQUOTE_CATALOG_PATH", str(DEFAULT_CATALOG_PATH)),
    },
    "quotation_ids": {
        "prefix": os.getenv("QUOTATION_ID_PREFIX", "ORION"),
        "max_attempts": int(os.getenv("QUOTATION_ID_MAX_ATTEMPTS", "3")),
    },
    "pricing": {
        "gst_rate": os.getenv("GST_RATE", "0.18"),
    },
})

# flat key -> (section, nested key)
_COMPAT_KEYS = {
    "DATABASE_URL": ("database", "url"),
    "DATABASE_ECHO": ("database", "echo"),
    "CATALOG_PATH": ("catalog", "path"),
    "QUOTATION_ID_PREFIX": ("quotation_ids", "prefix"),
    "QUOTATION_ID_MAX_ATTEMPTS": ("quotation_ids", "max_attempts"),
    "GST_RATE": ("pricing", "gst_rate"),
    "SERVER_HOST": ("server", "host"),
    "SERVER_PORT": ("server", "port"),
    "DEBUG": ("server", "debug"),
}


def _read_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    ext = path.suffix.lower()
    if ext == ".json":
        return json.loads(path.read_text(encoding="utf-8"))
    if ext in {".yml", ".yaml"}:
        return yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if ext == ".toml" and tomllib is not None:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    # Fallback: try JSON
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except Exception as e:
        raise RuntimeError(f"Unsupported config format for {path}. {e}")


def _deep_merge(dst: Dict[str, Any], src: Dict[str, Any]) -> Dict[str, Any]:
    for k, v in src.items():
        if isinstance(v, dict) and isinstance(dst.get(k), dict):
            _deep_merge(dst[k], v)
        else:
            dst[k] = v
    return dst


def _ensure_compat_keys(cfg: Dict[str, Any], explicit_flat: set[str]) -> None:
    """Keep flat and nested keys in agreement.

    A flat key supplied by the config file wins over the nested default;
    otherwise the nested value (default or file supplied) is mirrored flat.
    """
    for flat, (section, key) in _COMPAT_KEYS.items():
        nested = cfg.setdefault(section, {})
        if flat in explicit_flat:
            nested[key] = cfg[flat]
        elif key in nested:
            cfg[flat] = nested[key]
        else:
            nested[key] = cfg.get(flat)


def load_config(config_path: Optional[str] = None) -> AttrDict:
    """Start from DEFAULT_CONFIG, deep-merge an optional config file on top
    and return an AttrDict with both flat and nested keys present."""
    base = {k: (v.copy() if isinstance(v, dict) else v) for k, v in DEFAULT_CONFIG.items()}
    explicit_flat: set[str] = set()
    if config_path:
        p = Path(config_path)
        if p.exists():
            overrides = _read_config_file(p) or {}
            explicit_flat = {k for k in overrides if k in _COMPAT_KEYS}
            _deep_merge(base, overrides)
    _ensure_compat_keys(base, explicit_flat)
    return AttrDict(base)


@dataclass(frozen=True)
class EngineSettings:
    catalog_path: str = str(DEFAULT_CATALOG_PATH)
    quotation_id_prefix: str = "ORION"
    quotation_id_max_attempts: int = 3
    gst_rate: Decimal = Decimal("0.18")


def engine_settings_from(cfg: Dict[str, Any]) -> EngineSettings:
    catalog = cfg.get("catalog", {})
    ids = cfg.get("quotation_ids", {})
    pricing = cfg.get("pricing", {})
    return EngineSettings(
        catalog_path=str(catalog.get("path") or DEFAULT_CATALOG_PATH),
        quotation_id_prefix=str(ids.get("prefix") or "ORION").upper(),
        quotation_id_max_attempts=max(int(ids.get("max_attempts") or 1), 1),
        gst_rate=Decimal(str(pricing.get("gst_rate", "0.18"))),
    )


def get_engine_settings(config_path: Optional[str] = None) -> EngineSettings:
    return engine_settings_from(load_config(config_path))

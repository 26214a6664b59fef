import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from .errors import ValidationError

ENV_PREFIX = "WEB_EXTRACTOR_"


@dataclass
class Settings:
    concurrency: int = 4
    renderer_pool_size: int = 2
    headless: bool = True
    user_agent: str = "WebExtractor/1.0 (+crawler)"
    list_delimiter: str = ";"
    rate_limit_max: int = 100
    rate_limit_window_seconds: int = 15 * 60
    export_dir: str = "exports"

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> "Settings":
        d = d or {}
        if not isinstance(d, dict):
            raise ValidationError("'settings' must be a mapping")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(d) - known)
        if unknown:
            raise ValidationError(f"unknown settings: {', '.join(unknown)}")
        return cls(**d)


def _coerce(raw: str, default: Any) -> Any:
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    return raw


def apply_env(settings: Settings, environ: Optional[Dict[str, str]] = None) -> Settings:
    """WEB_EXTRACTOR_<FIELD> overrides the matching field (e.g. WEB_EXTRACTOR_CONCURRENCY=8)."""
    environ = os.environ if environ is None else environ
    for f in fields(settings):
        raw = environ.get(ENV_PREFIX + f.name.upper())
        if raw is None:
            continue
        try:
            setattr(settings, f.name, _coerce(raw, getattr(settings, f.name)))
        except ValueError as e:
            raise ValidationError(f"{ENV_PREFIX + f.name.upper()}: {e}") from e
    return settings


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    if path is None:
        return {}
    with open(path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f)
    if cfg is None:
        raise ValidationError(f"empty or invalid YAML: {path}")
    if not isinstance(cfg, dict):
        raise ValidationError(f"config root must be a mapping: {path}")
    return cfg


def load_settings(path: Optional[str] = None, cfg: Optional[Dict[str, Any]] = None) -> Settings:
    load_dotenv()
    cfg = cfg if cfg is not None else load_config(path)
    return apply_env(Settings.from_dict(cfg.get("settings")))

# src/arroz_trace/runtime/trace_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

from arroz_trace.runtime.query_engine import QUERY_MODES

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


@dataclass(frozen=True)
class TraceConfig:
    mode: str  # "dev" | "test" | "prod"

    backend: str  # "memory" | "sqlite"
    db_path: str

    query_mode: str  # "auto" | "selector" | "range"

    # Reject Register/Edit payloads whose docType names another entity.
    strict_doc_type: bool
    # Let Search filters replace the entity's docType (flat overlay).
    search_doc_type_override: bool

    api_host: str
    api_port: int

    log_level: str


_ALLOWED_MODES = {"dev", "test", "prod"}
_ALLOWED_BACKENDS = {"memory", "sqlite"}


def validate_trace_config(cfg: TraceConfig) -> None:
    """Fail-fast validation for operator config."""

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if cfg.backend not in _ALLOWED_BACKENDS:
        raise ValueError(f"backend must be one of {_ALLOWED_BACKENDS}; got: {cfg.backend!r}")

    if cfg.backend == "sqlite" and (not isinstance(cfg.db_path, str) or not cfg.db_path.strip()):
        raise ValueError("db_path must be a non-empty string for the sqlite backend")

    if cfg.query_mode not in QUERY_MODES:
        raise ValueError(f"query_mode must be one of {QUERY_MODES}; got: {cfg.query_mode!r}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if mode == "prod" and cfg.backend == "memory":
        # The memory backend loses every record on restart.
        raise ValueError("backend 'memory' is not allowed in prod mode")


def default_trace_config() -> TraceConfig:
    return TraceConfig(
        mode="prod",
        backend="sqlite",
        db_path="./data/arroz_trace.db",
        query_mode="auto",
        strict_doc_type=True,
        search_doc_type_override=False,
        api_host="127.0.0.1",
        api_port=8080,
        log_level="INFO",
    )


def _load_raw(path: Path) -> Json:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml"}:
        import yaml

        raw = yaml.safe_load(text)
    else:
        raw = json.loads(text)
    if not isinstance(raw, dict):
        raise ValueError("trace config must be a mapping")
    return raw


def _from_mapping(raw: Json, d: TraceConfig) -> TraceConfig:
    return TraceConfig(
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        backend=_as_str(raw.get("backend"), d.backend).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        query_mode=_as_str(raw.get("query_mode"), d.query_mode).strip().lower(),
        strict_doc_type=_as_bool(raw.get("strict_doc_type"), d.strict_doc_type),
        search_doc_type_override=_as_bool(raw.get("search_doc_type_override"), d.search_doc_type_override),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level).strip().upper(),
    )


def read_trace_config_file(path: str) -> TraceConfig:
    cfg = _from_mapping(_load_raw(Path(path)), default_trace_config())
    validate_trace_config(cfg)
    return cfg


_ENV_KEYS = {
    "mode": "ARROZ_MODE",
    "backend": "ARROZ_BACKEND",
    "db_path": "ARROZ_DB_PATH",
    "query_mode": "ARROZ_QUERY_MODE",
    "strict_doc_type": "ARROZ_STRICT_DOC_TYPE",
    "search_doc_type_override": "ARROZ_SEARCH_DOC_TYPE_OVERRIDE",
    "api_host": "ARROZ_API_HOST",
    "api_port": "ARROZ_API_PORT",
    "log_level": "ARROZ_LOG_LEVEL",
}


def trace_config_from_env(base: Optional[TraceConfig] = None) -> TraceConfig:
    raw = {k: os.environ.get(env) for k, env in _ENV_KEYS.items()}
    return _from_mapping(raw, base or default_trace_config())


def load_trace_config(*, config_path: Optional[str] = None) -> TraceConfig:
    """File (argument or ARROZ_CONFIG_PATH) wins; else defaults + ARROZ_* env."""
    p = config_path or os.environ.get("ARROZ_CONFIG_PATH")
    if p:
        return read_trace_config_file(p)

    cfg = trace_config_from_env()
    validate_trace_config(cfg)
    return cfg


def with_overrides(cfg: TraceConfig, **changes: Any) -> TraceConfig:
    out = replace(cfg, **changes)
    validate_trace_config(out)
    return out

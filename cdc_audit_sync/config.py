"""Run configuration.

:class:`SyncConfig` is an immutable value built once (from CLI flags, a
config file, or both) and handed to every component; nothing reads
configuration from module globals.

Config files may be YAML or JSON::

    connection:
      host: db.internal
      port: 3306
      user: exporter
      password: ${MYSQL_PASSWORD}
      database: shop
    output_dir: /var/lib/cdc_audit_sync
    tables: [orders_audit, customers_audit]
    exclude: false
    suffix: _audit
    wipe: true
    trim:
      batch_size: 100
      pause_seconds: 1
    fail_fast: false
    query_timeout: 300

``${VAR}`` references in string values are expanded from the environment.
Connection values left unset fall back to ``MYSQL_*`` environment variables
(see :mod:`cdc_audit_sync.connection`).
"""

from __future__ import annotations

import dataclasses
import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ._constants import (
    DEFAULT_FETCH_SIZE,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_SUFFIX,
    DEFAULT_TRIM_BATCH_SIZE,
    DEFAULT_TRIM_PAUSE_SECONDS,
    DISABLED_OUTPUT_DIR,
)
from .tables import parse_table_list


def expand_env(value: str) -> str:
    """Expand ``${VAR}`` references in *value* with environment variables."""

    def _repl(m):
        name = m.group(1)
        if name not in os.environ:
            raise KeyError(
                f"Environment variable {name!r} is not set "
                f"(referenced in config as ${{{name}}})"
            )
        return os.environ[name]

    return re.sub(r"\$\{(\w+)}", _repl, str(value))


def _expand(value: Any) -> Any:
    if isinstance(value, str):
        return expand_env(value)
    if isinstance(value, list):
        return [_expand(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand(v) for k, v in value.items()}
    return value


def load_config_file(path: Union[str, Path]) -> dict:
    """Load a YAML or JSON config file, chosen by extension."""
    p = Path(path)
    text = p.read_text()
    if p.suffix in (".yaml", ".yml"):
        try:
            import yaml
        except ImportError:
            raise ImportError(
                "PyYAML is required for YAML config files. "
                "Install it with: pip install cdc-audit-sync[yaml]"
            )
        data = yaml.safe_load(text)
    else:
        data = json.loads(text)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return data


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass(frozen=True)
class SyncConfig:
    """Everything one run needs.

    ``None`` connection fields are resolved from the environment when the
    connection is opened.  *tables* is an allow-list, or a deny-list when
    *exclude* is set; ``None`` means every audit table.
    """

    database: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    user: Optional[str] = None
    password: Optional[str] = None
    driver: Optional[str] = None
    tables: Optional[frozenset] = None
    exclude: bool = False
    prefix: Optional[str] = None
    suffix: Optional[str] = DEFAULT_SUFFIX
    output_dir: str = DEFAULT_OUTPUT_DIR
    wipe: bool = False
    fetch_size: int = DEFAULT_FETCH_SIZE
    trim_batch_size: int = DEFAULT_TRIM_BATCH_SIZE
    trim_pause_seconds: float = DEFAULT_TRIM_PAUSE_SECONDS
    fail_fast: bool = False
    query_timeout: Optional[int] = None

    def __post_init__(self) -> None:
        if self.fetch_size < 1:
            raise ValueError(f"fetch_size must be >= 1, got {self.fetch_size}")
        if self.trim_batch_size < 1:
            raise ValueError(
                f"trim batch_size must be >= 1, got {self.trim_batch_size}"
            )
        if self.trim_pause_seconds < 0:
            raise ValueError(
                f"trim pause_seconds must be >= 0, got {self.trim_pause_seconds}"
            )

    @property
    def export_enabled(self) -> bool:
        """False when the output directory is empty or ``=NONE=``."""
        return bool(self.output_dir) and self.output_dir != DISABLED_OUTPUT_DIR

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "SyncConfig":
        """Build a config from a parsed config-file mapping."""
        config = _expand(config)
        conn_cfg = config.get("connection", {}) or {}
        trim_cfg = config.get("trim", {}) or {}
        kwargs: Dict[str, Any] = {
            "database": conn_cfg.get("database"),
            "host": conn_cfg.get("host"),
            "port": _optional_int(conn_cfg.get("port")),
            "user": conn_cfg.get("user"),
            "password": conn_cfg.get("password"),
            "driver": conn_cfg.get("driver"),
            "tables": parse_table_list(config.get("tables")),
            "exclude": _as_bool(config.get("exclude", False)),
            "prefix": config.get("prefix"),
            "suffix": config.get("suffix", DEFAULT_SUFFIX),
            "output_dir": config.get("output_dir", DEFAULT_OUTPUT_DIR),
            "wipe": _as_bool(config.get("wipe", False)),
            "fail_fast": _as_bool(config.get("fail_fast", False)),
            "query_timeout": _optional_int(config.get("query_timeout")),
        }
        if config.get("fetch_size") is not None:
            kwargs["fetch_size"] = int(config["fetch_size"])
        if trim_cfg.get("batch_size") is not None:
            kwargs["trim_batch_size"] = int(trim_cfg["batch_size"])
        if trim_cfg.get("pause_seconds") is not None:
            kwargs["trim_pause_seconds"] = float(trim_cfg["pause_seconds"])
        return cls(**kwargs)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "SyncConfig":
        """Load a YAML/JSON config file into a ``SyncConfig``."""
        return cls.from_dict(load_config_file(path))

    def with_overrides(self, **overrides: Any) -> "SyncConfig":
        """Return a copy with every non-``None`` override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if "tables" in changes:
            changes["tables"] = parse_table_list(changes["tables"])
        return dataclasses.replace(self, **changes)

    def __repr__(self) -> str:
        return (
            f"SyncConfig(database={self.database!r}, host={self.host!r}, "
            f"user={self.user!r}, output_dir={self.output_dir!r}, "
            f"prefix={self.prefix!r}, suffix={self.suffix!r}, wipe={self.wipe})"
        )

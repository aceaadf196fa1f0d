from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from cvtsudoers.contract_store import contracts
from cvtsudoers.core.errors import ValidationError
from cvtsudoers.engine.parser import DEFAULT_MAX_INCLUDE_DEPTH

CONFIG_ENV = "CVTSUDOERS_CONF"
DEFAULT_CONFIG_PATH = Path("/etc/cvtsudoers.yml")
DEFAULT_RUN_ID = "cvtsudoers"


@dataclass(frozen=True)
class DriverConfig:
    """
    Driver settings read before any policy file is touched.

    - trace_path: JSONL debug trace destination; None disables tracing.
    - run_id: correlates trace events of one invocation.
    - max_include_depth: nesting limit for #include/@include.
    """

    trace_path: Optional[Path] = None
    run_id: str = DEFAULT_RUN_ID
    max_include_depth: int = DEFAULT_MAX_INCLUDE_DEPTH
    source: Optional[Path] = None


def config_path_from_env(environ: Optional[Mapping[str, str]] = None) -> Path:
    env = os.environ if environ is None else environ
    raw = str(env.get(CONFIG_ENV, "")).strip()
    return Path(raw).expanduser() if raw else DEFAULT_CONFIG_PATH


def _read_yaml(p: Path) -> Dict[str, Any]:
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except OSError as e:
        raise ValidationError(code="config.unreadable", message=f"Unable to read config: {p}", data={"error": str(e)}) from e
    except yaml.YAMLError as e:
        raise ValidationError(code="config.invalid_yaml", message="Failed to parse YAML config", data={"error": repr(e)}) from e
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValidationError(code="config.invalid", message="Config must be a YAML mapping/object at top-level")
    return raw


def load_config(path: Optional[Path] = None, *, environ: Optional[Mapping[str, str]] = None) -> DriverConfig:
    """
    Load the driver config. A missing file at the default location is not an
    error (defaults apply); a file named by CVTSUDOERS_CONF or `path` must exist.
    """
    explicit = path is not None or bool(str((os.environ if environ is None else environ).get(CONFIG_ENV, "")).strip())
    p = path if path is not None else config_path_from_env(environ)
    if not p.exists():
        if explicit:
            raise ValidationError(code="config.not_found", message=f"Config not found: {p}")
        return DriverConfig()

    raw = _read_yaml(p)
    errors = contracts().validate("config.schema.json", raw)
    if errors:
        raise ValidationError(
            code="config.schema_invalid",
            message="Config does not match schema",
            data={"path": str(p), "errors": errors},
        )

    debug = raw.get("debug") or {}
    parser = raw.get("parser") or {}
    trace_raw = debug.get("trace_path")
    return DriverConfig(
        trace_path=Path(os.path.expandvars(trace_raw)).expanduser() if trace_raw else None,
        run_id=debug.get("run_id") or DEFAULT_RUN_ID,
        max_include_depth=int(parser.get("max_include_depth") or DEFAULT_MAX_INCLUDE_DEPTH),
        source=p,
    )

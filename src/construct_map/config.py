from __future__ import annotations

import argparse
import json
import os
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .graph.builder import MapOptions
from .graph.ports import PortAliasRule
from .normalize.schema import DEFAULT_APP_SCOPE, ResourceKind
from .util.errors import ConfigError

# --------
# Defaults
# --------
DEFAULT_EXCLUDED_OPERATIONS = ("invokeAsync",)
DEFAULT_PORT_ALIASES = {"function": "invoke"}
ALLOWED_CONFIG_KEYS = {
    "input",
    "outdir",
    "app_scope",
    "excluded_operations",
    "port_aliases",
    "json_logs",
    "log_level",
    "summary",
}
BOOL_CONFIG_KEYS = {"json_logs", "summary"}
PATH_CONFIG_KEYS = {"input", "outdir"}
STR_CONFIG_KEYS = {"app_scope", "log_level"}


@dataclass(frozen=True)
class MapConfig:
    input: Optional[Path] = None
    outdir: Path = Path("out")
    app_scope: str = DEFAULT_APP_SCOPE
    excluded_operations: Tuple[str, ...] = DEFAULT_EXCLUDED_OPERATIONS
    port_aliases: Tuple[Tuple[str, str], ...] = tuple(DEFAULT_PORT_ALIASES.items())
    json_logs: bool = False
    log_level: str = "INFO"
    summary: bool = True
    paths: Tuple[str, ...] = ()


def _parse_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("Top-level config must be an object")
    return data


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    return raw


def _env_bool(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip().lower()
    if not raw:
        return None
    return raw in {"1", "true", "yes", "on"}


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        if raw in {"1", "true", "yes", "on"}:
            return True
        if raw in {"0", "false", "no", "off"}:
            return False
    raise ConfigError(f"Config field '{key}' must be a boolean")


def _split_csv(value: Any, key: str) -> List[str]:
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return [v.strip() for v in value if v.strip()]
    raise ConfigError(f"Config field '{key}' must be a list of strings or comma-separated string")


def _parse_port_aliases(value: Any) -> Dict[str, str]:
    """
    Accepts {"function": "invoke"} or "function=invoke,queue=push".
    Kinds must name a known resource kind.
    """
    if isinstance(value, dict):
        items = list(value.items())
    else:
        items = []
        for entry in _split_csv(value, "port_aliases"):
            kind, sep, operation = entry.partition("=")
            if not sep:
                raise ConfigError(f"Port alias '{entry}' must look like kind=operation")
            items.append((kind.strip(), operation.strip()))
    out: Dict[str, str] = {}
    known = {k.value for k in ResourceKind if k is not ResourceKind.UNKNOWN}
    for kind, operation in items:
        if not isinstance(kind, str) or kind not in known:
            raise ConfigError(f"Port alias kind must be one of: {', '.join(sorted(known))}")
        if not isinstance(operation, str) or not operation:
            raise ConfigError(f"Port alias for '{kind}' must name an operation")
        out[kind] = operation
    return out


def _normalize_config_file(data: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(data.keys()) - ALLOWED_CONFIG_KEYS)
    if unknown:
        warnings.warn(f"Unknown config keys ignored: {', '.join(unknown)}")
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in ALLOWED_CONFIG_KEYS or value is None:
            continue
        if key == "excluded_operations":
            normalized[key] = _split_csv(value, key)
        elif key == "port_aliases":
            normalized[key] = _parse_port_aliases(value)
        elif key in BOOL_CONFIG_KEYS:
            normalized[key] = _coerce_bool(key, value)
        elif key in PATH_CONFIG_KEYS:
            if not isinstance(value, (str, Path)):
                raise ConfigError(f"Config field '{key}' must be a string path")
            normalized[key] = value
        elif key in STR_CONFIG_KEYS:
            if not isinstance(value, str):
                raise ConfigError(f"Config field '{key}' must be a string")
            normalized[key] = value
    return normalized


def _compact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Drop keys with None values so they don't override lower-precedence config.
    """
    return {k: v for k, v in data.items() if v is not None}


def _merge_dicts(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shallow merge: values in b override a.
    """
    merged = dict(a)
    merged.update(b)
    return merged


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="construct-map", description="Construct connectivity map builder")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", type=Path, help="Optional YAML/JSON config file")
        p.add_argument("--input", type=Path, default=None, help="Snapshot file (JSON or YAML) with tree and connections")
        p.add_argument("--app-scope", dest="app_scope", default=None, help=f"Application scope node (default {DEFAULT_APP_SCOPE})")
        p.add_argument(
            "--json-logs",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Enable JSON logs",
        )
        p.add_argument("--log-level", default=None, help="Log level (INFO, DEBUG, ...)")

    p_build = subparsers.add_parser("build", help="Build the map and write node/edge exports")
    add_common(p_build)
    p_build.add_argument("--outdir", type=Path, default=None, help="Output directory (default ./out)")
    p_build.add_argument(
        "--exclude-op",
        dest="excluded_operations",
        action="append",
        default=None,
        help="Operation whose connections are dropped before bridging (repeatable; default invokeAsync)",
    )
    p_build.add_argument(
        "--port-alias",
        dest="port_aliases",
        action="append",
        default=None,
        help="kind=operation; every operation on that kind shares one port (repeatable)",
    )
    p_build.add_argument(
        "--summary",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Print a summary table",
    )

    p_hidden = subparsers.add_parser("hidden", help="Report the effective hidden flag of paths")
    add_common(p_hidden)
    p_hidden.add_argument("paths", nargs="+", help="Node paths (a #operation suffix is ignored)")

    return parser


def load_run_config(
    args: Optional[argparse.Namespace] = None,
    argv: Optional[List[str]] = None,
) -> Tuple[str, MapConfig]:
    """
    Build MapConfig by merging defaults, optional config file, env vars, and CLI args.
    Precedence (low -> high): defaults < config file < env < CLI.

    Returns:
      (command, MapConfig) where command is build|hidden
    """
    ns = args if args is not None else build_parser().parse_args(argv)
    command = ns.command

    base: Dict[str, Any] = {
        "input": None,
        "outdir": "out",
        "app_scope": DEFAULT_APP_SCOPE,
        "excluded_operations": list(DEFAULT_EXCLUDED_OPERATIONS),
        "port_aliases": dict(DEFAULT_PORT_ALIASES),
        "json_logs": False,
        "log_level": "INFO",
        "summary": True,
    }

    file_cfg: Dict[str, Any] = {}
    if getattr(ns, "config", None):
        file_cfg = _normalize_config_file(_parse_config_file(Path(ns.config)))

    env_excluded = _env_str("CMAP_EXCLUDED_OPERATIONS")
    env_aliases = _env_str("CMAP_PORT_ALIASES")
    env_cfg: Dict[str, Any] = _compact_dict(
        {
            "input": _env_str("CMAP_INPUT"),
            "outdir": _env_str("CMAP_OUTDIR"),
            "app_scope": _env_str("CMAP_APP_SCOPE"),
            "excluded_operations": _split_csv(env_excluded, "excluded_operations") if env_excluded else None,
            "port_aliases": _parse_port_aliases(env_aliases) if env_aliases else None,
            "json_logs": _env_bool("CMAP_JSON_LOGS"),
            "log_level": _env_str("CMAP_LOG_LEVEL"),
            "summary": _env_bool("CMAP_SUMMARY"),
        }
    )

    cli_aliases = getattr(ns, "port_aliases", None)
    cli_cfg: Dict[str, Any] = _compact_dict(
        {
            "input": getattr(ns, "input", None),
            "outdir": getattr(ns, "outdir", None),
            "app_scope": getattr(ns, "app_scope", None),
            "excluded_operations": getattr(ns, "excluded_operations", None),
            "port_aliases": _parse_port_aliases(cli_aliases) if cli_aliases else None,
            "json_logs": getattr(ns, "json_logs", None),
            "log_level": getattr(ns, "log_level", None),
            "summary": getattr(ns, "summary", None),
        }
    )

    merged = _merge_dicts(base, _merge_dicts(file_cfg, _merge_dicts(env_cfg, cli_cfg)))

    if merged.get("input") is None:
        raise ConfigError("--input is required (or set 'input' in config / CMAP_INPUT)")

    cfg = MapConfig(
        input=Path(merged["input"]),
        outdir=Path(merged["outdir"]),
        app_scope=str(merged["app_scope"]),
        excluded_operations=tuple(merged["excluded_operations"]),
        port_aliases=tuple(sorted(merged["port_aliases"].items())),
        json_logs=bool(merged["json_logs"]),
        log_level=str(merged["log_level"]).upper(),
        summary=bool(merged["summary"]),
        paths=tuple(getattr(ns, "paths", None) or ()),
    )
    return command, cfg


def map_options(cfg: MapConfig) -> MapOptions:
    return MapOptions(
        app_scope=cfg.app_scope,
        excluded_operations=frozenset(cfg.excluded_operations),
        port_aliases=tuple(PortAliasRule(ResourceKind(kind), operation) for kind, operation in cfg.port_aliases),
    )


def dump_config(cfg: MapConfig) -> Dict[str, Any]:
    return {
        "input": str(cfg.input) if cfg.input else None,
        "outdir": str(cfg.outdir),
        "app_scope": cfg.app_scope,
        "excluded_operations": list(cfg.excluded_operations),
        "port_aliases": dict(cfg.port_aliases),
        "json_logs": cfg.json_logs,
        "log_level": cfg.log_level,
        "summary": cfg.summary,
    }

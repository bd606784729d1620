from __future__ import annotations

import sys
from typing import Any, Dict, Optional

from rich.console import Console
from rich.table import Table

from .config import MapConfig, dump_config, load_run_config, map_options
from .export.graph import write_map
from .graph.builder import build_map_from_snapshot, summarize
from .graph.memo import snapshot_hash
from .graph.visibility import compute_visibility
from .logging import LogConfig, get_logger, setup_logging
from .normalize.transform import load_snapshot
from .util.errors import ConfigError, as_exit_code

LOG = get_logger(__name__)


def print_summary(summary: Dict[str, Any], *, outdir: str, console: Optional[Console] = None) -> None:
    table = Table(title="Map Summary", show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Nodes", str(summary.get("nodes", 0)))
    table.add_row("Hidden nodes", str(summary.get("hidden_nodes", 0)))
    table.add_row("Bridged connections", str(summary.get("bridged_connections", 0)))
    table.add_row("Edges", str(summary.get("edges", 0)))
    for role, count in sorted((summary.get("roles") or {}).items()):
        table.add_row(f"Role: {role}", str(count))
    table.add_row("Root nodes", ", ".join(summary.get("root_nodes") or []))
    table.add_row("Output dir", outdir)
    (console or Console()).print(table)


def cmd_build(cfg: MapConfig, *, console: Optional[Console] = None) -> int:
    if cfg.input is None:
        raise ConfigError("--input is required")
    LOG.info("Map build started", extra={"step": "build", "phase": "start", "config": dump_config(cfg)})
    snapshot = load_snapshot(cfg.input)
    options = map_options(cfg)
    result = build_map_from_snapshot(snapshot, options)
    digest = snapshot_hash(snapshot.tree, snapshot.connections, options)
    paths = write_map(cfg.outdir, result, snapshot_hash=digest)
    LOG.info(
        "Map build complete",
        extra={
            "step": "build",
            "phase": "complete",
            "nodes": len(result.nodes),
            "edges": len(result.edges),
            "outdir": str(paths.root),
        },
    )
    if cfg.summary:
        print_summary(summarize(result), outdir=str(paths.root), console=console)
    return 0


def cmd_hidden(cfg: MapConfig) -> int:
    if cfg.input is None:
        raise ConfigError("--input is required")
    if not cfg.paths:
        raise ConfigError("At least one path is required")
    snapshot = load_snapshot(cfg.input)
    visibility = compute_visibility(snapshot.tree, cfg.app_scope)
    for path in cfg.paths:
        print(f"{path}\t{'hidden' if visibility.is_hidden(path) else 'visible'}")
    return 0


def main() -> None:
    try:
        command, cfg = load_run_config()
        setup_logging(LogConfig(level=cfg.log_level, json_logs=cfg.json_logs))

        if command == "build":
            code = cmd_build(cfg)
        elif command == "hidden":
            code = cmd_hidden(cfg)
        else:
            raise ConfigError(f"Unknown command: {command}")

        sys.exit(code)
    except SystemExit:
        raise
    except BrokenPipeError:
        # Output piped into `head` or similar.
        sys.exit(0)
    except Exception as e:
        setup_logging(LogConfig())
        LOG.error("Execution failed", extra={"error": str(e)})
        sys.exit(as_exit_code(e))


if __name__ == "__main__":
    main()

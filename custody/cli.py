from __future__ import annotations

"""
custody.cli
-----------

Read-only inspection of custody ledger snapshots (as written by
`custody.store.save_snapshot(path, ledger.snapshot())`) and of the effective
configuration.

Examples
--------
# All records, human table
python -m custody.cli list ledger.json

# Only records still awaiting claim or refund, JSON
python -m custody.cli list ledger.json --status active --json

# One record
python -m custody.cli show ledger.json 3

# Effective configuration (CUSTODY_CONFIG_FILE + CUSTODY_* env)
python -m custody.cli config --json
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from .config import load_config
from .errors import CustodyError
from .records import RecordStatus
from .store import RecordTable, load_snapshot
from .version import __version__


app = typer.Typer(
    name="custody",
    add_completion=False,
    no_args_is_help=True,
    help="Inspect custody ledger snapshots and configuration.",
)


# -------------------- utils --------------------

def _short(x: Optional[str], n: int = 12) -> str:
    if not x:
        return "-"
    if len(x) <= n:
        return x
    return x[: n - 1] + "…"


def _load_table(path: Path) -> tuple[Dict[str, Any], RecordTable]:
    try:
        data = load_snapshot(path)
        table = RecordTable.load(list(data.get("records") or []), int(data["next_id"]))
    except (OSError, ValueError, KeyError) as e:
        typer.echo(f"error: cannot read snapshot {path}: {e}", err=True)
        raise typer.Exit(1)
    return data, table


def _print_rows(rows: List[Dict[str, Any]]) -> None:
    header = f"{'id':>5}  {'status':<9} {'sender':<13} {'recipient':<13} {'received':>14} {'deadline':>12}"
    typer.echo(header)
    typer.echo("-" * len(header))
    for r in rows:
        typer.echo(
            f"{r['record_id']:>5}  {r['status']:<9} {_short(r['sender']):<13} "
            f"{_short(r['recipient']):<13} {r['amount_received']:>14} {r['deadline']:>12}"
        )


# -------------------- commands --------------------

def resolve_log_level(option: Optional[str]) -> str:
    """Explicit option first, then the configured level; a broken config is reported by the command itself."""
    if option:
        return option.upper()
    try:
        return load_config().log_level.upper()
    except (OSError, ValueError):
        return "WARNING"


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"custody {__version__}")
        raise typer.Exit(0)


@app.callback()
def _meta(
    version: Optional[bool] = typer.Option(
        None, "--version", "-V", help="Print version and exit", callback=_print_version, is_eager=True
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Python logging level (default: CUSTODY_LOG_LEVEL / config file)"
    ),
) -> None:
    logging.basicConfig(level=resolve_log_level(log_level), format="%(levelname)s %(name)s: %(message)s")


@app.command("list")
def list_cmd(
    snapshot: Path = typer.Argument(..., help="Ledger snapshot JSON"),
    status: Optional[RecordStatus] = typer.Option(None, "--status", case_sensitive=False,
                                                  help="Only records in this state"),
    json_out: bool = typer.Option(False, "--json", help="Print machine-readable JSON"),
) -> None:
    """List custody records."""
    data, table = _load_table(snapshot)
    rows = [r.to_dict() for r in table if status is None or r.status is status]
    if json_out:
        typer.echo(json.dumps(rows, indent=2, sort_keys=True))
        return
    typer.echo(f"fee_bps={data.get('fee_bps')} admin={data.get('admin') or '-'} next_id={table.next_id}")
    _print_rows(rows)


@app.command("show")
def show_cmd(
    snapshot: Path = typer.Argument(..., help="Ledger snapshot JSON"),
    record_id: int = typer.Argument(..., help="Record identifier"),
) -> None:
    """Print one record as JSON."""
    _, table = _load_table(snapshot)
    try:
        rec = table.get(record_id)
    except CustodyError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(json.dumps(rec.to_dict(), indent=2, sort_keys=True))


@app.command("config")
def config_cmd(
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="JSON/YAML config file"),
    json_out: bool = typer.Option(False, "--json", help="Print machine-readable JSON"),
) -> None:
    """Show the effective configuration."""
    try:
        cfg = load_config(file)
    except (OSError, ValueError) as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(1)
    d = cfg.to_dict()
    if json_out:
        typer.echo(json.dumps(d, indent=2, sort_keys=True))
        return
    for k in sorted(d):
        typer.echo(f"{k:<18} {d[k]}")


def main() -> None:  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()

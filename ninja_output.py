"""Output helpers: console tables, CSV export, timestamp formatting."""

from __future__ import annotations

import csv
import datetime as dt
import logging
import pathlib
import time
from typing import Any, Dict, List, Optional, Sequence

from tabulate import tabulate

log = logging.getLogger("ninja-output")


def truncate(value: Any, width: int) -> str:
    s = "" if value is None else str(value)
    if width <= 0 or len(s) <= width:
        return s
    if width <= 3:
        return s[:width]
    return s[: width - 3] + "..."


def format_epoch(value: Any) -> str:
    """Unix epoch seconds -> local 'YYYY-MM-DD HH:MM:SS'; '' when missing or unparseable."""
    if value in (None, ""):
        return ""
    try:
        return dt.datetime.fromtimestamp(float(value)).strftime("%Y-%m-%d %H:%M:%S")
    except (TypeError, ValueError, OverflowError, OSError):
        return ""


def print_table(rows: List[Dict[str, Any]], columns: Sequence[str]) -> None:
    if not rows:
        print("(no rows)")
        return
    table = [[r.get(c, "") for c in columns] for r in rows]
    print(tabulate(table, headers=list(columns), tablefmt="github"))


def write_csv(path: pathlib.Path, rows: List[Dict[str, Any]], columns: Sequence[str]) -> pathlib.Path:
    path = path.resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=list(columns), extrasaction="ignore")
        writer.writeheader()
        for row in rows:
            writer.writerow(row)
    log.info("Wrote %d row(s) to %s", len(rows), path)
    return path


def roll_timestamped_file(base_path: Optional[pathlib.Path], *, label: str) -> Optional[pathlib.Path]:
    """
    Given a base path (e.g. ./audit/updates.ndjson), create a sibling file with a
    UTC timestamp suffix: <stem>_YYYYMMDDTHHMMSSZ<suffix>. None passes through.
    """
    if not base_path:
        return None
    base_path = base_path.resolve()
    base_path.parent.mkdir(parents=True, exist_ok=True)
    suffix = base_path.suffix or ".ndjson"
    ts = time.strftime("%Y%m%dT%H%M%SZ", time.gmtime())
    rolled = base_path.with_name(f"{base_path.stem}_{ts}{suffix}")
    rolled.touch()
    log.info("%s: %s", label, rolled)
    return rolled

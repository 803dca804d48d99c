#!/usr/bin/env python3
"""
NinjaOne device report

Flattens the device list with organization and location names resolved.

Usage:
    python ninja_device_report.py --secret-file ~/.ninja/secret
    python ninja_device_report.py --df "class in (WINDOWS_WORKSTATION)" --output ./export/devices.csv
    python ninja_device_report.py --offline-only
"""

from __future__ import annotations

import argparse
import logging
import pathlib
import sys
from typing import Any, Dict, List, Optional

from ninja_api import (
    AuthError,
    ConfigError,
    add_common_arguments,
    authenticate,
    build_lookup,
    config_from_args,
    load_env,
    paginate,
    setup_logging,
)
from ninja_output import format_epoch, print_table, truncate, write_csv

DEVICE_COLUMNS = [
    "id", "systemName", "organization", "location",
    "approvalStatus", "offline", "created", "lastContact",
]

# console only, exports keep full values
ORG_DISPLAY_WIDTH = 30
LOCATION_DISPLAY_WIDTH = 25

log = logging.getLogger("ninja-device-report")


def build_device_rows(
    devices: List[Dict[str, Any]],
    org_names: Dict[Any, str],
    location_names: Dict[Any, str],
) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for d in devices:
        rows.append({
            "id": d.get("id", ""),
            "systemName": d.get("systemName") or "",
            "organization": org_names.get(d.get("organizationId"), ""),
            "location": location_names.get(d.get("locationId"), ""),
            "approvalStatus": d.get("approvalStatus") or "",
            "offline": bool(d.get("offline", False)),
            "created": format_epoch(d.get("created")),
            "lastContact": format_epoch(d.get("lastContact")),
        })
    rows.sort(key=lambda r: (r["organization"].casefold(), r["systemName"].casefold()))
    return rows


def display_rows(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    out = []
    for r in rows:
        shown = dict(r)
        shown["organization"] = truncate(r["organization"], ORG_DISPLAY_WIDTH)
        shown["location"] = truncate(r["location"], LOCATION_DISPLAY_WIDTH)
        out.append(shown)
    return out


def run_report(config, headers: Dict[str, str], *, offline_only: bool = False) -> List[Dict[str, Any]]:
    devices = paginate(config, "/devices", headers, params={"df": config.df})
    org_names = build_lookup(paginate(config, "/organizations", headers))
    location_names = build_lookup(paginate(config, "/locations", headers))

    rows = build_device_rows(devices, org_names, location_names)
    if offline_only:
        rows = [r for r in rows if r["offline"]]
    return rows

# ---------------- CLI ----------------


def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser(description="Report NinjaOne devices with organization and location names")
    add_common_arguments(ap)
    ap.add_argument("--df", help="Device filter expression passed through as the 'df' query parameter")
    ap.add_argument("--offline-only", action="store_true", help="Only list devices reported offline")
    ap.add_argument("--output", help="Also export the report to this CSV file (untruncated)")
    args = ap.parse_args(argv)

    setup_logging(quiet=args.quiet, silent=args.silent, log_file=args.log_file, no_console=args.no_console)
    load_env(args.dotenv)

    try:
        config = config_from_args(args)
        headers = authenticate(config)
    except (ConfigError, AuthError) as e:
        sys.exit(f"[ERROR] {e}")

    rows = run_report(config, headers, offline_only=args.offline_only)
    print_table(display_rows(rows), DEVICE_COLUMNS)

    if config.output:
        write_csv(pathlib.Path(config.output), rows, DEVICE_COLUMNS)

    offline = sum(1 for r in rows if r["offline"])
    log.info("[SUMMARY] devices=%d offline=%d", len(rows), offline)


if __name__ == "__main__":
    main()

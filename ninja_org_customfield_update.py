#!/usr/bin/env python3
"""
NinjaOne organization custom-field bulk updater

Reads a CSV with the header `organization,customfieldvalue`, matches each row
to a NinjaOne organization by name (case-insensitive) and PATCHes one custom
field on the match.

Usage:
    python ninja_org_customfield_update.py --csv ./orgs.csv --field-name contractId \
        --secret-file ~/.ninja/secret
    python ninja_org_customfield_update.py --csv ./orgs.csv --field-name contractId --dry-run \
        --audit-file ./audit/contract_ids.ndjson

Rows with a blank organization or value are skipped. Names shared by several
organizations are reported as failed rather than guessed.
"""

from __future__ import annotations

import argparse
import csv
import json
import logging
import pathlib
import sys
import time
from typing import Any, Dict, List, NamedTuple, Optional

import requests

from ninja_api import (
    AuthError,
    ConfigError,
    add_common_arguments,
    authenticate,
    config_from_args,
    load_env,
    ninja_request,
    paginate,
    setup_logging,
)
from ninja_output import roll_timestamped_file

CSV_COLUMNS = ["organization", "customfieldvalue"]

UPDATED = "Updated"
NOT_FOUND = "NotFound"
FAILED = "Failed"
SKIPPED = "Skipped"
OUTCOMES = (UPDATED, NOT_FOUND, FAILED, SKIPPED)

log = logging.getLogger("ninja-org-update")


class RowResult(NamedTuple):
    line: int
    organization: str
    outcome: str
    message: str = ""
    org_id: Optional[int] = None

# ---------------- CSV ----------------


def read_update_rows(path: pathlib.Path) -> List[Dict[str, str]]:
    if not path.exists():
        raise ConfigError(f"CSV file not found: {path}")
    try:
        with path.open("r", encoding="utf-8-sig", newline="") as f:
            reader = csv.DictReader(f)
            header = [(h or "").strip().lower() for h in (reader.fieldnames or [])]
            if header != CSV_COLUMNS:
                raise ConfigError(
                    f"CSV header must be exactly '{','.join(CSV_COLUMNS)}', got '{','.join(header)}'")
            rows: List[Dict[str, str]] = []
            for raw in reader:
                row = {(k or "").strip().lower(): (v or "") for k, v in raw.items() if k is not None}
                rows.append({c: (row.get(c) or "").strip() for c in CSV_COLUMNS})
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise ConfigError(f"Cannot read CSV file {path}: {e}") from e
    return rows


def norm_name(s: Optional[str]) -> str:
    return (s or "").strip().casefold()


def index_organizations(organizations: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    index: Dict[str, List[Dict[str, Any]]] = {}
    for org in organizations:
        key = norm_name(org.get("name"))
        if key:
            index.setdefault(key, []).append(org)
    return index

# ---------------- Auditing ----------------


def _append_audit(audit: Optional[pathlib.Path], result: RowResult, *, field_name: str, value: str) -> None:
    if not audit:
        return
    row = {
        "ts": time.time(),
        "line": result.line,
        "organization": result.organization,
        "org_id": result.org_id,
        "field": field_name,
        "value": value,
        "outcome": result.outcome,
        "message": result.message,
    }
    with audit.open("a", encoding="utf-8") as f:
        f.write(json.dumps(row, ensure_ascii=False) + "\n")

# ---------------- Update ----------------


def update_org_custom_field(config, headers: Dict[str, str], org_id: Any, field_name: str, value: str) -> None:
    ninja_request("PATCH", config, f"/organization/{org_id}/custom-fields", headers,
                  json_body={field_name: value})


def process_row(
    config,
    headers: Dict[str, str],
    line: int,
    row: Dict[str, str],
    index: Dict[str, List[Dict[str, Any]]],
    field_name: str,
    *,
    dry_run: bool = False,
) -> RowResult:
    org_name = row.get("organization", "").strip()
    value = row.get("customfieldvalue", "").strip()

    if not org_name:
        return RowResult(line, org_name, SKIPPED, "missing organization")
    if not value:
        return RowResult(line, org_name, SKIPPED, "missing value")

    matches = index.get(norm_name(org_name), [])
    if not matches:
        return RowResult(line, org_name, NOT_FOUND, "no organization with this name")
    if len(matches) > 1:
        ids = ", ".join(str(m.get("id")) for m in matches)
        return RowResult(line, org_name, FAILED, f"ambiguous: {len(matches)} organizations match (ids {ids})")

    org_id = matches[0].get("id")
    if dry_run:
        log.info("[DRY-RUN] PATCH /organization/%s/custom-fields {%s: %r}", org_id, field_name, value)
        return RowResult(line, org_name, UPDATED, "dry-run", org_id)

    try:
        update_org_custom_field(config, headers, org_id, field_name, value)
    except requests.HTTPError as e:
        resp = e.response
        detail = (resp.text or "")[:500] if resp is not None else ""
        return RowResult(line, org_name, FAILED, f"{e} {detail}".strip(), org_id)
    except requests.RequestException as e:
        return RowResult(line, org_name, FAILED, str(e), org_id)
    return RowResult(line, org_name, UPDATED, "", org_id)


def apply_updates(
    config,
    headers: Dict[str, str],
    rows: List[Dict[str, str]],
    organizations: List[Dict[str, Any]],
    field_name: str,
    *,
    dry_run: bool = False,
    audit: Optional[pathlib.Path] = None,
) -> Dict[str, int]:
    index = index_organizations(organizations)
    counts = {k: 0 for k in OUTCOMES}

    # line 1 is the header
    for line, row in enumerate(rows, start=2):
        result = process_row(config, headers, line, row, index, field_name, dry_run=dry_run)
        counts[result.outcome] += 1
        _append_audit(audit, result, field_name=field_name, value=row.get("customfieldvalue", ""))

        if result.outcome == UPDATED:
            log.info("Line %d: updated '%s' (id %s)", line, result.organization, result.org_id)
        elif result.outcome == SKIPPED:
            log.warning("Line %d: skipped (%s)", line, result.message)
        elif result.outcome == NOT_FOUND:
            log.warning("Line %d: organization '%s' not found", line, result.organization)
        else:
            log.error("Line %d: update of '%s' failed: %s", line, result.organization, result.message)
    return counts


def format_summary(counts: Dict[str, int]) -> str:
    return "\n".join([
        "=== Update Summary ===",
        f"Updated:  {counts.get(UPDATED, 0)}",
        f"NotFound: {counts.get(NOT_FOUND, 0)}",
        f"Failed:   {counts.get(FAILED, 0)}",
        f"Skipped:  {counts.get(SKIPPED, 0)}",
    ])

# ---------------- CLI ----------------


def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser(description="Bulk-update one organization custom field in NinjaOne from a CSV")
    add_common_arguments(ap)
    ap.add_argument("--csv", required=True, help="CSV with header 'organization,customfieldvalue'")
    ap.add_argument("--field-name", required=True, help="Organization custom field to set")
    ap.add_argument("--dry-run", action="store_true", help="Log intended updates but do not PATCH")
    ap.add_argument("--audit-file",
                    help="Write NDJSON audit lines to a new timestamped file based on this path")
    args = ap.parse_args(argv)

    setup_logging(quiet=args.quiet, silent=args.silent, log_file=args.log_file, no_console=args.no_console)
    load_env(args.dotenv)

    field_name = (args.field_name or "").strip()
    try:
        if not field_name:
            raise ConfigError("--field-name must not be blank")
        rows = read_update_rows(pathlib.Path(args.csv).resolve())
        config = config_from_args(args)
        headers = authenticate(config)
    except (ConfigError, AuthError) as e:
        sys.exit(f"[ERROR] {e}")

    log.info("Loaded %d row(s) from %s", len(rows), args.csv)
    audit_base = pathlib.Path(args.audit_file).resolve() if args.audit_file else None
    audit_path = roll_timestamped_file(audit_base, label="Audit file")

    organizations = paginate(config, "/organizations", headers)
    counts = apply_updates(config, headers, rows, organizations, field_name,
                           dry_run=args.dry_run, audit=audit_path)
    print(format_summary(counts))


if __name__ == "__main__":
    main()

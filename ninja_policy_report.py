#!/usr/bin/env python3
"""
NinjaOne organization policy report

Lists which policy each organization assigns to each node role.

Usage:
    python ninja_policy_report.py --secret-file ~/.ninja/secret
    python ninja_policy_report.py --mode column --output ./export/policies.csv

Modes:
    row      one line per organization/role assignment (default)
    column   one line per organization, one column per node role
"""

from __future__ import annotations

import argparse
import logging
import pathlib
import sys
from typing import Any, Dict, List, Optional, Tuple

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
from ninja_output import print_table, write_csv

ROW_COLUMNS = ["organization", "role", "policyId", "policy"]

log = logging.getLogger("ninja-policy-report")


def _sort_key(value: Any) -> str:
    return ("" if value is None else str(value)).casefold()


def build_policy_rows(
    organizations: List[Dict[str, Any]],
    role_names: Dict[Any, str],
    policy_names: Dict[Any, str],
) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for org in organizations:
        org_name = org.get("name") or ""
        for assignment in org.get("policies") or []:
            role_id = assignment.get("nodeRoleId")
            policy_id = assignment.get("policyId")
            rows.append({
                "organization": org_name,
                "role": role_names.get(role_id, ""),
                "policyId": "" if policy_id is None else policy_id,
                "policy": policy_names.get(policy_id, ""),
            })
    # sorted() is stable; ties keep fetch order
    rows.sort(key=lambda r: (_sort_key(r["organization"]), _sort_key(r["role"]), _sort_key(r["policy"])))
    return rows


def role_columns(role_names: Dict[Any, str]) -> List[str]:
    distinct = {name for name in role_names.values() if name}
    return sorted(distinct, key=lambda n: (n.casefold(), n))


def build_policy_matrix(
    organizations: List[Dict[str, Any]],
    role_names: Dict[Any, str],
    policy_names: Dict[Any, str],
) -> Tuple[List[str], List[Dict[str, Any]]]:
    """
    Pivot assignments into (columns, rows): one row per organization and one
    column per distinct role name, whether or not any organization uses it.
    """
    roles = role_columns(role_names)
    columns = ["organization"] + roles

    rows: List[Dict[str, Any]] = []
    for org in sorted(organizations, key=lambda o: _sort_key(o.get("name"))):
        cells: Dict[str, List[str]] = {}
        for assignment in org.get("policies") or []:
            role = role_names.get(assignment.get("nodeRoleId"), "")
            if not role:
                continue
            policy = policy_names.get(assignment.get("policyId"), "")
            names = cells.setdefault(role, [])
            if policy and policy not in names:
                names.append(policy)
        row: Dict[str, Any] = {"organization": org.get("name") or ""}
        for role in roles:
            row[role] = "; ".join(cells.get(role, []))
        rows.append(row)
    return columns, rows


def run_report(config, headers: Dict[str, str], mode: str) -> Tuple[List[str], List[Dict[str, Any]]]:
    organizations = paginate(config, "/organizations-detailed", headers)
    policy_names = build_lookup(paginate(config, "/policies", headers))
    role_names = build_lookup(paginate(config, "/roles", headers))

    if mode == "column":
        return build_policy_matrix(organizations, role_names, policy_names)
    return ROW_COLUMNS, build_policy_rows(organizations, role_names, policy_names)

# ---------------- CLI ----------------


def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser(description="Report NinjaOne policy assignments per organization and node role")
    add_common_arguments(ap)
    ap.add_argument("--mode", choices=["row", "column"], default="row", help="Report layout (default: row)")
    ap.add_argument("--output", help="Also export the report to this CSV file")
    args = ap.parse_args(argv)

    setup_logging(quiet=args.quiet, silent=args.silent, log_file=args.log_file, no_console=args.no_console)
    load_env(args.dotenv)

    try:
        config = config_from_args(args)
        headers = authenticate(config)
    except (ConfigError, AuthError) as e:
        sys.exit(f"[ERROR] {e}")

    columns, rows = run_report(config, headers, args.mode)
    print_table(rows, columns)

    if config.output:
        write_csv(pathlib.Path(config.output), rows, columns)

    log.info("[SUMMARY] mode=%s rows=%d columns=%d", args.mode, len(rows), len(columns))


if __name__ == "__main__":
    main()

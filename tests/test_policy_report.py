"""Tests for the organization policy report."""

from unittest import TestCase
from unittest.mock import patch

import ninja_policy_report
from ninja_api import NinjaConfig
from ninja_policy_report import ROW_COLUMNS, build_policy_matrix, build_policy_rows, run_report

ROLES = {10: "Windows Server", 20: "Windows Desktop", 30: "Mac", 40: "Linux Server"}
POLICIES = {100: "Server Baseline", 200: "Desktop Baseline", 300: "Mac Default"}

ORGANIZATIONS = [
    {"id": 2, "name": "Tech Corp", "policies": [
        {"nodeRoleId": 20, "policyId": 200},
        {"nodeRoleId": 10, "policyId": 100},
    ]},
    {"id": 1, "name": "Example IT", "policies": [
        {"nodeRoleId": 30, "policyId": 300},
        {"nodeRoleId": 99, "policyId": 999},
    ]},
    {"id": 3, "name": "empty org"},
]


class TestPolicyRows(TestCase):
    """Row mode."""

    def test_row_count_matches_assignments(self):
        rows = build_policy_rows(ORGANIZATIONS, ROLES, POLICIES)
        expected = sum(len(o.get("policies") or []) for o in ORGANIZATIONS)
        self.assertEqual(len(rows), expected)

    def test_unresolved_ids_are_blank(self):
        rows = build_policy_rows(ORGANIZATIONS, ROLES, POLICIES)
        unresolved = [r for r in rows if r["policyId"] == 999][0]
        self.assertEqual(unresolved["role"], "")
        self.assertEqual(unresolved["policy"], "")
        self.assertEqual(unresolved["organization"], "Example IT")

    def test_sorted_by_org_role_policy(self):
        rows = build_policy_rows(ORGANIZATIONS, ROLES, POLICIES)
        self.assertEqual(
            [(r["organization"], r["role"]) for r in rows],
            [
                ("Example IT", ""),
                ("Example IT", "Mac"),
                ("Tech Corp", "Windows Desktop"),
                ("Tech Corp", "Windows Server"),
            ],
        )
        self.assertEqual(set(rows[0].keys()), set(ROW_COLUMNS))

    def test_ties_keep_original_order(self):
        orgs = [{"name": "A", "policies": [
            {"nodeRoleId": 1, "policyId": 7},
            {"nodeRoleId": 1, "policyId": 8},
        ]}]
        rows = build_policy_rows(orgs, {1: "Role"}, {7: "Same", 8: "Same"})
        self.assertEqual([r["policyId"] for r in rows], [7, 8])


class TestPolicyMatrix(TestCase):
    """Column mode."""

    def test_one_column_per_distinct_role(self):
        roles = dict(ROLES)
        roles[50] = "Mac"  # duplicate name
        columns, _ = build_policy_matrix(ORGANIZATIONS, roles, POLICIES)
        self.assertEqual(columns, ["organization", "Linux Server", "Mac", "Windows Desktop", "Windows Server"])

    def test_cells(self):
        _, rows = build_policy_matrix(ORGANIZATIONS, ROLES, POLICIES)
        self.assertEqual([r["organization"] for r in rows], ["empty org", "Example IT", "Tech Corp"])
        tech = rows[2]
        self.assertEqual(tech["Windows Server"], "Server Baseline")
        self.assertEqual(tech["Windows Desktop"], "Desktop Baseline")
        self.assertEqual(tech["Mac"], "")
        self.assertEqual(tech["Linux Server"], "")
        self.assertTrue(all(v == "" for k, v in rows[0].items() if k != "organization"))

    def test_shared_role_name_joins_policies(self):
        orgs = [{"name": "A", "policies": [
            {"nodeRoleId": 1, "policyId": 7},
            {"nodeRoleId": 2, "policyId": 8},
        ]}]
        _, rows = build_policy_matrix(orgs, {1: "Server", 2: "Server"}, {7: "P1", 8: "P2"})
        self.assertEqual(rows[0]["Server"], "P1; P2")


class TestRunReport(TestCase):
    """End-to-end with a mocked fetcher."""

    def setUp(self):
        self.config = NinjaConfig(client_id="id")

    def _fake_paginate(self, config, resource, headers, **kwargs):
        return {
            "/organizations-detailed": ORGANIZATIONS,
            "/policies": [{"id": k, "name": v} for k, v in POLICIES.items()],
            "/roles": [{"id": k, "name": v} for k, v in ROLES.items()],
        }[resource]

    def test_row_mode(self):
        with patch.object(ninja_policy_report, "paginate", side_effect=self._fake_paginate):
            columns, rows = run_report(self.config, {}, "row")
        self.assertEqual(columns, ROW_COLUMNS)
        self.assertEqual(len(rows), 4)

    def test_column_mode(self):
        with patch.object(ninja_policy_report, "paginate", side_effect=self._fake_paginate):
            columns, rows = run_report(self.config, {}, "column")
        self.assertEqual(len(columns), 1 + len(ROLES))
        self.assertEqual(len(rows), len(ORGANIZATIONS))

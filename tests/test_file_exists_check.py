"""Tests for the profile file-existence check."""

import pathlib
import subprocess
import tempfile
from unittest import TestCase
from unittest.mock import MagicMock, patch

import file_exists_check
from file_exists_check import (
    EXIT_CODES,
    CheckResult,
    check_user_file,
    main,
    parse_who_output,
    parse_windows_user,
)

FOLDER = "AppData\\Local\\8x8*"
FILE = "8x8*.exe"


class TestCheckUserFile(TestCase):
    """Three-outcome check against a temporary profile tree."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.root = pathlib.Path(self.tmp.name)
        self.profile = self.root / "jdoe"
        (self.profile / "AppData" / "Local").mkdir(parents=True)

    def check(self, **kwargs):
        kwargs.setdefault("profiles_root", self.root)
        kwargs.setdefault("user_resolver", lambda: "jdoe")
        return check_user_file(FOLDER, FILE, **kwargs)

    def test_no_matching_folder(self):
        (self.profile / "AppData" / "Local" / "Zoom").mkdir()
        self.assertEqual(self.check(), CheckResult.NOT_FOUND)
        self.assertEqual(EXIT_CODES[self.check()], 2)

    def test_folder_without_file(self):
        folder = self.profile / "AppData" / "Local" / "8x8-Work"
        folder.mkdir()
        (folder / "readme.txt").write_text("x")
        self.assertEqual(self.check(), CheckResult.NOT_FOUND)

    def test_file_found_in_any_folder(self):
        (self.profile / "AppData" / "Local" / "8x8-Old").mkdir()
        folder = self.profile / "AppData" / "Local" / "8x8-Work"
        folder.mkdir()
        (folder / "8x8-Work.exe").write_text("x")
        self.assertEqual(self.check(), CheckResult.FOUND)
        self.assertEqual(EXIT_CODES[CheckResult.FOUND], 0)

    def test_matching_is_case_insensitive(self):
        folder = self.profile / "appdata" / "local" / "8X8-Work"
        folder.mkdir(parents=True)
        (folder / "8X8-WORK.EXE").write_text("x")
        self.assertEqual(self.check(), CheckResult.FOUND)

    def test_no_user(self):
        result = self.check(user_resolver=lambda: None)
        self.assertEqual(result, CheckResult.NO_USER)
        self.assertEqual(EXIT_CODES[result], 0)

    def test_explicit_user_skips_resolver(self):
        resolver = MagicMock(return_value=None)
        (self.profile / "AppData" / "Local" / "8x8").mkdir()
        (self.profile / "AppData" / "Local" / "8x8" / "8x8.exe").write_text("x")
        self.assertEqual(self.check(user="jdoe", user_resolver=resolver), CheckResult.FOUND)
        resolver.assert_not_called()

    def test_missing_profile(self):
        self.assertEqual(self.check(user_resolver=lambda: "ghost"), CheckResult.NOT_FOUND)

    def test_validation_errors(self):
        for folder, file in [("", FILE), (FOLDER, ""), ("C:\\Users\\x", FILE),
                             ("/abs/path", FILE), ("..\\other", FILE), (FOLDER, "sub\\8x8.exe")]:
            result = check_user_file(folder, file, profiles_root=self.root, user_resolver=lambda: "jdoe")
            self.assertEqual(result, CheckResult.ERROR, (folder, file))
            self.assertEqual(EXIT_CODES[result], 1)


class TestMain(TestCase):
    """Exit code mapping at the process boundary."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.root = pathlib.Path(self.tmp.name)
        folder = self.root / "jdoe" / "AppData" / "Local" / "8x8-Work"
        folder.mkdir(parents=True)
        self.folder = folder

    def run_main(self, *extra):
        return main(["--folder-pattern", FOLDER, "--file-pattern", FILE,
                     "--profiles-root", str(self.root), "--user", "jdoe", *extra])

    def test_exit_2_then_0(self):
        self.assertEqual(self.run_main(), 2)
        (self.folder / "8x8-Work.exe").write_text("x")
        self.assertEqual(self.run_main(), 0)

    def test_bad_usage_is_1(self):
        self.assertEqual(main(["--file-pattern", FILE]), 1)

    def test_unexpected_error_is_1(self):
        with patch.object(file_exists_check, "check_user_file", side_effect=RuntimeError("boom")):
            self.assertEqual(self.run_main(), 1)


class TestUserResolution(TestCase):
    """Parsing of logged-on user queries."""

    def test_windows_user(self):
        self.assertEqual(parse_windows_user("CONTOSO\\jdoe\r\n"), "jdoe")
        self.assertEqual(parse_windows_user("jdoe"), "jdoe")
        self.assertIsNone(parse_windows_user("\r\n"))

    def test_who_prefers_console(self):
        out = "admin    pts/0        2024-05-01 09:00 (10.0.0.5)\njdoe     :0           2024-05-01 08:00 (:0)\n"
        self.assertEqual(parse_who_output(out), "jdoe")

    def test_who_first_user_fallback(self):
        self.assertEqual(parse_who_output("admin    pts/0    2024-05-01 09:00\n"), "admin")
        self.assertIsNone(parse_who_output(""))

    @patch.object(file_exists_check.subprocess, "run")
    def test_resolver_failure_means_no_user(self, mock_run):
        mock_run.side_effect = subprocess.CalledProcessError(1, ["who"])
        self.assertIsNone(file_exists_check.resolve_logged_on_user())

#!/usr/bin/env python3
"""
Check whether a file exists in the logged-on user's profile.

Usage:
    python file_exists_check.py --folder-pattern "AppData\\Local\\8x8*" --file-pattern "8x8*.exe"
    python file_exists_check.py --folder-pattern "AppData/Local/8x8*" --file-pattern "8x8*.exe" --user jdoe

Exit codes (read by the scheduler running this check):
    0   a matching file was found, or nobody is logged on
    1   invalid input or unexpected error
    2   user resolved but no matching folder/file
"""

from __future__ import annotations

import argparse
import enum
import fnmatch
import os
import pathlib
import re
import subprocess
import sys
from typing import Callable, List, Optional


class CheckResult(enum.Enum):
    FOUND = "found"
    NO_USER = "no_user"
    NOT_FOUND = "not_found"
    ERROR = "error"


EXIT_CODES = {
    CheckResult.FOUND: 0,
    CheckResult.NO_USER: 0,
    CheckResult.ERROR: 1,
    CheckResult.NOT_FOUND: 2,
}

# ---------------- Logged-on user ----------------

WIN_USER_CMD = [
    "powershell", "-NoProfile", "-NonInteractive", "-Command",
    "(Get-CimInstance -ClassName Win32_ComputerSystem).UserName",
]


def parse_windows_user(output: str) -> Optional[str]:
    for line in (output or "").splitlines():
        line = line.strip()
        if line:
            # DOMAIN\user
            return line.rsplit("\\", 1)[-1] or None
    return None


def parse_who_output(output: str) -> Optional[str]:
    """Prefer a console/graphical session, else the first listed user."""
    first = None
    for line in (output or "").splitlines():
        parts = line.split()
        if not parts:
            continue
        user, tty = parts[0], (parts[1] if len(parts) > 1 else "")
        if tty == "console" or re.match(r"^(:\d+|tty\d+|seat\d+)$", tty) or "(:" in line:
            return user
        if first is None:
            first = user
    return first


def resolve_logged_on_user() -> Optional[str]:
    is_windows = sys.platform.startswith("win")
    cmd = WIN_USER_CMD if is_windows else ["who"]
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, check=True)
    except (OSError, subprocess.CalledProcessError) as e:
        print(f"[WARN] Could not query logged-on user ({type(e).__name__}: {e})")
        return None
    if is_windows:
        return parse_windows_user(proc.stdout)
    return parse_who_output(proc.stdout)


def default_profiles_root() -> pathlib.Path:
    if sys.platform.startswith("win"):
        return pathlib.Path(os.environ.get("SystemDrive", "C:") + "\\Users")
    if sys.platform == "darwin":
        return pathlib.Path("/Users")
    return pathlib.Path("/home")

# ---------------- Matching ----------------


def split_pattern(pattern: str) -> List[str]:
    return [p for p in re.split(r"[\\/]+", pattern.strip()) if p and p != "."]


def validate_patterns(folder_pattern: str, file_pattern: str) -> Optional[str]:
    if not (folder_pattern or "").strip():
        return "folder pattern is empty"
    if not (file_pattern or "").strip():
        return "file pattern is empty"
    fp = folder_pattern.strip()
    if fp.startswith(("/", "\\")) or re.match(r"^[A-Za-z]:", fp):
        return f"folder pattern must be relative to the profile: {folder_pattern}"
    if ".." in split_pattern(fp):
        return f"folder pattern must not leave the profile: {folder_pattern}"
    if re.search(r"[\\/]", file_pattern):
        return f"file pattern must be a file name, not a path: {file_pattern}"
    return None


def _match(name: str, pattern: str) -> bool:
    return fnmatch.fnmatchcase(name.casefold(), pattern.casefold())


def expand_folders(root: pathlib.Path, folder_pattern: str) -> List[pathlib.Path]:
    """Expand a per-segment wildcard folder pattern under root, case-insensitively."""
    current = [root]
    for part in split_pattern(folder_pattern):
        nxt: List[pathlib.Path] = []
        for base in current:
            if not base.is_dir():
                continue
            for child in sorted(base.iterdir(), key=lambda p: p.name):
                if child.is_dir() and _match(child.name, part):
                    nxt.append(child)
        current = nxt
        if not current:
            break
    return current


def find_files(folders: List[pathlib.Path], file_pattern: str) -> List[pathlib.Path]:
    hits: List[pathlib.Path] = []
    for folder in folders:
        for child in sorted(folder.iterdir(), key=lambda p: p.name):
            if child.is_file() and _match(child.name, file_pattern.strip()):
                hits.append(child)
    return hits


def check_user_file(
    folder_pattern: str,
    file_pattern: str,
    *,
    user: Optional[str] = None,
    profiles_root: Optional[pathlib.Path] = None,
    user_resolver: Callable[[], Optional[str]] = resolve_logged_on_user,
) -> CheckResult:
    problem = validate_patterns(folder_pattern, file_pattern)
    if problem:
        print(f"[ERROR] {problem}")
        return CheckResult.ERROR

    try:
        username = (user or "").strip() or user_resolver()
        if not username:
            print("[INFO] No interactively logged-on user; nothing to check.")
            return CheckResult.NO_USER

        profile = (profiles_root or default_profiles_root()) / username
        print(f"[INFO] User: {username}  Profile: {profile}")
        if not profile.is_dir():
            print(f"[WARN] Profile directory not found: {profile}")
            return CheckResult.NOT_FOUND

        folders = expand_folders(profile, folder_pattern)
        if not folders:
            print(f"[INFO] No folder matches '{folder_pattern}' under {profile}")
            return CheckResult.NOT_FOUND

        hits = find_files(folders, file_pattern)
    except OSError as e:
        print(f"[ERROR] Filesystem error: {e}")
        return CheckResult.ERROR

    if not hits:
        names = ", ".join(str(f) for f in folders)
        print(f"[INFO] No file matches '{file_pattern}' in: {names}")
        return CheckResult.NOT_FOUND

    for h in hits:
        print(f"[INFO] Found: {h}")
    return CheckResult.FOUND

# ---------------- CLI ----------------


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Check for a file under the logged-on user's profile")
    ap.add_argument("--folder-pattern", required=True,
                    help="Folder wildcard relative to the profile, e.g. 'AppData\\Local\\8x8*'")
    ap.add_argument("--file-pattern", required=True, help="File name wildcard, e.g. '8x8*.exe'")
    ap.add_argument("--user", help="Check this user instead of the logged-on one")
    ap.add_argument("--profiles-root", help="Directory holding user profiles (default: platform specific)")
    try:
        args = ap.parse_args(argv)
    except SystemExit as e:
        # argparse exits 2 on bad usage, which would read as "not found"
        return 0 if e.code == 0 else EXIT_CODES[CheckResult.ERROR]

    try:
        result = check_user_file(
            args.folder_pattern,
            args.file_pattern,
            user=args.user,
            profiles_root=pathlib.Path(args.profiles_root) if args.profiles_root else None,
        )
    except Exception as e:  # the scheduler only reads the exit code
        print(f"[ERROR] Unexpected error: {type(e).__name__}: {e}")
        result = CheckResult.ERROR

    return EXIT_CODES[result]


if __name__ == "__main__":
    sys.exit(main())

"""
NinjaOne API helpers shared by the reporting and bulk-update scripts.

Env:
    NINJA_CLIENT_ID         OAuth2 client id (required unless --client-id)
    NINJA_SECRET_FILE       path to a file holding the client secret (preferred)
    NINJA_CLIENT_SECRET     raw client secret (accepted, discouraged)
    NINJA_REGION            instance prefix, e.g. app, eu, ca, oc, us2 (default app)
    NINJA_HOST              default ninjarmm.com
    NINJA_SCOPE             default "monitoring management"
    NINJA_PAGE_SIZE         default 100

Notes:
    - A .env file is picked up automatically (python-dotenv), real environment wins.
    - Requests are sequential and never retried.
"""

from __future__ import annotations

import logging
import os
import pathlib
import stat
import sys
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple

import requests
from requests import Session
from urllib3.util.retry import Retry
from dotenv import load_dotenv, find_dotenv

# ---------------- Defaults ----------------

DEFAULT_REGION = "app"
DEFAULT_HOST = "ninjarmm.com"
DEFAULT_SCOPE = "monitoring management"
DEFAULT_PAGE_SIZE = 100

USER_AGENT = "ninja-admin-scripts/1.0"

log = logging.getLogger("ninja-api")

# ---------------- Exceptions ----------------


class ConfigError(Exception):
    """Missing or invalid configuration; raised before any network call."""


class AuthError(Exception):
    """Token could not be obtained; the run cannot continue."""

# ---------------- Logging setup ----------------


def setup_logging(*, quiet: bool = False, silent: bool = False,
                  log_file: Optional[str] = None, no_console: bool = False) -> None:
    level = logging.INFO
    if silent:
        level = logging.CRITICAL
    elif quiet:
        level = logging.WARNING

    root = logging.getLogger()
    root.setLevel(level)

    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter("%(asctime)s %(levelname)s %(message)s")

    if log_file:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(fmt)
        root.addHandler(fh)

    if not no_console:
        sh = logging.StreamHandler(sys.stdout)
        sh.setLevel(level)
        sh.setFormatter(fmt)
        root.addHandler(sh)


def add_common_arguments(ap) -> None:
    """Flags every API script understands (auth, instance, logging)."""
    ap.add_argument("--client-id", help="OAuth2 client id (default: NINJA_CLIENT_ID)")
    ap.add_argument("--secret-file",
                    help="File holding the client secret (default: NINJA_SECRET_FILE)")
    ap.add_argument("--region", help="Instance prefix, e.g. app, eu, ca (default: app)")
    ap.add_argument("--host", help="API host (default: ninjarmm.com)")
    ap.add_argument("--scope", help="OAuth2 scope (default: 'monitoring management')")
    ap.add_argument("--page-size", type=int, help="pageSize sent on list requests (default: 100)")
    ap.add_argument("--dotenv", help="Path to .env file to load (otherwise auto-discovered)")

    ap.add_argument("--quiet", action="store_true", help="Hide INFO logs (only warnings & errors)")
    ap.add_argument("--silent", action="store_true", help="Hide almost all logging (critical only)")
    ap.add_argument("--log-file", help="Also write logs to this file")
    ap.add_argument("--no-console", action="store_true", help="Disable terminal logging entirely")

# ---------------- Env / Config ----------------


def load_env(dotenv_path: Optional[str]) -> Optional[str]:
    used_path = None
    if dotenv_path:
        env_file = str(pathlib.Path(dotenv_path).resolve())
        if load_dotenv(env_file, override=False):
            used_path = env_file
    else:
        found = find_dotenv(usecwd=True)
        if found:
            load_dotenv(found, override=False)
            used_path = found
    if used_path:
        log.info("Loaded env from: %s", used_path)
    return used_path


@dataclass
class NinjaConfig:
    client_id: str
    secret_path: Optional[str] = None
    region: str = DEFAULT_REGION
    host: str = DEFAULT_HOST
    scope: str = DEFAULT_SCOPE
    df: Optional[str] = None
    output: Optional[str] = None
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def base_url(self) -> str:
        return f"https://{self.region}.{self.host}"

    @property
    def token_url(self) -> str:
        return f"{self.base_url}/oauth/token"

    @property
    def api_url(self) -> str:
        return f"{self.base_url}/api/v2"


def config_from_args(args: Any) -> NinjaConfig:
    """Merge CLI flags over environment defaults; raises ConfigError on bad input."""
    client_id = getattr(args, "client_id", None) or os.getenv("NINJA_CLIENT_ID") or ""
    if not client_id.strip():
        raise ConfigError("Missing client id. Pass --client-id or set NINJA_CLIENT_ID.")

    region = (getattr(args, "region", None) or os.getenv("NINJA_REGION") or DEFAULT_REGION).strip().strip(".")
    host = (getattr(args, "host", None) or os.getenv("NINJA_HOST") or DEFAULT_HOST).strip().strip(".")
    if not region or not host:
        raise ConfigError("Region and host must not be empty.")

    raw_size = getattr(args, "page_size", None) or os.getenv("NINJA_PAGE_SIZE") or DEFAULT_PAGE_SIZE
    try:
        page_size = int(raw_size)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid page size: {raw_size!r}")
    if page_size <= 0:
        raise ConfigError(f"Page size must be positive, got {page_size}")

    return NinjaConfig(
        client_id=client_id.strip(),
        secret_path=getattr(args, "secret_file", None) or os.getenv("NINJA_SECRET_FILE") or None,
        region=region,
        host=host,
        scope=getattr(args, "scope", None) or os.getenv("NINJA_SCOPE") or DEFAULT_SCOPE,
        df=getattr(args, "df", None) or None,
        output=getattr(args, "output", None) or None,
        page_size=page_size,
    )


def read_client_secret(config: NinjaConfig) -> str:
    """
    Prefer the protected secret file; fall back to NINJA_CLIENT_SECRET with a warning.
    """
    if config.secret_path:
        path = pathlib.Path(config.secret_path).expanduser()
        try:
            secret = path.read_text(encoding="utf-8").strip()
        except OSError as e:
            raise ConfigError(f"Cannot read secret file {path}: {e}") from e
        if not secret:
            raise ConfigError(f"Secret file {path} is empty")
        if os.name == "posix":
            mode = path.stat().st_mode
            if mode & (stat.S_IRWXG | stat.S_IRWXO):
                log.warning("Secret file %s is accessible by group/other (mode %o); restrict it to the owner.",
                            path, stat.S_IMODE(mode))
        return secret

    raw = os.getenv("NINJA_CLIENT_SECRET")
    if raw:
        log.warning("Using raw NINJA_CLIENT_SECRET from the environment; prefer --secret-file.")
        return raw.strip()

    raise ConfigError("Missing client secret. Pass --secret-file or set NINJA_SECRET_FILE.")

# ---------------- HTTP Client & Auth ----------------


_session: Optional[Session] = None


def get_session() -> Session:
    global _session
    if _session is None:
        s = requests.Session()
        adapter = requests.adapters.HTTPAdapter(max_retries=Retry(total=0, raise_on_status=False))
        s.mount("https://", adapter)
        s.mount("http://", adapter)
        _session = s
    return _session


def get_access_token(config: NinjaConfig, client_secret: str) -> str:
    data = {
        "grant_type": "client_credentials",
        "client_id": config.client_id,
        "client_secret": client_secret,
        "scope": config.scope,
    }
    try:
        r = get_session().post(
            config.token_url,
            data=data,
            headers={"Content-Type": "application/x-www-form-urlencoded", "Accept": "application/json"},
        )
    except requests.RequestException as e:
        raise AuthError(f"Token endpoint {config.token_url} unreachable: {e}") from e

    if r.status_code >= 400:
        raise AuthError(f"Token request failed: HTTP {r.status_code} :: {(r.text or '')[:500]}")

    try:
        token = (r.json() or {}).get("access_token")
    except ValueError:
        token = None
    if not token:
        raise AuthError("Token response did not contain an access_token")
    return token


def auth_headers(token: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "application/json",
        "User-Agent": USER_AGENT,
    }


def authenticate(config: NinjaConfig) -> Dict[str, str]:
    """Read the secret, fetch a token and return request headers."""
    secret = read_client_secret(config)
    token = get_access_token(config, secret)
    log.info("Authenticated against %s", config.base_url)
    return auth_headers(token)


def ninja_request(
    method: str,
    config: NinjaConfig,
    resource: str,
    headers: Dict[str, str],
    *,
    json_body: Optional[Dict[str, Any]] = None,
    params: Optional[Dict[str, Any]] = None,
) -> Tuple[Optional[Any], requests.Response]:
    """
    Single request against /api/v2. Returns (parsed_json_or_None, Response).
    Raises requests.HTTPError on 4xx/5xx and lets transport errors through.
    """
    if not resource.startswith("/"):
        raise ValueError(f"resource should start with '/' (e.g. '/organizations'), got {resource!r}")
    url = f"{config.api_url}{resource}"
    r = get_session().request(
        method=method.upper(),
        url=url,
        json=json_body,
        params=params,
        headers=headers,
    )
    if r.status_code >= 400:
        log.error("%s %s -> HTTP %s :: %s", method.upper(), resource, r.status_code, (r.text or "")[:500])
        r.raise_for_status()

    try:
        return r.json(), r
    except ValueError:
        return None, r

# ---------------- Pagination ----------------


class Page(NamedTuple):
    shape: str  # "cursor" | "items" | "array"
    items: List[Any]
    cursor: Optional[str] = None


def _cursor_token(raw: Any) -> Optional[str]:
    if isinstance(raw, dict):
        raw = raw.get("name")
    if raw in (None, ""):
        return None
    return str(raw)


def decode_page(payload: Any) -> Page:
    if isinstance(payload, dict):
        if isinstance(payload.get("results"), list):
            return Page("cursor", payload["results"], _cursor_token(payload.get("cursor")))
        if isinstance(payload.get("items"), list):
            return Page("items", payload["items"])
        return Page("array", [])
    if isinstance(payload, list):
        return Page("array", payload)
    return Page("array", [])


def next_page_params(page: Page, page_size: int) -> Optional[Tuple[str, Any]]:
    """(query param, value) for the next request, or None when this was the last page."""
    if page.cursor:
        return "cursor", page.cursor
    if len(page.items) < page_size:
        return None
    last = page.items[-1]
    last_id = last.get("id") if isinstance(last, dict) else None
    if last_id is None:
        log.warning("Last item on a full page has no 'id'; stopping pagination early")
        return None
    return "after", last_id


def paginate(
    config: NinjaConfig,
    resource: str,
    headers: Dict[str, str],
    *,
    params: Optional[Dict[str, Any]] = None,
    page_size: Optional[int] = None,
) -> List[Any]:
    """
    Fetch every page of a list endpoint. A failing request ends the fetch for
    this resource and the items gathered so far are returned.
    """
    size = page_size or config.page_size
    out: List[Any] = []
    continuation: Optional[Tuple[str, Any]] = None
    prev_items: Optional[List[Any]] = None
    pages = 0

    while True:
        call_params = {k: v for k, v in (params or {}).items() if v not in (None, "")}
        call_params["pageSize"] = size
        if continuation:
            call_params[continuation[0]] = continuation[1]

        try:
            payload, _ = ninja_request("GET", config, resource, headers, params=call_params)
        except requests.RequestException as e:
            log.error("Fetching %s failed after %d page(s), keeping %d item(s): %s",
                      resource, pages, len(out), e)
            return out

        page = decode_page(payload)
        pages += 1
        if not page.items:
            break

        nxt = next_page_params(page, size)
        # a page ending where the last request started, or identical to the
        # previous one, means the endpoint ignored the continuation
        if page.items == prev_items or (nxt is not None and nxt == continuation):
            log.warning("%s repeated its previous page; dropping it and stopping", resource)
            break
        out.extend(page.items)
        prev_items = page.items

        if nxt is None:
            break
        continuation = nxt

    log.info("Fetched %d %s item(s) in %d page(s)", len(out), resource.lstrip("/"), pages)
    return out

# ---------------- Lookups ----------------


def build_lookup(entities: Iterable[Any]) -> Dict[Any, str]:
    lookup: Dict[Any, str] = {}
    for e in entities:
        if not isinstance(e, dict) or e.get("id") is None:
            continue
        lookup[e["id"]] = e.get("name") or ""
    return lookup

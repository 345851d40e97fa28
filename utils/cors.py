from __future__ import annotations

from typing import Dict, Iterable, List, Optional
from urllib.parse import urlsplit

import azure.functions as func

from shared.config import get_bool_setting, get_setting

DEFAULT_ALLOWED_HEADERS = [
    "Content-Type",
    "Authorization",
    "x-user-id",
    "x-workspace-id",
]


def _allowed_origins() -> List[str]:
    """Comma-separated ALLOWED_ORIGINS (or Azure's CORS setting); a wildcard wins."""
    raw = get_setting("ALLOWED_ORIGINS") or get_setting("CORS") or "*"
    origins: List[str] = []
    for origin in raw.split(","):
        cleaned = origin.strip()
        if not cleaned:
            continue
        if cleaned == "*":
            return ["*"]
        origins.append(cleaned)
    return origins


def _is_local_origin(origin: Optional[str]) -> bool:
    if not origin:
        return False
    host = (urlsplit(origin).hostname or "").lower()
    return host in {"localhost", "127.0.0.1"}


def _origin_matches(origin: str, allowed: str) -> bool:
    """
    Compare an Origin header against one configured entry. Entries may be a
    full origin, a bare host (any scheme), or `*.domain` for subdomains.
    """
    if not origin or not allowed:
        return False
    requested = urlsplit(origin.strip().rstrip("/").lower())
    entry = allowed.strip().rstrip("/").lower()
    if "://" not in entry:
        entry_host, entry_scheme, entry_port = entry, None, None
    else:
        parts = urlsplit(entry)
        entry_host, entry_scheme, entry_port = parts.hostname or "", parts.scheme, parts.port
    host = requested.hostname or ""
    if entry_scheme and requested.scheme != entry_scheme:
        return False
    if entry_port is not None and requested.port != entry_port:
        return False
    if entry_host.startswith("*."):
        return host.endswith(entry_host[1:])
    return host == entry_host


def _allow_headers(req: func.HttpRequest) -> str:
    requested = req.headers.get("Access-Control-Request-Headers", "")
    merged: Dict[str, str] = {name.lower(): name for name in DEFAULT_ALLOWED_HEADERS}
    for name in requested.split(","):
        cleaned = name.strip()
        if cleaned:
            merged.setdefault(cleaned.lower(), cleaned)
    return ", ".join(merged.values())


def build_cors_headers(req: func.HttpRequest, allowed_methods: Iterable[str]) -> Dict[str, str]:
    """Return CORS headers for the request origin if allowed."""
    origin = req.headers.get("origin") or req.headers.get("Origin")
    methods: List[str] = []
    for method in allowed_methods:
        normalized = method.strip().upper()
        if normalized and normalized not in methods:
            methods.append(normalized)
    if "OPTIONS" not in methods:
        methods.append("OPTIONS")

    headers: Dict[str, str] = {"Vary": "Origin"}
    origins = _allowed_origins()
    allow_all = "*" in origins
    origin_allowed = allow_all or any(_origin_matches(origin or "", entry) for entry in origins)
    if not origin_allowed and get_bool_setting("CORS_ALLOW_LOCALHOST", default=True):
        origin_allowed = _is_local_origin(origin)
    if not origin_allowed:
        return headers

    allow_credentials = get_bool_setting("CORS_ALLOW_CREDENTIALS", default=False)
    if allow_credentials and origin:
        allow_origin = origin
    else:
        allow_origin = "*" if allow_all else (origin or "*")
    headers.update(
        {
            "Access-Control-Allow-Origin": allow_origin,
            "Access-Control-Allow-Methods": ", ".join(methods),
            "Access-Control-Allow-Headers": _allow_headers(req),
        }
    )
    if allow_credentials:
        headers["Access-Control-Allow-Credentials"] = "true"
    return headers

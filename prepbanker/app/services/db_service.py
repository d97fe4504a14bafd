from __future__ import annotations

import logging

import httpx
from flask import Flask, current_app, g, session
from supabase import Client, PostgrestAPIError, create_client

from ..errors import BackendError

logger = logging.getLogger(__name__)


def _make_client(key: str) -> Client:
    url = current_app.config.get("SUPABASE_URL") or ""
    if not url or not key:
        raise BackendError("Backend is not configured. Set SUPABASE_URL and SUPABASE_ANON_KEY.")
    factory = current_app.extensions["supabase_factory"]
    return factory(url, key)


def get_db() -> Client:
    if "db" not in g:
        client = _make_client(current_app.config.get("SUPABASE_ANON_KEY") or "")
        token = session.get("access_token")
        if token:
            client.postgrest.auth(token)
        g.db = client
    return g.db


def get_admin_db() -> Client:
    if "admin_db" not in g:
        key = current_app.config.get("SUPABASE_SERVICE_ROLE_KEY") or current_app.config.get("SUPABASE_ANON_KEY") or ""
        g.admin_db = _make_client(key)
    return g.admin_db


def run(query, action: str):
    """Execute a query builder and translate backend failures into ``BackendError``."""
    try:
        return query.execute()
    except PostgrestAPIError as exc:
        logger.error("Backend query failed while %s: %s", action, exc.message or exc)
        raise BackendError(f"Backend error while {action}", details={"code": exc.code}) from exc
    except httpx.HTTPError as exc:
        logger.error("Backend unreachable while %s: %s", action, exc)
        raise BackendError(f"Backend unreachable while {action}") from exc


def close_db(exception: Exception | None = None) -> None:
    g.pop("db", None)
    g.pop("admin_db", None)


def init_app(app: Flask) -> None:
    app.extensions["supabase_factory"] = app.config.get("SUPABASE_CLIENT_FACTORY") or create_client
    app.teardown_appcontext(close_db)

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any, Dict

import httpx

from .config import get_settings
from .errors import StoreUnavailable


# Ensure .env values are loaded
get_settings()

logger = logging.getLogger(__name__)

# PostgREST's default max-rows.
PAGE_SIZE = 1000


class SupabaseUnavailable(StoreUnavailable):
    pass


@lru_cache(maxsize=1)
def _get_supabase_config() -> tuple[str, str]:
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY")
    if not url or not key:
        raise SupabaseUnavailable("Supabase client not configured; set SUPABASE_URL and a key.")
    return url.rstrip("/"), key


def supabase_select_all(
    table: str,
    *,
    select: str,
    filters: Dict[str, str] | None = None,
    order: str | None = None,
    page_size: int = PAGE_SIZE,
    transport: httpx.BaseTransport | None = None,
) -> list[dict[str, Any]]:
    """Read every matching row, ``page_size`` at a time, until a short page.

    PostgREST caps each response at its ``max-rows`` setting, so one request
    is never trusted to hold the whole table. ``order`` should name a stable
    sort key or pages may overlap.
    """
    base, key = _get_supabase_config()
    page_size = max(1, int(page_size))
    rows: list[dict[str, Any]] = []
    with httpx.Client(timeout=20, transport=transport) as client:
        while True:
            page = _get_page(client, base, key, table, _params(select, filters, page_size, len(rows), order))
            rows.extend(page)
            if len(page) < page_size:
                break
    logger.debug("Read %d rows from Supabase table %s", len(rows), table)
    return rows


def _params(
    select: str, filters: Dict[str, str] | None, limit: int, offset: int, order: str | None
) -> Dict[str, Any]:
    params: Dict[str, Any] = {"select": select, "limit": limit}
    if filters:
        params.update(filters)
    if offset:
        params["offset"] = offset
    if order:
        params["order"] = order
    return params


def _get_page(client: httpx.Client, base: str, key: str, table: str, params: Dict[str, Any]) -> list[dict[str, Any]]:
    headers = {
        "apikey": key,
        "Authorization": f"Bearer {key}",
        "Accept": "application/json",
    }
    resp = client.get(f"{base}/rest/v1/{table}", params=params, headers=headers)
    if resp.status_code == 404:
        logger.debug("Supabase table %s not found", table)
        return []
    resp.raise_for_status()
    data = resp.json()
    if isinstance(data, list):
        return data
    return [data]

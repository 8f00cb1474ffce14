"""Shared helpers for single-attempt upstream calls and payload coercion."""

import logging
import math
from typing import Any

import httpx

import config

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {"User-Agent": config.USER_AGENT}


async def request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    params: dict | None = None,
    content: str | None = None,
    headers: dict | None = None,
) -> httpx.Response | None:
    """Issue one request; None on network errors, timeouts and non-2xx statuses."""
    try:
        resp = await client.request(
            method,
            url,
            params=params,
            content=content,
            headers=headers or DEFAULT_HEADERS,
            timeout=config.HTTP_TIMEOUT_S,
        )
    except httpx.HTTPError as exc:
        logger.warning("%s %s failed: %s", method, url, exc)
        return None

    if resp.status_code != 200:
        logger.warning("%s %s returned HTTP %d", method, url, resp.status_code)
        return None
    return resp


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    params: dict | None = None,
    content: str | None = None,
    headers: dict | None = None,
) -> Any | None:
    """Issue one request and return the decoded JSON body.

    Network errors, timeouts, non-2xx statuses and undecodable bodies all
    return None; callers decide what a missing payload means for them.
    """
    resp = await request(client, method, url, params=params, content=content, headers=headers)
    if resp is None:
        return None
    try:
        return resp.json()
    except ValueError:
        logger.warning("%s %s returned a non-JSON body", method, url)
        return None


async def get_json(client: httpx.AsyncClient, url: str, params: dict, headers: dict | None = None) -> Any | None:
    return await request_json(client, "GET", url, params=params, headers=headers)


def to_number(value: Any) -> float | None:
    """Finite float from a number or numeric string, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            parsed = float(value)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def to_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None

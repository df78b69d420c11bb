"""Shared HTTP client manager with connection pooling.

Provides a single get_http_client() interface for the job service client so
that submission and status polling reuse one connection pool per backend.

Key features:
  - Event-loop-aware client lifecycle (recreates when a new loop is running)
  - Request-level timeout independent of the overall job timeout
  - Graceful shutdown via close_all_clients()
"""
from __future__ import annotations

import asyncio
import logging

import httpx

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=10.0)

_CONNECTION_LIMITS = httpx.Limits(
    max_connections=10,
    max_keepalive_connections=5,
    keepalive_expiry=60,
)

# ── Client pool (module-level singletons) ──────────────────────────────

_clients: dict[str, httpx.AsyncClient] = {}
_client_loop_ids: dict[str, int] = {}


def get_http_client(name: str, timeout: httpx.Timeout | None = None) -> httpx.AsyncClient:
    """Get or create an httpx AsyncClient registered under *name*.

    Automatically recreates the client when the running event loop changes,
    since an AsyncClient's pool is bound to the loop that created it.
    """
    loop_id = id(asyncio.get_running_loop())

    if (
        name not in _clients
        or _clients[name].is_closed
        or _client_loop_ids.get(name) != loop_id
    ):
        _clients[name] = httpx.AsyncClient(
            timeout=timeout or _DEFAULT_TIMEOUT,
            limits=_CONNECTION_LIMITS,
        )
        _client_loop_ids[name] = loop_id
        logger.debug("Created new HTTP client '%s'", name)

    return _clients[name]


async def close_all_clients() -> None:
    """Close every pooled HTTP client (for graceful shutdown)."""
    for name, client in list(_clients.items()):
        if not client.is_closed:
            try:
                await client.aclose()
            except (httpx.HTTPError, RuntimeError) as exc:
                logger.warning("Error closing HTTP client '%s': %s", name, exc)
    _clients.clear()
    _client_loop_ids.clear()
    logger.info("All HTTP clients closed")

"""
db.py — Supabase connection provider with an explicit lifecycle.

The process entry point owns one provider, opens it once, and hands it to
every repository that needs the store. Nothing here is a module-level
singleton; tests construct providers with a fake client factory.

Usage:
    from mgnrega_shared.db import SupabaseConnectionProvider

    provider = SupabaseConnectionProvider()
    client = provider.open()         # creates the client on first call
    provider.health_check()          # True when a trivial query succeeds
    provider.close()
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

import structlog
from supabase import Client, create_client

from mgnrega_shared.config import settings
from mgnrega_shared.constants import DISTRICTS_TABLE
from mgnrega_shared.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)


class SupabaseConnectionProvider:
    """
    Owns a single Supabase client for the lifetime of the process.

    open() is idempotent and thread-safe; repeated calls return the same
    client so connection setup happens once per process.
    """

    def __init__(
        self,
        url: str | None = None,
        key: str | None = None,
        *,
        client_factory: Callable[[str, str], Any] = create_client,
    ) -> None:
        self._url = url or settings.supabase_url
        self._key = key if key is not None else settings.supabase_service_key
        self._client_factory = client_factory
        self._client: Client | None = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> Client:
        """The open client. Raises if open() has not been called."""
        if self._client is None:
            raise RuntimeError("Connection provider is not open. Call open() first.")
        return self._client

    def open(self) -> Client:
        with self._lock:
            if self._client is None:
                if not self._key:
                    raise ConfigurationError(
                        "SUPABASE_SERVICE_KEY is not set. Set it in .env before syncing."
                    )
                self._client = self._client_factory(self._url, self._key)
                logger.info("supabase_client_created", url=self._url)
            return self._client

    def health_check(self) -> bool:
        """Run a zero-row count query; False (and a log line) on any failure."""
        if self._client is None:
            return False
        try:
            (
                self._client.table(DISTRICTS_TABLE)
                .select("*", count="exact")
                .limit(0)
                .execute()
            )
        except Exception as exc:
            logger.warning("supabase_health_check_failed", error=str(exc))
            return False
        return True

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                self._client = None
                logger.info("supabase_client_closed")

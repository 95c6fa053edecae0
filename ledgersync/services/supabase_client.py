"""PostgREST client for writing audit rows to Supabase."""

import json
from typing import Any, Optional

import httpx
import structlog

from ledgersync.config import get_settings

logger = structlog.get_logger()


def _service_headers(service_key: str) -> dict[str, str]:
    return {
        "apikey": service_key,
        "Authorization": f"Bearer {service_key}",
        "Content-Type": "application/json",
        "Prefer": "return=minimal",
    }


class SupabaseClient:
    """Insert-only client for Supabase tables.

    Results come back as ``{"data": ..., "error": ...}`` and transport
    failures are returned in ``error`` rather than raised, so callers on the
    audit path never see an exception from here.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        service_key: Optional[str] = None,
        timeout: float = 10.0,
    ):
        settings = get_settings()
        if service_key is None and settings.supabase_service_key is not None:
            service_key = settings.supabase_service_key.get_secret_value()
        self.url = url or settings.supabase_url
        self.service_key = service_key
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.url) and bool(self.service_key)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.url.rstrip("/") + "/rest/v1",
                headers=_service_headers(self.service_key),
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def insert(self, table: str, row: dict) -> dict[str, Any]:
        """Insert one row into ``table``.

        Values json cannot encode (datetimes, Decimals) are sent as strings.
        """
        if not self.is_configured:
            return {"data": None, "error": "Supabase not configured"}

        http = await self._get_client()
        try:
            response = await http.post(
                f"/{table}",
                content=json.dumps(row, default=str),
                headers={"Prefer": "return=minimal"},
            )
        except httpx.HTTPError as e:
            logger.warning("Supabase unreachable", table=table, error=str(e))
            return {"data": None, "error": str(e)}

        if not response.is_success:
            logger.error(
                "Supabase rejected insert",
                table=table,
                status=response.status_code,
                body=response.text,
            )
            return {"data": None, "error": response.text}

        return {"data": response.json() if response.text else None, "error": None}


_supabase_client: Optional[SupabaseClient] = None


def get_supabase_client() -> SupabaseClient:
    """Process-wide client built from settings."""
    global _supabase_client
    if _supabase_client is None:
        _supabase_client = SupabaseClient()
    return _supabase_client

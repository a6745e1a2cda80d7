"""HTTP client for the media catalog/metadata service."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from .errors import ExternalResolutionError
from .media_contract import MediaDetails, MediaLot, MetadataSource

logger = logging.getLogger(__name__)


class CatalogClient:
    """Fetches media details by (source, lot, identifier) from the catalog service."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def fetch_details(
        self, lot: MediaLot, source: MetadataSource, identifier: str
    ) -> MediaDetails:
        try:
            resp = await self._client.get(
                "/details",
                params={"lot": lot, "source": source, "identifier": identifier},
            )
        except httpx.HTTPError as exc:
            raise ExternalResolutionError(
                f"Catalog request failed for {source}:{identifier}: {exc}",
                field="identifier",
            ) from exc

        if resp.status_code == 404:
            raise ExternalResolutionError(
                f"{source} has no {lot} with identifier {identifier}",
                code="not_found",
                field="identifier",
            )
        if resp.status_code >= 400:
            raise ExternalResolutionError(
                f"Catalog returned HTTP {resp.status_code} for {source}:{identifier}",
                field="identifier",
            )

        try:
            payload: Any = resp.json()
            if not isinstance(payload, dict):
                raise TypeError(f"expected a JSON object, got {type(payload).__name__}")
            return MediaDetails.model_validate(
                {"identifier": identifier, "lot": lot, "source": source, **payload}
            )
        except (ValueError, TypeError, PydanticValidationError) as exc:
            raise ExternalResolutionError(
                f"Catalog returned malformed details for {source}:{identifier}",
                field="identifier",
            ) from exc

    async def aclose(self) -> None:
        await self._client.aclose()

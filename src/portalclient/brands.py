from __future__ import annotations

from typing import Any
from urllib.parse import quote

from portalclient.dedup import RequestDeduplicator, cache_key
from portalclient.schemas import BrandProfile, PaginatedResult, parse_response
from portalclient.transport import Transport


class BrandProfileService:
    def __init__(self, transport: Transport, deduplicator: RequestDeduplicator | None = None) -> None:
        self._transport = transport
        self._deduplicator = deduplicator or RequestDeduplicator()

    async def get_all(self) -> PaginatedResult[BrandProfile]:
        return await self.get_by_user(None)

    async def get_by_user(self, query: str | None = None) -> PaginatedResult[BrandProfile]:
        # "" and None both mean "no filter" and hit the same URL.
        query = query or None
        uri = f"/brands/?query={quote(query, safe='')}" if query else "/brands/"
        return await self._deduplicator.run(
            cache_key("brands.get_by_user", query),
            lambda: self._fetch_page(uri),
        )

    async def get_by_id(self, brand_id: int | str) -> BrandProfile:
        brand_id = str(brand_id)
        return await self._deduplicator.run(
            cache_key("brands.get_by_id", brand_id),
            lambda: self._fetch_brand(brand_id),
        )

    async def update(self, brand_id: int | str, body: dict[str, Any]) -> BrandProfile:
        response = await self._transport.patch(f"/brands/{quote(str(brand_id), safe='')}/", body)
        return parse_response(BrandProfile, response)

    async def _fetch_page(self, uri: str) -> PaginatedResult[BrandProfile]:
        response = await self._transport.get(uri)
        return parse_response(PaginatedResult[BrandProfile], response)

    async def _fetch_brand(self, brand_id: str) -> BrandProfile:
        response = await self._transport.get(f"/brands/{quote(brand_id, safe='')}/")
        return parse_response(BrandProfile, response)

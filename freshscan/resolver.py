"""Product metadata lookup by barcode (OpenFoodFacts)."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from .models import ProductCandidate, placeholder_name

logger = logging.getLogger(__name__)

OFF_PRODUCT_PAGE = "https://world.openfoodfacts.org/product"
INITIAL_BACKOFF_S = 0.2
BACKOFF_FACTOR = 2.0
RETRY_STATUS_CODES = {500, 502, 503, 504}


class ResolverError(Exception):
    """Generic product lookup failure."""


class ResolverNetworkError(ResolverError):
    """Transport failure or server error; distinct from "not found"."""


@dataclass
class ProductLookup:
    found: bool
    name: str | None = None
    image_url: str | None = None
    brand: str | None = None
    quantity: str | None = None
    categories: str | None = None
    nutri_score: str | None = None
    eco_score: str | None = None
    ingredients: str | None = None
    country: str | None = None
    url: str | None = None
    raw: dict[str, Any] | None = None

    def to_candidate(self, barcode: str) -> ProductCandidate:
        """Build a candidate, substituting the placeholder name on a miss."""
        if not self.found:
            return ProductCandidate(
                name=placeholder_name(barcode), barcode=barcode, found=False
            )
        return ProductCandidate(
            name=self.name or placeholder_name(barcode),
            barcode=barcode,
            found=True,
            image_url=self.image_url,
            brand=self.brand,
            quantity=self.quantity,
            categories=self.categories,
            nutri_score=self.nutri_score,
            eco_score=self.eco_score,
            ingredients=self.ingredients,
            country=self.country,
            url=self.url,
            raw=self.raw,
        )


class ProductResolver(ABC):
    """Abstract base for barcode → product metadata lookup."""

    @abstractmethod
    async def lookup(self, barcode: str) -> ProductLookup:
        """Return the product, or ``ProductLookup(found=False)``.

        Raises:
            ResolverNetworkError: On transport or server failure.
        """
        ...


class OpenFoodFactsResolver(ProductResolver):
    """Query the OpenFoodFacts v2 product API."""

    def __init__(
        self,
        base_url: str = "https://world.openfoodfacts.org/api/v2/product",
        timeout: float = 8.0,
        max_retries: int = 3,
        user_agent: str = "freshscan/0.1",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._headers = {"User-Agent": user_agent}
        self._transport = transport

    async def lookup(self, barcode: str) -> ProductLookup:
        url = f"{self._base_url}/{barcode}.json"
        attempt = 0
        backoff = INITIAL_BACKOFF_S
        while True:
            attempt += 1
            try:
                async with httpx.AsyncClient(
                    timeout=self._timeout,
                    headers=self._headers,
                    transport=self._transport,
                ) as client:
                    resp = await client.get(url)
            except httpx.HTTPError as e:
                if attempt >= self._max_retries:
                    raise ResolverNetworkError(
                        f"OpenFoodFacts への接続に失敗しました ({attempt} 回試行): {e}"
                    ) from e
                logger.warning("OpenFoodFacts 接続エラー、再試行します: %s", e)
                await asyncio.sleep(backoff)
                backoff *= BACKOFF_FACTOR
                continue

            if resp.status_code == 404:
                return ProductLookup(found=False)
            if resp.status_code in RETRY_STATUS_CODES and attempt < self._max_retries:
                logger.warning(
                    "OpenFoodFacts サーバーエラー %d、再試行します", resp.status_code
                )
                await asyncio.sleep(backoff)
                backoff *= BACKOFF_FACTOR
                continue
            if resp.status_code >= 400:
                raise ResolverNetworkError(
                    f"OpenFoodFacts への問い合わせでエラー: {resp.status_code}"
                )
            break

        try:
            data = resp.json()
        except ValueError as e:
            raise ResolverNetworkError(
                f"OpenFoodFacts の応答を解析できませんでした: {e}"
            ) from e
        return _parse_product(barcode, data)


def _parse_product(barcode: str, data: dict[str, Any]) -> ProductLookup:
    """Map an OpenFoodFacts v2 payload to a ProductLookup."""
    product = data.get("product")
    if data.get("status") != 1 or not product:
        return ProductLookup(found=False, raw=data)

    def text(key: str) -> str | None:
        value = product.get(key)
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    brand = (text("brands") or "").split(",")[0].strip() or None

    return ProductLookup(
        found=True,
        name=text("product_name") or text("generic_name") or placeholder_name(barcode),
        image_url=text("image_front_url"),
        brand=brand,
        quantity=text("quantity"),
        categories=text("categories"),
        nutri_score=text("nutriscore_grade"),
        eco_score=text("ecoscore_grade"),
        ingredients=text("ingredients_text"),
        country=text("countries"),
        url=f"{OFF_PRODUCT_PAGE}/{barcode}",
        raw=product,
    )

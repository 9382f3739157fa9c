"""
JSON-over-HTTP clients for an external product catalog API.

Endpoints (relative to CATALOG_SOURCE_API_URL):
- GET /manufacturers/lookup?model=<model>&brand=<brand>
- GET /images/search?name=<name>&brand=<brand>&model=<model>&limit=<n>

A 404 is a miss. Transport errors, timeouts and 5xx responses raise
SourceUnavailable, which call_source() turns into a stage no-op.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx

from catalog.exceptions import SourceUnavailable
from catalog.records import price_fits
from catalog.sources.base import ImageCandidate, ManufacturerData

logger = logging.getLogger(__name__)


class CatalogApiClient:
    """
    Thin synchronous client for the catalog API.

    Args:
        base_url: API root, e.g. "https://catalog.example.com/api".
        api_token: Optional bearer token.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    name = "catalog-api"

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self.transport = transport

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def _get(self, path: str, params: Dict[str, Any]) -> Optional[Any]:
        """GET a JSON document; None on 404."""
        url = f"{self.base_url}{path}"
        params = {key: value for key, value in params.items() if value not in (None, "")}

        try:
            with httpx.Client(
                timeout=self.timeout,
                headers=self._get_headers(),
                transport=self.transport,
            ) as client:
                response = client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise SourceUnavailable(self.name, f"timeout after {self.timeout}s: {e}") from e
        except httpx.HTTPError as e:
            raise SourceUnavailable(self.name, f"connection error: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise SourceUnavailable(
                self.name, f"HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise SourceUnavailable(self.name, f"invalid JSON: {e}") from e


class HttpManufacturerSource(CatalogApiClient):
    """ManufacturerSource backed by the catalog API."""

    name = "manufacturer-api"

    def lookup(self, model_number: str, brand: Optional[str] = None) -> Optional[ManufacturerData]:
        data = self._get("/manufacturers/lookup", {"model": model_number, "brand": brand})
        if not data:
            return None

        price = None
        if data.get("price") not in (None, ""):
            try:
                price = Decimal(str(data["price"]))
            except InvalidOperation:
                logger.warning(f"Ignoring invalid price for {model_number}: {data['price']!r}")
            else:
                if not price_fits(price):
                    logger.warning(
                        f"Ignoring out-of-range price for {model_number}: {data['price']!r}"
                    )
                    price = None

        specs = data.get("specifications") or {}
        return ManufacturerData(
            name=data.get("name"),
            description=data.get("description"),
            price=price,
            brand=data.get("brand"),
            category=data.get("category"),
            specifications={str(k): str(v) for k, v in specs.items()},
            images=[url for url in data.get("images") or [] if isinstance(url, str)],
            source_url=data.get("source_url"),
        )


class HttpImageSource(CatalogApiClient):
    """ImageSource backed by the catalog API."""

    name = "image-api"

    def discover(
        self, name: str, brand: str, model_number: str, max_images: int
    ) -> List[ImageCandidate]:
        data = self._get(
            "/images/search",
            {"name": name, "brand": brand, "model": model_number, "limit": max_images},
        )
        if not data:
            return []

        items = data.get("images", []) if isinstance(data, dict) else data
        candidates = []
        for item in items:
            url = item.get("url") if isinstance(item, dict) else None
            if not url:
                continue
            candidates.append(
                ImageCandidate(url=url, source_tag=item.get("source", "ecommerce"))
            )
        return candidates

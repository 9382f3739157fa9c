"""
Tests for external sources: call_source(), bundled fixtures and the
httpx-based catalog API clients.
"""

import threading
import time
from decimal import Decimal

import httpx
import pytest

from catalog.exceptions import SourceUnavailable
from catalog.sources import (
    HttpImageSource,
    HttpManufacturerSource,
    StaticImageSource,
    StaticManufacturerSource,
    call_source,
)
from catalog.sources.base import ERROR, HIT, MISS, SOURCE_POOL_WORKERS, _get_executor


class TestCallSource:
    """Timeout and error handling around source calls."""

    def test_hit(self):
        result = call_source("test", lambda value: value, {"name": "x"}, timeout=1.0)

        assert result.kind == HIT
        assert result.is_hit
        assert result.value == {"name": "x"}

    def test_falsy_value_is_miss(self):
        assert call_source("test", lambda: None, timeout=1.0).kind == MISS
        assert call_source("test", lambda: [], timeout=1.0).kind == MISS

    def test_exception_is_error(self):
        def explode():
            raise RuntimeError("boom")

        result = call_source("test", explode, timeout=1.0)

        assert result.kind == ERROR
        assert result.reason == "boom"

    def test_source_unavailable_is_error(self):
        def unavailable():
            raise SourceUnavailable("catalog", "HTTP 503")

        result = call_source("test", unavailable, timeout=1.0)

        assert result.kind == ERROR
        assert result.reason == "HTTP 503"

    def test_timeout_is_error(self):
        started = time.monotonic()

        result = call_source("slow", time.sleep, 1.0, timeout=0.05)

        assert result.kind == ERROR
        assert "timeout" in result.reason
        assert time.monotonic() - started < 0.9

    def test_hung_source_does_not_starve_others(self):
        release = threading.Event()
        try:
            for _ in range(SOURCE_POOL_WORKERS + 1):
                result = call_source("hung-source", release.wait, 5.0, timeout=0.01)
                assert result.kind == ERROR

            started = time.monotonic()
            result = call_source("healthy-source", lambda: {"ok": True}, timeout=1.0)

            assert result.kind == HIT
            assert time.monotonic() - started < 0.5
        finally:
            release.set()

    def test_pool_created_once_per_source(self):
        barrier = threading.Barrier(8)
        pools = []

        def grab():
            barrier.wait(timeout=5)
            pools.append(_get_executor("shared-source"))

        threads = [threading.Thread(target=grab) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert len(pools) == 8
        assert all(pool is pools[0] for pool in pools)
        assert _get_executor("other-source") is not pools[0]


class TestStaticSources:
    """Bundled catalog fixtures."""

    def test_lookup_known_model(self):
        data = StaticManufacturerSource().lookup("gsp180")

        assert data.name.startswith("Bosch GSP180")
        assert data.price == Decimal("129.99")
        assert data.specifications["voltage"] == "18V"
        assert data.source_url

    def test_lookup_unknown_model(self):
        assert StaticManufacturerSource().lookup("NOPE-1") is None

    def test_lookup_brand_mismatch(self):
        assert StaticManufacturerSource().lookup("GSP180", brand="Makita") is None

    def test_custom_catalog(self):
        source = StaticManufacturerSource({"abc-1": {"name": "Widget", "brand": "Acme"}})

        data = source.lookup("ABC-1", brand="acme")

        assert data.name == "Widget"
        assert data.price is None

    def test_discover_includes_manufacturer_images(self):
        candidates = StaticImageSource().discover("Bosch GSP180", "Bosch", "GSP180", 8)

        tags = [candidate.source_tag for candidate in candidates]
        assert tags[:2] == ["manufacturer", "manufacturer"]
        assert "stock" in tags

    def test_discover_without_identity(self):
        assert StaticImageSource().discover("", "", "", 8) == []


def _transport(handler):
    return httpx.MockTransport(handler)


class TestHttpManufacturerSource:
    """Manufacturer lookups against the catalog API."""

    def test_lookup_parses_payload(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={
                "name": "Bosch GSP180",
                "brand": "Bosch",
                "price": "129.99",
                "specifications": {"voltage": "18V", "weight_kg": 0.7},
                "images": ["https://bosch/gsp180.jpg", None],
                "source_url": "https://bosch/gsp180",
            })

        source = HttpManufacturerSource(
            "https://catalog.test/api/", api_token="secret", transport=_transport(handler)
        )

        data = source.lookup("GSP180", "Bosch")

        assert seen["url"] == "https://catalog.test/api/manufacturers/lookup?model=GSP180&brand=Bosch"
        assert seen["auth"] == "Bearer secret"
        assert data.name == "Bosch GSP180"
        assert data.price == Decimal("129.99")
        assert data.specifications == {"voltage": "18V", "weight_kg": "0.7"}
        assert data.images == ["https://bosch/gsp180.jpg"]

    def test_blank_brand_not_sent(self):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            return httpx.Response(404)

        source = HttpManufacturerSource("https://catalog.test", transport=_transport(handler))

        assert source.lookup("GSP180", None) is None
        assert seen["params"] == {"model": "GSP180"}

    def test_invalid_price_ignored(self):
        def handler(request):
            return httpx.Response(200, json={"name": "Bosch GSP180", "price": "n/a"})

        source = HttpManufacturerSource("https://catalog.test", transport=_transport(handler))

        assert source.lookup("GSP180").price is None

    @pytest.mark.parametrize("price", ["99999999999.999", "123456789", "12.345", "-5"])
    def test_out_of_range_price_ignored(self, price):
        def handler(request):
            return httpx.Response(200, json={"name": "Bosch GSP180", "price": price})

        source = HttpManufacturerSource("https://catalog.test", transport=_transport(handler))

        data = source.lookup("GSP180")

        assert data.name == "Bosch GSP180"
        assert data.price is None

    def test_server_error_raises(self):
        def handler(request):
            return httpx.Response(503, text="maintenance")

        source = HttpManufacturerSource("https://catalog.test", transport=_transport(handler))

        with pytest.raises(SourceUnavailable) as exc_info:
            source.lookup("GSP180")
        assert "HTTP 503" in exc_info.value.reason

    def test_timeout_raises(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        source = HttpManufacturerSource("https://catalog.test", transport=_transport(handler))

        with pytest.raises(SourceUnavailable) as exc_info:
            source.lookup("GSP180")
        assert "timeout" in exc_info.value.reason

    def test_invalid_json_raises(self):
        def handler(request):
            return httpx.Response(200, text="<html>")

        source = HttpManufacturerSource("https://catalog.test", transport=_transport(handler))

        with pytest.raises(SourceUnavailable):
            source.lookup("GSP180")


class TestHttpImageSource:
    """Image discovery against the catalog API."""

    def test_discover_parses_images(self):
        def handler(request):
            assert request.url.params["limit"] == "4"
            return httpx.Response(200, json={"images": [
                {"url": "https://bosch/gsp180.jpg", "source": "manufacturer"},
                {"url": "https://shop/gsp180.jpg"},
                {"source": "stock"},
            ]})

        source = HttpImageSource("https://catalog.test", transport=_transport(handler))

        candidates = source.discover("Bosch GSP180", "Bosch", "GSP180", 4)

        assert [(c.url, c.source_tag) for c in candidates] == [
            ("https://bosch/gsp180.jpg", "manufacturer"),
            ("https://shop/gsp180.jpg", "ecommerce"),
        ]

    def test_discover_not_found(self):
        source = HttpImageSource(
            "https://catalog.test", transport=_transport(lambda request: httpx.Response(404))
        )

        assert source.discover("Bosch GSP180", "Bosch", "GSP180", 4) == []

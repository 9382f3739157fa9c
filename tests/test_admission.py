"""
Tests for the AdmissionController (fixed-window rate limiting).

All tests drive the controller with a fake clock, so window boundaries are
exact and nothing sleeps.
"""

import threading
from unittest.mock import patch

import pytest
from django.test import RequestFactory

from catalog.api.throttling import AdmissionThrottle
from catalog.exceptions import RateLimitedError
from catalog.services.admission import (
    AdmissionController,
    RateLimit,
    build_admission_controller,
    normalize_path,
    operation_key,
    resolve_client_key,
)

CLIENT = "93.184.216.34"
OTHER_CLIENT = "198.51.100.20"
INTELLIGENCE = "/api/products/intelligence/"


def make_controller(clock, per_minute=3, per_hour=1000, operations=None, **kwargs):
    return AdmissionController(
        requests_per_minute=per_minute,
        requests_per_hour=per_hour,
        operation_limits=operations or {},
        clock=clock,
        **kwargs,
    )


class TestFixedWindows:
    """Client-wide minute and hour windows."""

    def test_minute_limit(self, fake_clock):
        controller = make_controller(fake_clock)

        decisions = [controller.admit(CLIENT, "GET", "/api/products/") for _ in range(3)]
        rejected = controller.admit(CLIENT, "GET", "/api/products/")

        assert all(decision.allowed for decision in decisions)
        assert not rejected.allowed
        assert 0 < rejected.retry_after_seconds <= 60
        assert rejected.retry_after_seconds == 30
        assert rejected.limit_type == "client_per_minute"

    def test_next_minute_admitted(self, fake_clock):
        controller = make_controller(fake_clock)
        for _ in range(3):
            controller.admit(CLIENT, "GET", "/api/products/")
        assert not controller.admit(CLIENT, "GET", "/api/products/").allowed

        fake_clock.advance(30)

        assert controller.admit(CLIENT, "GET", "/api/products/").allowed

    def test_still_rejected_until_boundary(self, fake_clock):
        controller = make_controller(fake_clock)
        for _ in range(3):
            controller.admit(CLIENT, "GET", "/api/products/")

        fake_clock.advance(29.5)
        decision = controller.admit(CLIENT, "GET", "/api/products/")

        assert not decision.allowed
        assert decision.retry_after_seconds == 1

    def test_hour_limit(self, fake_clock):
        controller = make_controller(fake_clock, per_minute=100, per_hour=5)
        for _ in range(5):
            assert controller.admit(CLIENT, "GET", "/api/products/").allowed

        fake_clock.advance(60)
        decision = controller.admit(CLIENT, "GET", "/api/products/")

        assert not decision.allowed
        assert decision.limit_type == "client_per_hour"
        assert decision.retry_after_seconds == 3600 - 810 - 60

    def test_retry_after_covers_every_exhausted_window(self, fake_clock):
        controller = make_controller(fake_clock, per_minute=2, per_hour=2)
        for _ in range(2):
            assert controller.admit(CLIENT, "GET", "/api/products/").allowed

        decision = controller.admit(CLIENT, "GET", "/api/products/")

        assert not decision.allowed
        assert decision.limit_type == "client_per_hour"
        assert decision.retry_after_seconds == 3600 - 810

        fake_clock.advance(30)
        decision = controller.admit(CLIENT, "GET", "/api/products/")

        assert not decision.allowed
        assert decision.retry_after_seconds == 3600 - 810 - 30

        fake_clock.advance(decision.retry_after_seconds)
        assert controller.admit(CLIENT, "GET", "/api/products/").allowed

    def test_clients_are_independent(self, fake_clock):
        controller = make_controller(fake_clock, per_minute=1)

        assert controller.admit(CLIENT, "GET", "/api/products/").allowed
        assert controller.admit(OTHER_CLIENT, "GET", "/api/products/").allowed
        assert not controller.admit(CLIENT, "GET", "/api/products/").allowed

    def test_rejected_requests_not_counted(self, fake_clock):
        controller = make_controller(fake_clock)
        for _ in range(10):
            controller.admit(CLIENT, "GET", "/api/products/")

        usage = controller.status(CLIENT)["current_usage"]

        assert usage["requests_this_minute"] == 3
        assert usage["requests_this_hour"] == 3

    def test_disabled_admits_everything(self, fake_clock):
        controller = make_controller(fake_clock, per_minute=1, enabled=False)

        assert all(controller.admit(CLIENT, "GET", "/").allowed for _ in range(5))
        assert controller.status(CLIENT) == {"enabled": False, "message": "Rate limiting disabled"}
        assert len(controller) == 0


class TestOperationLimits:
    """Stricter limits for expensive endpoints."""

    def test_operation_limit_applies_on_top(self, fake_clock):
        controller = make_controller(
            fake_clock,
            per_minute=10,
            operations={"POST /api/products/intelligence": RateLimit(per_minute=1, per_hour=10)},
        )

        assert controller.admit(CLIENT, "POST", INTELLIGENCE).allowed
        rejected = controller.admit(CLIENT, "POST", INTELLIGENCE)

        assert not rejected.allowed
        assert rejected.limit_type == "operation_per_minute"
        assert controller.admit(CLIENT, "GET", "/api/products/").allowed
        assert controller.status(CLIENT)["current_usage"]["requests_this_minute"] == 2

    def test_operation_limit_is_per_client(self, fake_clock):
        controller = make_controller(
            fake_clock,
            operations={"POST /api/products/intelligence": RateLimit(per_minute=1, per_hour=10)},
        )

        assert controller.admit(CLIENT, "POST", INTELLIGENCE).allowed
        assert controller.admit(OTHER_CLIENT, "POST", INTELLIGENCE).allowed

    def test_default_operation_limits(self, fake_clock):
        controller = AdmissionController(clock=fake_clock)

        for _ in range(2):
            assert controller.admit(CLIENT, "POST", "/api/admin/bulk-process/").allowed

        assert not controller.admit(CLIENT, "POST", "/api/admin/bulk-process/").allowed
        assert controller.admit(CLIENT, "GET", "/api/admin/bulk-process/").allowed

    def test_check_raises_rate_limited(self, fake_clock):
        controller = make_controller(
            fake_clock,
            operations={"POST /api/products/intelligence": RateLimit(per_minute=1, per_hour=10)},
        )
        controller.check(CLIENT, "POST", INTELLIGENCE)

        with pytest.raises(RateLimitedError) as exc_info:
            controller.check(CLIENT, "POST", INTELLIGENCE)

        error = exc_info.value
        assert error.identifier == CLIENT
        assert error.limit == 1
        assert error.window_seconds == 60
        assert error.retry_after == 30
        assert error.limit_type == "operation_per_minute"

    def test_longest_wait_wins_across_scopes(self, fake_clock):
        controller = make_controller(
            fake_clock,
            per_minute=100,
            per_hour=1,
            operations={"POST /api/products/intelligence": RateLimit(per_minute=1, per_hour=10)},
        )
        controller.check(CLIENT, "POST", INTELLIGENCE)

        with pytest.raises(RateLimitedError) as exc_info:
            controller.check(CLIENT, "POST", INTELLIGENCE)

        error = exc_info.value
        assert error.limit_type == "client_per_hour"
        assert error.limit == 1
        assert error.window_seconds == 3600
        assert error.retry_after == 3600 - 810


class TestPaths:
    """Operation keys."""

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/api/products/12/status/", "/api/products/{id}/status"),
            ("/api/products/12", "/api/products/{id}"),
            ("/api/products/?status=failed", "/api/products"),
            ("/api/products/v2/", "/api/products/v2"),
            ("", "/"),
        ],
    )
    def test_normalize_path(self, path, expected):
        assert normalize_path(path) == expected

    def test_operation_key(self):
        assert operation_key("post", "/api/products/intelligence/") == "POST /api/products/intelligence"


class TestCleanup:
    """Sweeping stale buckets and resetting clients."""

    def test_sweep_drops_stale_minute_buckets(self, fake_clock):
        controller = make_controller(fake_clock)
        controller.admit(CLIENT, "GET", "/api/products/")

        fake_clock.advance(60)
        assert controller.sweep() == 0

        fake_clock.advance(30)
        assert controller.sweep() == 1
        assert len(controller) == 1

    def test_sweep_retires_empty_scopes(self, fake_clock):
        controller = make_controller(fake_clock)
        controller.admit(CLIENT, "GET", "/api/products/")

        fake_clock.advance(3 * 3600)

        assert controller.sweep() == 2
        assert len(controller) == 0

    def test_scope_recreated_after_retirement(self, fake_clock):
        controller = make_controller(fake_clock)
        controller.admit(CLIENT, "GET", "/api/products/")
        fake_clock.advance(3 * 3600)
        controller.sweep()

        assert controller.admit(CLIENT, "GET", "/api/products/").allowed
        assert controller.status(CLIENT)["current_usage"]["requests_this_minute"] == 1

    def test_admit_sweeps_on_new_minute(self, fake_clock):
        controller = make_controller(fake_clock)
        controller.admit(CLIENT, "GET", "/api/products/")

        fake_clock.advance(3 * 3600)
        controller.admit(OTHER_CLIENT, "GET", "/api/products/")

        assert controller.statistics()["active_clients"] == 1

    def test_reset_client(self, fake_clock):
        controller = make_controller(
            fake_clock,
            operations={"POST /api/products/intelligence": RateLimit(per_minute=1, per_hour=10)},
        )
        controller.admit(CLIENT, "POST", INTELLIGENCE)
        controller.admit(OTHER_CLIENT, "GET", "/api/products/")

        assert controller.reset(CLIENT) == 2
        assert controller.admit(CLIENT, "POST", INTELLIGENCE).allowed
        assert len(controller) == 3


class TestReporting:
    """status() and statistics()."""

    def test_status(self, fake_clock):
        controller = make_controller(fake_clock)
        controller.admit(CLIENT, "GET", "/api/products/")

        status = controller.status(CLIENT)

        assert status["enabled"] is True
        assert status["client_ip"] == CLIENT
        assert status["limits"] == {"requests_per_minute": 3, "requests_per_hour": 1000}
        assert status["remaining"] == {"requests_this_minute": 2, "requests_this_hour": 999}
        assert status["reset_times"]["minute_resets_at"] == 1_700_000_040
        assert status["reset_times"]["hour_resets_at"] == 1_700_002_800

    def test_status_for_unknown_client(self, fake_clock):
        controller = make_controller(fake_clock)

        assert controller.status(CLIENT)["current_usage"]["requests_this_minute"] == 0

    def test_statistics(self, fake_clock):
        controller = make_controller(fake_clock, per_minute=10)
        for _ in range(3):
            controller.admit(CLIENT, "GET", "/api/products/")
        controller.admit(OTHER_CLIENT, "GET", "/api/products/")

        stats = controller.statistics()

        assert stats["enabled"] is True
        assert stats["tracked_scopes"] == 2
        assert stats["total_tracked_keys"] == 4
        assert stats["active_clients"] == 2
        assert list(stats["top_clients"].items()) == [(CLIENT, 3), (OTHER_CLIENT, 1)]


class TestConcurrentAdmission:
    """Counting stays exact under contention."""

    def test_parallel_requests_never_exceed_limit(self, fake_clock):
        controller = make_controller(fake_clock, per_minute=50)
        admitted = []
        lock = threading.Lock()

        def worker():
            for _ in range(20):
                decision = controller.admit(CLIENT, "GET", "/api/products/")
                if decision.allowed:
                    with lock:
                        admitted.append(decision)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert len(admitted) == 50


class TestClientKey:
    """Client identity from request metadata."""

    def test_forwarded_for_public_address(self):
        meta = {"HTTP_X_FORWARDED_FOR": "93.184.216.34, 10.0.0.1", "REMOTE_ADDR": "10.0.0.2"}

        assert resolve_client_key(meta) == "93.184.216.34"

    def test_private_proxy_address_ignored(self):
        meta = {"HTTP_X_FORWARDED_FOR": "10.0.0.1", "REMOTE_ADDR": "10.0.0.2"}

        assert resolve_client_key(meta) == "10.0.0.2"

    def test_header_priority(self):
        meta = {
            "HTTP_CF_CONNECTING_IP": "8.8.8.8",
            "HTTP_X_FORWARDED_FOR": "93.184.216.34",
        }

        assert resolve_client_key(meta) == "8.8.8.8"

    def test_forwarded_header(self):
        meta = {"HTTP_FORWARDED": "for=93.184.216.34;proto=https"}

        assert resolve_client_key(meta) == "93.184.216.34"

    def test_garbage_header_falls_back(self):
        assert resolve_client_key({"HTTP_X_FORWARDED_FOR": "unknown"}) == "127.0.0.1"


class TestBuildFromSettings:
    """CATALOG_RATE_LIMITS wiring."""

    def test_build_from_settings(self, settings):
        settings.CATALOG_RATE_LIMITS = {
            "enabled": True,
            "requests_per_minute": 5,
            "requests_per_hour": 50,
            "operations": {"POST /api/admin/maintenance": {"minute": 1, "hour": 2}},
        }

        controller = build_admission_controller()

        assert controller.default_limit == RateLimit(5, 50)
        assert controller.operation_limits == {
            "POST /api/admin/maintenance": RateLimit(per_minute=1, per_hour=2)
        }

    def test_build_disabled(self, settings):
        settings.CATALOG_RATE_LIMITS = {"enabled": False}

        controller = build_admission_controller()

        assert not controller.enabled
        assert controller.operation_limits["POST /api/products/intelligence"] == RateLimit(10, 100)


class TestAdmissionThrottle:
    """DRF throttle over the controller."""

    def test_rejection_sets_wait(self, fake_clock):
        controller = make_controller(fake_clock, per_minute=1)
        throttle = AdmissionThrottle()
        request = RequestFactory().get("/api/products/", REMOTE_ADDR=CLIENT)

        with patch("catalog.api.throttling.get_admission_controller", return_value=controller):
            assert throttle.allow_request(request, None)
            assert throttle.wait() is None
            assert not throttle.allow_request(request, None)

        assert throttle.wait() == 30
        assert throttle.error.limit_type == "client_per_minute"
        assert throttle.error.identifier == CLIENT

"""
Admission control for the catalog API.

Fixed-window request counting per client, with stricter per-operation limits
layered on top for expensive endpoints:

    client scope:     ("client", ip)
    operation scope:  ("operation", "POST /api/products/intelligence", ip)

Each scope keeps counters keyed by (window_seconds, bucket) where bucket is
floor(now / window_seconds). A request is checked against every counter that
applies to it and only counted when it is admitted, so rejected requests never
consume quota.

Every scope has its own lock. A request takes its client scope lock, then its
operation scope lock, checks all counters and increments them in one step.
Unrelated clients never contend.

Usage:
    controller = AdmissionController(requests_per_minute=60, requests_per_hour=1000)
    decision = controller.admit("203.0.113.7", "POST", "/api/products/intelligence/")
    if not decision.allowed:
        ...  # respond 429 with Retry-After: decision.retry_after_seconds
"""

import ipaddress
import logging
import math
import re
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from catalog.exceptions import RateLimitedError

logger = logging.getLogger(__name__)


MINUTE = 60
HOUR = 3600
WINDOWS = (MINUTE, HOUR)

# Buckets this many windows behind the current one are dropped by sweep().
STALE_WINDOWS = 2

DEFAULT_REQUESTS_PER_MINUTE = 60
DEFAULT_REQUESTS_PER_HOUR = 1000

# Proxy headers checked in order before REMOTE_ADDR.
CLIENT_IP_HEADERS = (
    "HTTP_CF_CONNECTING_IP",
    "HTTP_CLIENT_IP",
    "HTTP_X_FORWARDED_FOR",
    "HTTP_X_FORWARDED",
    "HTTP_X_CLUSTER_CLIENT_IP",
    "HTTP_FORWARDED_FOR",
    "HTTP_FORWARDED",
)
FALLBACK_CLIENT_KEY = "127.0.0.1"

NUMERIC_SEGMENT = re.compile(r"/\d+(?=/|$)")

ScopeKey = Tuple[str, ...]


@dataclass(frozen=True)
class RateLimit:
    """Requests allowed per minute and per hour."""

    per_minute: int
    per_hour: int

    def for_window(self, window: int) -> int:
        return self.per_minute if window == MINUTE else self.per_hour


DEFAULT_OPERATION_LIMITS: Dict[str, RateLimit] = {
    "POST /api/products/intelligence": RateLimit(per_minute=10, per_hour=100),
    "POST /api/admin/bulk-process": RateLimit(per_minute=2, per_hour=20),
}


@dataclass
class AdmissionDecision:
    """Result of an admission check."""

    allowed: bool
    retry_after_seconds: Optional[int] = None
    limit_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "retry_after_seconds": self.retry_after_seconds,
            "limit_type": self.limit_type,
        }


class _Scope:
    """Counters for one client or one (operation, client) pair."""

    __slots__ = ("lock", "counts", "retired")

    def __init__(self):
        self.lock = threading.Lock()
        self.counts: Dict[Tuple[int, int], int] = {}
        self.retired = False

    def count(self, window: int, now: float) -> int:
        return self.counts.get((window, int(now // window)), 0)


def normalize_path(path: str) -> str:
    """Collapse numeric path segments to {id} and drop trailing slashes."""
    path = (path or "/").split("?", 1)[0]
    path = NUMERIC_SEGMENT.sub("/{id}", path)
    return path.rstrip("/") or "/"


def operation_key(method: str, path: str) -> str:
    return f"{(method or 'GET').upper()} {normalize_path(path)}"


def _public_ip(value: str) -> Optional[str]:
    """First address in a header value, if it is a public IP."""
    candidate = value.split(",")[0].strip()
    if candidate.lower().startswith("for="):
        candidate = candidate[4:].split(";")[0].strip('"[] ')
    try:
        address = ipaddress.ip_address(candidate)
    except ValueError:
        return None
    if not address.is_global:
        return None
    return str(address)


def resolve_client_key(meta: Mapping[str, str]) -> str:
    """
    Client identity from request metadata.

    Proxy headers are checked in priority order and only public addresses are
    accepted from them; otherwise the direct connection address is used.

    Args:
        meta: WSGI environ style mapping, e.g. ``request.META``.
    """
    for header in CLIENT_IP_HEADERS:
        value = meta.get(header)
        if not value:
            continue
        address = _public_ip(value)
        if address:
            return address
    return meta.get("REMOTE_ADDR") or FALLBACK_CLIENT_KEY


class AdmissionController:
    """
    Fixed-window rate limiter with per-client and per-operation limits.

    Args:
        requests_per_minute: Client-wide minute limit.
        requests_per_hour: Client-wide hour limit.
        operation_limits: Extra limits keyed by "METHOD /normalized/path".
        enabled: Master switch; a disabled controller admits everything.
        clock: Returns unix time in seconds.
    """

    def __init__(
        self,
        requests_per_minute: int = DEFAULT_REQUESTS_PER_MINUTE,
        requests_per_hour: int = DEFAULT_REQUESTS_PER_HOUR,
        operation_limits: Optional[Mapping[str, RateLimit]] = None,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.default_limit = RateLimit(requests_per_minute, requests_per_hour)
        if operation_limits is None:
            operation_limits = DEFAULT_OPERATION_LIMITS
        self.operation_limits = {
            operation_key(*key.split(" ", 1)): limit for key, limit in operation_limits.items()
        }
        self.enabled = enabled
        self.clock = clock

        self._scopes: Dict[ScopeKey, _Scope] = {}
        self._registry_lock = threading.Lock()
        self._last_sweep_bucket: Optional[int] = None

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def admit(self, client_key: str, method: str, path: str) -> AdmissionDecision:
        """
        Check and count one request.

        Returns:
            AdmissionDecision; when rejected, retry_after_seconds is the time
            left in the exceeded window.
        """
        if not self.enabled:
            return AdmissionDecision(allowed=True)

        now = self.clock()
        self._maybe_sweep(now)

        operation = operation_key(method, path)
        checks: List[Tuple[ScopeKey, RateLimit, str]] = [
            (("client", client_key), self.default_limit, "client"),
        ]
        override = self.operation_limits.get(operation)
        if override is not None:
            checks.append((("operation", operation, client_key), override, "operation"))

        with self._hold_scopes([key for key, _, _ in checks]) as scopes:
            # The request is admitted again only once every exceeded window has reset.
            rejection: Optional[AdmissionDecision] = None
            for scope, (_, limit, kind) in zip(scopes, checks):
                for window in WINDOWS:
                    cap = limit.for_window(window)
                    if scope.count(window, now) < cap:
                        continue

                    retry_after = max(1, math.ceil(window - (now % window)))
                    window_name = "minute" if window == MINUTE else "hour"
                    logger.warning(
                        f"Rate limit exceeded for {client_key} on {operation}: "
                        f"{kind} limit {cap}/{window_name}, retry in {retry_after}s"
                    )
                    if rejection is None or retry_after > rejection.retry_after_seconds:
                        rejection = AdmissionDecision(
                            allowed=False,
                            retry_after_seconds=retry_after,
                            limit_type=f"{kind}_per_{window_name}",
                        )

            if rejection is not None:
                return rejection

            for scope in scopes:
                for window in WINDOWS:
                    bucket = (window, int(now // window))
                    scope.counts[bucket] = scope.counts.get(bucket, 0) + 1

        return AdmissionDecision(allowed=True)

    def check(self, client_key: str, method: str, path: str) -> None:
        """
        Admit a request or raise.

        Raises:
            RateLimitedError: If any applicable limit is exhausted.
        """
        decision = self.admit(client_key, method, path)
        if decision.allowed:
            return

        window = HOUR if decision.limit_type.endswith("hour") else MINUTE
        if decision.limit_type.startswith("operation"):
            limit = self.operation_limits[operation_key(method, path)]
        else:
            limit = self.default_limit
        raise RateLimitedError(
            identifier=client_key,
            limit=limit.for_window(window),
            window_seconds=window,
            retry_after=decision.retry_after_seconds,
            limit_type=decision.limit_type,
        )

    @contextmanager
    def _hold_scopes(self, keys: List[ScopeKey]) -> Iterator[List[_Scope]]:
        """Lock the scopes for keys in order, skipping scopes retired by sweep()."""
        while True:
            scopes = [self._get_scope(key) for key in keys]
            for scope in scopes:
                scope.lock.acquire()
            if not any(scope.retired for scope in scopes):
                break
            for scope in reversed(scopes):
                scope.lock.release()

        try:
            yield scopes
        finally:
            for scope in reversed(scopes):
                scope.lock.release()

    def _get_scope(self, key: ScopeKey) -> _Scope:
        with self._registry_lock:
            scope = self._scopes.get(key)
            if scope is None:
                scope = _Scope()
                self._scopes[key] = scope
            return scope

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def _maybe_sweep(self, now: float) -> None:
        bucket = int(now // MINUTE)
        with self._registry_lock:
            if bucket == self._last_sweep_bucket:
                return
            self._last_sweep_bucket = bucket
        self.sweep(now)

    def sweep(self, now: Optional[float] = None) -> int:
        """
        Drop stale buckets and retire scopes left without counters.

        Returns:
            Number of buckets removed.
        """
        if now is None:
            now = self.clock()

        with self._registry_lock:
            items = list(self._scopes.items())

        removed = 0
        for key, scope in items:
            with scope.lock:
                for window, bucket in list(scope.counts):
                    if int(now // window) - bucket >= STALE_WINDOWS:
                        del scope.counts[(window, bucket)]
                        removed += 1
                if scope.counts:
                    continue
                scope.retired = True
                with self._registry_lock:
                    if self._scopes.get(key) is scope:
                        del self._scopes[key]

        if removed:
            logger.debug(f"Swept {removed} stale rate limit buckets")
        return removed

    def reset(self, client_key: str) -> int:
        """
        Clear every counter held for a client.

        Returns:
            Number of scopes removed.
        """
        with self._registry_lock:
            keys = [key for key in self._scopes if key[-1] == client_key]
            scopes = [self._scopes.pop(key) for key in keys]

        for scope in scopes:
            with scope.lock:
                scope.retired = True
                scope.counts.clear()

        logger.info(f"Rate limits reset for client {client_key}")
        return len(scopes)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def status(self, client_key: str) -> Dict[str, Any]:
        """Client-wide usage, remaining quota and window reset times."""
        if not self.enabled:
            return {"enabled": False, "message": "Rate limiting disabled"}

        now = self.clock()
        with self._registry_lock:
            scope = self._scopes.get(("client", client_key))

        minute_count = hour_count = 0
        if scope is not None:
            with scope.lock:
                minute_count = scope.count(MINUTE, now)
                hour_count = scope.count(HOUR, now)

        limit = self.default_limit
        return {
            "enabled": True,
            "client_ip": client_key,
            "limits": {
                "requests_per_minute": limit.per_minute,
                "requests_per_hour": limit.per_hour,
            },
            "current_usage": {
                "requests_this_minute": minute_count,
                "requests_this_hour": hour_count,
            },
            "remaining": {
                "requests_this_minute": max(0, limit.per_minute - minute_count),
                "requests_this_hour": max(0, limit.per_hour - hour_count),
            },
            "reset_times": {
                "minute_resets_at": (int(now // MINUTE) + 1) * MINUTE,
                "hour_resets_at": (int(now // HOUR) + 1) * HOUR,
            },
        }

    def statistics(self) -> Dict[str, Any]:
        """Tracked scopes and the busiest clients in the current hour."""
        now = self.clock()
        with self._registry_lock:
            items = list(self._scopes.items())

        tracked_buckets = 0
        client_counts: Dict[str, int] = {}
        for key, scope in items:
            with scope.lock:
                tracked_buckets += len(scope.counts)
                if key[0] == "client":
                    client_counts[key[1]] = scope.count(HOUR, now)

        top_clients = sorted(client_counts.items(), key=lambda item: -item[1])[:10]
        return {
            "enabled": self.enabled,
            "tracked_scopes": len(items),
            "total_tracked_keys": tracked_buckets,
            "active_clients": len(client_counts),
            "top_clients": dict(top_clients),
        }

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._scopes)


def build_admission_controller() -> AdmissionController:
    """
    Create a controller from the CATALOG_RATE_LIMITS setting.

    Expected shape:
        {
            "enabled": True,
            "requests_per_minute": 60,
            "requests_per_hour": 1000,
            "operations": {"POST /api/products/intelligence": {"minute": 10, "hour": 100}},
        }
    """
    from django.conf import settings

    config = getattr(settings, "CATALOG_RATE_LIMITS", {}) or {}
    operations = config.get("operations")
    operation_limits = None
    if operations is not None:
        operation_limits = {
            key: RateLimit(per_minute=int(value["minute"]), per_hour=int(value["hour"]))
            for key, value in operations.items()
        }

    return AdmissionController(
        requests_per_minute=int(config.get("requests_per_minute", DEFAULT_REQUESTS_PER_MINUTE)),
        requests_per_hour=int(config.get("requests_per_hour", DEFAULT_REQUESTS_PER_HOUR)),
        operation_limits=operation_limits,
        enabled=bool(config.get("enabled", True)),
    )


# Singleton instance
_admission_controller: Optional[AdmissionController] = None


def get_admission_controller() -> AdmissionController:
    """Get singleton AdmissionController instance."""
    global _admission_controller
    if _admission_controller is None:
        _admission_controller = build_admission_controller()
    return _admission_controller


def reset_admission_controller() -> None:
    """Reset singleton for testing."""
    global _admission_controller
    _admission_controller = None

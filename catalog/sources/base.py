"""
External source capabilities used by the enrichment stages.

Every source call goes through call_source(), which bounds the call with a
timeout and turns the outcome into a SourceResult:

- SourceResult.hit(value)   the source returned data
- SourceResult.miss()       the source had nothing for this product
- SourceResult.error(why)   timeout, transport error or unexpected exception

Stages pattern-match on the result; an error is always a no-op for the stage.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, Generic, List, Optional, Protocol, TypeVar

from catalog.exceptions import SourceUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

HIT = "hit"
MISS = "miss"
ERROR = "error"


@dataclass(frozen=True)
class SourceResult(Generic[T]):
    """Tagged outcome of one external source call."""

    kind: str
    value: Optional[T] = None
    reason: str = ""

    @classmethod
    def hit(cls, value: T) -> "SourceResult[T]":
        return cls(kind=HIT, value=value)

    @classmethod
    def miss(cls) -> "SourceResult[T]":
        return cls(kind=MISS)

    @classmethod
    def error(cls, reason: str) -> "SourceResult[T]":
        return cls(kind=ERROR, reason=reason)

    @property
    def is_hit(self) -> bool:
        return self.kind == HIT


@dataclass
class ManufacturerData:
    """Product data returned by a manufacturer lookup."""

    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    specifications: Dict[str, str] = field(default_factory=dict)
    images: List[str] = field(default_factory=list)
    source_url: Optional[str] = None


@dataclass(frozen=True)
class ImageCandidate:
    """A candidate product image and the kind of site it came from."""

    url: str
    source_tag: str


@dataclass
class ContentContext:
    """Inputs for content generation."""

    name: str
    brand: str
    category: str
    model_number: str = ""
    keywords: List[str] = field(default_factory=list)
    specifications: Dict[str, str] = field(default_factory=dict)


@dataclass
class ContentDraft:
    """Raw text produced by a content generator, before optimization."""

    brief: str
    description: str
    seo_title: str
    meta_description: str
    model_used: str = "unknown"
    input_tokens: int = 0
    output_tokens: int = 0


class ManufacturerSource(Protocol):
    def lookup(self, model_number: str, brand: Optional[str] = None) -> Optional[ManufacturerData]:
        ...


class ImageSource(Protocol):
    def discover(
        self, name: str, brand: str, model_number: str, max_images: int
    ) -> List[ImageCandidate]:
        ...


class ContentGenerator(Protocol):
    def generate(self, context: ContentContext) -> ContentDraft:
        ...


# Pools are keyed by source name; an abandoned call only occupies its own
# source's workers.
SOURCE_POOL_WORKERS = 4

_executors: Dict[str, ThreadPoolExecutor] = {}
_executors_lock = threading.Lock()


def _get_executor(source_name: str) -> ThreadPoolExecutor:
    with _executors_lock:
        executor = _executors.get(source_name)
        if executor is None:
            executor = ThreadPoolExecutor(
                max_workers=SOURCE_POOL_WORKERS,
                thread_name_prefix=f"catalog-source-{source_name}",
            )
            _executors[source_name] = executor
        return executor


def call_source(
    source_name: str,
    func: Callable[..., Any],
    *args,
    timeout: float = 10.0,
    **kwargs,
) -> SourceResult:
    """
    Call an external source with a timeout.

    A falsy return value is a miss. A timeout or any exception raised by the
    source is an error; the call that timed out is abandoned, not interrupted.

    Args:
        source_name: Name used in logs and error reasons.
        func: Source method to call.
        timeout: Seconds to wait for the call.

    Returns:
        SourceResult describing the outcome.
    """
    future = _get_executor(source_name).submit(func, *args, **kwargs)
    try:
        value = future.result(timeout=timeout)
    except FutureTimeoutError:
        future.cancel()
        logger.warning(f"{source_name} timed out after {timeout}s")
        return SourceResult.error(f"timeout after {timeout}s")
    except SourceUnavailable as e:
        logger.warning(f"{source_name} unavailable: {e.reason}")
        return SourceResult.error(e.reason)
    except Exception as e:
        logger.warning(f"{source_name} failed: {e}")
        return SourceResult.error(str(e) or e.__class__.__name__)

    if not value:
        return SourceResult.miss()
    return SourceResult.hit(value)

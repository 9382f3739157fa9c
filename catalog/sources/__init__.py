"""
External data sources for the enrichment stages.

Contains:
- base: capability protocols, SourceResult and call_source()
- static: deterministic catalog fixtures (default wiring)
- http: catalog API clients built on httpx
"""

from catalog.sources.base import (
    ContentContext,
    ContentDraft,
    ContentGenerator,
    ImageCandidate,
    ImageSource,
    ManufacturerData,
    ManufacturerSource,
    SourceResult,
    call_source,
)
from catalog.sources.http import HttpImageSource, HttpManufacturerSource
from catalog.sources.static import StaticImageSource, StaticManufacturerSource

__all__ = [
    "ContentContext",
    "ContentDraft",
    "ContentGenerator",
    "ImageCandidate",
    "ImageSource",
    "ManufacturerData",
    "ManufacturerSource",
    "SourceResult",
    "call_source",
    "HttpImageSource",
    "HttpManufacturerSource",
    "StaticImageSource",
    "StaticManufacturerSource",
]

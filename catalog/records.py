"""
Domain records for the enrichment pipeline.

ProductRecord is the unit of work passed through the pipeline. It is a plain
dataclass so stages and the orchestrator can run against any Storage
implementation; the Django model in catalog.models mirrors it for the
database-backed storage.

ProductInput is the sparse caller input. RecordUpdate is the partial update a
stage returns; only the merge step in catalog.services.merge applies it.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from django.db import models
from django.utils import timezone


BRIEF_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 200
SEO_TITLE_MAX_LENGTH = 60
META_DESCRIPTION_MAX_LENGTH = 160

# Matches Product.price (DecimalField(max_digits=10, decimal_places=2)).
PRICE_MAX_DIGITS = 10
PRICE_DECIMAL_PLACES = 2

# Scalar content fields protected by fill-don't-replace.
SCALAR_FIELDS = (
    "model_number",
    "name",
    "brand",
    "category",
    "brief",
    "description",
    "seo_title",
    "meta_description",
    "price",
)

# Fields used for completion tracking.
TRACKED_FIELDS = (
    "name",
    "brief",
    "description",
    "seo_keywords",
    "seo_title",
    "meta_description",
    "gallery_images",
    "image_alt_texts",
)


class EnrichmentStatus(models.TextChoices):
    """Lifecycle of a product record."""

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


def is_blank(value: Any) -> bool:
    """Return True if a field value counts as empty for merging."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict, tuple, set)):
        return len(value) == 0
    return False


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _clean_price(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def price_fits(price: Decimal) -> bool:
    """Return True if a price is non-negative and fits the stored precision."""
    if not price.is_finite() or price < 0:
        return False
    if price >= Decimal(10) ** (PRICE_MAX_DIGITS - PRICE_DECIMAL_PLACES):
        return False
    return price.normalize().as_tuple().exponent >= -PRICE_DECIMAL_PLACES


def _unique(values) -> List[str]:
    seen = set()
    result = []
    for value in values or []:
        if value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


@dataclass
class ProductInput:
    """Sparse caller input for a Process call."""

    name: Optional[str] = None
    model_number: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    brief: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    seo_keywords: List[str] = field(default_factory=list)
    seo_focus_keywords: List[str] = field(default_factory=list)
    specifications: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductInput":
        """Build input from an already validated request payload."""
        specs = data.get("specifications") or {}
        return cls(
            name=_clean_str(data.get("name")),
            model_number=_clean_str(data.get("model_number")),
            brand=_clean_str(data.get("brand")),
            category=_clean_str(data.get("category")),
            brief=_clean_str(data.get("brief")),
            description=_clean_str(data.get("description")),
            price=_clean_price(data.get("price")),
            seo_keywords=_unique(
                kw.strip() for kw in data.get("seo_keywords") or [] if str(kw).strip()
            ),
            seo_focus_keywords=_unique(
                kw.strip() for kw in data.get("seo_focus_keywords") or [] if str(kw).strip()
            ),
            specifications={str(k): str(v) for k, v in specs.items()},
        )

    @classmethod
    def from_record(cls, record: "ProductRecord") -> "ProductInput":
        """Build input that re-enters the pipeline for an existing record."""
        return cls(
            name=record.name or None,
            model_number=record.model_number or None,
            brand=record.brand or None,
            category=record.category or None,
            seo_keywords=list(record.seo_keywords),
        )

    def has_identity(self) -> bool:
        return bool(self.name or self.model_number)


@dataclass
class RecordUpdate:
    """
    Partial update returned by a stage.

    None scalars and empty collections mean "no data" for that field.
    seo_keywords, when not None, replaces the record's keywords wholesale.
    image_alt_texts extends the record's alt texts in gallery order.
    ai_metadata entries are appended under their stage key.
    """

    model_number: Optional[str] = None
    name: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    brief: Optional[str] = None
    description: Optional[str] = None
    seo_title: Optional[str] = None
    meta_description: Optional[str] = None
    price: Optional[Decimal] = None
    seo_keywords: Optional[List[str]] = None
    gallery_images: List[str] = field(default_factory=list)
    image_alt_texts: List[str] = field(default_factory=list)
    specifications: Dict[str, str] = field(default_factory=dict)
    source_urls: List[str] = field(default_factory=list)
    ai_metadata: Dict[str, Any] = field(default_factory=dict)

    def is_empty(self) -> bool:
        if any(getattr(self, name) is not None for name in SCALAR_FIELDS):
            return False
        if self.seo_keywords is not None:
            return False
        return not (
            self.gallery_images
            or self.image_alt_texts
            or self.specifications
            or self.source_urls
            or self.ai_metadata
        )


@dataclass
class ProductRecord:
    """A product record as seen by the enrichment pipeline."""

    id: Optional[int] = None
    model_number: Optional[str] = None
    name: str = ""
    brand: str = ""
    category: str = ""
    brief: str = ""
    description: str = ""
    seo_title: str = ""
    meta_description: str = ""
    price: Optional[Decimal] = None
    seo_keywords: List[str] = field(default_factory=list)
    gallery_images: List[str] = field(default_factory=list)
    image_alt_texts: List[str] = field(default_factory=list)
    specifications: Dict[str, str] = field(default_factory=dict)
    source_urls: List[str] = field(default_factory=list)
    ai_metadata: Dict[str, Any] = field(default_factory=dict)
    enrichment_status: str = EnrichmentStatus.PENDING
    created_at: datetime = field(default_factory=timezone.now)
    updated_at: datetime = field(default_factory=timezone.now)

    @property
    def lock_key(self) -> Optional[str]:
        """Key used to serialize pipeline runs for this record."""
        if self.model_number:
            return f"model:{self.model_number}"
        if self.id is not None:
            return f"id:{self.id}"
        return None

    def snapshot(self) -> "ProductRecord":
        """Deep copy handed to stages so they cannot mutate the record."""
        return copy.deepcopy(self)

    def touch(self) -> None:
        self.updated_at = timezone.now()

    def completed_fields(self) -> List[str]:
        return [name for name in TRACKED_FIELDS if not is_blank(getattr(self, name))]

    def missing_fields(self) -> List[str]:
        return [name for name in TRACKED_FIELDS if is_blank(getattr(self, name))]

    def completion_percentage(self) -> float:
        return round(len(self.completed_fields()) / len(TRACKED_FIELDS) * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "model_number": self.model_number,
            "name": self.name,
            "brand": self.brand,
            "category": self.category,
            "brief": self.brief,
            "description": self.description,
            "seo_title": self.seo_title,
            "meta_description": self.meta_description,
            "price": str(self.price) if self.price is not None else None,
            "seo_keywords": list(self.seo_keywords),
            "gallery_images": list(self.gallery_images),
            "image_alt_texts": list(self.image_alt_texts),
            "specifications": dict(self.specifications),
            "source_urls": list(self.source_urls),
            "ai_metadata": copy.deepcopy(self.ai_metadata),
            "enrichment_status": str(self.enrichment_status),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def seo_data(self) -> Dict[str, Any]:
        """SEO-facing view of the record."""
        images = []
        for index, url in enumerate(self.gallery_images):
            alt = self.image_alt_texts[index] if index < len(self.image_alt_texts) else ""
            images.append({"url": url, "alt": alt})

        return {
            "title": self.seo_title or self.name,
            "meta_description": self.meta_description,
            "keywords": ", ".join(self.seo_keywords),
            "keyword_list": list(self.seo_keywords),
            "images": images,
        }

    def structured_data(self) -> Dict[str, Any]:
        """schema.org Product JSON-LD for the record."""
        data: Dict[str, Any] = {
            "@context": "https://schema.org",
            "@type": "Product",
            "name": self.name,
            "description": self.description or self.brief,
        }
        if self.brand:
            data["brand"] = {"@type": "Brand", "name": self.brand}
        if self.model_number:
            data["mpn"] = self.model_number
            data["sku"] = self.model_number
        if self.category:
            data["category"] = self.category
        if self.gallery_images:
            data["image"] = list(self.gallery_images)
        if self.specifications:
            data["additionalProperty"] = [
                {"@type": "PropertyValue", "name": key, "value": value}
                for key, value in self.specifications.items()
            ]
        if self.price is not None:
            data["offers"] = {
                "@type": "Offer",
                "price": str(self.price),
                "priceCurrency": "USD",
                "availability": "https://schema.org/InStock",
            }
        return data

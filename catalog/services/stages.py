"""
Enrichment stages.

Each stage is a pure function of (record snapshot, context) returning a
RecordUpdate, or None when the stage does not apply to the record. Stages
never mutate the record and never persist anything; the orchestrator merges
and saves after each stage.

External calls go through call_source(), so a slow or failing source only
turns the stage into a no-op.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from django.utils import timezone

from catalog.exceptions import SourceUnavailable
from catalog.records import (
    DESCRIPTION_MAX_LENGTH,
    ProductInput,
    ProductRecord,
    RecordUpdate,
    is_blank,
)
from catalog.services.content import (
    FALLBACK_MODEL,
    FIELD_LIMITS,
    fallback_content,
    optimize_draft,
    truncate,
)
from catalog.services.keyword_ranker import KeywordRanker
from catalog.services.media import DEFAULT_MAX_IMAGES, generate_alt_texts, select_images
from catalog.sources.base import (
    ERROR,
    ContentContext,
    ContentGenerator,
    ImageSource,
    ManufacturerSource,
    call_source,
)

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_TIMEOUT = 10.0


@dataclass
class StageContext:
    """Per-run inputs shared by all stages."""

    product_input: ProductInput = field(default_factory=ProductInput)

    @property
    def focus_keywords(self) -> List[str]:
        return list(self.product_input.seo_focus_keywords)


def _now() -> str:
    return timezone.now().isoformat()


def _urn_part(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (text or "unknown").lower()).strip("-") or "unknown"


class ManufacturerLookupStage:
    """Fills product facts from the manufacturer's catalog by model number."""

    name = "manufacturer"

    def __init__(self, source: ManufacturerSource, timeout: float = DEFAULT_SOURCE_TIMEOUT):
        self.source = source
        self.timeout = timeout

    def run(self, record: ProductRecord, context: StageContext) -> Optional[RecordUpdate]:
        if not record.model_number:
            return None

        result = call_source(
            "manufacturer source",
            self.source.lookup,
            record.model_number,
            record.brand or None,
            timeout=self.timeout,
        )
        if result.kind == ERROR:
            logger.warning(
                f"Manufacturer lookup failed for record {record.id} "
                f"(model {record.model_number}): {result.reason}"
            )
            return RecordUpdate()
        if not result.is_hit:
            logger.info(f"No manufacturer data for model {record.model_number}")
            return RecordUpdate()

        data = result.value
        source_url = data.source_url or (
            f"urn:manufacturer:{_urn_part(data.brand or record.brand)}:{record.model_number}"
        )
        description = truncate(data.description.strip(), DESCRIPTION_MAX_LENGTH) if data.description else None

        return RecordUpdate(
            name=data.name,
            brand=data.brand,
            category=data.category,
            description=description,
            price=data.price,
            specifications=dict(data.specifications),
            gallery_images=list(data.images),
            source_urls=[source_url],
            ai_metadata={
                self.name: {
                    "source_url": source_url,
                    "specifications": len(data.specifications),
                    "images": len(data.images),
                    "looked_up_at": _now(),
                }
            },
        )


class KeywordResearchStage:
    """Replaces seo_keywords with the ranked keyword list."""

    name = "keywords"

    def __init__(self, ranker: Optional[KeywordRanker] = None):
        self.ranker = ranker or KeywordRanker()

    def run(self, record: ProductRecord, context: StageContext) -> Optional[RecordUpdate]:
        name = record.name or record.model_number or ""
        if not (name or record.brand or record.category):
            return None

        seeds = list(record.seo_keywords) + context.focus_keywords
        ranked = self.ranker.research(name, record.brand, record.category, seeds)
        if not ranked:
            return RecordUpdate()

        return RecordUpdate(
            seo_keywords=[item.keyword for item in ranked],
            ai_metadata={
                self.name: {
                    "total_keywords": len(ranked),
                    "top_keywords": [item.to_dict() for item in ranked[:10]],
                    "generated_at": _now(),
                }
            },
        )


class ContentGenerationStage:
    """Writes brief, description, SEO title and meta description."""

    name = "content"

    def __init__(self, generator: ContentGenerator, timeout: float = DEFAULT_SOURCE_TIMEOUT):
        self.generator = generator
        self.timeout = timeout

    def run(self, record: ProductRecord, context: StageContext) -> Optional[RecordUpdate]:
        missing = [name for name in FIELD_LIMITS if is_blank(getattr(record, name))]
        if not missing:
            return None

        content_context = ContentContext(
            name=record.name or record.model_number or "",
            brand=record.brand,
            category=record.category,
            model_number=record.model_number or "",
            keywords=list(record.seo_keywords[:10]),
            specifications=dict(record.specifications),
        )

        metadata = {"generated_at": _now(), "fields": missing}
        try:
            result = call_source(
                "content generator",
                self.generator.generate,
                content_context,
                timeout=self.timeout,
            )
            if not result.is_hit:
                raise SourceUnavailable("content generator", result.reason or "no content returned")

            draft = result.value
            fields = optimize_draft(draft, content_context.keywords)
            metadata.update({
                "model": draft.model_used,
                "input_tokens": draft.input_tokens,
                "output_tokens": draft.output_tokens,
                "fallback": False,
            })
        except Exception as e:
            logger.warning(
                f"Content generation failed for record {record.id}, using fallback: {e}"
            )
            fields = fallback_content(record.name or record.model_number or "", record.brand, record.category)
            metadata.update({"model": FALLBACK_MODEL, "fallback": True, "reason": str(e)})

        return RecordUpdate(
            **{name: fields[name] for name in missing},
            ai_metadata={self.name: metadata},
        )


class MediaDiscoveryStage:
    """Finds gallery images for image-less records and labels every image."""

    name = "media"

    def __init__(
        self,
        source: ImageSource,
        max_images: int = DEFAULT_MAX_IMAGES,
        timeout: float = DEFAULT_SOURCE_TIMEOUT,
    ):
        self.source = source
        self.max_images = max_images
        self.timeout = timeout

    def run(self, record: ProductRecord, context: StageContext) -> Optional[RecordUpdate]:
        product_name = record.name or record.model_number or ""
        new_images: List[str] = []
        metadata = {}

        if not record.gallery_images:
            result = call_source(
                "image source",
                self.source.discover,
                product_name,
                record.brand,
                record.model_number or "",
                self.max_images,
                timeout=self.timeout,
            )
            if result.kind == ERROR:
                logger.warning(f"Image discovery failed for record {record.id}: {result.reason}")
            elif result.is_hit:
                selected = select_images(result.value, self.max_images)
                new_images = [image.url for image in selected]
                metadata = {
                    "candidates": len(result.value),
                    "accepted": len(new_images),
                    "images": [
                        {"url": image.url, "source": image.source_tag, "score": image.score}
                        for image in selected
                    ],
                    "discovered_at": _now(),
                }
        elif len(record.image_alt_texts) >= len(record.gallery_images):
            return None

        unlabeled = len(record.gallery_images) + len(new_images) - len(record.image_alt_texts)
        alt_texts = []
        if unlabeled > 0:
            alt_texts = generate_alt_texts(
                unlabeled,
                product_name,
                record.brand,
                existing=record.image_alt_texts,
                start_index=len(record.image_alt_texts),
            )

        update = RecordUpdate(gallery_images=new_images, image_alt_texts=alt_texts)
        if metadata:
            update.ai_metadata = {self.name: metadata}
        return update

"""
Merge policy for stage output.

apply_update() is the only place a ProductRecord is mutated during a pipeline
run. Rules:

- Scalars are fill-don't-replace: a field is written only while it is empty.
- specifications gain new keys; existing keys keep their values.
- gallery_images and source_urls are unioned in insertion order.
- image_alt_texts are appended in gallery order and never outnumber images.
- seo_keywords are replaced wholesale by a non-empty ranked list.
- ai_metadata entries are appended to a per-stage list.
"""

import logging
from typing import List

from catalog.exceptions import InvariantViolation
from catalog.records import SCALAR_FIELDS, ProductRecord, RecordUpdate, is_blank

logger = logging.getLogger(__name__)


def _dedupe(values: List[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


def apply_update(record: ProductRecord, update: RecordUpdate) -> List[str]:
    """
    Merge a stage's partial update into the record in place.

    Args:
        record: Record owned by the orchestrator.
        update: Partial update returned by a stage.

    Returns:
        Names of the fields that changed.

    Raises:
        InvariantViolation: If the update would leave more alt texts than
            gallery images.
    """
    changed: List[str] = []

    for name in SCALAR_FIELDS:
        new_value = getattr(update, name)
        if is_blank(new_value):
            continue
        if not is_blank(getattr(record, name)):
            continue
        setattr(record, name, new_value.strip() if isinstance(new_value, str) else new_value)
        changed.append(name)

    if update.seo_keywords:
        keywords = _dedupe(update.seo_keywords)
        if keywords != record.seo_keywords:
            record.seo_keywords = keywords
            changed.append("seo_keywords")

    specs_added = False
    for key, value in update.specifications.items():
        if is_blank(value) or not is_blank(record.specifications.get(key)):
            continue
        record.specifications[key] = value
        specs_added = True
    if specs_added:
        changed.append("specifications")

    new_images = [
        url for url in _dedupe(update.gallery_images)
        if url and url not in record.gallery_images
    ]
    if new_images:
        record.gallery_images.extend(new_images)
        changed.append("gallery_images")

    if update.image_alt_texts:
        room = len(record.gallery_images) - len(record.image_alt_texts)
        if len(update.image_alt_texts) > room:
            raise InvariantViolation(
                f"{len(update.image_alt_texts)} alt texts for {room} unlabeled images "
                f"on record {record.id}"
            )
        record.image_alt_texts.extend(update.image_alt_texts)
        changed.append("image_alt_texts")

    new_sources = [
        url for url in _dedupe(update.source_urls)
        if url and url not in record.source_urls
    ]
    if new_sources:
        record.source_urls.extend(new_sources)
        changed.append("source_urls")

    for stage_key, entry in update.ai_metadata.items():
        history = record.ai_metadata.get(stage_key)
        if history is None:
            history = []
        elif not isinstance(history, list):
            history = [history]
        history.append(entry)
        record.ai_metadata[stage_key] = history
    if update.ai_metadata:
        changed.append("ai_metadata")

    if changed:
        record.touch()
        logger.debug(f"Merged {changed} into record {record.id}")

    return changed

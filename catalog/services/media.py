"""
Image scoring and alt text generation for media discovery.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List

from catalog.services.content import product_label, tidy
from catalog.sources.base import ImageCandidate


DEFAULT_MAX_IMAGES = 8
MINIMUM_SCORE = 60

SOURCE_SCORES = {
    "manufacturer": 95,
    "catalog": 85,
    "stock": 80,
    "ecommerce": 70,
}
UNKNOWN_SOURCE_SCORE = 50

HIGH_RES_PATTERN = re.compile(r"(\d{3,4})[x_](\d{3,4})|large|high[-_]?res", re.IGNORECASE)
FORMAT_PATTERN = re.compile(r"\.(jpg|jpeg|png|webp)$", re.IGNORECASE)
THUMBNAIL_PATTERN = re.compile(r"thumb|small|mini|icon", re.IGNORECASE)
ISOLATED_PATTERN = re.compile(r"white[-_]?background|product[-_]?only|isolated", re.IGNORECASE)

ALT_TEXT_TEMPLATES = [
    "{label} - Main Product Image",
    "{label} - Professional View",
    "{label} - Detailed Product Photo",
    "{label} - High Quality Image",
    "{product} by {brand} - Product Shot",
    "{product} - {brand} Tool Image",
    "{label} - Equipment Photo",
    "{product} - Industrial Tool by {brand}",
]

UNBRANDED_ALT_TEXT_TEMPLATES = [
    "{product} - Main Product Image",
    "{product} - Professional View",
    "{product} - Detailed Product Photo",
    "{product} - High Quality Image",
    "{product} - Product Shot",
    "{product} - Tool Image",
    "{product} - Equipment Photo",
    "{product} - Industrial Tool",
]


@dataclass(frozen=True)
class ScoredImage:
    url: str
    source_tag: str
    score: int


def score_image(candidate: ImageCandidate) -> int:
    """Quality score 0-100 from the source tag and URL hints."""
    url = candidate.url
    score = SOURCE_SCORES.get(candidate.source_tag, UNKNOWN_SOURCE_SCORE)

    if HIGH_RES_PATTERN.search(url):
        score += 10
    if FORMAT_PATTERN.search(url):
        score += 5
    if THUMBNAIL_PATTERN.search(url):
        score -= 20
    if ISOLATED_PATTERN.search(url):
        score += 15

    return max(0, min(100, score))


def select_images(
    candidates: Iterable[ImageCandidate],
    max_images: int = DEFAULT_MAX_IMAGES,
    minimum_score: int = MINIMUM_SCORE,
) -> List[ScoredImage]:
    """
    Drop low-quality and duplicate candidates, best first.

    Candidates with equal scores keep their discovery order.
    """
    seen = set()
    scored = []
    for candidate in candidates:
        if not candidate.url or candidate.url in seen:
            continue
        seen.add(candidate.url)
        score = score_image(candidate)
        if score < minimum_score:
            continue
        scored.append(ScoredImage(candidate.url, candidate.source_tag, score))

    scored.sort(key=lambda image: -image.score)
    return scored[:max_images]


def generate_alt_texts(
    count: int,
    name: str,
    brand: str,
    existing: Iterable[str] = (),
    start_index: int = 0,
) -> List[str]:
    """
    Alt texts for count images, distinct from each other and from existing.

    Templates cycle from start_index, so texts for images appended later
    continue the rotation instead of restarting it.
    """
    brand = tidy(brand)
    product = tidy(name) or brand or "Product"
    label = product_label(product, brand)
    templates = ALT_TEXT_TEMPLATES if brand else UNBRANDED_ALT_TEXT_TEMPLATES

    used = set(existing)
    alt_texts = []
    for offset in range(count):
        template = templates[(start_index + offset) % len(templates)]
        base = template.format(label=label, product=product, brand=brand)

        alt_text = base
        counter = 1
        while alt_text in used:
            alt_text = f"{base} ({counter})"
            counter += 1

        used.add(alt_text)
        alt_texts.append(alt_text)
    return alt_texts

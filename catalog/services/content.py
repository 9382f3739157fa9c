"""
SEO content composition and optimization.

TemplateContentGenerator is the default ContentGenerator: it composes the four
SEO text fields from brand, name, category, top keywords and key
specifications. optimize_draft() then enforces keyword presence, applies the
heuristic enhancements and clips every field to its ceiling.

fallback_content() is used whenever generation or optimization fails. It only
formats strings, so it cannot fail.
"""

import hashlib
import logging
import re
from typing import Dict, List

from catalog.records import (
    BRIEF_MAX_LENGTH,
    DESCRIPTION_MAX_LENGTH,
    META_DESCRIPTION_MAX_LENGTH,
    SEO_TITLE_MAX_LENGTH,
)
from catalog.sources.base import ContentContext, ContentDraft

logger = logging.getLogger(__name__)


ELLIPSIS = "..."
DEFAULT_CATEGORY = "industrial equipment"
GENERATOR_MODEL = "hybrid-seo-engine"
FALLBACK_MODEL = "fallback-template"

BRIEF_TEMPLATES = [
    "{product} - Professional {category} for industrial use",
    "High-performance {product} - {category} solution",
    "{product}: Premium {category} with advanced features",
    "Industrial {product} - Reliable {category} equipment",
]

KEY_SPECIFICATIONS = ("power", "voltage", "torque", "speed", "capacity")
POWER_WORDS = ["professional", "industrial", "premium", "heavy-duty"]
ACTION_WORDS = ["shop", "buy", "order", "get", "find"]
DESCRIPTION_CTA = " Order now for fast delivery."

FIELD_LIMITS = {
    "brief": BRIEF_MAX_LENGTH,
    "description": DESCRIPTION_MAX_LENGTH,
    "seo_title": SEO_TITLE_MAX_LENGTH,
    "meta_description": META_DESCRIPTION_MAX_LENGTH,
}


def tidy(text: str) -> str:
    """Collapse whitespace and strip dangling separators."""
    text = re.sub(r"\s+", " ", text or "")
    return text.strip(" -|:,")


def truncate(text: str, max_length: int) -> str:
    """Clip text to max_length, ending in an ellipsis when clipped."""
    if len(text) <= max_length:
        return text
    return text[: max_length - len(ELLIPSIS)].rstrip() + ELLIPSIS


def product_label(name: str, brand: str) -> str:
    """Brand plus name, without repeating a brand the name already starts with."""
    name = tidy(name)
    brand = tidy(brand)
    if brand and not name.lower().startswith(brand.lower()):
        return tidy(f"{brand} {name}")
    return name or brand


def insert_keyword(text: str, keyword: str, max_length: int, position: int = 3) -> str:
    """Insert keyword near the start of text if it is absent and fits."""
    if not keyword or keyword.lower() in text.lower():
        return text
    if len(text) + len(keyword) + 1 > max_length:
        return text

    words = text.split(" ")
    insert_at = max(0, min(position, len(words) - 1))
    words.insert(insert_at, keyword)
    return " ".join(words)


def add_power_word(text: str, max_length: int) -> str:
    """Make sure a power word appears when space permits."""
    lower = text.lower()
    if any(word in lower for word in POWER_WORDS):
        return text

    for word in POWER_WORDS:
        if len(text) + len(word) + 1 > max_length:
            continue
        if " equipment" in text:
            return text.replace(" equipment", f" {word} equipment", 1)
        return f"{word.capitalize()} {text[:1].lower()}{text[1:]}"
    return text


def add_action_word(text: str, max_length: int) -> str:
    """Prefix "Shop" to a meta description that has no call to action."""
    lower = text.lower()
    if any(word in lower for word in ACTION_WORDS):
        return text
    if len(text) + len("Shop ") > max_length or len(text) >= 150:
        return text
    return f"Shop {text[:1].lower()}{text[1:]}"


def key_features(specifications: Dict[str, str]) -> List[str]:
    features = []
    for key, value in specifications.items():
        if key.lower() in KEY_SPECIFICATIONS:
            features.append(f"{key}: {value}")
    return features[:3]


class TemplateContentGenerator:
    """
    Composes SEO content from fixed templates.

    Template choice is a hash of the product label, so the same product always
    gets the same wording.
    """

    model_name = GENERATOR_MODEL

    def generate(self, context: ContentContext) -> ContentDraft:
        product = product_label(context.name, context.brand) or context.model_number
        if not product:
            raise ValueError("Cannot generate content without a product name")

        category = tidy(context.category) or DEFAULT_CATEGORY
        keywords = [kw for kw in context.keywords if kw]
        features = key_features(context.specifications)

        template_index = int(hashlib.md5(product.encode("utf-8")).hexdigest(), 16) % len(
            BRIEF_TEMPLATES
        )
        brief = BRIEF_TEMPLATES[template_index].format(product=product, category=category)

        description = f"The {product} delivers professional-grade {category} performance."
        if features:
            description += f" Features include {', '.join(features[:2])}."
        keyword_phrase = ", ".join(keywords[:3]) if keywords else category
        description += f" Ideal for {keyword_phrase} applications. Built for durability and precision."

        primary = keywords[0] if keywords else category
        seo_title = f"{product} | {primary} Equipment"

        meta = f"Shop the {product} - premium {category} equipment."
        meta += f" Professional-grade performance for {', '.join(keywords[:2]) or category}."
        meta += " Fast shipping, expert support, competitive pricing."

        prompt_words = len(" ".join([product, category] + keywords[:10]).split())
        output_words = len(" ".join([brief, description, seo_title, meta]).split())

        return ContentDraft(
            brief=tidy(brief),
            description=tidy(description),
            seo_title=tidy(seo_title),
            meta_description=tidy(meta),
            model_used=self.model_name,
            input_tokens=prompt_words,
            output_tokens=output_words,
        )


def optimize_draft(draft: ContentDraft, keywords: List[str]) -> Dict[str, str]:
    """
    Apply keyword placement, enhancement and truncation to a draft.

    Returns:
        Mapping of field name to final text, each within its ceiling.
    """
    primary = keywords[0] if keywords else ""

    brief = insert_keyword(tidy(draft.brief), primary, BRIEF_MAX_LENGTH)
    brief = truncate(brief, BRIEF_MAX_LENGTH)
    brief = truncate(add_power_word(brief, BRIEF_MAX_LENGTH), BRIEF_MAX_LENGTH)

    description = tidy(draft.description)
    for keyword in keywords[:2]:
        if keyword.lower() not in description.lower() and (
            len(description) + len(keyword) + 1 <= DESCRIPTION_MAX_LENGTH
        ):
            description = f"{description} {keyword}"
    description = truncate(description, DESCRIPTION_MAX_LENGTH)
    if len(description) + len(DESCRIPTION_CTA) <= DESCRIPTION_MAX_LENGTH:
        description += DESCRIPTION_CTA

    seo_title = tidy(draft.seo_title)
    if primary and primary.lower() not in seo_title.lower():
        if len(seo_title) + len(primary) + 3 <= SEO_TITLE_MAX_LENGTH:
            seo_title = f"{primary} | {seo_title}"
    seo_title = truncate(seo_title, SEO_TITLE_MAX_LENGTH)

    meta = insert_keyword(tidy(draft.meta_description), primary, META_DESCRIPTION_MAX_LENGTH)
    meta = truncate(meta, META_DESCRIPTION_MAX_LENGTH)
    meta = truncate(add_action_word(meta, META_DESCRIPTION_MAX_LENGTH), META_DESCRIPTION_MAX_LENGTH)

    result = {
        "brief": brief,
        "description": description,
        "seo_title": seo_title,
        "meta_description": meta,
    }
    empty = [name for name, text in result.items() if not text]
    if empty:
        raise ValueError(f"Optimization produced empty fields: {empty}")
    return result


def fallback_content(name: str, brand: str, category: str) -> Dict[str, str]:
    """Plain template content used when generation fails."""
    product = product_label(name, brand) or "Product"
    category = tidy(category) or "equipment"
    by_brand = f" by {tidy(brand)}" if tidy(brand) else ""

    return {
        "brief": truncate(tidy(f"Professional {category}{by_brand} - {product}"), BRIEF_MAX_LENGTH),
        "description": truncate(
            tidy(
                f"The {product} provides reliable {category} performance for "
                f"professional applications. Built for durability."
            ),
            DESCRIPTION_MAX_LENGTH,
        ),
        "seo_title": truncate(tidy(f"{product} | Professional {category}"), SEO_TITLE_MAX_LENGTH),
        "meta_description": truncate(
            tidy(
                f"Shop {product} - professional {category} equipment. "
                f"Quality tools for professionals."
            ),
            META_DESCRIPTION_MAX_LENGTH,
        ),
    }

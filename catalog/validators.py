"""
Input validation for product intelligence requests.

validate_product_input() checks a raw request payload and returns a cleaned
copy ready for ProductInput.from_dict(). All problems are collected and
raised together as one ValidationError keyed by field name.
"""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List

from catalog.exceptions import ValidationError
from catalog.records import (
    BRIEF_MAX_LENGTH,
    DESCRIPTION_MAX_LENGTH,
    PRICE_DECIMAL_PLACES,
    PRICE_MAX_DIGITS,
    EnrichmentStatus,
    price_fits,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Rules
# =============================================================================

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 60
MODEL_NUMBER_MAX_LENGTH = 100
BRAND_MAX_LENGTH = 100
CATEGORY_MAX_LENGTH = 100
KEYWORD_MIN_LENGTH = 2
KEYWORD_MAX_LENGTH = 100
MAX_KEYWORDS = 50

NAME_PATTERN = re.compile(r"^[A-Za-z0-9\s\-.+/&()]+$")
MODEL_NUMBER_PATTERN = re.compile(r"^[A-Za-z0-9\-.]+$")
BRAND_PATTERN = re.compile(r"^[A-Za-z0-9\s\-.&]+$")

KNOWN_CATEGORIES = {
    "power tools",
    "hand tools",
    "cutting tools",
    "measuring tools",
    "safety equipment",
    "electrical tools",
    "plumbing tools",
    "automotive tools",
    "woodworking tools",
    "metalworking tools",
    "construction tools",
    "industrial equipment",
    "batteries & chargers",
}

LIST_LIMIT_MAX = 100
SUGGESTION_LIMIT_MAX = 50


def _clean(value: Any) -> str:
    return re.sub(r"\s+", " ", str(value)).strip()


def _check_text(
    data: Dict[str, Any],
    field: str,
    max_length: int,
    errors: Dict[str, List[str]],
    label: str,
) -> str:
    value = data.get(field)
    if value is None:
        return ""
    if not isinstance(value, str):
        errors.setdefault(field, []).append(f"{label} must be a string")
        return ""

    cleaned = _clean(value)
    if len(cleaned) > max_length:
        errors.setdefault(field, []).append(f"{label} must not exceed {max_length} characters")
    return cleaned


def _check_keywords(data: Dict[str, Any], field: str, errors: Dict[str, List[str]]) -> List[str]:
    value = data.get(field)
    if value is None:
        return []
    if not isinstance(value, list):
        errors.setdefault(field, []).append("SEO keywords must be a list")
        return []
    if len(value) > MAX_KEYWORDS:
        errors.setdefault(field, []).append(f"Maximum {MAX_KEYWORDS} SEO keywords allowed")

    keywords: List[str] = []
    for keyword in value:
        if not isinstance(keyword, str):
            errors.setdefault(field, []).append("All keywords must be strings")
            continue
        cleaned = _clean(keyword)
        if len(cleaned) > KEYWORD_MAX_LENGTH:
            errors.setdefault(field, []).append(
                f"Individual keywords must not exceed {KEYWORD_MAX_LENGTH} characters"
            )
            continue
        if len(cleaned) < KEYWORD_MIN_LENGTH or cleaned in keywords:
            continue
        keywords.append(cleaned)
    return keywords


# =============================================================================
# Product input
# =============================================================================

def validate_product_input(data: Any) -> Dict[str, Any]:
    """
    Validate a product intelligence payload.

    Args:
        data: Decoded JSON request body.

    Returns:
        Cleaned payload containing only recognized fields.

    Raises:
        ValidationError: With every problem found, keyed by field.
    """
    if not isinstance(data, dict):
        raise ValidationError({"_general": ["Request body must be a JSON object"]})

    errors: Dict[str, List[str]] = {}
    cleaned: Dict[str, Any] = {}

    name = _check_text(data, "name", NAME_MAX_LENGTH, errors, "Product name")
    if name:
        if len(name) < NAME_MIN_LENGTH:
            errors.setdefault("name", []).append(
                f"Product name must be at least {NAME_MIN_LENGTH} characters long"
            )
        if not NAME_PATTERN.match(name):
            errors.setdefault("name", []).append("Product name contains invalid characters")
        cleaned["name"] = name

    model_number = _check_text(
        data, "model_number", MODEL_NUMBER_MAX_LENGTH, errors, "Model number"
    )
    if model_number:
        if not MODEL_NUMBER_PATTERN.match(model_number):
            errors.setdefault("model_number", []).append(
                "Model number can only contain letters, numbers, dashes, and dots"
            )
        cleaned["model_number"] = model_number

    if not name and not model_number and "name" not in errors and "model_number" not in errors:
        errors.setdefault("_general", []).append("Either name or model_number is required")

    brand = _check_text(data, "brand", BRAND_MAX_LENGTH, errors, "Brand name")
    if brand:
        if not BRAND_PATTERN.match(brand):
            errors.setdefault("brand", []).append("Brand name contains invalid characters")
        cleaned["brand"] = brand

    category = _check_text(data, "category", CATEGORY_MAX_LENGTH, errors, "Category")
    if category:
        if not is_known_category(category):
            logger.info(f"Custom category used: {category}")
        cleaned["category"] = category

    brief = _check_text(data, "brief", BRIEF_MAX_LENGTH, errors, "Brief")
    if brief:
        cleaned["brief"] = brief

    description = _check_text(data, "description", DESCRIPTION_MAX_LENGTH, errors, "Description")
    if description:
        cleaned["description"] = description

    cleaned["seo_keywords"] = _check_keywords(data, "seo_keywords", errors)
    cleaned["seo_focus_keywords"] = _check_keywords(data, "seo_focus_keywords", errors)

    price = data.get("price")
    if price not in (None, ""):
        try:
            price = Decimal(str(price))
        except (InvalidOperation, ValueError):
            errors.setdefault("price", []).append("Price must be a number")
        else:
            if not price.is_finite() or price < 0:
                errors.setdefault("price", []).append("Price must be a non-negative number")
            elif not price_fits(price):
                errors.setdefault("price", []).append(
                    f"Price must have at most {PRICE_MAX_DIGITS - PRICE_DECIMAL_PLACES} "
                    f"digits before and {PRICE_DECIMAL_PLACES} after the decimal point"
                )
            else:
                cleaned["price"] = price

    specifications = data.get("specifications")
    if specifications is not None:
        if not isinstance(specifications, dict):
            errors.setdefault("specifications", []).append("Specifications must be an object")
        else:
            cleaned["specifications"] = {
                _clean(key): _clean(value)
                for key, value in specifications.items()
                if _clean(key) and value is not None and _clean(value)
            }

    if errors:
        raise ValidationError(errors)
    return cleaned


def is_known_category(category: str) -> bool:
    return category.strip().lower() in KNOWN_CATEGORIES


# =============================================================================
# Query parameters
# =============================================================================

def validate_status_filter(value: Any) -> str:
    """
    Validate an enrichment status filter.

    Raises:
        ValidationError: If the value is not an enrichment status.
    """
    status = _clean(value).lower()
    if status not in EnrichmentStatus.values:
        raise ValidationError({
            "status": [f"Status must be one of: {', '.join(EnrichmentStatus.values)}"]
        })
    return status


def validate_limit(value: Any, default: int, maximum: int) -> int:
    """
    Validate a positive integer limit.

    Raises:
        ValidationError: If the value is not an integer between 1 and maximum.
    """
    if value in (None, ""):
        return default
    try:
        limit = int(value)
    except (TypeError, ValueError):
        limit = 0
    if limit < 1 or limit > maximum:
        raise ValidationError({"limit": [f"Limit must be a number between 1 and {maximum}"]})
    return limit

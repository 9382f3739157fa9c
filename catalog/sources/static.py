"""
Deterministic in-process sources.

These back the default wiring when no external catalog API is configured,
and the demo command. They never touch the network.
"""

import logging
import re
from decimal import Decimal
from typing import Dict, List, Optional

from catalog.sources.base import ImageCandidate, ManufacturerData

logger = logging.getLogger(__name__)


MANUFACTURER_CATALOG: Dict[str, Dict] = {
    "DCB205": {
        "name": "DeWalt 20V MAX 5.0Ah Lithium Ion Battery",
        "brand": "DeWalt",
        "description": (
            "Professional grade 20V MAX lithium ion battery with 5.0Ah "
            "capacity for extended runtime."
        ),
        "specifications": {
            "voltage": "20V",
            "capacity": "5.0Ah",
            "chemistry": "Lithium Ion",
            "weight": "1.4 lbs",
        },
        "price": "149.99",
        "images": [
            "https://example.com/images/dcb205-main.jpg",
            "https://example.com/images/dcb205-side.jpg",
        ],
        "category": "Batteries & Chargers",
        "source_url": "https://www.dewalt.com/products/dcb205",
    },
    "M18B5": {
        "name": "Milwaukee M18 REDLITHIUM 5.0Ah Battery",
        "brand": "Milwaukee",
        "description": (
            "Superior pack construction provides up to 2.5x more run time "
            "and up to 2x more life."
        ),
        "specifications": {
            "voltage": "18V",
            "capacity": "5.0Ah",
            "chemistry": "Lithium Ion",
            "weight": "1.5 lbs",
        },
        "price": "179.99",
        "images": ["https://example.com/images/m18b5-main.jpg"],
        "category": "Batteries & Chargers",
        "source_url": "https://www.milwaukeetool.com/products/48-11-1850",
    },
    "GSP180": {
        "name": "Bosch GSP180 18V Professional Drywall Screwdriver",
        "brand": "Bosch",
        "description": (
            "Professional cordless drywall screwdriver with precise depth "
            "control and efficient fastening."
        ),
        "specifications": {
            "voltage": "18V",
            "max_torque": "8 Nm",
            "weight": "0.7 kg",
            "speed": "0-4,500 rpm",
        },
        "price": "129.99",
        "images": [
            "https://bosch-professional.com/images/gsp180-main.jpg",
            "https://bosch-professional.com/images/gsp180-side.jpg",
        ],
        "category": "Power Tools",
        "source_url": "https://www.bosch-professional.com/products/gsp-180",
    },
}


def _slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


class StaticManufacturerSource:
    """Looks model numbers up in a fixed catalog."""

    def __init__(self, catalog: Optional[Dict[str, Dict]] = None):
        self.catalog = {
            key.upper(): value
            for key, value in (catalog if catalog is not None else MANUFACTURER_CATALOG).items()
        }

    def lookup(self, model_number: str, brand: Optional[str] = None) -> Optional[ManufacturerData]:
        entry = self.catalog.get(model_number.strip().upper())
        if entry is None:
            logger.debug(f"No catalog entry for model {model_number}")
            return None

        if brand and entry.get("brand") and entry["brand"].lower() != brand.lower():
            logger.info(
                f"Catalog entry for {model_number} belongs to {entry['brand']}, not {brand}"
            )
            return None

        price = entry.get("price")
        return ManufacturerData(
            name=entry.get("name"),
            description=entry.get("description"),
            price=Decimal(price) if price else None,
            brand=entry.get("brand"),
            category=entry.get("category"),
            specifications=dict(entry.get("specifications", {})),
            images=list(entry.get("images", [])),
            source_url=entry.get("source_url"),
        )


class StaticImageSource:
    """
    Produces candidate images from the catalog plus stock and retail hosts.

    URLs are derived from the product name so every product gets its own set.
    """

    def __init__(self, catalog: Optional[Dict[str, Dict]] = None):
        self.manufacturer = StaticManufacturerSource(catalog)

    def discover(
        self, name: str, brand: str, model_number: str, max_images: int
    ) -> List[ImageCandidate]:
        candidates: List[ImageCandidate] = []

        if model_number:
            entry = self.manufacturer.catalog.get(model_number.strip().upper())
            if entry:
                candidates.extend(
                    ImageCandidate(url=url, source_tag="manufacturer")
                    for url in entry.get("images", [])
                )

        slug = _slugify(f"{brand} {name}") or _slugify(model_number or "")
        if not slug:
            return candidates[:max_images]

        candidates.extend([
            ImageCandidate(
                url=f"https://images.unsplash.com/{slug}-professional-1200x800.jpg",
                source_tag="stock",
            ),
            ImageCandidate(
                url=f"https://images.unsplash.com/{slug}-isolated-white-background.jpg",
                source_tag="stock",
            ),
            ImageCandidate(
                url=f"https://m.media-amazon.com/images/{slug}-main-1000x1000.jpg",
                source_tag="ecommerce",
            ),
            ImageCandidate(
                url=f"https://m.media-amazon.com/images/{slug}-thumb.jpg",
                source_tag="ecommerce",
            ),
        ])
        return candidates[: max_images * 2]

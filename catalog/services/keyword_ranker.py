"""
Keyword research and relevance ranking.

KeywordRanker generates SEO keyword candidates for a product from seven
generators, then scores, sorts and truncates them:

    +100  equals the product name
     +80  contains the product name
     +60  contains the category
     +40  contains a commercial-intent term (first match only)
     +30  contains a professional/industrial term (first match only)
     +20  three or more words
     -50  is a generic term ("tool", "equipment", ...), floored at 0

Ties keep generation order, so generator order is the tie-break priority.
Candidates equal to the product name are pinned first. Every comparison is
case-insensitive; deduplication is case-sensitive.

Search volume is synthetic: a stable hash of the keyword inside a range
picked by word count. There is no external volume API.
"""

import hashlib
import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


MAX_KEYWORDS = 50

STOP_WORDS = {"the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by"}

CATEGORY_SYNONYMS: Dict[str, List[str]] = {
    "power tools": ["cordless tools", "electric tools", "pneumatic tools", "battery tools"],
    "hand tools": ["manual tools", "mechanic tools", "precision tools", "specialty tools"],
    "cutting tools": ["saw blades", "drill bits", "cutting discs", "router bits"],
    "measuring tools": ["levels", "squares", "calipers", "rulers"],
    "safety equipment": ["protective gear", "safety tools", "ppe equipment"],
}

INDUSTRY_TRIGGERS: Dict[str, List[str]] = {
    "construction": ["power", "drill", "saw", "hammer", "nail"],
    "automotive": ["wrench", "socket", "impact", "torque", "mechanic"],
    "electrical": ["wire", "electrical", "voltage", "meter", "circuit"],
    "plumbing": ["pipe", "plumbing", "water", "fitting", "valve"],
    "woodworking": ["wood", "router", "chisel", "plane", "jointer"],
    "metalworking": ["metal", "cutting", "grinding", "welding", "machining"],
}

INDUSTRY_KEYWORDS: Dict[str, List[str]] = {
    "construction": [
        "contractor tools", "building supplies", "construction equipment",
        "job site tools", "framing tools", "concrete tools", "masonry tools",
        "roofing tools", "drywall tools", "flooring tools",
    ],
    "automotive": [
        "automotive tools", "mechanic tools", "car repair tools", "diagnostic tools",
        "engine tools", "brake tools", "suspension tools", "transmission tools",
        "automotive specialty tools",
    ],
    "electrical": [
        "electrical tools", "electrician tools", "wire tools", "conduit tools",
        "circuit tools", "voltage tools", "electrical testing",
        "electrical installation", "electrical maintenance",
    ],
    "plumbing": [
        "plumbing tools", "pipe tools", "drain tools", "water tools",
        "plumbing installation", "plumbing repair", "pipe fitting tools",
        "plumbing diagnostic tools",
    ],
    "woodworking": [
        "woodworking tools", "carpentry tools", "cabinet tools", "furniture tools",
        "wood cutting tools", "wood shaping tools", "wood finishing tools",
        "precision woodworking",
    ],
    "metalworking": [
        "metalworking tools", "machining tools", "cutting tools", "grinding tools",
        "welding tools", "fabrication tools", "metal finishing tools",
        "precision metalworking",
    ],
}

LONG_TAIL_TEMPLATES = [
    "best {product} for {use_case}",
    "professional {product} reviews",
    "{product} alternatives",
    "how to use {product}",
    "{product} buying guide",
    "top rated {product}",
    "{product} for professionals",
    "heavy duty {product}",
    "commercial grade {product}",
    "{product} specifications",
    "{product} replacement parts",
    "{product} accessories",
]

USE_CASES = [
    "construction", "contractors", "professionals", "home improvement",
    "industrial use", "commercial projects", "heavy duty work",
]

MODIFIERS = [
    "professional", "industrial", "commercial", "heavy duty", "precision",
    "high performance", "durable", "reliable", "cordless", "electric",
    "pneumatic", "hydraulic", "compact", "portable", "lightweight",
    "ergonomic", "variable speed", "brushless", "lithium ion",
]

COMPETITORS: Dict[str, List[str]] = {
    "dewalt": ["milwaukee", "makita", "bosch", "ryobi", "craftsman"],
    "milwaukee": ["dewalt", "makita", "bosch", "ridgid", "porter-cable"],
    "makita": ["dewalt", "milwaukee", "bosch", "hitachi", "metabo"],
    "bosch": ["dewalt", "milwaukee", "makita", "festool", "hilti"],
    "ryobi": ["dewalt", "black+decker", "craftsman", "kobalt", "hart"],
}
DEFAULT_COMPETITORS = ["dewalt", "milwaukee", "makita", "bosch"]

LOCATIONS = ["near me", "local", "nearby", "in my area", "USA", "America", "North America"]

COMMERCIAL_TERMS = ["buy", "purchase", "price", "cost", "for sale", "best", "top", "review"]
PROFESSIONAL_TERMS = ["professional", "industrial", "commercial", "heavy duty", "contractor"]
GENERIC_TERMS = {"tool", "equipment", "item", "product"}

# (min words, low, high); first matching row wins.
VOLUME_BUCKETS = [
    (3, 100, 1000),
    (2, 1000, 10000),
    (1, 10000, 50000),
]


@dataclass
class RankedKeyword:
    """A ranked keyword with estimated search metrics."""

    keyword: str
    score: int
    estimated_volume: int
    competition: str
    commercial_value: str

    def to_dict(self):
        return {
            "keyword": self.keyword,
            "score": self.score,
            "estimated_volume": self.estimated_volume,
            "competition": self.competition,
            "commercial_value": self.commercial_value,
        }


def _normalize(keyword: str) -> str:
    return re.sub(r"\s+", " ", keyword).strip()


def _contains_any(text: str, terms: Iterable[str]) -> bool:
    return any(term in text for term in terms)


def _word_count(keyword: str) -> int:
    return len(keyword.split())


class KeywordRanker:
    """
    Generates, scores and ranks SEO keywords for a product.

    Example:
        >>> ranker = KeywordRanker()
        >>> ranked = ranker.research("Cordless Drill", "DeWalt", "Power Tools")
        >>> ranked[0].keyword
        'Cordless Drill'
    """

    def __init__(self, max_keywords: int = MAX_KEYWORDS):
        self.max_keywords = max_keywords

    # ------------------------------------------------------------------
    # Candidate generation
    # ------------------------------------------------------------------

    def generate_candidates(
        self,
        name: str,
        brand: str,
        category: str,
        seed_keywords: Optional[List[str]] = None,
    ) -> List[str]:
        """
        Run all generators and return deduplicated candidates in generation order.

        Seed keywords are appended unchanged after the generated ones.
        """
        name = _normalize(name or "")
        brand = _normalize(brand or "")
        category = _normalize(category or "")

        generated: List[str] = []
        generated += self._base_keywords(name, brand)
        generated += self._category_keywords(category)
        generated += self._industry_keywords(name, category)
        generated += self._long_tail_keywords(name)
        generated += self._modifier_keywords(name)
        generated += self._competitor_keywords(brand, category)
        generated += self._local_keywords(name, category)
        generated += list(seed_keywords or [])

        seen = set()
        candidates = []
        for keyword in generated:
            keyword = _normalize(keyword)
            if not keyword or keyword in seen:
                continue
            seen.add(keyword)
            candidates.append(keyword)
        return candidates

    def _base_keywords(self, name: str, brand: str) -> List[str]:
        keywords = []
        brand_lower = brand.lower()

        if name:
            keywords.append(name)
            keywords.append(name.lower())
            if brand and not name.lower().startswith(brand_lower):
                keywords.append(f"{brand} {name}")

            for word in name.lower().split():
                if word in STOP_WORDS or len(word) <= 3 or word == brand_lower:
                    continue
                keywords.append(word)
                if brand:
                    keywords.append(f"{brand} {word}")

        if brand:
            keywords += [brand, brand_lower, f"{brand} tools", f"{brand} equipment"]

        return keywords

    def _category_keywords(self, category: str) -> List[str]:
        if not category:
            return []

        category = category.lower()
        keywords = [
            category,
            f"{category} tools",
            f"{category} equipment",
            f"professional {category}",
            f"industrial {category}",
            f"commercial {category}",
        ]
        for mapped, synonyms in CATEGORY_SYNONYMS.items():
            if mapped in category or category in mapped:
                keywords += synonyms
        return keywords

    def _industry_keywords(self, name: str, category: str) -> List[str]:
        text = f"{category} {name}".lower().strip()
        if not text:
            return []

        keywords = []
        for industry, triggers in INDUSTRY_TRIGGERS.items():
            if _contains_any(text, triggers):
                keywords += INDUSTRY_KEYWORDS[industry][:10]
        return keywords

    def _long_tail_keywords(self, name: str) -> List[str]:
        if not name:
            return []

        product = name.lower()
        keywords = []
        for template in LONG_TAIL_TEMPLATES:
            if "{use_case}" in template:
                keywords += [
                    template.format(product=product, use_case=use_case)
                    for use_case in USE_CASES
                ]
            else:
                keywords.append(template.format(product=product))
        return keywords

    def _modifier_keywords(self, name: str) -> List[str]:
        if not name:
            return []

        product = name.lower()
        keywords = []
        for modifier in MODIFIERS:
            keywords.append(f"{modifier} {product}")
            keywords.append(f"{product} {modifier}")
        return keywords

    def _competitor_keywords(self, brand: str, category: str) -> List[str]:
        if not brand:
            return []

        brand_lower = brand.lower()
        category = category.lower()
        competitors = COMPETITORS.get(brand_lower, DEFAULT_COMPETITORS)

        keywords = []
        for competitor in competitors:
            if competitor == brand_lower:
                continue
            keywords.append(f"{competitor} vs {brand_lower}")
            if category:
                keywords.append(f"{competitor} {category}")
            keywords.append(f"alternative to {competitor}")
        return keywords

    def _local_keywords(self, name: str, category: str) -> List[str]:
        product = name.lower()
        category = category.lower()

        keywords = []
        for location in LOCATIONS:
            if product:
                keywords.append(f"{product} in {location}")
            if category:
                keywords.append(f"{category} {location}")
            if product:
                keywords.append(f"buy {product} {location}")
                keywords.append(f"{product} suppliers {location}")
        return keywords

    # ------------------------------------------------------------------
    # Scoring and ranking
    # ------------------------------------------------------------------

    def score(self, keyword: str, name: str, category: str) -> int:
        """Relevance score of one keyword for a product."""
        keyword = keyword.lower()
        name = _normalize(name or "").lower()
        category = _normalize(category or "").lower()

        score = 0
        if name and keyword == name:
            score += 100
        if name and name in keyword:
            score += 80
        if category and category in keyword:
            score += 60
        if _contains_any(keyword, COMMERCIAL_TERMS):
            score += 40
        if _contains_any(keyword, PROFESSIONAL_TERMS):
            score += 30
        if _word_count(keyword) >= 3:
            score += 20
        if keyword in GENERIC_TERMS:
            score -= 50

        return max(0, score)

    def rank(self, candidates: List[str], name: str, category: str) -> List[RankedKeyword]:
        """
        Score, sort and truncate candidates, attaching search metrics.

        Args:
            candidates: Candidate keywords in generation order.
            name: Product name.
            category: Product category.

        Returns:
            At most max_keywords RankedKeyword entries, best first.
        """
        name_lower = _normalize(name or "").lower()

        unique = []
        seen = set()
        for keyword in candidates:
            if keyword in seen:
                continue
            seen.add(keyword)
            unique.append(keyword)

        scored = [(keyword, self.score(keyword, name, category)) for keyword in unique]
        scored = sorted(
            scored,
            key=lambda item: (0 if name_lower and item[0].lower() == name_lower else 1, -item[1]),
        )

        return [
            self._with_metrics(keyword, score)
            for keyword, score in scored[: self.max_keywords]
        ]

    def research(
        self,
        name: str,
        brand: str,
        category: str,
        seed_keywords: Optional[List[str]] = None,
    ) -> List[RankedKeyword]:
        """Generate and rank keywords for a product."""
        candidates = self.generate_candidates(name, brand, category, seed_keywords)
        ranked = self.rank(candidates, name, category)
        logger.debug(
            f"Ranked {len(ranked)} of {len(candidates)} keyword candidates for '{name}'"
        )
        return ranked

    def _with_metrics(self, keyword: str, score: int) -> RankedKeyword:
        lower = keyword.lower()
        words = _word_count(keyword)
        commercial = _contains_any(lower, COMMERCIAL_TERMS)

        if commercial:
            competition = "high"
        elif words <= 2:
            competition = "medium"
        else:
            competition = "low"

        return RankedKeyword(
            keyword=keyword,
            score=score,
            estimated_volume=self.estimate_volume(keyword),
            competition=competition,
            commercial_value="high" if commercial else "medium",
        )

    @staticmethod
    def estimate_volume(keyword: str) -> int:
        """Synthetic monthly search volume, stable for a given keyword."""
        words = _word_count(keyword)
        digest = int(hashlib.md5(keyword.lower().encode("utf-8")).hexdigest(), 16)
        for min_words, low, high in VOLUME_BUCKETS:
            if words >= min_words:
                return low + digest % (high - low + 1)
        return 0

    # ------------------------------------------------------------------
    # Suggestions
    # ------------------------------------------------------------------

    def suggest(self, partial: str, limit: int = 10) -> List[str]:
        """Industry keywords starting with the given prefix."""
        prefix = (partial or "").strip().lower()
        if not prefix:
            return []

        suggestions = []
        for keywords in INDUSTRY_KEYWORDS.values():
            for keyword in keywords:
                if keyword.lower().startswith(prefix) and keyword not in suggestions:
                    suggestions.append(keyword)
        return suggestions[:limit]

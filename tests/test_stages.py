"""
Tests for the individual enrichment stages.

Stages are pure: they read a record snapshot and return a RecordUpdate (or
None when they do not apply), so these tests never touch storage.
"""

import time
from unittest.mock import Mock

import pytest

from catalog.records import ProductInput, ProductRecord
from catalog.services.content import FALLBACK_MODEL, TemplateContentGenerator
from catalog.services.keyword_ranker import RankedKeyword
from catalog.services.merge import apply_update
from catalog.services.stages import (
    ContentGenerationStage,
    KeywordResearchStage,
    ManufacturerLookupStage,
    MediaDiscoveryStage,
    StageContext,
)
from catalog.sources import StaticImageSource, StaticManufacturerSource
from catalog.sources.base import ContentDraft, ImageCandidate, ManufacturerData


@pytest.fixture
def context():
    return StageContext(product_input=ProductInput())


class TestManufacturerLookupStage:
    """Manufacturer catalog lookups."""

    def test_skipped_without_model_number(self, context):
        stage = ManufacturerLookupStage(StaticManufacturerSource())

        assert stage.run(ProductRecord(name="Generic Drill"), context) is None

    def test_hit_fills_product_facts(self, context):
        stage = ManufacturerLookupStage(StaticManufacturerSource())

        update = stage.run(ProductRecord(id=1, model_number="GSP180"), context)

        assert update.name.startswith("Bosch GSP180")
        assert update.specifications["voltage"] == "18V"
        assert update.source_urls == ["https://www.bosch-professional.com/products/gsp-180"]
        assert len(update.gallery_images) == 2
        assert update.ai_metadata["manufacturer"]["specifications"] == 4

    def test_missing_source_url_recorded_as_urn(self, context):
        source = Mock()
        source.lookup.return_value = ManufacturerData(name="Bosch GSP180")
        stage = ManufacturerLookupStage(source)

        update = stage.run(ProductRecord(model_number="GSP180", brand="Bosch"), context)

        assert update.source_urls == ["urn:manufacturer:bosch:GSP180"]
        source.lookup.assert_called_once_with("GSP180", "Bosch")

    def test_miss_is_empty_update(self, context):
        stage = ManufacturerLookupStage(StaticManufacturerSource())

        update = stage.run(ProductRecord(model_number="UNKNOWN-1"), context)

        assert update.is_empty()

    def test_source_error_is_empty_update(self, context):
        source = Mock()
        source.lookup.side_effect = ConnectionError("refused")
        stage = ManufacturerLookupStage(source)

        update = stage.run(ProductRecord(model_number="GSP180"), context)

        assert update.is_empty()

    def test_slow_source_is_empty_update(self, context):
        class SlowSource:
            def lookup(self, model_number, brand=None):
                time.sleep(0.5)
                return ManufacturerData(name="Too late")

        stage = ManufacturerLookupStage(SlowSource(), timeout=0.05)

        update = stage.run(ProductRecord(model_number="GSP180"), context)

        assert update.is_empty()


class TestKeywordResearchStage:
    """Keyword ranking stage."""

    def test_ranked_keywords_replace_existing(self, context):
        stage = KeywordResearchStage()

        update = stage.run(ProductRecord(name="Cordless Drill", brand="DeWalt"), context)

        assert update.seo_keywords[0] == "Cordless Drill"
        assert len(update.seo_keywords) <= 50
        assert update.ai_metadata["keywords"]["total_keywords"] == len(update.seo_keywords)

    def test_existing_and_focus_keywords_seed_research(self):
        ranker = Mock()
        ranker.research.return_value = [
            RankedKeyword("Drill", 180, 20000, "medium", "medium"),
        ]
        stage = KeywordResearchStage(ranker=ranker)
        context = StageContext(product_input=ProductInput(seo_focus_keywords=["drywall drill"]))

        update = stage.run(ProductRecord(name="Drill", seo_keywords=["site drill"]), context)

        ranker.research.assert_called_once_with("Drill", "", "", ["site drill", "drywall drill"])
        assert update.seo_keywords == ["Drill"]

    def test_model_number_used_when_name_missing(self, context):
        update = KeywordResearchStage().run(ProductRecord(model_number="GSP180"), context)

        assert update.seo_keywords[0] == "GSP180"

    def test_skipped_without_any_identity(self, context):
        assert KeywordResearchStage().run(ProductRecord(), context) is None


class FailingGenerator:
    def generate(self, context):
        raise RuntimeError("model overloaded")


class EmptyGenerator:
    def generate(self, context):
        return ContentDraft(brief="", description="", seo_title="", meta_description="")


class TestContentGenerationStage:
    """Content generation with fallback."""

    def test_fills_missing_fields_only(self, context):
        stage = ContentGenerationStage(TemplateContentGenerator())
        record = ProductRecord(name="Generic Drill", brief="Hand written brief")

        update = stage.run(record, context)

        assert update.brief is None
        assert update.description
        assert update.seo_title
        assert update.meta_description
        assert update.ai_metadata["content"]["fields"] == [
            "description", "seo_title", "meta_description"
        ]
        assert update.ai_metadata["content"]["fallback"] is False

    def test_skipped_when_everything_filled(self, context):
        record = ProductRecord(
            name="Generic Drill",
            brief="b",
            description="d",
            seo_title="t",
            meta_description="m",
        )

        assert ContentGenerationStage(TemplateContentGenerator()).run(record, context) is None

    @pytest.mark.parametrize("generator", [FailingGenerator(), EmptyGenerator()])
    def test_generator_failure_uses_fallback(self, context, generator):
        stage = ContentGenerationStage(generator)

        update = stage.run(ProductRecord(name="Generic Drill"), context)

        assert update.brief
        assert len(update.brief) <= 100
        assert len(update.description) <= 200
        assert update.ai_metadata["content"]["model"] == FALLBACK_MODEL
        assert update.ai_metadata["content"]["fallback"] is True


class TestMediaDiscoveryStage:
    """Image discovery and alt text pairing."""

    def test_discovers_and_labels_images(self, context):
        stage = MediaDiscoveryStage(StaticImageSource(), max_images=8)
        record = ProductRecord(id=1, name="Generic Drill")

        update = stage.run(record, context)
        apply_update(record, update)

        assert record.gallery_images
        assert len(record.gallery_images) == len(record.image_alt_texts)
        assert len(set(record.image_alt_texts)) == len(record.image_alt_texts)
        assert update.ai_metadata["media"]["accepted"] == len(record.gallery_images)

    def test_labels_existing_images_without_discovery(self, context):
        source = Mock()
        stage = MediaDiscoveryStage(source)
        record = ProductRecord(
            name="Bosch GSP180",
            brand="Bosch",
            gallery_images=["https://bosch/a.jpg", "https://bosch/b.jpg"],
            image_alt_texts=["Bosch GSP180 - Main Product Image"],
        )

        update = stage.run(record, context)
        apply_update(record, update)

        source.discover.assert_not_called()
        assert update.gallery_images == []
        assert record.image_alt_texts == [
            "Bosch GSP180 - Main Product Image",
            "Bosch GSP180 - Professional View",
        ]

    def test_skipped_when_images_labeled(self, context):
        record = ProductRecord(
            name="Generic Drill",
            gallery_images=["https://img/a.jpg"],
            image_alt_texts=["Generic Drill - Main Product Image"],
        )

        assert MediaDiscoveryStage(Mock()).run(record, context) is None

    def test_low_quality_candidates_rejected(self, context):
        source = Mock()
        source.discover.return_value = [
            ImageCandidate("https://shop/drill-thumb.jpg", "ecommerce"),
            ImageCandidate("https://cdn/drill.gif", "forum"),
        ]

        update = MediaDiscoveryStage(source).run(ProductRecord(name="Generic Drill"), context)

        assert update.gallery_images == []
        assert update.image_alt_texts == []
        assert update.ai_metadata["media"]["accepted"] == 0

    def test_source_error_is_empty_update(self, context):
        source = Mock()
        source.discover.side_effect = TimeoutError("slow")

        update = MediaDiscoveryStage(source).run(ProductRecord(name="Generic Drill"), context)

        assert update.is_empty()


class TestStagesNeverOverwrite:
    """Filled scalars survive every stage."""

    def test_filled_scalars_are_unchanged(self, context):
        record = ProductRecord(
            id=3,
            model_number="GSP180",
            name="My Screwdriver",
            brand="Bosch",
            category="Drywall",
            brief="Custom brief",
            description="Custom description",
            seo_title="Custom title",
            meta_description="Custom meta",
            specifications={"voltage": "12V"},
        )
        before = record.to_dict()
        stages = [
            ManufacturerLookupStage(StaticManufacturerSource()),
            KeywordResearchStage(),
            ContentGenerationStage(TemplateContentGenerator()),
            MediaDiscoveryStage(StaticImageSource()),
        ]

        for stage in stages:
            update = stage.run(record.snapshot(), context)
            if update is not None:
                apply_update(record, update)

        after = record.to_dict()
        for name in (
            "model_number", "name", "brand", "category", "brief",
            "description", "seo_title", "meta_description",
        ):
            assert after[name] == before[name]
        assert after["specifications"]["voltage"] == "12V"
        assert after["price"] == "129.99"

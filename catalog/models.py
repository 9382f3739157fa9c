"""
Django models for the product catalog.

Product persists a catalog.records.ProductRecord. Collection fields are stored
as JSON so the record round-trips without join tables.
"""

from django.db import models
from django.utils import timezone

from catalog.records import (
    BRIEF_MAX_LENGTH,
    DESCRIPTION_MAX_LENGTH,
    META_DESCRIPTION_MAX_LENGTH,
    PRICE_DECIMAL_PLACES,
    PRICE_MAX_DIGITS,
    SEO_TITLE_MAX_LENGTH,
    EnrichmentStatus,
    ProductRecord,
)


class Product(models.Model):
    """
    A catalog product and its enrichment output.

    model_number is the natural key used to deduplicate incoming requests.
    """

    # Identity
    model_number = models.CharField(
        max_length=100,
        unique=True,
        null=True,
        blank=True,
        help_text="Manufacturer model number (natural key)",
    )

    # Content
    name = models.CharField(max_length=255, blank=True)
    brand = models.CharField(max_length=100, blank=True)
    category = models.CharField(max_length=100, blank=True)
    brief = models.CharField(max_length=BRIEF_MAX_LENGTH, blank=True)
    description = models.CharField(max_length=DESCRIPTION_MAX_LENGTH, blank=True)
    seo_title = models.CharField(max_length=SEO_TITLE_MAX_LENGTH, blank=True)
    meta_description = models.CharField(max_length=META_DESCRIPTION_MAX_LENGTH, blank=True)
    price = models.DecimalField(
        max_digits=PRICE_MAX_DIGITS, decimal_places=PRICE_DECIMAL_PLACES, null=True, blank=True
    )

    # Collections
    seo_keywords = models.JSONField(default=list, blank=True)
    gallery_images = models.JSONField(default=list, blank=True)
    image_alt_texts = models.JSONField(default=list, blank=True)
    specifications = models.JSONField(default=dict, blank=True)
    source_urls = models.JSONField(default=list, blank=True)
    ai_metadata = models.JSONField(default=dict, blank=True)

    # Lifecycle
    enrichment_status = models.CharField(
        max_length=20,
        choices=EnrichmentStatus.choices,
        default=EnrichmentStatus.PENDING,
    )
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    def save(self, *args, **kwargs):
        self.updated_at = timezone.now()
        super().save(*args, **kwargs)

    class Meta:
        db_table = "catalog_products"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["enrichment_status"], name="catalog_pro_enrichm_5c1f0a_idx"),
            models.Index(fields=["brand"], name="catalog_pro_brand_8d2e4b_idx"),
        ]

    def __str__(self):
        return f"{self.name or self.model_number} ({self.enrichment_status})"

    def to_record(self) -> ProductRecord:
        """Convert the row into a pipeline record."""
        return ProductRecord(
            id=self.pk,
            model_number=self.model_number,
            name=self.name,
            brand=self.brand,
            category=self.category,
            brief=self.brief,
            description=self.description,
            seo_title=self.seo_title,
            meta_description=self.meta_description,
            price=self.price,
            seo_keywords=list(self.seo_keywords or []),
            gallery_images=list(self.gallery_images or []),
            image_alt_texts=list(self.image_alt_texts or []),
            specifications=dict(self.specifications or {}),
            source_urls=list(self.source_urls or []),
            ai_metadata=dict(self.ai_metadata or {}),
            enrichment_status=self.enrichment_status,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def apply_record(self, record: ProductRecord) -> None:
        """Copy every persisted field from a pipeline record onto the row."""
        self.model_number = record.model_number or None
        self.name = record.name
        self.brand = record.brand
        self.category = record.category
        self.brief = record.brief
        self.description = record.description
        self.seo_title = record.seo_title
        self.meta_description = record.meta_description
        self.price = record.price
        self.seo_keywords = list(record.seo_keywords)
        self.gallery_images = list(record.gallery_images)
        self.image_alt_texts = list(record.image_alt_texts)
        self.specifications = dict(record.specifications)
        self.source_urls = list(record.source_urls)
        self.ai_metadata = record.ai_metadata
        self.enrichment_status = str(record.enrichment_status)
        self.created_at = record.created_at

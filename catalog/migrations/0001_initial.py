"""
Migration: Create the catalog_products table.
"""

from django.db import migrations, models
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "model_number",
                    models.CharField(
                        blank=True,
                        help_text="Manufacturer model number (natural key)",
                        max_length=100,
                        null=True,
                        unique=True,
                    ),
                ),
                ("name", models.CharField(blank=True, max_length=255)),
                ("brand", models.CharField(blank=True, max_length=100)),
                ("category", models.CharField(blank=True, max_length=100)),
                ("brief", models.CharField(blank=True, max_length=100)),
                ("description", models.CharField(blank=True, max_length=200)),
                ("seo_title", models.CharField(blank=True, max_length=60)),
                ("meta_description", models.CharField(blank=True, max_length=160)),
                (
                    "price",
                    models.DecimalField(
                        blank=True, decimal_places=2, max_digits=10, null=True
                    ),
                ),
                ("seo_keywords", models.JSONField(blank=True, default=list)),
                ("gallery_images", models.JSONField(blank=True, default=list)),
                ("image_alt_texts", models.JSONField(blank=True, default=list)),
                ("specifications", models.JSONField(blank=True, default=dict)),
                ("source_urls", models.JSONField(blank=True, default=list)),
                ("ai_metadata", models.JSONField(blank=True, default=dict)),
                (
                    "enrichment_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                (
                    "updated_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
            ],
            options={
                "db_table": "catalog_products",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["enrichment_status"],
                        name="catalog_pro_enrichm_5c1f0a_idx",
                    ),
                    models.Index(fields=["brand"], name="catalog_pro_brand_8d2e4b_idx"),
                ],
            },
        ),
    ]

"""
Django admin configuration for catalog products.

Read-mostly view of enrichment output with status badges and a bulk action
to move failed products back to pending.
"""

import json

from django.contrib import admin
from django.utils.html import format_html

from catalog.models import Product
from catalog.records import EnrichmentStatus


def _pretty_json(value):
    if not value:
        return "-"
    return format_html(
        '<pre style="white-space: pre-wrap; word-wrap: break-word; '
        'background: #f5f5f5; padding: 10px; border-radius: 4px; '
        'max-height: 400px; overflow-y: auto;">{}</pre>',
        json.dumps(value, indent=2, default=str),
    )


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    """Admin interface for enriched products."""

    list_display = [
        "display_name",
        "model_number",
        "brand",
        "category",
        "status_badge",
        "updated_at",
    ]
    list_filter = ["enrichment_status", "brand", "category"]
    search_fields = ["name", "model_number", "brand"]
    readonly_fields = [
        "created_at",
        "updated_at",
        "specifications_formatted",
        "ai_metadata_formatted",
    ]
    ordering = ["-created_at"]

    fieldsets = (
        ("Product", {
            "fields": ("model_number", "name", "brand", "category", "price"),
        }),
        ("Content", {
            "fields": ("brief", "description", "seo_title", "meta_description"),
        }),
        ("SEO & Media", {
            "fields": ("seo_keywords", "gallery_images", "image_alt_texts", "source_urls"),
            "classes": ("collapse",),
        }),
        ("Enrichment", {
            "fields": ("enrichment_status", "specifications_formatted", "ai_metadata_formatted"),
        }),
        ("Metadata", {
            "fields": ("created_at", "updated_at"),
        }),
    )

    actions = ["reset_to_pending"]

    def display_name(self, obj):
        name = obj.name or obj.model_number or "-"
        if len(name) > 50:
            return name[:50] + "..."
        return name
    display_name.short_description = "Name"

    def status_badge(self, obj):
        """Display enrichment status as colored badge."""
        colors = {
            EnrichmentStatus.PENDING: "#ffc107",
            EnrichmentStatus.PROCESSING: "#17a2b8",
            EnrichmentStatus.COMPLETED: "#28a745",
            EnrichmentStatus.FAILED: "#dc3545",
        }
        color = colors.get(obj.enrichment_status, "#6c757d")
        return format_html(
            '<span style="background-color: {}; color: white; '
            'padding: 2px 8px; border-radius: 4px;">{}</span>',
            color, obj.get_enrichment_status_display()
        )
    status_badge.short_description = "Status"
    status_badge.admin_order_field = "enrichment_status"

    def specifications_formatted(self, obj):
        return _pretty_json(obj.specifications)
    specifications_formatted.short_description = "Specifications"

    def ai_metadata_formatted(self, obj):
        return _pretty_json(obj.ai_metadata)
    ai_metadata_formatted.short_description = "Enrichment Metadata"

    @admin.action(description="Reset selected products to pending")
    def reset_to_pending(self, request, queryset):
        updated = queryset.update(enrichment_status=EnrichmentStatus.PENDING)
        self.message_user(request, f"{updated} products reset to pending")

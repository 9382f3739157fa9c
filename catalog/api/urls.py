"""
Catalog API URL configuration.

Endpoints:
- POST   /api/products/intelligence/        - Enrich a product
- GET    /api/products/                     - List products
- GET    /api/products/<id>/                - Get product
- DELETE /api/products/<id>/                - Delete product
- GET    /api/products/<id>/status/         - Enrichment status
- GET    /api/products/<id>/seo/            - SEO and structured data
- GET    /api/keywords/suggestions/         - Keyword suggestions
- POST   /api/admin/bulk-process/           - Bulk reprocess
- POST   /api/admin/maintenance/            - Maintenance actions
- GET    /api/admin/rate-limits/            - Rate limit status
"""

from django.urls import path

from catalog.api.views import (
    bulk_process,
    keyword_suggestions,
    list_products,
    maintenance,
    process_product_intelligence,
    product_detail,
    product_seo,
    product_status,
    rate_limit_status,
)

app_name = 'catalog_api'

urlpatterns = [
    # Products
    path('products/intelligence/', process_product_intelligence, name='process_product_intelligence'),
    path('products/', list_products, name='list_products'),
    path('products/<int:product_id>/', product_detail, name='product_detail'),
    path('products/<int:product_id>/status/', product_status, name='product_status'),
    path('products/<int:product_id>/seo/', product_seo, name='product_seo'),

    # Keywords
    path('keywords/suggestions/', keyword_suggestions, name='keyword_suggestions'),

    # Admin
    path('admin/bulk-process/', bulk_process, name='bulk_process'),
    path('admin/maintenance/', maintenance, name='maintenance'),
    path('admin/rate-limits/', rate_limit_status, name='rate_limit_status'),
]

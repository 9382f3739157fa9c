"""
Catalog API views.

REST endpoints for product enrichment and catalog administration:
- Product intelligence: enrich a product from a name and/or model number
- Product read views: list, detail, enrichment status, SEO data
- Keyword suggestions
- Admin: bulk reprocess, maintenance, rate limit status

All endpoints require authentication and go through AdmissionThrottle.
"""

import logging

from django.utils import timezone
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from catalog.exceptions import NotFoundError, StorageError, ValidationError
from catalog.records import EnrichmentStatus, ProductInput
from catalog.services.admission import get_admission_controller, resolve_client_key
from catalog.services.keyword_ranker import KeywordRanker
from catalog.services.orchestrator import get_orchestrator
from catalog.validators import (
    SUGGESTION_LIMIT_MAX,
    validate_limit,
    validate_product_input,
    validate_status_filter,
)

logger = logging.getLogger(__name__)

MAX_BULK_IDS = 100
MAINTENANCE_ACTIONS = ("reset_failed",)


def _validation_error_response(error: ValidationError) -> Response:
    return Response(
        {'error': 'Invalid input', 'details': error.errors},
        status=status.HTTP_400_BAD_REQUEST
    )


def _not_found_response(product_id) -> Response:
    return Response(
        {'error': f'Product {product_id} not found'},
        status=status.HTTP_404_NOT_FOUND
    )


def _storage_error_response(error: StorageError) -> Response:
    logger.error(f"Storage error: {error}")
    return Response(
        {'error': 'Storage unavailable'},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )


# ============================================================
# Product Intelligence
# ============================================================

@extend_schema(
    tags=['Products'],
    summary='Enrich a product',
    description='''
    Run the enrichment pipeline for a product.

    Needs a name or a model number. Re-submitting a known model number
    re-enters the existing record and only fills missing fields.
    With `async: true` the request is queued and 202 is returned.
    ''',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'name': {'type': 'string', 'minLength': 2, 'maxLength': 60},
                'model_number': {'type': 'string', 'maxLength': 100},
                'brand': {'type': 'string', 'maxLength': 100},
                'category': {'type': 'string', 'maxLength': 100},
                'brief': {'type': 'string', 'maxLength': 100},
                'description': {'type': 'string', 'maxLength': 200},
                'price': {'type': 'number'},
                'seo_keywords': {'type': 'array', 'items': {'type': 'string'}},
                'seo_focus_keywords': {'type': 'array', 'items': {'type': 'string'}},
                'specifications': {'type': 'object', 'additionalProperties': {'type': 'string'}},
                'async': {'type': 'boolean', 'default': False},
            },
        }
    },
    responses={
        201: {
            'description': 'Product enriched',
            'content': {
                'application/json': {
                    'example': {
                        'success': True,
                        'status': 'completed',
                        'product': {'id': 1, 'model_number': 'GSP180', 'name': 'Bosch GSP180 ...'},
                        'metadata': {'processing_time': 0.12, 'sources_consulted': ['https://...']},
                    }
                }
            }
        },
        202: {'description': 'Enrichment queued'},
        400: {'description': 'Invalid input'},
        429: {'description': 'Rate limit exceeded'},
        500: {'description': 'Enrichment failed; the partially filled record is returned'},
    },
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def process_product_intelligence(request):
    """
    Enrich a product from sparse input.

    Request body:
    {
        "name": "Generic Drill",     // name and/or model_number
        "model_number": "GSP180",
        "brand": "Bosch",            // Optional
        "category": "Power Tools",   // Optional
        "seo_keywords": ["drill"]    // Optional
    }
    """
    try:
        cleaned = validate_product_input(request.data)
    except ValidationError as e:
        return _validation_error_response(e)

    if request.data.get('async'):
        from catalog.tasks import process_product_task

        task = process_product_task.delay(dict(request.data))
        return Response(
            {'success': True, 'task_id': task.id, 'status': 'queued'},
            status=status.HTTP_202_ACCEPTED
        )

    result = get_orchestrator().process(ProductInput.from_dict(cleaned))

    if result.status == EnrichmentStatus.FAILED:
        return Response(result.to_dict(), status=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Response(result.to_dict(), status=status.HTTP_201_CREATED)


# ============================================================
# Product Read Endpoints
# ============================================================

@extend_schema(
    tags=['Products'],
    summary='List products',
    parameters=[
        OpenApiParameter('status', OpenApiTypes.STR, description='Filter by enrichment status'),
        OpenApiParameter('page', OpenApiTypes.INT, description='Page number'),
    ],
    responses={200: {'description': 'Paginated product list'}, 400: {'description': 'Invalid filter'}},
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def list_products(request):
    """List products, newest first."""
    status_filter = request.query_params.get('status')
    try:
        if status_filter:
            status_filter = validate_status_filter(status_filter)
        records = get_orchestrator().storage.list(status=status_filter or None)
    except ValidationError as e:
        return _validation_error_response(e)
    except StorageError as e:
        return _storage_error_response(e)

    paginator = PageNumberPagination()
    page = paginator.paginate_queryset(records, request)
    return paginator.get_paginated_response([record.to_dict() for record in page])


@extend_schema(
    tags=['Products'],
    summary='Get or delete a product',
    responses={200: {'description': 'Product'}, 204: {'description': 'Deleted'}, 404: {'description': 'Not found'}},
)
@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_detail(request, product_id):
    """Return a product record, or delete it."""
    storage = get_orchestrator().storage
    try:
        if request.method == 'DELETE':
            if not storage.delete(product_id):
                return _not_found_response(product_id)
            logger.info(f"Deleted product {product_id}")
            return Response(status=status.HTTP_204_NO_CONTENT)

        record = storage.find_by_id(product_id)
    except StorageError as e:
        return _storage_error_response(e)

    if record is None:
        return _not_found_response(product_id)
    return Response(record.to_dict())


@extend_schema(
    tags=['Products'],
    summary='Get enrichment status',
    responses={
        200: {
            'description': 'Enrichment progress',
            'content': {
                'application/json': {
                    'example': {
                        'id': 1,
                        'status': 'completed',
                        'completion_percentage': 87.5,
                        'completed_fields': ['name', 'brief'],
                        'missing_fields': ['image_alt_texts'],
                        'last_updated': '2024-12-26T10:00:00+00:00',
                    }
                }
            }
        },
        404: {'description': 'Not found'},
    },
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def product_status(request, product_id):
    """Return the enrichment progress of a product."""
    try:
        return Response(get_orchestrator().get_status(product_id))
    except NotFoundError:
        return _not_found_response(product_id)
    except StorageError as e:
        return _storage_error_response(e)


@extend_schema(
    tags=['Products'],
    summary='Get SEO data',
    description='SEO fields plus schema.org Product structured data.',
    responses={200: {'description': 'SEO data'}, 404: {'description': 'Not found'}},
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def product_seo(request, product_id):
    """Return SEO fields and JSON-LD structured data."""
    try:
        record = get_orchestrator().storage.find_by_id(product_id)
    except StorageError as e:
        return _storage_error_response(e)

    if record is None:
        return _not_found_response(product_id)
    return Response({
        'id': record.id,
        'seo': record.seo_data(),
        'structured_data': record.structured_data(),
    })


# ============================================================
# Keywords
# ============================================================

@extend_schema(
    tags=['Keywords'],
    summary='Keyword suggestions',
    parameters=[
        OpenApiParameter('q', OpenApiTypes.STR, required=True, description='Partial keyword'),
        OpenApiParameter('limit', OpenApiTypes.INT, description='Maximum suggestions (default 10)'),
    ],
    responses={200: {'description': 'Suggestions'}, 400: {'description': 'Missing query'}},
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def keyword_suggestions(request):
    """Suggest industry keywords starting with a partial term."""
    query = (request.query_params.get('q') or '').strip()
    if not query:
        return Response(
            {'error': 'q is required'},
            status=status.HTTP_400_BAD_REQUEST
        )

    try:
        limit = validate_limit(request.query_params.get('limit'), 10, SUGGESTION_LIMIT_MAX)
    except ValidationError as e:
        return _validation_error_response(e)

    return Response({
        'query': query,
        'suggestions': KeywordRanker().suggest(query, limit=limit),
    })


# ============================================================
# Admin
# ============================================================

@extend_schema(
    tags=['Admin'],
    summary='Bulk reprocess products',
    description='''
    Re-run the enrichment pipeline for up to 100 products.

    Completed products are skipped unless `force_reprocess` is set. A forced
    run only fills missing fields; it never overwrites filled ones.
    ''',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'product_ids': {'type': 'array', 'items': {'type': 'integer'}, 'maxItems': MAX_BULK_IDS},
                'force_reprocess': {'type': 'boolean', 'default': False},
                'async': {'type': 'boolean', 'default': False},
            },
            'required': ['product_ids'],
        }
    },
    responses={
        200: {
            'description': 'Bulk reprocess finished',
            'content': {
                'application/json': {
                    'example': {
                        'summary': {'total_processed': 2, 'successful': 1, 'failed': 0, 'skipped': 1},
                        'results': [{'product_id': 1, 'status': 'success', 'message': 'Processing completed'}],
                    }
                }
            }
        },
        202: {'description': 'Bulk reprocess queued'},
        400: {'description': 'Invalid product_ids'},
    },
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def bulk_process(request):
    """Reprocess several products."""
    product_ids = request.data.get('product_ids')
    if not isinstance(product_ids, list) or not product_ids:
        return Response(
            {'error': 'product_ids must be a non-empty list'},
            status=status.HTTP_400_BAD_REQUEST
        )
    if len(product_ids) > MAX_BULK_IDS:
        return Response(
            {'error': f'Maximum {MAX_BULK_IDS} product ids per request'},
            status=status.HTTP_400_BAD_REQUEST
        )
    if not all(isinstance(pid, int) and not isinstance(pid, bool) for pid in product_ids):
        return Response(
            {'error': 'product_ids must contain integers'},
            status=status.HTTP_400_BAD_REQUEST
        )

    force = bool(request.data.get('force_reprocess', False))

    if request.data.get('async'):
        from catalog.tasks import bulk_reprocess_task

        task = bulk_reprocess_task.delay(product_ids, force)
        return Response(
            {'success': True, 'task_id': task.id, 'status': 'queued'},
            status=status.HTTP_202_ACCEPTED
        )

    return Response(get_orchestrator().bulk_reprocess(product_ids, force=force))


@extend_schema(
    tags=['Admin'],
    summary='Run maintenance actions',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'actions': {'type': 'array', 'items': {'type': 'string', 'enum': list(MAINTENANCE_ACTIONS)}},
            },
            'required': ['actions'],
        }
    },
    responses={200: {'description': 'Actions performed'}, 400: {'description': 'Invalid actions'}},
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def maintenance(request):
    """Run maintenance actions such as resetting failed products."""
    actions = request.data.get('actions')
    if not isinstance(actions, list) or not actions:
        return Response(
            {'error': 'actions must be a non-empty list'},
            status=status.HTTP_400_BAD_REQUEST
        )

    unknown = [action for action in actions if action not in MAINTENANCE_ACTIONS]
    if unknown:
        return Response(
            {'error': f'Unsupported actions: {unknown}'},
            status=status.HTTP_400_BAD_REQUEST
        )

    results = {}
    if 'reset_failed' in actions:
        try:
            count = get_orchestrator().reset_failed()
        except StorageError as e:
            return _storage_error_response(e)
        results['reset_failed'] = {'status': 'completed', 'count': count}

    return Response({
        'maintenance_completed': True,
        'actions_performed': results,
        'timestamp': timezone.now().isoformat(),
    })


@extend_schema(
    tags=['Admin'],
    summary='Rate limit status',
    description='Usage for the calling client plus controller-wide statistics.',
    responses={200: {'description': 'Rate limit status'}},
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def rate_limit_status(request):
    """Return the caller's rate limit usage and overall statistics."""
    controller = get_admission_controller()
    return Response({
        'client': controller.status(resolve_client_key(request.META)),
        'statistics': controller.statistics(),
    })

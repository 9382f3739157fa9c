"""
Celery tasks for the catalog service.

- process_product_task: enrich a product from a request payload
- bulk_reprocess_task: reprocess several products

Both run on the "enrichment" queue (see config/celery.py).
"""

import logging
from typing import Any, Dict, List

from celery import shared_task

from catalog.exceptions import ValidationError
from catalog.records import ProductInput
from catalog.services.orchestrator import get_orchestrator
from catalog.validators import validate_product_input

logger = logging.getLogger(__name__)


@shared_task(name="catalog.tasks.process_product_task", bind=True)
def process_product_task(self, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Enrich a product asynchronously.

    Args:
        payload: Raw product intelligence payload; validated here because
            queued payloads bypass the view.

    Returns:
        Dict with success flag, status, product id and run metadata
    """
    try:
        cleaned = validate_product_input(payload)
    except ValidationError as e:
        logger.warning(f"Task {self.request.id} rejected invalid payload: {e.errors}")
        return {"success": False, "error": "Invalid input", "details": e.errors}

    result = get_orchestrator().process(ProductInput.from_dict(cleaned))
    logger.info(
        f"Task {self.request.id} finished product {result.record.id} with status {result.status}"
    )
    return {
        "success": result.success,
        "status": str(result.status),
        "product_id": result.record.id,
        "error": result.error,
        "metadata": result.metadata,
    }


@shared_task(name="catalog.tasks.bulk_reprocess_task", bind=True)
def bulk_reprocess_task(self, product_ids: List[int], force: bool = False) -> Dict[str, Any]:
    """
    Reprocess products asynchronously.

    Returns:
        Summary and per-product results from EnrichmentOrchestrator.bulk_reprocess
    """
    logger.info(f"Task {self.request.id} reprocessing {len(product_ids)} products (force={force})")
    return get_orchestrator().bulk_reprocess(product_ids, force=force)

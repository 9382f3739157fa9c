"""
Storage backends for product records.

The pipeline depends on the Storage protocol only:
- find_by_id(record_id)
- find_by_model_number(model_number)
- save(record), atomic per record

DjangoProductStorage is the production backend. InMemoryProductStorage keeps
records in a dict and is used by tests and the demo command.
"""

import copy
import itertools
import logging
import threading
from decimal import InvalidOperation
from typing import Dict, List, Optional, Protocol

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from catalog.exceptions import DuplicateRecordError, StorageError
from catalog.records import EnrichmentStatus, ProductRecord

logger = logging.getLogger(__name__)


class Storage(Protocol):
    """Persistence capability used by the orchestrator."""

    def find_by_id(self, record_id: int) -> Optional[ProductRecord]:
        ...

    def find_by_model_number(self, model_number: str) -> Optional[ProductRecord]:
        ...

    def save(self, record: ProductRecord) -> ProductRecord:
        ...

    def list(self, status: Optional[str] = None) -> List[ProductRecord]:
        ...

    def delete(self, record_id: int) -> bool:
        ...

    def reset_failed(self) -> int:
        ...


class InMemoryProductStorage:
    """
    Dict-backed storage.

    Records are copied on the way in and out so callers never share state
    with the store.
    """

    def __init__(self):
        self._records: Dict[int, ProductRecord] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def find_by_id(self, record_id: int) -> Optional[ProductRecord]:
        with self._lock:
            record = self._records.get(record_id)
            return copy.deepcopy(record) if record else None

    def find_by_model_number(self, model_number: str) -> Optional[ProductRecord]:
        with self._lock:
            for record in self._records.values():
                if record.model_number == model_number:
                    return copy.deepcopy(record)
        return None

    def save(self, record: ProductRecord) -> ProductRecord:
        with self._lock:
            if record.model_number:
                for existing in self._records.values():
                    if existing.model_number == record.model_number and existing.id != record.id:
                        raise DuplicateRecordError(record.model_number)
            if record.id is None:
                record.id = next(self._ids)
            record.touch()
            self._records[record.id] = copy.deepcopy(record)
            return record

    def list(self, status: Optional[str] = None) -> List[ProductRecord]:
        with self._lock:
            records = [
                copy.deepcopy(record)
                for record in self._records.values()
                if status is None or record.enrichment_status == status
            ]
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    def delete(self, record_id: int) -> bool:
        with self._lock:
            return self._records.pop(record_id, None) is not None

    def reset_failed(self) -> int:
        count = 0
        with self._lock:
            for record in self._records.values():
                if record.enrichment_status == EnrichmentStatus.FAILED:
                    record.enrichment_status = EnrichmentStatus.PENDING
                    record.touch()
                    count += 1
        return count

    def __len__(self):
        with self._lock:
            return len(self._records)


class DjangoProductStorage:
    """Storage backed by the catalog.Product model."""

    def find_by_id(self, record_id: int) -> Optional[ProductRecord]:
        from catalog.models import Product

        try:
            product = Product.objects.filter(pk=record_id).first()
        except DatabaseError as e:
            raise StorageError(f"Failed to load product {record_id}: {e}") from e
        return product.to_record() if product else None

    def find_by_model_number(self, model_number: str) -> Optional[ProductRecord]:
        from catalog.models import Product

        try:
            product = Product.objects.filter(model_number=model_number).first()
        except DatabaseError as e:
            raise StorageError(f"Failed to load model {model_number}: {e}") from e
        return product.to_record() if product else None

    def save(self, record: ProductRecord) -> ProductRecord:
        from catalog.models import Product

        try:
            with transaction.atomic():
                if record.id is not None:
                    product = Product.objects.select_for_update().filter(pk=record.id).first()
                    if product is None:
                        raise StorageError(f"Product {record.id} no longer exists")
                else:
                    product = Product()
                product.apply_record(record)
                product.save()
        except IntegrityError as e:
            if record.model_number and self._model_number_taken(record):
                logger.warning(f"Model number {record.model_number} already stored")
                raise DuplicateRecordError(record.model_number) from e
            logger.error(f"Failed to save product {record.id}: {e}")
            raise StorageError(f"Failed to save product {record.id}: {e}") from e
        except (DatabaseError, DjangoValidationError, InvalidOperation, TypeError, ValueError) as e:
            logger.error(f"Failed to save product {record.id}: {type(e).__name__}: {e}")
            raise StorageError(f"Failed to save product {record.id}: {e}") from e

        record.id = product.pk
        record.updated_at = product.updated_at
        return record

    @staticmethod
    def _model_number_taken(record: ProductRecord) -> bool:
        from catalog.models import Product

        try:
            queryset = Product.objects.filter(model_number=record.model_number)
            if record.id is not None:
                queryset = queryset.exclude(pk=record.id)
            return queryset.exists()
        except DatabaseError:
            return False

    def list(self, status: Optional[str] = None) -> List[ProductRecord]:
        from catalog.models import Product

        queryset = Product.objects.all()
        if status:
            queryset = queryset.filter(enrichment_status=status)
        try:
            return [product.to_record() for product in queryset]
        except DatabaseError as e:
            raise StorageError(f"Failed to list products: {e}") from e

    def delete(self, record_id: int) -> bool:
        from catalog.models import Product

        try:
            deleted, _ = Product.objects.filter(pk=record_id).delete()
        except DatabaseError as e:
            raise StorageError(f"Failed to delete product {record_id}: {e}") from e
        return deleted > 0

    def reset_failed(self) -> int:
        from catalog.models import Product

        return Product.objects.filter(
            enrichment_status=EnrichmentStatus.FAILED
        ).update(
            enrichment_status=EnrichmentStatus.PENDING,
            updated_at=timezone.now(),
        )

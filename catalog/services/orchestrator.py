"""
Enrichment Orchestrator.

Drives a ProductRecord through the enrichment stages and guarantees it reaches
a terminal status:

    pending -> processing -> completed | failed

Stages run in a fixed order (manufacturer, keywords, content, media). After
each stage the orchestrator merges the stage's update into the record and
persists it, so later stages see earlier results. A stage exception only
turns that stage into a no-op. Any error outside a stage (StorageError,
InvariantViolation or anything unexpected) is fatal: the record is marked
failed and keeps whatever was merged before the failure.

At most one run per record identity is in flight: runs are serialized on a
per-key lock (model number, or record id for records without one). Runs in
other processes are not covered by that lock; a create that loses the race
on a model number merges into the stored record instead.
"""

import logging
import threading
import time
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from catalog.exceptions import (
    DuplicateRecordError,
    InvariantViolation,
    NotFoundError,
    StorageError,
)
from catalog.locks import KeyedLockRegistry
from catalog.monitoring import (
    add_pipeline_breadcrumb,
    capture_pipeline_failure,
    capture_stage_error,
)
from catalog.records import (
    BRIEF_MAX_LENGTH,
    DESCRIPTION_MAX_LENGTH,
    EnrichmentStatus,
    ProductInput,
    ProductRecord,
    RecordUpdate,
)
from catalog.services.content import truncate
from catalog.services.merge import apply_update
from catalog.services.stages import StageContext
from catalog.storage import Storage

logger = logging.getLogger(__name__)


# Stage outcome values reported in result metadata.
STAGE_APPLIED = "applied"
STAGE_NO_DATA = "no_data"
STAGE_SKIPPED = "skipped"
STAGE_ERROR = "error"
STAGE_CANCELLED = "cancelled"


@dataclass
class EnrichmentResult:
    """Outcome of one pipeline run."""

    record: ProductRecord
    status: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    skipped: bool = False

    @property
    def success(self) -> bool:
        return self.status == EnrichmentStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "status": str(self.status),
            "skipped": self.skipped,
            "error": self.error,
            "product": self.record.to_dict(),
            "metadata": self.metadata,
        }


class EnrichmentOrchestrator:
    """
    Runs the enrichment pipeline against a Storage backend.

    Args:
        storage: Record persistence.
        stages: Stages in execution order. Each needs a ``name`` attribute and
            a ``run(record, context)`` method.
        locks: Lock registry; share one registry between orchestrators that
            use the same storage.
    """

    def __init__(
        self,
        storage: Storage,
        stages: Sequence,
        locks: Optional[KeyedLockRegistry] = None,
    ):
        self.storage = storage
        self.stages = list(stages)
        self.locks = locks or KeyedLockRegistry()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def process(
        self,
        product_input: ProductInput,
        cancel_event: Optional[threading.Event] = None,
    ) -> EnrichmentResult:
        """
        Enrich a product from sparse input.

        Re-invoking with the same model number re-enters the existing record
        and only fills gaps.

        Args:
            product_input: Caller input; needs a name or a model number.
            cancel_event: When set, stages that have not started are skipped
                and the record stays in processing.

        Returns:
            EnrichmentResult with the record, its status and run metadata.
        """
        started = time.monotonic()

        if not product_input.has_identity():
            error = InvariantViolation("Product input has neither name nor model number")
            return self._fail(None, product_input, error, started, {}, [])

        key = f"model:{product_input.model_number}" if product_input.model_number else None
        with self.locks.hold(key):
            return self._execute(product_input, None, key, started, cancel_event)

    def reprocess(
        self,
        record_id: int,
        force: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> EnrichmentResult:
        """
        Re-run the pipeline for an existing record.

        Completed records are skipped unless force is set. A forced run keeps
        fill-don't-replace: it fills missing fields, unions collections and
        regenerates seo_keywords, but never rewrites filled scalars.

        Raises:
            NotFoundError: If the record does not exist.
        """
        started = time.monotonic()
        record = self.storage.find_by_id(record_id)
        if record is None:
            raise NotFoundError(record_id)

        if record.enrichment_status == EnrichmentStatus.COMPLETED and not force:
            logger.info(f"Skipping completed record {record_id}")
            return EnrichmentResult(
                record=record,
                status=record.enrichment_status,
                metadata=self._metadata(record, started, {}, []),
                skipped=True,
            )

        key = record.lock_key
        with self.locks.hold(key):
            return self._execute(
                ProductInput.from_record(record), record.id, key, started, cancel_event
            )

    def bulk_reprocess(self, record_ids: List[int], force: bool = False) -> Dict[str, Any]:
        """
        Reprocess several records, one at a time.

        Returns:
            Dict with a "summary" of counts and per-record "results".
        """
        results = []
        successful = failed = skipped = 0

        for record_id in record_ids:
            try:
                result = self.reprocess(record_id, force=force)
            except NotFoundError:
                results.append({
                    "product_id": record_id,
                    "status": "error",
                    "message": "Product not found",
                })
                failed += 1
                continue
            except StorageError as e:
                logger.error(f"Bulk reprocess could not load record {record_id}: {e}")
                results.append({"product_id": record_id, "status": "error", "message": str(e)})
                failed += 1
                continue

            if result.skipped:
                results.append({
                    "product_id": record_id,
                    "status": "skipped",
                    "message": "Already completed",
                })
                skipped += 1
            elif result.success:
                results.append({
                    "product_id": record_id,
                    "status": "success",
                    "message": "Processing completed",
                })
                successful += 1
            else:
                results.append({
                    "product_id": record_id,
                    "status": "error",
                    "message": result.error or f"Processing ended in {result.status}",
                })
                failed += 1

        return {
            "summary": {
                "total_processed": len(record_ids),
                "successful": successful,
                "failed": failed,
                "skipped": skipped,
            },
            "results": results,
        }

    def get_status(self, record_id: int) -> Dict[str, Any]:
        """
        Enrichment progress of a record.

        Raises:
            NotFoundError: If the record does not exist.
        """
        record = self.storage.find_by_id(record_id)
        if record is None:
            raise NotFoundError(record_id)

        return {
            "id": record.id,
            "status": str(record.enrichment_status),
            "completion_percentage": record.completion_percentage(),
            "completed_fields": record.completed_fields(),
            "missing_fields": record.missing_fields(),
            "last_updated": record.updated_at.isoformat() if record.updated_at else None,
        }

    def reset_failed(self) -> int:
        """Move every failed record back to pending."""
        count = self.storage.reset_failed()
        logger.info(f"Reset {count} failed records to pending")
        return count

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _execute(
        self,
        product_input: ProductInput,
        record_id: Optional[int],
        held_key: Optional[str],
        started: float,
        cancel_event: Optional[threading.Event],
    ) -> EnrichmentResult:
        stages_report: Dict[str, Dict[str, Any]] = {}
        models_used: List[str] = []

        try:
            record = self._resolve_or_create(product_input, record_id)
        except Exception as e:
            return self._fail(None, product_input, e, started, stages_report, models_used)

        with ExitStack() as stack:
            if record.lock_key != held_key:
                stack.enter_context(self.locks.hold(record.lock_key))

            context = StageContext(product_input=product_input)
            try:
                for index, stage in enumerate(self.stages):
                    if cancel_event is not None and cancel_event.is_set():
                        for pending in self.stages[index:]:
                            stages_report[pending.name] = {"status": STAGE_CANCELLED}
                        logger.info(
                            f"Run for record {record.id} cancelled before stage {stage.name}"
                        )
                        return EnrichmentResult(
                            record=record,
                            status=record.enrichment_status,
                            metadata=self._metadata(record, started, stages_report, models_used),
                        )

                    stages_report[stage.name] = self._run_stage(
                        stage, record, context, models_used
                    )

                record.enrichment_status = EnrichmentStatus.COMPLETED
                record.touch()
                self.storage.save(record)
            except Exception as e:
                return self._fail(record, product_input, e, started, stages_report, models_used)

        logger.info(
            f"Enriched record {record.id} in {time.monotonic() - started:.2f}s "
            f"({record.completion_percentage()}% complete)"
        )
        return EnrichmentResult(
            record=record,
            status=record.enrichment_status,
            metadata=self._metadata(record, started, stages_report, models_used),
        )

    def _resolve_or_create(
        self, product_input: ProductInput, record_id: Optional[int]
    ) -> ProductRecord:
        """Find or create the record, merge the input and mark it processing."""
        record = None
        if record_id is not None:
            record = self.storage.find_by_id(record_id)
            if record is None:
                raise StorageError(f"Product {record_id} disappeared during reprocessing")
        elif product_input.model_number:
            record = self.storage.find_by_model_number(product_input.model_number)

        if record is None:
            record = ProductRecord(model_number=product_input.model_number)
            logger.info(
                f"Creating product for '{product_input.name or product_input.model_number}'"
            )
        else:
            logger.info(f"Re-entering pipeline for record {record.id}")

        apply_update(record, self._input_update(record, product_input))
        if not (record.name or record.model_number):
            raise InvariantViolation(f"Record {record.id} has neither name nor model number")

        record.enrichment_status = EnrichmentStatus.PROCESSING
        record.touch()
        try:
            record = self.storage.save(record)
        except DuplicateRecordError:
            if record.id is not None:
                raise
            record = self._merge_into_stored(product_input)
        add_pipeline_breadcrumb("Pipeline started", record_id=record.id)
        return record

    def _merge_into_stored(self, product_input: ProductInput) -> ProductRecord:
        """Merge the input into a record another process created first."""
        record = self.storage.find_by_model_number(product_input.model_number)
        if record is None:
            raise StorageError(
                f"Model number {product_input.model_number} is taken but cannot be loaded"
            )
        logger.info(
            f"Record {record.id} for {product_input.model_number} was created concurrently; "
            f"merging input into it"
        )
        apply_update(record, self._input_update(record, product_input))
        record.enrichment_status = EnrichmentStatus.PROCESSING
        record.touch()
        return self.storage.save(record)

    @staticmethod
    def _input_update(record: ProductRecord, product_input: ProductInput) -> RecordUpdate:
        new_keywords = [
            keyword for keyword in product_input.seo_keywords
            if keyword not in record.seo_keywords
        ]
        return RecordUpdate(
            model_number=product_input.model_number,
            name=product_input.name,
            brand=product_input.brand,
            category=product_input.category,
            brief=truncate(product_input.brief, BRIEF_MAX_LENGTH) if product_input.brief else None,
            description=(
                truncate(product_input.description, DESCRIPTION_MAX_LENGTH)
                if product_input.description else None
            ),
            price=product_input.price,
            seo_keywords=record.seo_keywords + new_keywords if new_keywords else None,
            specifications=dict(product_input.specifications),
        )

    def _run_stage(
        self,
        stage,
        record: ProductRecord,
        context: StageContext,
        models_used: List[str],
    ) -> Dict[str, Any]:
        """Run one stage and merge its output. Fatal errors propagate."""
        try:
            update = stage.run(record.snapshot(), context)
        except (StorageError, InvariantViolation):
            raise
        except Exception as e:
            logger.warning(
                f"Stage {stage.name} failed for record {record.id}: "
                f"{type(e).__name__}: {e}"
            )
            capture_stage_error(e, stage=stage.name, record_id=record.id)
            return {"status": STAGE_ERROR, "error": str(e)}

        if update is None:
            return {"status": STAGE_SKIPPED}

        changed = apply_update(record, update)
        if changed:
            self.storage.save(record)

        for entry in update.ai_metadata.values():
            model = entry.get("model") if isinstance(entry, dict) else None
            if model and model not in models_used:
                models_used.append(model)

        fields = [name for name in changed if name != "ai_metadata"]
        return {
            "status": STAGE_APPLIED if fields else STAGE_NO_DATA,
            "fields": fields,
        }

    def _fail(
        self,
        record: Optional[ProductRecord],
        product_input: ProductInput,
        error: Exception,
        started: float,
        stages_report: Dict[str, Dict[str, Any]],
        models_used: List[str],
    ) -> EnrichmentResult:
        """Mark the run failed, keeping whatever was merged so far."""
        record_id = record.id if record else None
        logger.error(f"Enrichment failed for record {record_id}: {type(error).__name__}: {error}")
        capture_pipeline_failure(error, record_id=record_id)

        if record is None:
            record = ProductRecord(
                model_number=product_input.model_number,
                name=product_input.name or "",
                brand=product_input.brand or "",
                category=product_input.category or "",
            )

        record.enrichment_status = EnrichmentStatus.FAILED
        record.touch()
        if record.id is not None:
            try:
                self.storage.save(record)
            except Exception as save_error:
                logger.error(
                    f"Could not persist failed status for record {record.id}: {save_error}"
                )

        return EnrichmentResult(
            record=record,
            status=EnrichmentStatus.FAILED,
            metadata=self._metadata(record, started, stages_report, models_used),
            error=str(error),
        )

    @staticmethod
    def _metadata(
        record: ProductRecord,
        started: float,
        stages_report: Dict[str, Dict[str, Any]],
        models_used: List[str],
    ) -> Dict[str, Any]:
        return {
            "processing_time": round(time.monotonic() - started, 3),
            "sources_consulted": list(record.source_urls),
            "ai_models_used": list(models_used),
            "stages": stages_report,
            "completion_percentage": record.completion_percentage(),
        }


def build_orchestrator(storage: Optional[Storage] = None) -> EnrichmentOrchestrator:
    """
    Wire an orchestrator from Django settings.

    Sources come from the catalog API when CATALOG_SOURCE_API_URL is set and
    from the bundled fixtures otherwise.
    """
    from django.conf import settings

    from catalog.services.content import TemplateContentGenerator
    from catalog.services.stages import (
        ContentGenerationStage,
        KeywordResearchStage,
        ManufacturerLookupStage,
        MediaDiscoveryStage,
    )
    from catalog.sources import (
        HttpImageSource,
        HttpManufacturerSource,
        StaticImageSource,
        StaticManufacturerSource,
    )
    from catalog.storage import DjangoProductStorage

    timeout = getattr(settings, "CATALOG_SOURCE_TIMEOUT", 10.0)
    max_images = getattr(settings, "CATALOG_MAX_IMAGES", 8)
    api_url = getattr(settings, "CATALOG_SOURCE_API_URL", "")

    if api_url:
        api_token = getattr(settings, "CATALOG_SOURCE_API_TOKEN", "")
        manufacturer_source = HttpManufacturerSource(api_url, api_token, timeout=timeout)
        image_source = HttpImageSource(api_url, api_token, timeout=timeout)
    else:
        manufacturer_source = StaticManufacturerSource()
        image_source = StaticImageSource()

    stages = [
        ManufacturerLookupStage(manufacturer_source, timeout=timeout),
        KeywordResearchStage(),
        ContentGenerationStage(TemplateContentGenerator(), timeout=timeout),
        MediaDiscoveryStage(image_source, max_images=max_images, timeout=timeout),
    ]
    return EnrichmentOrchestrator(storage or DjangoProductStorage(), stages)


# Singleton instance
_orchestrator: Optional[EnrichmentOrchestrator] = None


def get_orchestrator() -> EnrichmentOrchestrator:
    """Get singleton EnrichmentOrchestrator instance."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator()
    return _orchestrator


def reset_orchestrator() -> None:
    """Reset singleton for testing."""
    global _orchestrator
    _orchestrator = None

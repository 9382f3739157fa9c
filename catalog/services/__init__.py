"""
Services for the catalog enrichment pipeline.

Contains:
- admission: AdmissionController (fixed-window request admission)
- keyword_ranker: keyword candidate generation and ranking
- content: SEO content composition and optimization
- media: image scoring and alt text generation
- merge: fill-don't-replace merge of stage output
- stages: the four enrichment stages
- orchestrator: EnrichmentOrchestrator driving records through the stages
"""

from catalog.services.admission import (
    AdmissionController,
    AdmissionDecision,
    RateLimit,
    get_admission_controller,
    reset_admission_controller,
    resolve_client_key,
)
from catalog.services.orchestrator import (
    EnrichmentOrchestrator,
    EnrichmentResult,
    build_orchestrator,
    get_orchestrator,
    reset_orchestrator,
)

__all__ = [
    "AdmissionController",
    "AdmissionDecision",
    "RateLimit",
    "get_admission_controller",
    "reset_admission_controller",
    "resolve_client_key",
    "EnrichmentOrchestrator",
    "EnrichmentResult",
    "build_orchestrator",
    "get_orchestrator",
    "reset_orchestrator",
]

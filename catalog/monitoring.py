"""
Sentry error reporting for the enrichment pipeline.

Sentry itself is initialised in config/settings/base.py when SENTRY_DSN is
set; without a client these helpers are no-ops inside sentry_sdk.

Usage:
    from catalog.monitoring import capture_stage_error

    try:
        update = stage.run(snapshot, context)
    except Exception as e:
        capture_stage_error(e, stage="content", record_id=record.id)
"""

import logging
from typing import Any, Dict, Optional

import sentry_sdk

logger = logging.getLogger(__name__)

SENSITIVE_FIELDS = {
    "authorization",
    "api_key",
    "apikey",
    "password",
    "secret",
    "token",
    "cookie",
}


def _filter_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Replace values whose keys look like credentials."""
    if not isinstance(data, dict):
        return data

    filtered = {}
    for key, value in data.items():
        if any(sensitive in key.lower() for sensitive in SENSITIVE_FIELDS):
            filtered[key] = "[Filtered]"
        elif isinstance(value, dict):
            filtered[key] = _filter_sensitive_data(value)
        else:
            filtered[key] = value
    return filtered


def add_pipeline_breadcrumb(
    message: str,
    record_id: Optional[int] = None,
    stage: Optional[str] = None,
    level: str = "info",
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """Record a pipeline step so errors carry the steps that led to them."""
    data: Dict[str, Any] = {"record_id": record_id}
    if stage:
        data["stage"] = stage
    if extra_data:
        data.update(_filter_sensitive_data(extra_data))

    sentry_sdk.add_breadcrumb(category="enrichment", message=message, level=level, data=data)


def capture_stage_error(
    error: Exception,
    stage: str,
    record_id: Optional[int] = None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Report a swallowed stage failure to Sentry.

    Args:
        error: The exception raised by the stage.
        stage: Stage name.
        record_id: Record being processed.
        extra_context: Additional context, filtered for credentials.
    """
    add_pipeline_breadcrumb(
        message=f"Stage error: {type(error).__name__}",
        record_id=record_id,
        stage=stage,
        level="error",
    )

    with sentry_sdk.new_scope() as scope:
        scope.set_tag("enrichment.stage", stage)
        if record_id is not None:
            scope.set_extra("record_id", record_id)
        if extra_context:
            scope.set_extra("stage_context", _filter_sensitive_data(extra_context))
        sentry_sdk.capture_exception(error)


def capture_pipeline_failure(error: Exception, record_id: Optional[int] = None) -> None:
    """Report a fatal pipeline failure (storage error or invariant violation)."""
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("enrichment.fatal", type(error).__name__)
        if record_id is not None:
            scope.set_extra("record_id", record_id)
        sentry_sdk.capture_exception(error)

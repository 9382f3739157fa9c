"""
Error taxonomy for the catalog enrichment service.

StorageError, InvariantViolation and any other error raised outside a stage
are fatal inside the pipeline. SourceUnavailable never escapes a stage.
ValidationError, NotFoundError and RateLimitedError are raised at the entry
boundary (views, tasks, commands, the API throttle).
"""

from typing import Dict, List, Optional


class CatalogError(Exception):
    """Base class for catalog errors."""


class ValidationError(CatalogError):
    """
    Raised when product input is malformed.

    Attributes:
        errors: Mapping of field name to a list of messages. The "_general"
            key holds errors not tied to a single field.
    """

    def __init__(self, errors: Dict[str, List[str]]):
        self.errors = errors
        fields = ", ".join(sorted(errors))
        super().__init__(f"Invalid product input: {fields}")


class NotFoundError(CatalogError):
    """Raised when a record id or model number is unknown."""

    def __init__(self, identifier):
        self.identifier = identifier
        super().__init__(f"Product not found: {identifier}")


class SourceUnavailable(CatalogError):
    """Raised by external sources on timeout or transport error."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"{source} unavailable: {reason}")


class StorageError(CatalogError):
    """Raised when a record cannot be read or persisted."""


class DuplicateRecordError(StorageError):
    """Raised when a new record reuses a stored model number."""

    def __init__(self, model_number: str):
        self.model_number = model_number
        super().__init__(f"Duplicate model number: {model_number}")


class InvariantViolation(CatalogError):
    """Raised when a record would break a data model invariant."""


class RateLimitedError(CatalogError):
    """
    Raised when the admission controller rejects a request.

    Attributes:
        identifier: Client key that exceeded the limit.
        limit: The limit that was exceeded.
        window_seconds: Size of the exceeded window.
        retry_after: Seconds until the exceeded window resets.
    """

    def __init__(
        self,
        identifier: str,
        limit: int,
        window_seconds: int,
        retry_after: int,
        limit_type: Optional[str] = None,
    ):
        self.identifier = identifier
        self.limit = limit
        self.window_seconds = window_seconds
        self.retry_after = retry_after
        self.limit_type = limit_type
        super().__init__(
            f"Rate limit exceeded for {identifier}: {limit} requests per "
            f"{window_seconds}s (retry after {retry_after}s)"
        )

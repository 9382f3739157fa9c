"""
API throttling backed by the AdmissionController.

DRF calls allow_request() for every API view; a rejection becomes HTTP 429
with a Retry-After header taken from wait().
"""

from rest_framework.throttling import BaseThrottle

from catalog.exceptions import RateLimitedError
from catalog.services.admission import get_admission_controller, resolve_client_key


class AdmissionThrottle(BaseThrottle):
    """
    Per-client fixed-window limits, plus stricter limits on expensive
    operations (product intelligence, bulk reprocess).

    Configured through the CATALOG_RATE_LIMITS setting.
    """

    def __init__(self):
        self.error = None

    def get_ident(self, request):
        return resolve_client_key(request.META)

    def allow_request(self, request, view):
        try:
            get_admission_controller().check(
                self.get_ident(request), request.method, request.path
            )
        except RateLimitedError as e:
            self.error = e
            return False
        self.error = None
        return True

    def wait(self):
        if self.error is None:
            return None
        return self.error.retry_after

"""
Catalog REST API.

Contains:
- views: DRF function views
- throttling: AdmissionThrottle backed by the AdmissionController
- urls: URL patterns mounted under /api/
"""

"""
Pytest configuration and fixtures for the catalog test suite.
"""

import pytest


@pytest.fixture(scope="session")
def django_db_setup(django_db_blocker):
    """Configure the test database and run migrations."""
    from django.core.management import call_command

    with django_db_blocker.unblock():
        call_command("migrate", "--run-syncdb", verbosity=0)


@pytest.fixture(autouse=True)
def reset_singletons():
    """Drop the orchestrator and admission singletons around every test."""
    from catalog.services.admission import reset_admission_controller
    from catalog.services.orchestrator import reset_orchestrator

    reset_orchestrator()
    reset_admission_controller()
    yield
    reset_orchestrator()
    reset_admission_controller()


@pytest.fixture
def api_client():
    """Create a test API client."""
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def api_user(db):
    """Create a regular user for API calls."""
    from django.contrib.auth import get_user_model

    User = get_user_model()
    return User.objects.create_user(username="catalog", password="testpass123")


@pytest.fixture
def authenticated_client(api_client, api_user):
    """API client authenticated as api_user."""
    api_client.force_authenticate(user=api_user)
    return api_client


@pytest.fixture
def in_memory_storage():
    """Empty in-memory product storage."""
    from catalog.storage import InMemoryProductStorage

    return InMemoryProductStorage()


class FakeClock:
    """Manually advanced clock for time-dependent tests."""

    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock():
    """Clock parked 30 seconds into a minute (and into an hour)."""
    # 1_700_000_010 % 60 == 30, 1_700_000_010 % 3600 == 810
    return FakeClock(1_700_000_010.0)


@pytest.fixture
def build_pipeline(in_memory_storage):
    """
    Factory for orchestrators over in-memory storage.

    Sources default to the bundled fixtures; pass manufacturer_source,
    image_source or content_generator to replace them.
    """
    from catalog.services.content import TemplateContentGenerator
    from catalog.services.orchestrator import EnrichmentOrchestrator
    from catalog.services.stages import (
        ContentGenerationStage,
        KeywordResearchStage,
        ManufacturerLookupStage,
        MediaDiscoveryStage,
    )
    from catalog.sources import StaticImageSource, StaticManufacturerSource

    def _build(
        manufacturer_source=None,
        image_source=None,
        content_generator=None,
        storage=None,
        timeout=2.0,
    ):
        stages = [
            ManufacturerLookupStage(
                manufacturer_source or StaticManufacturerSource(), timeout=timeout
            ),
            KeywordResearchStage(),
            ContentGenerationStage(
                content_generator or TemplateContentGenerator(), timeout=timeout
            ),
            MediaDiscoveryStage(image_source or StaticImageSource(), timeout=timeout),
        ]
        return EnrichmentOrchestrator(storage if storage is not None else in_memory_storage, stages)

    return _build

"""
Pytest configuration and fixtures for lab_catalog tests.
"""

import sys
from datetime import UTC, datetime
from pathlib import Path

import httpx
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fixtures.fake_backend import FakeBackend, make_token, seed_catalog  # noqa: E402

from lab_catalog.context import CatalogContext  # noqa: E402
from lab_catalog.core.config_loader import CatalogConfig  # noqa: E402
from lab_catalog.core.session import SessionContext  # noqa: E402
from lab_catalog.models.entities import User  # noqa: E402

FAR_FUTURE_EXP = 4102444800  # 2100-01-01T00:00:00Z
TEST_USER_ID = 7


@pytest.fixture(scope="session")
def project_root():
    """Return project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def backend() -> FakeBackend:
    """Fresh fake server seeded with the standard catalog."""
    return seed_catalog(FakeBackend())


@pytest.fixture
def catalog_config() -> CatalogConfig:
    """Small page size so the standard catalog spans three pages."""
    return CatalogConfig.from_dict(
        {
            "api_url": "http://catalog.test/api",
            "page_size": 2,
            "sort_by": "id",
            "timeout_s": 5.0,
            "user_header": "X-User-Id",
            "roles_header": "X-User-Roles",
        }
    )


@pytest.fixture
def fixed_clock():
    """Clock pinned to 2025-06-01T12:00:00Z."""
    return lambda: datetime(2025, 6, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def session(fixed_clock) -> SessionContext:
    """Authenticated session for user 7 with two roles."""
    context = SessionContext(clock=fixed_clock)
    token = make_token({"sub": "tester", "roles": ["admin", "Bioquimico"], "exp": FAR_FUTURE_EXP})
    context.set_session(token, User(id=TEST_USER_ID, username="tester", is_active=True))
    return context


@pytest.fixture
def catalog(backend, catalog_config, session) -> CatalogContext:
    """Catalog context wired to the fake backend."""
    return CatalogContext(catalog_config, session, transport=httpx.MockTransport(backend.handle))

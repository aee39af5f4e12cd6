"""Tests for CatalogContext wiring, login and logout."""

import asyncio

import httpx
import pytest

from lab_catalog.context import CatalogContext
from lab_catalog.core.errors import ClientError, InactiveUserError, MissingSessionError
from lab_catalog.core.session import SessionContext
from lab_catalog.core.single_flight import CacheState
from lab_catalog.models.entities import SampleType


@pytest.fixture
def anonymous_catalog(backend, catalog_config, fixed_clock):
    """Catalog context with an empty session."""
    return CatalogContext(
        catalog_config,
        SessionContext(clock=fixed_clock),
        transport=httpx.MockTransport(backend.handle),
    )


class TestCatalogContextLogin:
    def test_login_stores_session_and_roles(self, anonymous_catalog, backend):
        # Arrange
        catalog = anonymous_catalog

        # Act
        async def scenario():
            async with catalog:
                user = await catalog.login("jdoe", "secret")
                analyses = await catalog.analyses.get_all()
                return user, analyses

        user, analyses = asyncio.run(scenario())

        # Assert
        assert user.id == 42
        assert catalog.session.require_user_id() == 42
        assert catalog.session.roles.value == ("ADMINISTRADOR", "FACTURISTA")
        assert catalog.session.is_logged_in()
        assert len(analyses) == 5
        assert backend.calls_to("GET", "/analysis/page")[0].params["page"] == "0"

    def test_login_first_login_keeps_first_login_token(self, anonymous_catalog):
        async def scenario():
            async with anonymous_catalog:
                return await anonymous_catalog.login("newcomer", "secret")

        user = asyncio.run(scenario())

        assert user.is_first_login is True
        assert anonymous_catalog.session.first_login_token == "first-login-token"

    def test_login_inactive_user_raises_and_stores_nothing(self, anonymous_catalog):
        async def scenario():
            async with anonymous_catalog:
                await anonymous_catalog.login("inactive", "secret")

        with pytest.raises(InactiveUserError):
            asyncio.run(scenario())

        assert anonymous_catalog.session.token is None
        assert anonymous_catalog.session.user is None

    def test_login_bad_credentials_raise_client_error(self, anonymous_catalog):
        async def scenario():
            async with anonymous_catalog:
                await anonymous_catalog.login("jdoe", "wrong")

        with pytest.raises(ClientError) as exc_info:
            asyncio.run(scenario())

        assert exc_info.value.status_code == 401

    def test_calls_before_login_raise_missing_session(self, anonymous_catalog, backend):
        async def scenario():
            async with anonymous_catalog:
                await anonymous_catalog.analyses.get_all()

        with pytest.raises(MissingSessionError):
            asyncio.run(scenario())

        assert backend.calls == []


class TestCatalogContextLogout:
    def test_logout_clears_session_caches_and_overlays(self, catalog):
        # Arrange
        async def scenario():
            async with catalog:
                await catalog.analyses.get_all()
                await catalog.versions.prefetch_details()
                await catalog.sample_types.upsert(SampleType(name="Saliva"))
                # Act
                catalog.logout()

        asyncio.run(scenario())

        # Assert
        assert catalog.session.user is None
        assert catalog.session.roles.value == ()
        assert catalog.analyses.cache.state is CacheState.INVALID
        assert catalog.versions.details_cache.state is CacheState.INVALID
        assert len(catalog.sample_types.overlay) == 0

    def test_separate_contexts_share_no_cache_state(self, catalog, backend, catalog_config, session):
        other = CatalogContext(catalog_config, session, transport=httpx.MockTransport(backend.handle))

        async def scenario():
            async with catalog, other:
                await catalog.analyses.get_all()
                return other.analyses.cache.state

        other_state = asyncio.run(scenario())

        assert other_state is CacheState.EMPTY

"""
Catalog Context - wires every component for one session.

All cache state lives on the services owned by one context instance; nothing
is memoized at module level. Tests and applications construct a fresh context
and close it when done:

    async with CatalogContext.create() as catalog:
        await catalog.login("jdoe", "secret")
        analyses = await catalog.analyses.get_all()
"""

from typing import Any

import httpx
import structlog

from lab_catalog.catalog.analysis_service import AnalysisService
from lab_catalog.catalog.determination_service import DeterminationService
from lab_catalog.catalog.nbu_service import NbuService
from lab_catalog.catalog.nbu_version_service import NbuVersionService
from lab_catalog.catalog.reconciliation import ReconciliationEngine
from lab_catalog.catalog.sample_type_service import SampleTypeService
from lab_catalog.catalog.worksheet_setting_service import WorksheetSettingService
from lab_catalog.core.config_loader import CatalogConfig, load_catalog_config
from lab_catalog.core.session import SessionContext
from lab_catalog.gateway.client import CatalogGateway
from lab_catalog.models.entities import User

logger = structlog.get_logger(__name__)


class CatalogContext:
    """Owns the gateway, the session and every cache-holding service."""

    def __init__(
        self,
        config: CatalogConfig,
        session: SessionContext,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.session = session
        self.gateway = CatalogGateway(config, session, transport=transport)
        self.analyses = AnalysisService(self.gateway, config)
        self.determinations = DeterminationService(self.gateway, self.analyses)
        self.nbus = NbuService(self.gateway, self.analyses)
        self.sample_types = SampleTypeService(self.gateway, self.analyses)
        self.worksheet_settings = WorksheetSettingService(self.gateway, self.analyses)
        self.versions = NbuVersionService(self.gateway, self.analyses)
        self.reconciliation = ReconciliationEngine(self.gateway, self.analyses, self.versions)

    @classmethod
    def create(
        cls,
        config: CatalogConfig | None = None,
        session: SessionContext | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "CatalogContext":
        """
        Build a context, loading configuration from config/catalog.yaml and the
        environment when none is given.
        """
        return cls(config or load_catalog_config(), session or SessionContext(), transport=transport)

    async def __aenter__(self) -> "CatalogContext":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.gateway.aclose()

    async def login(self, username: str, password: str) -> User | None:
        """
        Authenticate and store the session.

        Raises:
            ClientError: Credentials rejected
            InactiveUserError: The account is deactivated
        """
        response = await self.gateway.login(username, password)
        self.session.complete_login(response)
        self.invalidate_all()
        return response.user

    def logout(self) -> None:
        self.session.logout()
        self.invalidate_all()
        self.sample_types.overlay.clear()
        self.worksheet_settings.overlay.clear()

    def invalidate_all(self) -> None:
        """Drop every cached snapshot; the next reads hit the server."""
        self.analyses.invalidate()
        self.determinations.invalidate()
        self.versions.invalidate()
        logger.debug("catalog_caches_invalidated")

"""Async data-access layer for the clinical-laboratory analysis catalog.

Components:
- Session context: bearer token, claims and normalized roles
- Remote gateway: httpx-based client for the catalog REST API
- Root aggregate cache and derived entity views (analyses, determinations,
  NBUs, sample types, worksheet settings)
- Version detail cache and the NBU/version membership reconciliation engine
"""

from lab_catalog.context import CatalogContext
from lab_catalog.core.config_loader import CatalogConfig, load_catalog_config
from lab_catalog.core.logging_config import configure_logging
from lab_catalog.core.session import SessionContext

__all__ = ["CatalogConfig", "CatalogContext", "configure_logging", "load_catalog_config", "SessionContext"]

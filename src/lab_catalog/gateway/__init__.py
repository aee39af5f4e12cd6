"""HTTP gateway to the remote catalog API."""

from lab_catalog.gateway.client import CatalogGateway

__all__ = ["CatalogGateway"]

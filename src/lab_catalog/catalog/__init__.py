"""Catalog services: cached views, mutations and membership reconciliation."""

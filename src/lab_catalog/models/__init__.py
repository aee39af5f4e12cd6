"""Pydantic models of catalog entities."""

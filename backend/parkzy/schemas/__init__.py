"""Pydantic request/response schemas for the Parkzy API."""

"""Data models for the FastAPI service.

This package contains Pydantic models for request validation, stored
documents and page render models.
"""

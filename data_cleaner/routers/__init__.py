"""Expose router modules for FastAPI application."""

from . import cleanup  # noqa: F401

__all__ = ["cleanup"]

"""
HTTP boundary for the Product Data Service (FastAPI).
"""

from .app import build_service, create_app

__all__ = ["create_app", "build_service"]

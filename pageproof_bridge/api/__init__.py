"""
HTTP API
========
FastAPI application exposing health, HMAC, webhook and proof routes.
"""

from .app import API_PREFIX, BridgeServices, build_secret_store, build_services, create_app

__all__ = [
    "API_PREFIX",
    "BridgeServices",
    "build_secret_store",
    "build_services",
    "create_app",
]

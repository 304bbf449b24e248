"""
API module for the device log - HTTP adapter over LogService.

Invariants:
    - Routes hold no state, everything goes through LogService
    - Paths stay compatible with deployed devices
"""

from .app import build_service, create_app, create_app_from_config
from .routes import router

__all__ = ["build_service", "create_app", "create_app_from_config", "router"]

"""Service mode: HTTP control surface for keep-alive sessions."""

from .app import create_app
from .plugin import ServicePlugin

__all__ = ["ServicePlugin", "create_app"]

"""HTTP surface of the LNURL server."""

from .app import create_app

__all__ = ["create_app"]

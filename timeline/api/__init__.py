"""
HTTP glue over the timeline core.
"""

from .server import app, create_app

__all__ = ["app", "create_app"]

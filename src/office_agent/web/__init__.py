"""HTTP surface for the office agent."""

from .app import create_app

__all__ = ["create_app"]

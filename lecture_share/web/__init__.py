"""HTTP surface of the Lecture Share service."""

from .server import create_app

__all__ = ["create_app"]

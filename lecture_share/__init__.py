"""Lecture Share: lecture distribution and roster management service."""

__version__ = "0.1.0"

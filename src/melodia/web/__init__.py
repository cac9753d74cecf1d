"""Extraction and sync relay web service."""

from .main import create_app

__all__ = ["create_app"]

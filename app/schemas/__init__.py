"""
Pydantic schemas for settings and webhook payload validation
"""

from .connection import GlobalSettings

__all__ = [
    "GlobalSettings",
]

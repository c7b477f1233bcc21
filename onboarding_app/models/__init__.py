# onboarding_app/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .documents import Document

__all__ = [
    "db",
    "BaseModel",
    "Document",
]

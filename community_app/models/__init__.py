# community_app/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .import_run import ImportRun, ImportRunStatus

__all__ = [
    "db",
    "BaseModel",
    "ImportRun",
    "ImportRunStatus",
]

"""Database package."""

from taskflow.db.base import Base, BaseModel, JSONType
from taskflow.db.session import get_db_session

__all__ = ["Base", "BaseModel", "JSONType", "get_db_session"]

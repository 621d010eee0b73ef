"""SQLAlchemy metadata registry import for Alembic."""

from app.models import Message, User
from app.models.base import Base

__all__ = ["Base", "Message", "User"]

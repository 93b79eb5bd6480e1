# keystead/app/db/base.py
"""
SQLAlchemy declarative base and re-exports of the session plumbing.

Models import `Base` from here; endpoints import `get_db` from here.
"""
from sqlalchemy.orm import DeclarativeBase


# ─────────────────────────────────────────────────────────────────────────────
# Declarative Base for ORM Models
# All models inherit from this class
# ─────────────────────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Usage:
        class Device(Base):
            __tablename__ = "devices"
            id = Column(Uuid, primary_key=True, default=uuid.uuid4)
            ...
    """
    pass


from keystead.app.db.session import (
    engine,
    AsyncSessionLocal,
    create_engine_for,
    create_session_factory,
    get_db,
    commit_or_raise,
)

__all__ = [
    "Base",
    "engine",
    "AsyncSessionLocal",
    "create_engine_for",
    "create_session_factory",
    "get_db",
    "commit_or_raise",
]

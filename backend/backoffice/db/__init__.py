from backoffice.db.base import Base, IDMixin, TimestampMixin, utcnow
from backoffice.db.session import SessionLocal, atomic, engine, get_db

__all__ = [
    "Base",
    "IDMixin",
    "TimestampMixin",
    "utcnow",
    "engine",
    "SessionLocal",
    "atomic",
    "get_db",
]

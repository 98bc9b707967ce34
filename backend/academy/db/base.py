"""SQLAlchemy Declarative Base — shared base class for all academy tables.

Invariants:
    - Every model inherits from Base, so Base.metadata drives create_all and alembic
    - A bare Mapped[datetime] column is timezone-aware; the clock only hands out UTC

Design Decisions:
    - Separate module for Base: models import it without importing each other
    - repr shows the primary key only, so logging a row never dumps chat bodies
"""

from datetime import datetime

from sqlalchemy import DateTime, inspect
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    type_annotation_map = {datetime: DateTime(timezone=True)}

    def __repr__(self) -> str:
        identity = inspect(self).identity
        key = identity[0] if identity and len(identity) == 1 else identity
        return f"<{type(self).__name__} {key}>"

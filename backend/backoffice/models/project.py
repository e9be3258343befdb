from __future__ import annotations

from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.db.base import Base, IDMixin, TimestampMixin


class Project(IDMixin, TimestampMixin, Base):
    """Production project an invoice can bill. Managed outside the invoice workflow."""

    __tablename__ = "projects"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    client_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

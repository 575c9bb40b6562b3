from __future__ import annotations
import uuid
from datetime import datetime, timezone
from sqlalchemy import String, DateTime, Integer, JSON, Text
from sqlalchemy.orm import Mapped, mapped_column
from app.db.session import Base
from app.schemas.config import CONSOLIDATED_SCHEMA_VERSION


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class UserBackend(Base):
    __tablename__ = "user_backends"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    owner_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    db_type: Mapped[str] = mapped_column(String(20), nullable=False, default="mysql")
    db_config: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    modules: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    generated_modules: Mapped[dict] = mapped_column(JSON, default=lambda: {"generated": []}, nullable=False)
    settings: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)
    schema_version: Mapped[int] = mapped_column(Integer, default=CONSOLIDATED_SCHEMA_VERSION, nullable=False)

    @property
    def generated_names(self) -> list[str]:
        return list((self.generated_modules or {}).get("generated", []))

# notifier/models/jobs.py
from __future__ import annotations
from datetime import datetime, timezone
from sqlalchemy import String, Integer, DateTime, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column
from notifier.config import settings
from notifier.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationJob(Base):
    """Row of the push queue table; mirrors the Supabase schema for the SQL backend."""
    __tablename__ = settings.QUEUE_TABLE

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    status: Mapped[str] = mapped_column(String(16), default="pending", index=True)
    fcm_token: Mapped[str] = mapped_column(Text)
    title: Mapped[str] = mapped_column(Text, default="")
    body: Mapped[str] = mapped_column(Text, default="")
    data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    type: Mapped[str | None] = mapped_column(String(32), nullable=True)  # e.g. "chat"
    attempts: Mapped[int | None] = mapped_column(Integer, default=0, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

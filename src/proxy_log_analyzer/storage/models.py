"""
SQLAlchemy ORM models

Timestamps are stored as naive UTC datetimes so SQLite and Postgres
behave the same; conversion happens in the LogEntry model.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..parsers.base import LogEntry


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    profile_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class LogType(Base):
    __tablename__ = "log_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    table_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class ProxyLog(Base):
    """A stored web proxy log record"""

    __tablename__ = "proxy_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    source_ip: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    destination_url: Mapped[str] = mapped_column(Text, nullable=False)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    response_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    company_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("companies.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    @classmethod
    def from_entry(cls, entry: LogEntry) -> "ProxyLog":
        return cls(
            timestamp=entry.timestamp,
            source_ip=entry.source_ip,
            user_id=entry.user_id,
            destination_url=entry.destination_url,
            action=entry.action,
            category=entry.category,
            response_time=entry.response_time,
            company_id=entry.company_id,
        )

    def to_entry(self) -> LogEntry:
        return LogEntry(
            id=self.id,
            timestamp=self.timestamp,
            source_ip=self.source_ip,
            user_id=self.user_id,
            destination_url=self.destination_url,
            action=self.action,
            category=self.category,
            response_time=self.response_time,
            company_id=self.company_id,
        )


Index("ix_proxy_logs_timestamp", ProxyLog.timestamp)
Index("ix_proxy_logs_company_timestamp", ProxyLog.company_id, ProxyLog.timestamp)
Index("ix_proxy_logs_source_ip", ProxyLog.source_ip)


class LogUpload(Base):
    __tablename__ = "log_uploads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    log_type_id: Mapped[Optional[int]] = mapped_column(ForeignKey("log_types.id"), nullable=True)
    company_id: Mapped[Optional[int]] = mapped_column(ForeignKey("companies.id"), nullable=True)
    format: Mapped[str] = mapped_column(String(16), nullable=False)
    record_count: Mapped[int] = mapped_column(Integer, nullable=False)
    uploaded_by: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

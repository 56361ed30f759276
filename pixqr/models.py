"""Database models and session utilities."""
from __future__ import annotations

import enum
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import DateTime, Enum as SqlEnum, Numeric, String, Text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .config import settings


class Base(DeclarativeBase):
    pass


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ChargeStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    REJECTED = "REJECTED"


class Charge(Base):
    __tablename__ = "charges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    txid: Mapped[str] = mapped_column(String(25), unique=True, index=True, nullable=False)
    pix_key: Mapped[str] = mapped_column(String(77), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    merchant_name: Mapped[str] = mapped_column(String(25), nullable=False)
    merchant_city: Mapped[str] = mapped_column(String(15), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    crc: Mapped[str] = mapped_column(String(4), nullable=False)
    status: Mapped[ChargeStatus] = mapped_column(SqlEnum(ChargeStatus), default=ChargeStatus.PENDING)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


engine = create_async_engine(settings.database_url, future=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session() -> AsyncSession:
    """Provide AsyncSession for FastAPI dependency."""

    async with SessionLocal() as session:
        yield session

"""Relational storage for completed try-on generations."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text, create_engine, func
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

from tryon.config import DatabaseConfig


class Base(DeclarativeBase):
    pass


class TryOnHistory(Base):
    """One row per successful generation."""

    __tablename__ = "try_on_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    shop_domain: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    product_category: Mapped[str] = mapped_column(String(255), nullable=False)
    user_photo_url: Mapped[str] = mapped_column(Text, nullable=False)
    product_image_url: Mapped[str] = mapped_column(Text, nullable=False)
    generated_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="completed")
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    generation_time_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    metadata_json: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        "metadata", JSON, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<TryOnHistory(id={self.id}, shop_domain={self.shop_domain}, "
            f"product_id={self.product_id}, status={self.status})>"
        )


@dataclass
class HistoryRecord:
    session_id: str
    shop_domain: str
    product_id: str
    product_category: str
    user_photo_url: str
    product_image_url: str
    generated_image_url: Optional[str]
    generation_time_ms: int
    customer_id: Optional[str] = None
    status: str = "completed"
    metadata: Dict[str, Any] = field(default_factory=dict)


def build_engine(config: DatabaseConfig) -> Optional[Engine]:
    if not config.is_configured:
        return None
    return create_engine(config.url, echo=config.echo, pool_pre_ping=True)


class HistoryRepository:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_tables(self) -> None:
        Base.metadata.create_all(self.engine)

    def insert(self, record: HistoryRecord) -> int:
        row = TryOnHistory(
            session_id=record.session_id,
            shop_domain=record.shop_domain,
            customer_id=record.customer_id,
            product_id=record.product_id,
            product_category=record.product_category,
            user_photo_url=record.user_photo_url,
            product_image_url=record.product_image_url,
            generated_image_url=record.generated_image_url,
            status=record.status,
            generation_time_ms=record.generation_time_ms,
            metadata_json=dict(record.metadata),
        )
        with Session(self.engine) as session, session.begin():
            session.add(row)
            session.flush()
            return row.id


__all__ = ["Base", "HistoryRecord", "HistoryRepository", "TryOnHistory", "build_engine"]

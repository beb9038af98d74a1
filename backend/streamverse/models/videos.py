from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import Index, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from streamverse.db.base import Base

# JSONB on PostgreSQL (tag containment queries), plain JSON elsewhere
TagsType = sa.JSON().with_variant(JSONB(), "postgresql")


class Video(Base):
    __tablename__ = "videos"
    __table_args__ = (
        Index("ix_videos_public_address", "public_address"),
        Index("ix_videos_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)

    # eth address of the uploader (0x + 40)
    public_address: Mapped[str] = mapped_column(sa.String(42), nullable=False)
    title: Mapped[str] = mapped_column(sa.String(256), nullable=False)
    description: Mapped[str | None] = mapped_column(sa.Text, nullable=True)

    # content address in the storage network; the asset is immutable once registered
    cid: Mapped[str] = mapped_column(sa.String(128), nullable=False, unique=True)
    tags: Mapped[list[str]] = mapped_column(TagsType, nullable=False, default=list)

    size_bytes: Mapped[int] = mapped_column(sa.BigInteger, nullable=False)
    duration_seconds: Mapped[float] = mapped_column(sa.Float, nullable=False)
    chunk_duration_seconds: Mapped[float] = mapped_column(sa.Float, nullable=False, default=10.0)
    mime: Mapped[str | None] = mapped_column(sa.String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

# backend/streamverse/repos/video_repo.py
from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Session

from streamverse.models.videos import Video

RECENT_WINDOW = timedelta(days=7)
LIKE_ESCAPE = "\\"


def _like_literal(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _tag_filter(db: Session, tag: str) -> sa.ColumnElement[bool]:
    if db.get_bind().dialect.name == "postgresql":
        return sa.cast(Video.tags, JSONB).contains([tag])
    # JSON is stored as text elsewhere (ascii-escaped); match the encoded element
    return sa.cast(Video.tags, sa.Text).like(f"%{_like_literal(json.dumps(tag))}%", escape=LIKE_ESCAPE)


def _filtered(db: Session, *, tag: str | None = None, q: str | None = None, address: str | None = None) -> sa.Select:
    stmt = sa.select(Video)
    if address:
        stmt = stmt.where(sa.func.lower(Video.public_address) == address.lower())
    if tag:
        stmt = stmt.where(_tag_filter(db, tag))
    if q:
        stmt = stmt.where(Video.title.ilike(f"%{_like_literal(q)}%", escape=LIKE_ESCAPE))
    return stmt


def list_videos(
    db: Session,
    *,
    tag: str | None = None,
    q: str | None = None,
    address: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Video], int]:
    """
    Newest first. Returns the page and the total number of matching rows.
    """
    base = _filtered(db, tag=tag, q=q, address=address)
    total = db.scalar(sa.select(sa.func.count()).select_from(base.subquery())) or 0
    rows = db.scalars(base.order_by(Video.created_at.desc(), Video.id.desc()).limit(limit).offset(offset)).all()
    return list(rows), int(total)


def get_by_id(db: Session, video_id: int) -> Video | None:
    return db.get(Video, video_id)


def get_by_cid(db: Session, cid: str) -> Video | None:
    return db.scalar(sa.select(Video).where(Video.cid == cid))


def create(db: Session, **fields: Any) -> Video:
    video = Video(**fields)
    db.add(video)
    db.commit()
    db.refresh(video)
    return video


def update(db: Session, video: Video, changes: dict[str, Any]) -> Video:
    for key in ("title", "description", "tags"):
        if key in changes:
            setattr(video, key, changes[key])
    video.updated_at = datetime.now(UTC)
    db.commit()
    db.refresh(video)
    return video


def delete(db: Session, video: Video) -> None:
    db.delete(video)
    db.commit()


def stats(db: Session) -> dict[str, int]:
    since = datetime.now(UTC) - RECENT_WINDOW
    total = db.scalar(sa.select(sa.func.count(Video.id))) or 0
    creators = db.scalar(sa.select(sa.func.count(sa.distinct(sa.func.lower(Video.public_address))))) or 0
    recent = db.scalar(sa.select(sa.func.count(Video.id)).where(Video.created_at >= since)) or 0
    return {"totalVideos": int(total), "uniqueCreators": int(creators), "recentVideos": int(recent)}

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Response, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from streamverse.cache import Cache
from streamverse.config import Settings
from streamverse.deps import get_db, get_settings
from streamverse.errors import ResourceNotFound
from streamverse.models import Video
from streamverse.repos import video_repo
from streamverse.schemas.videos import ADDR_RE, VideoCreateIn, VideoListOut, VideoOut, VideoStatsOut, VideoUpdateIn

router = APIRouter(prefix="/api/videos", tags=["videos"])
logger = logging.getLogger(__name__)


def _video_or_404(db: Session, video_id: int) -> Video:
    video = video_repo.get_by_id(db, video_id)
    if video is None:
        raise ResourceNotFound("video_not_found")
    return video


def _page(rows: list[Video], total: int) -> VideoListOut:
    items = [VideoOut.model_validate(v) for v in rows]
    return VideoListOut(items=items, count=len(items), total=total)


@router.get("", response_model=VideoListOut)
def list_videos(
    db: Annotated[Session, Depends(get_db)],
    tag: str | None = Query(None, max_length=32),
    q: str | None = Query(None, max_length=256),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> VideoListOut:
    rows, total = video_repo.list_videos(db, tag=tag, q=q, limit=limit, offset=offset)
    return _page(rows, total)


@router.get("/stats", response_model=VideoStatsOut)
def video_stats(db: Annotated[Session, Depends(get_db)]) -> VideoStatsOut:
    return VideoStatsOut(**video_repo.stats(db))


@router.get("/address/{address}", response_model=VideoListOut)
def list_by_address(
    db: Annotated[Session, Depends(get_db)],
    address: str = Path(...),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> VideoListOut:
    if not ADDR_RE.match(address):
        raise HTTPException(400, "bad_address")
    rows, total = video_repo.list_videos(db, address=address, limit=limit, offset=offset)
    return _page(rows, total)


@router.get("/cid/{cid}", response_model=VideoOut)
def get_by_cid(cid: str, db: Annotated[Session, Depends(get_db)]) -> VideoOut:
    video = video_repo.get_by_cid(db, cid)
    if video is None:
        raise ResourceNotFound("video_not_found")
    return VideoOut.model_validate(video)


@router.get("/{video_id}", response_model=VideoOut)
def get_video(video_id: int, db: Annotated[Session, Depends(get_db)]) -> VideoOut:
    return VideoOut.model_validate(_video_or_404(db, video_id))


@router.post("", response_model=VideoOut, status_code=status.HTTP_201_CREATED)
def create_video(
    body: VideoCreateIn,
    db: Annotated[Session, Depends(get_db)],
    cfg: Annotated[Settings, Depends(get_settings)],
) -> VideoOut:
    try:
        video = video_repo.create(
            db,
            public_address=body.public_address,
            title=body.title,
            description=body.description,
            cid=body.cid,
            tags=body.tags,
            size_bytes=body.size_bytes,
            duration_seconds=body.duration_seconds,
            chunk_duration_seconds=body.chunk_duration_seconds or float(cfg.chunk_duration_seconds),
            mime=body.mime,
        )
    except IntegrityError:
        db.rollback()
        raise HTTPException(409, "duplicate_cid") from None
    logger.info("registered video id=%s cid=%s by %s", video.id, video.cid, video.public_address)
    return VideoOut.model_validate(video)


@router.put("/{video_id}", response_model=VideoOut)
def update_video(video_id: int, body: VideoUpdateIn, db: Annotated[Session, Depends(get_db)]) -> VideoOut:
    video = _video_or_404(db, video_id)
    changes = body.model_dump(exclude_unset=True)
    if changes.get("title") is None:
        changes.pop("title", None)
    if "tags" in changes and changes["tags"] is None:
        changes["tags"] = []
    video = video_repo.update(db, video, changes)
    Cache.delete(f"stream:info:{video.cid}")
    return VideoOut.model_validate(video)


@router.delete("/{video_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_video(video_id: int, db: Annotated[Session, Depends(get_db)]) -> Response:
    video = _video_or_404(db, video_id)
    cid = video.cid
    video_repo.delete(db, video)
    Cache.delete(f"stream:info:{cid}")
    logger.info("deleted video id=%s cid=%s", video_id, cid)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

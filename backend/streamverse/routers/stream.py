from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from streamverse import errors
from streamverse.cache import Cache
from streamverse.config import Settings
from streamverse.deps import get_db, get_gate, get_settings, get_storage
from streamverse.models import Video
from streamverse.payments.gate import Accepted, PaymentGate, PaymentRequired, Rejected
from streamverse.payments.proof import (
    PAYMENT_RESPONSE_HEADER,
    PaymentRequirements,
    decode_payment_header,
    encode_receipt_header,
    requirements_to_wire,
)
from streamverse.repos import video_repo
from streamverse.schemas.stream import InfoOut
from streamverse.storage.client import ChunkStorage
from streamverse.streaming.planner import chunk_at, chunk_count, total_price
from streamverse.telemetry.metrics import chunk_bytes_delivered_total, chunks_delivered_total

router = APIRouter(tags=["stream"])
logger = logging.getLogger(__name__)

AssetQuery = Annotated[str, Query(min_length=1, max_length=128)]


def _video_or_404(db: Session, cid: str) -> Video:
    video = video_repo.get_by_cid(db, cid)
    if video is None:
        raise errors.ResourceNotFound("asset_not_found")
    return video


def build_requirements(video: Video, index: int, total: int, cfg: Settings) -> PaymentRequirements:
    base = cfg.public_base_url.rstrip("/")
    return PaymentRequirements(
        scheme="exact",
        network=cfg.network,
        max_amount_required=str(cfg.price_per_chunk),
        resource=f"{base}/chunk?asset={video.cid}&index={index}",
        description=f"{video.title} - chunk {index + 1} of {total}",
        mime_type="application/octet-stream",
        pay_to=cfg.pay_to,
        max_timeout_seconds=int(cfg.payment_timeout_seconds),
        asset=cfg.asset,
        extra={"name": cfg.asset_name, "version": cfg.asset_version},
    )


@router.get("/info", response_model=InfoOut)
def info(
    asset: AssetQuery,
    db: Annotated[Session, Depends(get_db)],
    cfg: Annotated[Settings, Depends(get_settings)],
) -> Any:
    def _produce() -> dict[str, Any] | None:
        video = video_repo.get_by_cid(db, asset)
        if video is None or video.size_bytes <= 0:
            return None
        total = chunk_count(video.duration_seconds, video.chunk_duration_seconds)
        if total == 0:
            return None
        return InfoOut(
            asset=video.cid,
            title=video.title,
            duration=video.duration_seconds,
            size=video.size_bytes,
            chunk_duration=video.chunk_duration_seconds,
            total_chunks=total,
            price_per_chunk=cfg.price_per_chunk,
            total_price=total_price(total, cfg.price_per_chunk),
            network=cfg.network,
            asset_token=cfg.asset,
            pay_to=cfg.pay_to,
            mime=video.mime,
        ).model_dump(by_alias=True)

    data = Cache.remember_json(f"stream:info:{asset}", int(cfg.info_cache_ttl), _produce)
    if data is None:
        raise errors.ResourceNotFound("asset_not_found")
    return data


@router.get("/chunk")
def chunk(
    asset: AssetQuery,
    index: Annotated[int, Query()],
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[ChunkStorage, Depends(get_storage)],
    gate: Annotated[PaymentGate, Depends(get_gate)],
    cfg: Annotated[Settings, Depends(get_settings)],
    x_payment: Annotated[str | None, Header(alias="X-PAYMENT")] = None,
) -> Response:
    video = _video_or_404(db, asset)
    total = chunk_count(video.duration_seconds, video.chunk_duration_seconds)
    try:
        span = chunk_at(video.duration_seconds, video.size_bytes, index, video.chunk_duration_seconds)
    except IndexError:
        raise errors.ResourceNotFound("chunk_out_of_range") from None

    requirements = build_requirements(video, index, total, cfg)
    resource_id = f"{video.cid}:{index}"
    proof = decode_payment_header(x_payment)

    data = b""
    if proof is not None:
        # an undeliverable chunk must never consume a payment
        data = storage.read_range(video.cid, span.start, span.end)

    decision = gate.evaluate(resource_id, requirements, proof)
    if isinstance(decision, PaymentRequired):
        raise errors.PaymentRequired(accepts=[requirements_to_wire(decision.requirements)])
    if isinstance(decision, Rejected):
        if decision.kind == "replay":
            raise errors.ReplayDetected()
        raise errors.PaymentRejected(decision.reason, accepts=[requirements_to_wire(requirements)])
    if not isinstance(decision, Accepted):
        raise errors.StreamError("unexpected_gate_decision")

    chunks_delivered_total.inc()
    chunk_bytes_delivered_total.inc(len(data))
    logger.info(
        "delivered chunk %d/%d of %s (%d bytes) tx=%s",
        index + 1,
        total,
        video.cid,
        len(data),
        decision.receipt.transaction,
    )
    return Response(
        content=data,
        media_type="application/octet-stream",
        headers={
            "X-Chunk-Index": str(index),
            "X-Total-Chunks": str(total),
            "X-Chunk-Range": f"{span.start}-{span.last_byte}/{video.size_bytes}",
            "X-Transaction-Hash": decision.receipt.transaction,
            PAYMENT_RESPONSE_HEADER: encode_receipt_header(decision.receipt),
            "Cache-Control": "no-store",
        },
    )

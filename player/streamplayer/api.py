from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field
from x402.http.constants import X_PAYMENT_HEADER, X_PAYMENT_RESPONSE_HEADER
from x402.http.utils import decode_payment_response_header
from x402.schemas import SettleResponse

from .errors import (
    MalformedProof,
    PaymentRejected,
    PaymentRequired,
    PlayerError,
    ReplayDetected,
    ResourceNotFound,
    StorageUnavailable,
    TransientNetworkError,
    VerifierUnavailable,
)

logger = logging.getLogger(__name__)


class AssetInfo(BaseModel):
    """Ответ /info."""

    model_config = ConfigDict(populate_by_name=True)

    asset: str
    title: str
    duration: float
    size: int
    chunk_duration: float = Field(alias="chunkDuration")
    total_chunks: int = Field(alias="totalChunks")
    price_per_chunk: int = Field(alias="pricePerChunk")
    total_price: int = Field(alias="totalPrice")
    network: str
    asset_token: str
    pay_to: str = Field(alias="payTo")
    mime: str | None = None


@dataclass
class ChunkResult:
    index: int
    data: bytes
    total_chunks: int
    byte_range: str
    transaction: str | None
    receipt: SettleResponse | None = None


def _retry_after(resp: httpx.Response) -> float | None:
    raw = resp.headers.get("Retry-After")
    if not raw:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        return None


def _detail(resp: httpx.Response) -> tuple[str, dict[str, Any]]:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200], {}
    if not isinstance(body, dict):
        return "", {}
    detail = body.get("error") or body.get("detail") or ""
    return (detail if isinstance(detail, str) else json.dumps(detail)), body


def raise_for_status(resp: httpx.Response) -> None:
    """Map an error response back onto the taxonomy the server raised from."""
    code = resp.status_code
    if code < 400:
        return
    detail, body = _detail(resp)
    if code == 402:
        accepts = body.get("accepts") or []
        if detail == "payment_required":
            raise PaymentRequired(detail, accepts=accepts)
        raise PaymentRejected(detail or "payment_rejected", accepts=accepts)
    if code == 400:
        raise MalformedProof(detail)
    if code == 404:
        raise ResourceNotFound(detail)
    if code == 409:
        raise ReplayDetected(detail)
    if code == 503:
        raise VerifierUnavailable(detail, retry_after=_retry_after(resp))
    if code == 502:
        raise StorageUnavailable(detail, retry_after=_retry_after(resp))
    if code == 429 or code >= 500:
        raise TransientNetworkError(f"http_{code}:{detail}", retry_after=_retry_after(resp))
    raise PlayerError(f"http_{code}:{detail}")


class StreamVerseClient:
    def __init__(self, base_url: str, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._client = httpx.AsyncClient(base_url=str(base_url).rstrip("/"), timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> StreamVerseClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def _get(self, path: str, *, params: dict[str, Any], headers: dict[str, str] | None = None) -> httpx.Response:
        try:
            return await self._client.get(path, params=params, headers=headers)
        except httpx.TimeoutException as exc:
            raise TransientNetworkError(f"timeout: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransientNetworkError(f"transport: {exc}") from exc

    async def get_info(self, asset: str) -> AssetInfo:
        """GET /info?asset=<cid>. Free."""
        resp = await self._get("/info", params={"asset": asset})
        raise_for_status(resp)
        try:
            return AssetInfo.model_validate(resp.json())
        except ValueError as exc:
            raise PlayerError("bad_info_response") from exc

    async def fetch_chunk(self, asset: str, index: int, payment: str | None = None) -> ChunkResult:
        """
        GET /chunk?asset=<cid>&index=<n>.

        Without ``payment`` a healthy server answers 402 (``PaymentRequired``).
        """
        headers = {X_PAYMENT_HEADER: payment} if payment else None
        resp = await self._get("/chunk", params={"asset": asset, "index": index}, headers=headers)
        raise_for_status(resp)

        receipt: SettleResponse | None = None
        raw_receipt = resp.headers.get(X_PAYMENT_RESPONSE_HEADER)
        if raw_receipt:
            try:
                receipt = decode_payment_response_header(raw_receipt)
            except ValueError:
                logger.warning("unreadable %s for chunk %d", X_PAYMENT_RESPONSE_HEADER, index)
        try:
            served_index = int(resp.headers.get("X-Chunk-Index", index))
            total_chunks = int(resp.headers.get("X-Total-Chunks", 0))
        except ValueError as exc:
            raise PlayerError("bad_chunk_headers") from exc
        return ChunkResult(
            index=served_index,
            data=resp.content,
            total_chunks=total_chunks,
            byte_range=resp.headers.get("X-Chunk-Range", ""),
            transaction=resp.headers.get("X-Transaction-Hash") or (receipt.transaction if receipt else None),
            receipt=receipt,
        )

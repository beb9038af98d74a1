"""Sequential pay-per-chunk streaming loop.

One session streams one asset: it fetches ``/info``, then walks the chunks in
ascending order, paying for each one on its 402 challenge. ``next_index`` is
the number of delivered chunks; it only moves after a chunk reached the sink,
so a resumed session re-requests the chunk that was in flight.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from x402.schemas import SettleResponse

from .api import AssetInfo, ChunkResult, StreamVerseClient
from .errors import (
    PaymentRejected,
    PaymentRequired,
    PlayerError,
    TransientNetworkError,
    WalletError,
)
from .metrics import player_bytes_delivered_total, player_chunks_delivered_total, player_paid_atomic_total
from .retry import RetryConfig, execute_with_retry
from .sink import ChunkSink
from .wallet import PaymentSigner, select_requirements

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    IDLE = "idle"
    REQUESTING_METADATA = "requesting_metadata"
    STREAMING = "streaming"
    PAUSED = "paused"
    STOPPED = "stopped"


class StatusHint(str, enum.Enum):
    WAITING_FOR_PAYMENT = "waiting_for_payment"
    NETWORK_TROUBLE = "network_trouble"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class DeliveredChunk:
    index: int
    size: int
    amount: int
    transaction: str | None
    receipt: SettleResponse | None = None


class StreamingSession:
    def __init__(
        self,
        client: StreamVerseClient,
        signer: PaymentSigner,
        sink: ChunkSink,
        asset: str,
        *,
        retry: RetryConfig | None = None,
        start_index: int = 0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if start_index < 0:
            raise ValueError("start_index must be >= 0")
        self.client = client
        self.signer = signer
        self.sink = sink
        self.asset = asset
        self.retry = retry or RetryConfig()
        self._sleep = sleep

        self.state = SessionState.IDLE
        self.next_index = start_index
        self.info: AssetInfo | None = None
        self.delivered: list[DeliveredChunk] = []
        self.total_paid = 0
        self.status_hint: StatusHint | None = None
        self.error: PlayerError | None = None
        self.completed = False
        self.chunk_pending = False

        self._task: asyncio.Task[None] | None = None
        self._pause_requested = False

    @property
    def total_chunks(self) -> int | None:
        return self.info.total_chunks if self.info else None

    # ---- control ----

    def start(self) -> asyncio.Task[None]:
        """Start (or resume) the loop. A running loop is returned as is: one request in flight at most."""
        if self._task is not None and not self._task.done():
            return self._task
        if self.state is SessionState.STOPPED:
            raise RuntimeError("session is stopped")
        self._pause_requested = False
        self._task = asyncio.create_task(self._run(), name=f"stream:{self.asset}")
        return self._task

    async def play(self) -> None:
        await self.start()

    async def pause(self) -> None:
        """Let the chunk in flight land, then park at the next index."""
        self._pause_requested = True
        if self._task is not None and not self._task.done():
            await asyncio.shield(self._task)

    def resume(self) -> asyncio.Task[None]:
        if self.state is not SessionState.PAUSED:
            raise RuntimeError(f"cannot resume from {self.state.value}")
        return self.start()

    async def stop(self) -> None:
        """Abort the request in flight; nothing is marked delivered for it."""
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self.chunk_pending = False
        self.state = SessionState.STOPPED

    def snapshot(self) -> dict[str, Any]:
        return {
            "asset": self.asset,
            "state": self.state.value,
            "next_index": self.next_index,
            "total_chunks": self.total_chunks,
            "total_paid": self.total_paid,
            "completed": self.completed,
            "status_hint": self.status_hint.value if self.status_hint else None,
            "error": str(self.error) if self.error else None,
            "transactions": [c.transaction for c in self.delivered],
        }

    # ---- loop ----

    async def load_metadata(self) -> AssetInfo:
        self.state = SessionState.REQUESTING_METADATA
        info = await execute_with_retry(
            lambda: self.client.get_info(self.asset), self.retry, sleep=self._sleep, on_retry=self._on_retry
        )
        self.info = info
        self.status_hint = None
        logger.info(
            "asset %s: %d chunks of %.1fs, %d atomic units each",
            info.asset,
            info.total_chunks,
            info.chunk_duration,
            info.price_per_chunk,
        )
        return info

    async def _run(self) -> None:
        try:
            info = self.info or await self.load_metadata()
            self.state = SessionState.STREAMING
            while self.next_index < info.total_chunks:
                if self._pause_requested:
                    self.state = SessionState.PAUSED
                    logger.info("paused at chunk %d/%d", self.next_index, info.total_chunks)
                    return
                await self._deliver(self.next_index)
            self.completed = True
            self.status_hint = None
            self.state = SessionState.STOPPED
            logger.info("stream complete: %d chunks, %d paid", info.total_chunks, self.total_paid)
        except PlayerError as e:
            self.error = e
            self.status_hint = self._hint_for(e)
            self.state = SessionState.STOPPED
            logger.error("stream stopped at chunk %d: %r", self.next_index, e)
        except Exception:
            self.state = SessionState.STOPPED
            raise
        finally:
            self.chunk_pending = False

    async def _deliver(self, index: int) -> None:
        self.chunk_pending = True
        result, amount = await execute_with_retry(
            lambda: self._fetch_paid(index), self.retry, sleep=self._sleep, on_retry=self._on_retry
        )
        if result.index != index:
            raise PlayerError(f"unexpected_chunk_index:{result.index}")

        self.sink.write(index, result.data)
        self.delivered.append(
            DeliveredChunk(
                index=index,
                size=len(result.data),
                amount=amount,
                transaction=result.transaction,
                receipt=result.receipt,
            )
        )
        self.total_paid += amount
        self.next_index = index + 1
        self.chunk_pending = False
        self.status_hint = None

        player_chunks_delivered_total.inc()
        player_bytes_delivered_total.inc(len(result.data))
        player_paid_atomic_total.inc(amount)
        logger.info("chunk %d delivered (%d bytes) tx=%s", index, len(result.data), result.transaction)

    async def _fetch_paid(self, index: int) -> tuple[ChunkResult, int]:
        # every attempt starts unpaid and signs a fresh proof for the current challenge
        try:
            return await self.client.fetch_chunk(self.asset, index), 0
        except PaymentRequired as e:
            requirements = select_requirements(e.accepts)

        self.status_hint = StatusHint.WAITING_FOR_PAYMENT
        header = self.signer.create_payment_header(requirements)
        try:
            result = await self.client.fetch_chunk(self.asset, index, payment=header)
        except PaymentRequired as e:
            raise PaymentRejected("payment_not_accepted", accepts=e.accepts) from e
        return result, int(requirements.max_amount_required)

    def _on_retry(self, exc: TransientNetworkError, attempt: int) -> None:
        self.status_hint = StatusHint.NETWORK_TROUBLE

    @staticmethod
    def _hint_for(exc: PlayerError) -> StatusHint:
        if isinstance(exc, (PaymentRejected, WalletError)):
            return StatusHint.WAITING_FOR_PAYMENT
        if isinstance(exc, TransientNetworkError):
            return StatusHint.NETWORK_TROUBLE
        return StatusHint.UNAVAILABLE

"""Pytest fixtures for the player: a scripted StreamVerse server behind httpx.MockTransport."""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Awaitable, Callable

import httpx
import pytest
import pytest_asyncio
from x402.http.utils import (
    decode_payment_signature_header,
    encode_payment_response_header,
    encode_payment_signature_header,
)
from x402.schemas import SettleResponse
from x402.schemas.v1 import PaymentPayloadV1, PaymentRequirementsV1

from streamplayer.api import StreamVerseClient

PAY_TO = "0x209693Bc6afc0C5328bA36FaF03C514EF312287C"
USDC = "0x41E94Eb019C0762f9Bfcf9Fb1E58725BfB0e7582"


def pytest_configure(config):
    config.addinivalue_line("markers", "e2e: marks tests as end-to-end (requires a running API)")


class FakeServer:
    """
    Minimal /info + /chunk server.

    ``script[index]`` lists status codes returned for paid requests of that chunk
    before it is finally served; ``block[index]`` holds a paid request until set.
    """

    def __init__(self, total: int = 3, chunk_size: int = 4, price: int = 1000) -> None:
        self.total = total
        self.price = price
        self.chunks = [bytes([i]) * chunk_size for i in range(total)]
        self.requests: list[tuple[int, str | None]] = []
        self.seen_nonces: set[str] = set()
        self.script: dict[int, list[int]] = {}
        self.block: dict[int, asyncio.Event] = {}
        self.info_failures = 0

    def requirements(self, index: int) -> dict:
        return {
            "scheme": "exact",
            "network": "polygon-amoy",
            "maxAmountRequired": str(self.price),
            "resource": f"http://streamverse.test/chunk?asset=bafytest&index={index}",
            "description": "",
            "mimeType": "application/octet-stream",
            "payTo": PAY_TO,
            "maxTimeoutSeconds": 60,
            "asset": USDC,
            "extra": {"name": "USDC", "version": "2"},
        }

    def _error(self, code: int, index: int) -> httpx.Response:
        if code == 402:
            body = {"x402Version": 1, "error": "invalid_exact_evm_payload_signature", "accepts": [self.requirements(index)]}
            return httpx.Response(402, json=body)
        if code == 503:
            return httpx.Response(503, json={"detail": "verifier_timeout", "retryable": True}, headers={"Retry-After": "5"})
        if code == 502:
            return httpx.Response(502, json={"detail": "storage_unavailable", "retryable": True})
        return httpx.Response(code, json={"detail": f"scripted_{code}"})

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/info":
            if self.info_failures:
                self.info_failures -= 1
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(
                200,
                json={
                    "asset": "bafytest",
                    "title": "Test clip",
                    "duration": self.total * 10.0,
                    "size": sum(len(c) for c in self.chunks),
                    "chunkDuration": 10.0,
                    "totalChunks": self.total,
                    "pricePerChunk": self.price,
                    "totalPrice": self.total * self.price,
                    "network": "polygon-amoy",
                    "asset_token": USDC,
                    "payTo": PAY_TO,
                },
            )

        index = int(request.url.params["index"])
        payment = request.headers.get("X-PAYMENT")
        self.requests.append((index, payment))
        if not payment:
            return httpx.Response(402, json={"x402Version": 1, "error": "payment_required", "accepts": [self.requirements(index)]})

        nonce = decode_payment_signature_header(payment).payload["authorization"]["nonce"]
        if nonce in self.seen_nonces:
            return httpx.Response(409, json={"detail": "replay_detected", "retryable": False})
        self.seen_nonces.add(nonce)

        if index in self.block:
            await self.block[index].wait()
        pending = self.script.get(index)
        if pending:
            return self._error(pending.pop(0), index)

        tx = "0x" + format(len(self.seen_nonces), "064x")
        receipt = encode_payment_response_header(SettleResponse(success=True, transaction=tx, network="polygon-amoy"))
        return httpx.Response(
            200,
            content=self.chunks[index],
            headers={
                "Content-Type": "application/octet-stream",
                "X-Chunk-Index": str(index),
                "X-Total-Chunks": str(self.total),
                "X-Chunk-Range": f"{index * 4}-{index * 4 + 3}/{self.total * 4}",
                "X-Transaction-Hash": tx,
                "X-PAYMENT-RESPONSE": receipt,
            },
        )

    def paid_requests(self, index: int) -> list[str]:
        return [p for i, p in self.requests if i == index and p]


class FakeSigner:
    address = "0x857b06519E91e3A54538791bDbb0E22373e36b66"

    def __init__(self) -> None:
        self._nonces = itertools.count(1)
        self.signed: list[PaymentRequirementsV1] = []

    def create_payment_header(self, requirements: PaymentRequirementsV1) -> str:
        self.signed.append(requirements)
        return encode_payment_signature_header(
            PaymentPayloadV1(
                scheme=requirements.scheme,
                network=requirements.network,
                payload={
                    "signature": "0x00",
                    "authorization": {"from": self.address, "nonce": "0x" + format(next(self._nonces), "064x")},
                },
            )
        )


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest_asyncio.fixture
async def api(server: FakeServer):
    client = StreamVerseClient("http://streamverse.test", transport=httpx.MockTransport(server.handler))
    yield client
    await client.close()


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def sleeps() -> tuple[list[float], Callable[[float], Awaitable[None]]]:
    """Recorded backoff delays and a sleep that does not actually wait."""
    calls: list[float] = []

    async def _sleep(delay: float) -> None:
        calls.append(delay)

    return calls, _sleep


@pytest.fixture
def wait_until() -> Callable[[Callable[[], bool]], Awaitable[None]]:
    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.01)

    return _wait


@pytest.fixture
def make_server() -> Callable[..., FakeServer]:
    return FakeServer

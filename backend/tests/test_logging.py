from __future__ import annotations

import logging

import pytest

from streamverse.telemetry.logging import lowercase_level, resolve_level, scrub_payment_material


def test_payment_material_and_client_details_dropped():
    event = {
        "event": "chunk_paid",
        "x_payment": "eyJ4NDAyVmVyc2lvbiI6MX0=",
        "signature": "0x" + "11" * 65,
        "client_ip": "203.0.113.7",
        "asset": "bafytest",
        "chunk": 3,
    }
    assert scrub_payment_material(None, "info", event) == {"event": "chunk_paid", "asset": "bafytest", "chunk": 3}


def test_long_identifiers_truncated():
    proof_id = "sha256:" + "a" * 64
    tx = "0x" + "ab" * 100
    out = scrub_payment_material(None, "info", {"event": "x", "proof_id": proof_id, "tx": tx})
    assert out["proof_id"] == proof_id
    assert out["tx"] == tx[:80] + "..."


def test_level_is_lowercased():
    assert lowercase_level(None, "warning", {"event": "x", "levelname": "WARNING"}) == {"event": "x", "level": "warning"}
    assert lowercase_level(None, "info", {"event": "x"})["level"] == "info"


@pytest.mark.parametrize("name, level", [("debug", logging.DEBUG), ("ERROR", logging.ERROR), ("chatty", logging.INFO)])
def test_resolve_level(name, level):
    assert resolve_level(name) == level

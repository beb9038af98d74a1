"""JSON request/payment logging on top of structlog.

A record carries ``ts``, ``level``, ``event`` and whatever the caller bound
(``trace_id``, ``action``, ``asset``, ``chunk``, ``proof_id``, ``tx`` ...).
Signed payment material and client network details are stripped before
rendering: a proof is referred to by its ``proof_id`` only.
"""

from __future__ import annotations

import logging
import os
from collections.abc import MutableMapping
from typing import Any

import structlog

EventDict = MutableMapping[str, Any]

# keys that may hold a replayable proof, a key, or a client's network identity
SCRUBBED_KEYS = frozenset(
    {
        "x_payment",
        "payment_header",
        "authorization",
        "signature",
        "private_key",
        "client",
        "client_ip",
        "client_addr",
        "headers",
        "request_headers",
    }
)
# long opaque strings under these keys are cut down to a recognisable prefix
TRUNCATED_KEYS = frozenset({"tx", "transaction", "proof_id"})
TRUNCATE_AT = 80


def resolve_level(name: str | None = None) -> int:
    raw = (name or os.getenv("LOG_LEVEL") or "INFO").upper()
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else logging.INFO


def scrub_payment_material(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    for key in SCRUBBED_KEYS.intersection(event_dict):
        del event_dict[key]
    for key in TRUNCATED_KEYS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str) and len(value) > TRUNCATE_AT:
            event_dict[key] = value[:TRUNCATE_AT] + "..."
    return event_dict


def lowercase_level(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    level = event_dict.pop("levelname", None) or event_dict.get("level") or method_name
    event_dict["level"] = str(level).lower()
    return event_dict


def shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", key="ts"),
        lowercase_level,
        scrub_payment_material,
    ]


def init_logging(level: str | None = None) -> None:
    """Route structlog through stdlib logging and render every record as one JSON line."""
    lvl = resolve_level(level)
    logging.basicConfig(level=lvl, format="%(message)s")
    # uvicorn's access log prints client addresses
    logging.getLogger("uvicorn.access").disabled = True

    structlog.configure(
        processors=[*shared_processors(), structlog.processors.JSONRenderer()],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(lvl),
        cache_logger_on_first_use=True,
    )


def get_logger(**initial: Any) -> Any:
    return structlog.get_logger().bind(**initial) if initial else structlog.get_logger()

"""x402 payment proof decoding and payment requirements.

The proof is carried base64-encoded in the ``X-PAYMENT`` header. Only the
envelope is parsed here; signatures are the facilitator's business.
"""

from __future__ import annotations

import binascii
import hashlib
import json
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError
from x402.http.constants import X_PAYMENT_HEADER, X_PAYMENT_RESPONSE_HEADER
from x402.http.utils import (
    decode_payment_signature_header,
    encode_payment_response_header,
    encode_payment_signature_header,
)
from x402.schemas import SettleResponse
from x402.schemas.v1 import PaymentPayloadV1, PaymentRequirementsV1

from streamverse.errors import MalformedProof

PAYMENT_HEADER = X_PAYMENT_HEADER
PAYMENT_RESPONSE_HEADER = X_PAYMENT_RESPONSE_HEADER
MAX_PAYMENT_HEADER_BYTES = 16_384

PaymentRequirements = PaymentRequirementsV1


def requirements_to_wire(requirements: PaymentRequirements) -> dict[str, Any]:
    return requirements.model_dump(by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class PaymentProof:
    raw: str
    envelope: PaymentPayloadV1

    @property
    def scheme(self) -> str:
        return self.envelope.scheme

    @property
    def network(self) -> str:
        return self.envelope.network

    @property
    def payload(self) -> dict[str, Any]:
        return self.envelope.payload

    @property
    def proof_id(self) -> str:
        """EIP-3009 authorization nonce if present, else a digest of the header value."""
        auth = self.payload.get("authorization")
        if isinstance(auth, dict):
            nonce = auth.get("nonce")
            if isinstance(nonce, str) and nonce:
                return nonce.lower()
        return "sha256:" + hashlib.sha256(self.raw.encode("utf-8")).hexdigest()

    @property
    def payer(self) -> str | None:
        auth = self.payload.get("authorization")
        if isinstance(auth, dict) and isinstance(auth.get("from"), str):
            return auth["from"]
        return None


def _normalize_b64(value: str) -> str:
    # tolerate urlsafe alphabet and missing padding
    s = value.strip().replace("-", "+").replace("_", "/")
    return s + "=" * (-len(s) % 4)


def decode_payment_header(value: str | None) -> PaymentProof | None:
    """Parse the ``X-PAYMENT`` header. ``None``/empty means "not paid yet"."""
    if value is None or not value.strip():
        return None
    if len(value) > MAX_PAYMENT_HEADER_BYTES:
        raise MalformedProof("payment_header_too_large")
    try:
        envelope = decode_payment_signature_header(_normalize_b64(value))
    except binascii.Error as e:
        raise MalformedProof("payment_header_not_base64") from e
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedProof("payment_header_not_json") from e
    except AttributeError as e:
        raise MalformedProof("payment_header_not_object") from e
    except ValidationError as e:
        raise MalformedProof("payment_payload_invalid") from e

    if not isinstance(envelope, PaymentPayloadV1):
        raise MalformedProof("unsupported_x402_version")
    if not envelope.scheme:
        raise MalformedProof("payment_scheme_missing")
    if not envelope.network:
        raise MalformedProof("payment_network_missing")
    if not envelope.payload:
        raise MalformedProof("payment_payload_missing")
    return PaymentProof(raw=value.strip(), envelope=envelope)


def encode_payment_header(envelope: PaymentPayloadV1) -> str:
    return encode_payment_signature_header(envelope)


def encode_receipt_header(receipt: SettleResponse) -> str:
    return encode_payment_response_header(receipt)

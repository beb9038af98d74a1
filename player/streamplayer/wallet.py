"""x402 "exact" scheme payments: EIP-3009 ``TransferWithAuthorization`` signed through the x402 SDK."""

from __future__ import annotations

from typing import Any, Protocol

from eth_account import Account
from pydantic import ValidationError
from x402.http.utils import encode_payment_signature_header
from x402.mechanisms.evm.exact.v1.client import ExactEvmSchemeV1
from x402.mechanisms.evm.signers import EthAccountSigner
from x402.schemas.v1 import PaymentPayloadV1, PaymentRequirementsV1

from .errors import WalletError


class PaymentSigner(Protocol):
    address: str

    def create_payment_header(self, requirements: PaymentRequirementsV1) -> str: ...


def select_requirements(accepts: list[Any], scheme: str = "exact") -> PaymentRequirementsV1:
    """First offer of ``scheme`` that parses as v1 requirements with an integer price."""
    for raw in accepts:
        if not isinstance(raw, dict) or raw.get("scheme") != scheme:
            continue
        try:
            req = PaymentRequirementsV1.model_validate(raw)
        except ValidationError:
            continue
        if req.max_amount_required.isdigit():
            return req
    raise WalletError(f"no_supported_requirements:{scheme}")


class ExactEvmWallet:
    def __init__(self, private_key: str) -> None:
        if not private_key:
            raise WalletError("private_key_missing")
        try:
            account = Account.from_key(private_key)
        except ValueError as e:
            raise WalletError("private_key_invalid") from e
        self.address: str = account.address
        self._scheme = ExactEvmSchemeV1(EthAccountSigner(account))

    def create_payment_header(self, requirements: PaymentRequirementsV1) -> str:
        """Fresh authorization per call: the SDK draws a new random nonce, so every proof is single-use."""
        try:
            inner = self._scheme.create_payment_payload(requirements)
        except (KeyError, TypeError, ValueError) as e:
            raise WalletError(f"cannot_sign:{e}") from e
        envelope = PaymentPayloadV1(scheme=requirements.scheme, network=requirements.network, payload=inner)
        return encode_payment_signature_header(envelope)

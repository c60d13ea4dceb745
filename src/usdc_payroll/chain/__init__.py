"""Blockchain gateways and the RPC retry policy."""

from __future__ import annotations

from typing import TYPE_CHECKING

from usdc_payroll.chain.base import (
    ChainGateway,
    TransactionReceipt,
    from_token_units,
    to_token_units,
)
from usdc_payroll.chain.retry import (
    RetryPolicy,
    call_with_retry,
    is_timeout_error,
    is_transient_rpc_error,
    with_timeout,
)
from usdc_payroll.chain.stub import StubChainGateway

if TYPE_CHECKING:
    from usdc_payroll.config import Settings


def build_chain_gateway(settings: Settings) -> ChainGateway | None:
    """Build the configured gateway, or None when chain settings are missing."""
    if settings.chain_backend == "stub":
        return StubChainGateway()
    if not settings.chain_configured:
        return None

    from usdc_payroll.chain.web3_gateway import Web3ChainGateway

    return Web3ChainGateway(
        rpc_url=settings.rpc_url,
        chain_id=settings.chain_id,
        token_address=settings.usdc_address,
        private_key=settings.sender_private_key,
    )


__all__ = [
    "ChainGateway",
    "TransactionReceipt",
    "RetryPolicy",
    "StubChainGateway",
    "build_chain_gateway",
    "call_with_retry",
    "from_token_units",
    "is_timeout_error",
    "is_transient_rpc_error",
    "to_token_units",
    "with_timeout",
]

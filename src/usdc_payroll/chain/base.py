"""Base protocol and types for chain gateways.

A gateway wraps a JSON-RPC node and one ERC-20 token contract (USDC). Reads
are idempotent and safe to retry; ``transfer`` is not.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol


@dataclass(frozen=True)
class TransactionReceipt:
    """On-chain confirmation record for a mined transaction."""

    tx_hash: str
    status: int  # 1 success, 0 reverted
    block_number: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class ChainGateway(Protocol):
    """Protocol for blockchain gateway adapters.

    The claim coordinator and confirmation engine use these adapters without
    knowing which node or signing backend sits behind them.
    """

    gateway_name: str

    @property
    def sender_address(self) -> str:
        """Address that funds every payroll transfer."""
        ...

    def is_valid_address(self, address: str) -> bool:
        """Check that a string is a well-formed account address."""
        ...

    async def decimals(self) -> int:
        """Token decimal count."""
        ...

    async def balance_of(self, address: str) -> int:
        """Token balance of ``address`` in native integer units."""
        ...

    async def transfer(self, to: str, amount_units: int) -> str:
        """Submit a token transfer and return its transaction hash.

        Not idempotent. Callers must never retry this blindly.

        Raises:
            TransferNotBroadcastError: If the transfer failed before anything
                was sent to the node. Any other error leaves the outcome
                unknown.
        """
        ...

    async def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        """Fetch the receipt for a transaction, or None if not mined yet."""
        ...


def to_token_units(amount: Decimal, decimals: int) -> int:
    """Scale a human amount into the token's native integer unit.

    Raises:
        ValueError: If the amount has more precision than the token supports.
    """
    scaled = Decimal(amount).scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {amount} exceeds token precision of {decimals} decimals")
    return int(scaled)


def from_token_units(units: int, decimals: int) -> Decimal:
    """Convert native integer units back into a human amount."""
    return Decimal(units).scaleb(-decimals)

"""In-memory chain gateway for local development and testing.

Replace with Web3ChainGateway (CHAIN_BACKEND=web3) against a real node.
"""

from __future__ import annotations

import asyncio
import secrets
from collections import Counter
from dataclasses import dataclass

from web3 import Web3

from usdc_payroll.chain.base import TransactionReceipt

STUB_SENDER = "0x00000000000000000000000000000000000a11ce"


@dataclass
class StubTransfer:
    """A transfer accepted by the stub."""

    tx_hash: str
    to: str
    amount_units: int


class StubChainGateway:
    """Stub USDC gateway.

    Reads can be made to fail by queueing exceptions in ``read_failures``;
    each read call pops one failure before succeeding. ``transfer_error``
    makes every transfer raise before anything is recorded;
    ``broadcast_error`` makes it raise after the transfer was recorded, as a
    node that accepted the transaction but returned a broken response would.
    Receipts are produced by ``mine``, or immediately when ``auto_mine`` is
    set.
    """

    gateway_name = "stub"

    def __init__(
        self,
        *,
        sender: str = STUB_SENDER,
        decimals: int = 6,
        sender_balance: int = 0,
        auto_mine: bool = False,
        transfer_delay: float = 0.0,
    ):
        self._sender = Web3.to_checksum_address(sender)
        self.token_decimals = decimals
        self.balances: dict[str, int] = {self._sender.lower(): sender_balance}
        self.auto_mine = auto_mine
        self.transfer_delay = transfer_delay
        self.transfers: list[StubTransfer] = []
        self.receipts: dict[str, TransactionReceipt] = {}
        self.read_failures: list[Exception] = []
        self.transfer_error: Exception | None = None
        self.broadcast_error: Exception | None = None
        self.calls: Counter[str] = Counter()

    @property
    def sender_address(self) -> str:
        return self._sender

    def is_valid_address(self, address: str) -> bool:
        return Web3.is_address(address)

    def set_balance(self, address: str, units: int) -> None:
        self.balances[address.lower()] = units

    def mine(self, tx_hash: str, success: bool = True, block_number: int | None = None) -> None:
        """Produce a receipt for a submitted transaction."""
        self.receipts[tx_hash] = TransactionReceipt(
            tx_hash=tx_hash,
            status=1 if success else 0,
            block_number=block_number if block_number is not None else len(self.receipts) + 1,
        )

    def _maybe_fail_read(self) -> None:
        if self.read_failures:
            raise self.read_failures.pop(0)

    async def decimals(self) -> int:
        self.calls["decimals"] += 1
        self._maybe_fail_read()
        return self.token_decimals

    async def balance_of(self, address: str) -> int:
        self.calls["balance_of"] += 1
        self._maybe_fail_read()
        return self.balances.get(address.lower(), 0)

    async def transfer(self, to: str, amount_units: int) -> str:
        self.calls["transfer"] += 1
        if self.transfer_delay:
            await asyncio.sleep(self.transfer_delay)
        if self.transfer_error is not None:
            raise self.transfer_error

        tx_hash = "0x" + secrets.token_hex(32)
        sender_key = self._sender.lower()
        self.balances[sender_key] = self.balances.get(sender_key, 0) - amount_units
        self.balances[to.lower()] = self.balances.get(to.lower(), 0) + amount_units
        self.transfers.append(StubTransfer(tx_hash=tx_hash, to=to, amount_units=amount_units))
        if self.auto_mine:
            self.mine(tx_hash)
        if self.broadcast_error is not None:
            raise self.broadcast_error
        return tx_hash

    async def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        self.calls["get_transaction_receipt"] += 1
        self._maybe_fail_read()
        return self.receipts.get(tx_hash)

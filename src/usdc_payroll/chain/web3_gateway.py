"""USDC gateway built on web3.py."""

from __future__ import annotations

import logging
from typing import Any

from eth_account import Account
from web3 import AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound

from usdc_payroll.chain.base import TransactionReceipt
from usdc_payroll.exceptions import TransferNotBroadcastError

logger = logging.getLogger(__name__)

ERC20_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "transfer",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "decimals",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
    {
        "type": "function",
        "name": "balanceOf",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]


class Web3ChainGateway:
    """ERC-20 token gateway over an HTTP JSON-RPC endpoint.

    Transactions are signed locally with the configured sender key and
    broadcast with ``eth_sendRawTransaction``.
    """

    gateway_name = "web3"

    def __init__(
        self,
        rpc_url: str,
        chain_id: int,
        token_address: str,
        private_key: str,
    ) -> None:
        self.web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        self.chain_id = chain_id
        self._account = Account.from_key(private_key)
        self.token = self.web3.eth.contract(
            address=Web3.to_checksum_address(token_address),
            abi=ERC20_ABI,
        )

    @property
    def sender_address(self) -> str:
        return self._account.address

    def is_valid_address(self, address: str) -> bool:
        return Web3.is_address(address)

    async def decimals(self) -> int:
        return int(await self.token.functions.decimals().call())

    async def balance_of(self, address: str) -> int:
        owner = Web3.to_checksum_address(address)
        return int(await self.token.functions.balanceOf(owner).call())

    async def transfer(self, to: str, amount_units: int) -> str:
        if amount_units <= 0:
            raise ValueError("amount_units must be positive")

        sender = self.sender_address
        try:
            recipient = Web3.to_checksum_address(to)
            nonce = await self.web3.eth.get_transaction_count(sender, "pending")
            tx = await self.token.functions.transfer(recipient, amount_units).build_transaction(
                {
                    "from": sender,
                    "chainId": self.chain_id,
                    "nonce": nonce,
                }
            )
            signed = self._account.sign_transaction(tx)
        except Exception as exc:
            raise TransferNotBroadcastError(f"transfer not broadcast: {exc}") from exc

        # Past this point the node may have accepted the transaction even if
        # the call fails, so errors propagate unwrapped.
        raw_hash = await self.web3.eth.send_raw_transaction(signed.raw_transaction)
        tx_hash = Web3.to_hex(raw_hash)
        logger.info(
            "Submitted token transfer %s to %s (units=%s nonce=%s)",
            tx_hash,
            recipient,
            amount_units,
            nonce,
        )
        return tx_hash

    async def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        try:
            receipt = await self.web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        if receipt is None:
            return None
        raw_status = receipt.get("status")
        return TransactionReceipt(
            tx_hash=tx_hash,
            status=1 if raw_status is None else int(raw_status),
            block_number=receipt.get("blockNumber"),
        )

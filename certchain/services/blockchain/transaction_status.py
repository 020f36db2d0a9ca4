"""
Transaction Status Checker.

Provides functionality to check the status of previously broadcast
transactions, so a retry never duplicates a transaction that landed.
"""

from typing import TYPE_CHECKING, Any

from loguru import logger

if TYPE_CHECKING:
    from .chain_client import ChainClient


class TransactionStatusChecker:
    """
    Checks transaction status on the blockchain.

    Features:
    - Receipt retrieval
    - Pending transaction detection
    """

    def __init__(self, client: "ChainClient"):
        """
        Initialize transaction status checker.

        Args:
            client: Chain client
        """
        self.client = client

    async def check(self, tx_hash: str) -> dict[str, Any] | None:
        """
        Check status of existing transaction.

        Args:
            tx_hash: Transaction hash to check

        Returns:
            Dict with status ("confirmed", "failed" or "pending"), or None
            if the node does not know the transaction

        Raises:
            NetworkError: If the node cannot be asked (status stays unknown)
        """
        logger.info(f"Checking status of transaction: {tx_hash}")

        receipt = await self.client.get_transaction_receipt(tx_hash)
        if receipt:
            status = "confirmed" if receipt["status"] == 1 else "failed"
            logger.info(
                f"Transaction {tx_hash} status: {status}, "
                f"block: {receipt['blockNumber']}"
            )
            return {
                "status": status,
                "success": receipt["status"] == 1,
                "tx_hash": tx_hash,
                "block_number": receipt["blockNumber"],
                "gas_used": receipt["gasUsed"],
                "receipt": receipt,
            }

        tx = await self.client.get_transaction(tx_hash)
        if tx:
            logger.info(f"Transaction {tx_hash} pending (not yet mined)")
            return {
                "status": "pending",
                "success": False,
                "tx_hash": tx_hash,
            }

        logger.info(f"Transaction {tx_hash} unknown to the node")
        return None

"""
Transaction Submitter.

Sends a signed contract transaction and waits for it to be mined and
confirmed. No internal retry: the caller decides whether a failure may be
retried.
"""

import asyncio
from typing import TYPE_CHECKING, Any

from loguru import logger

from certchain.config.constants import (
    BLOCKCHAIN_LONG_TIMEOUT,
    DEFAULT_CONFIRMATION_BLOCKS,
    RECEIPT_POLL_INTERVAL,
)
from certchain.services.certificate.models import ReceiptData
from certchain.utils.exceptions import ContractCallFailed, NetworkError

if TYPE_CHECKING:
    from .chain_client import ChainClient


class TransactionSubmitter:
    """
    Executes contract mutations end to end.

    Features:
    - Signed submission through the chain client
    - Receipt wait plus N confirmations under one timeout
    - Revert reason recovery for failed receipts
    """

    def __init__(
        self,
        client: "ChainClient",
        confirmations: int = DEFAULT_CONFIRMATION_BLOCKS,
        timeout: float = BLOCKCHAIN_LONG_TIMEOUT,
        poll_interval: float = RECEIPT_POLL_INTERVAL,
    ):
        """
        Initialize transaction submitter.

        Args:
            client: Chain client with a signer
            confirmations: Default confirmation count
            timeout: Default bound for the confirmation wait in seconds
            poll_interval: Receipt / block polling interval in seconds
        """
        self.client = client
        self.confirmations = confirmations
        self.timeout = timeout
        self.poll_interval = poll_interval

    async def submit(
        self,
        method: str,
        *args: Any,
        gas_limit: int,
        gas_price: int | None = None,
        confirmations: int | None = None,
        timeout: float | None = None,
    ) -> ReceiptData:
        """
        Send a contract transaction and wait for its confirmations.

        Args:
            method: Contract method name
            *args: Method arguments
            gas_limit: Gas limit (already including the margin)
            gas_price: Fixed gas price in wei, None for network fees
            confirmations: Blocks to wait for (default from config)
            timeout: Bound for the confirmation wait (default from config)

        Returns:
            ReceiptData of the mined transaction

        Raises:
            NoSignerConfigured: If the client is read-only
            InsufficientFunds: If the signer cannot pay for gas
            ContractCallFailed: If the node rejects or the receipt reverts
            NetworkError: On transport failure or timeout (pending when the
                transaction may still confirm)
        """
        overrides: dict[str, Any] = {"gas": gas_limit}
        if gas_price is not None:
            overrides["gasPrice"] = gas_price

        tx_hash = await self.client.send(method, *args, overrides=overrides)

        confirmations = confirmations or self.confirmations
        timeout = timeout or self.timeout

        try:
            receipt = await asyncio.wait_for(
                self._wait_for_confirmations(tx_hash, confirmations, timeout),
                timeout=timeout,
            )
        except TimeoutError as e:
            logger.warning(
                f"Transaction {tx_hash} not confirmed within {timeout}s - "
                f"transaction may still be pending"
            )
            raise NetworkError(
                "Transaction confirmation timeout - check status later",
                reason=f"{confirmations} confirmation(s) not reached within {timeout}s",
                tx_hash=tx_hash,
                pending=True,
            ) from e
        except NetworkError as e:
            if e.tx_hash is None:
                e.tx_hash = tx_hash
            e.pending = True
            raise

        return receipt

    async def _wait_for_confirmations(
        self,
        tx_hash: str,
        confirmations: int,
        timeout: float,
    ) -> ReceiptData:
        receipt = await self.client.wait_for_receipt(
            tx_hash, timeout=timeout, poll_latency=self.poll_interval
        )
        data = await self.to_receipt_data(tx_hash, receipt)

        # The receipt's own block counts as the first confirmation
        while True:
            current = await self.client.block_number()
            if current - data.block_number + 1 >= confirmations:
                break
            logger.debug(
                f"Transaction {tx_hash}: {current - data.block_number + 1}/"
                f"{confirmations} confirmations"
            )
            await asyncio.sleep(self.poll_interval)

        logger.success(
            f"Transaction {tx_hash} confirmed in block {data.block_number} "
            f"(gas used: {data.gas_used})"
        )
        return data

    async def to_receipt_data(self, tx_hash: str, receipt: Any) -> ReceiptData:
        """
        Convert a mined receipt, failing on status 0.

        Raises:
            ContractCallFailed: If the transaction reverted
        """
        block_number = int(receipt["blockNumber"])
        if receipt["status"] != 1:
            reason = await self.client.replay_for_revert_reason(tx_hash, block_number)
            logger.error(f"Transaction {tx_hash} reverted in block {block_number}: {reason}")
            raise ContractCallFailed(reason, tx_hash=tx_hash)

        return ReceiptData(
            transaction_hash=tx_hash,
            block_number=block_number,
            gas_used=int(receipt["gasUsed"]),
            logs=list(receipt.get("logs", [])),
        )

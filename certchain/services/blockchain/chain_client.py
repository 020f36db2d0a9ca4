"""
Chain Client - one JSON-RPC connection and one contract binding.

Responsibilities:
- Hold the AsyncWeb3 connection and the bound certificate contract
- Read-only calls (never need a signer)
- Signed transaction submission when a private key is configured
- Address format checks on every address argument before any network call
- Event log queries and receipt/transaction lookups
- Boot-time validation that the configured ABI matches the deployed contract
"""

import asyncio
from typing import Any

from eth_account import Account
from loguru import logger
from web3 import AsyncWeb3
from web3.exceptions import (
    BadFunctionCallOutput,
    ContractLogicError,
    TimeExhausted,
    TransactionNotFound,
    Web3Exception,
)

from certchain.config.constants import BLOCKCHAIN_TIMEOUT
from certchain.utils.exceptions import (
    ContractMismatchError,
    NetworkError,
    NoSignerConfigured,
    ValidationError,
)
from certchain.utils.security import mask_address, mask_tx_hash
from certchain.utils.validation import normalize_address

from .abi import ContractProfile, find_abi_entry, get_profile
from .errors import (
    NETWORK_EXCEPTIONS,
    classify_send_error,
    error_selectors,
    revert_reason,
)
from .rpc_wrapper import with_timeout


class ChainClient:
    """
    Thin wrapper around AsyncWeb3 and a bound contract instance.

    The signing key is optional: without it the client serves reads only
    and every write fails with NoSignerConfigured.
    """

    def __init__(
        self,
        web3: AsyncWeb3,
        contract_address: str,
        profile: ContractProfile,
        private_key: str | None = None,
        chain_id: int | None = None,
        call_timeout: float = BLOCKCHAIN_TIMEOUT,
    ) -> None:
        """
        Initialize chain client.

        Args:
            web3: AsyncWeb3 instance
            contract_address: Deployed certificate contract address
            profile: Contract profile (ABI + method/event names)
            private_key: Signer private key (optional)
            chain_id: Chain ID put into signed transactions (optional)
            call_timeout: Timeout for single RPC round trips
        """
        self.web3 = web3
        self.profile = profile
        self.chain_id = chain_id
        self.call_timeout = call_timeout
        self.contract_address = normalize_address(contract_address, "contract address")
        self.contract = web3.eth.contract(address=self.contract_address, abi=profile.abi)
        self.error_selectors = error_selectors(profile.abi)

        # Serializes nonce allocation + broadcast for this signer only;
        # confirmation waits happen outside of it.
        self._nonce_lock = asyncio.Lock()

        self._private_key = private_key
        self._signer_address: str | None = None
        if private_key:
            # Derive address and drop the Account object right away
            account = Account.from_key(private_key)
            try:
                self._signer_address = account.address
            finally:
                del account
            logger.info(
                f"ChainClient initialized with signer {mask_address(self._signer_address)} "
                f"for contract {self.contract_address} (profile={profile.name})"
            )
        else:
            logger.warning(
                f"ChainClient initialized read-only for contract {self.contract_address} "
                f"(profile={profile.name})"
            )

    @classmethod
    def from_settings(cls, settings: Any) -> "ChainClient":
        """
        Build a ChainClient from application settings.

        Args:
            settings: certchain.config.settings.Settings

        Returns:
            ChainClient bound to the configured contract
        """
        web3 = AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(
                settings.rpc_url,
                request_kwargs={"timeout": settings.rpc_request_timeout},
            )
        )
        profile = get_profile(settings.contract_profile, settings.contract_abi_path)
        return cls(
            web3=web3,
            contract_address=settings.contract_address,
            profile=profile,
            private_key=settings.private_key,
            chain_id=settings.chain_id,
        )

    @property
    def signer_address(self) -> str | None:
        """Checksummed signer address, or None in read-only mode."""
        return self._signer_address

    @property
    def has_signer(self) -> bool:
        """Whether writes are possible."""
        return self._signer_address is not None

    def _prepare_args(self, method: str, args: tuple[Any, ...]) -> tuple[Any, ...]:
        """
        Check arguments against the ABI before anything is sent.

        Address-typed arguments are format-checked and checksummed.

        Raises:
            InvalidAddress: If an address argument is malformed
            ValidationError: If the argument count is wrong
        """
        inputs = find_abi_entry(self.profile.abi, method, "function").get("inputs", [])
        if len(inputs) != len(args):
            raise ValidationError(
                f"{method} expects {len(inputs)} arguments, got {len(args)}"
            )

        prepared = []
        for param, value in zip(inputs, args):
            field = param.get("name") or "address"
            if param["type"] == "address":
                value = normalize_address(value, field)
            elif param["type"] == "address[]":
                value = [normalize_address(v, field) for v in value]
            prepared.append(value)
        return tuple(prepared)

    def function(self, method: str, *args: Any) -> Any:
        """
        Bind a contract function with validated arguments.

        Args:
            method: Contract method name
            *args: Positional arguments

        Returns:
            AsyncContractFunction ready for call/estimate_gas/build_transaction
        """
        prepared = self._prepare_args(method, args)
        return getattr(self.contract.functions, method)(*prepared)

    async def call(self, method: str, *args: Any) -> Any:
        """
        Execute a read-only contract call.

        Args:
            method: Contract method name
            *args: Positional arguments

        Returns:
            Decoded return value

        Raises:
            InvalidAddress: If an address argument is malformed (no RPC made)
            NetworkError: On transport failure or timeout
            ContractLogicError: If the call reverts (reason decoded by callers)
        """
        fn = self.function(method, *args)
        try:
            return await with_timeout(
                fn.call(),
                timeout=self.call_timeout,
                operation_name=f"{method} call",
            )
        except NETWORK_EXCEPTIONS as e:
            logger.error(f"Network error during {method} call: {e}")
            raise NetworkError(reason=str(e) or e.__class__.__name__) from e

    async def send(
        self,
        method: str,
        *args: Any,
        overrides: dict[str, Any] | None = None,
    ) -> str:
        """
        Sign and broadcast a contract transaction.

        The transaction is signed locally, so its hash is known before the
        broadcast; a broadcast that fails in transit reports that hash so the
        caller can check whether it landed anyway.

        Args:
            method: Contract method name
            *args: Positional arguments
            overrides: Transaction fields (gas, gasPrice, ...)

        Returns:
            Transaction hash (0x-prefixed hex)

        Raises:
            NoSignerConfigured: If no private key was supplied
            InvalidAddress: If an address argument is malformed
            InsufficientFunds: If the signer cannot pay for gas
            ContractCallFailed: If the node rejects the transaction
            NetworkError: On transport failure (tx_hash set when signed)
        """
        if not self.has_signer:
            raise NoSignerConfigured()

        fn = self.function(method, *args)
        tx_hash: str | None = None

        async with self._nonce_lock:
            try:
                nonce = await with_timeout(
                    self.web3.eth.get_transaction_count(self._signer_address, "pending"),
                    timeout=self.call_timeout,
                    operation_name="nonce lookup",
                )
                params: dict[str, Any] = {
                    "from": self._signer_address,
                    "nonce": nonce,
                }
                if self.chain_id is not None:
                    params["chainId"] = self.chain_id
                params.update(overrides or {})

                transaction = await with_timeout(
                    fn.build_transaction(params),
                    timeout=self.call_timeout,
                    operation_name=f"{method} build_transaction",
                )

                # Create Account only for signing, then drop it
                account = Account.from_key(self._private_key)
                try:
                    signed = account.sign_transaction(transaction)
                finally:
                    del account
                tx_hash = AsyncWeb3.to_hex(signed.hash)

                logger.debug(
                    f"Broadcasting {method} nonce={nonce} tx={mask_tx_hash(tx_hash)}"
                )
                await with_timeout(
                    self.web3.eth.send_raw_transaction(signed.raw_transaction),
                    timeout=self.call_timeout,
                    operation_name=f"{method} broadcast",
                )
            except NetworkError as e:
                e.tx_hash = tx_hash
                e.pending = tx_hash is not None
                raise
            except NETWORK_EXCEPTIONS as e:
                logger.error(f"Network error broadcasting {method}: {e}")
                raise classify_send_error(e, self.error_selectors, tx_hash=tx_hash) from e
            except (ContractLogicError, Web3Exception, ValueError) as e:
                logger.error(f"Node rejected {method} transaction: {e}")
                raise classify_send_error(e, self.error_selectors) from e

        logger.info(f"Transaction sent: {method} {tx_hash}")
        return tx_hash

    async def wait_for_receipt(
        self,
        tx_hash: str,
        timeout: float,
        poll_latency: float,
    ) -> Any:
        """
        Wait for a transaction receipt.

        Raises:
            NetworkError: If no receipt arrives in time (pending=True)
        """
        try:
            return await self.web3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout, poll_latency=poll_latency
            )
        except TimeExhausted as e:
            logger.warning(
                f"Transaction {tx_hash} confirmation timeout - "
                f"transaction may still be pending"
            )
            raise NetworkError(
                "Transaction confirmation timeout - check status later",
                reason=str(e),
                tx_hash=tx_hash,
                pending=True,
            ) from e
        except NETWORK_EXCEPTIONS as e:
            raise NetworkError(reason=str(e), tx_hash=tx_hash, pending=True) from e

    async def get_transaction_receipt(self, tx_hash: str) -> Any | None:
        """Receipt for tx_hash, or None if not mined (or unknown)."""
        try:
            return await with_timeout(
                self.web3.eth.get_transaction_receipt(tx_hash),
                timeout=self.call_timeout,
                operation_name="get_transaction_receipt",
            )
        except TransactionNotFound:
            return None
        except NETWORK_EXCEPTIONS as e:
            raise NetworkError(reason=str(e), tx_hash=tx_hash) from e

    async def get_transaction(self, tx_hash: str) -> Any | None:
        """Transaction for tx_hash, or None if the node does not know it."""
        try:
            return await with_timeout(
                self.web3.eth.get_transaction(tx_hash),
                timeout=self.call_timeout,
                operation_name="get_transaction",
            )
        except TransactionNotFound:
            return None
        except NETWORK_EXCEPTIONS as e:
            raise NetworkError(reason=str(e), tx_hash=tx_hash) from e

    async def replay_for_revert_reason(self, tx_hash: str, block_number: int) -> str | None:
        """
        Re-run a reverted transaction as a call at its block to recover the reason.

        Returns:
            Revert reason, or None when the node does not supply one
        """
        try:
            tx = await self.get_transaction(tx_hash)
            if tx is None:
                return None
            await self.web3.eth.call(
                {
                    "from": tx["from"],
                    "to": tx["to"],
                    "data": tx["input"],
                    "value": tx.get("value", 0),
                    "gas": tx["gas"],
                },
                block_identifier=block_number,
            )
        except ContractLogicError as e:
            return revert_reason(e, self.error_selectors)
        except (Web3Exception, NetworkError, *NETWORK_EXCEPTIONS) as e:
            logger.debug(f"Could not replay {tx_hash} for revert reason: {e}")
        return None

    async def block_number(self) -> int:
        """Latest block number."""
        try:
            return await with_timeout(
                self.web3.eth.block_number,
                timeout=self.call_timeout,
                operation_name="block_number",
            )
        except NETWORK_EXCEPTIONS as e:
            raise NetworkError(reason=str(e)) from e

    async def get_block_timestamp(self, block_number: int) -> int:
        """Timestamp (seconds since epoch) of a block."""
        try:
            block = await with_timeout(
                self.web3.eth.get_block(block_number),
                timeout=self.call_timeout,
                operation_name="get_block",
            )
        except NETWORK_EXCEPTIONS as e:
            raise NetworkError(reason=str(e)) from e
        return int(block["timestamp"])

    async def get_event_logs(
        self,
        event_name: str,
        from_block: int,
        to_block: int,
        argument_filters: dict[str, Any] | None = None,
    ) -> list[Any]:
        """
        Get decoded event logs of the bound contract for one block range.

        Address-valued filters are format-checked first.
        """
        filters = None
        if argument_filters:
            event_inputs = {
                i["name"]: i["type"]
                for i in find_abi_entry(self.profile.abi, event_name, "event")["inputs"]
            }
            filters = {
                name: normalize_address(value, name)
                if event_inputs.get(name) == "address"
                else value
                for name, value in argument_filters.items()
            }

        event = getattr(self.contract.events, event_name)
        try:
            logs = await with_timeout(
                event.get_logs(
                    argument_filters=filters,
                    from_block=from_block,
                    to_block=to_block,
                ),
                timeout=self.call_timeout,
                operation_name=f"{event_name} get_logs",
            )
        except NETWORK_EXCEPTIONS as e:
            raise NetworkError(reason=str(e)) from e
        return list(logs)

    async def scan_event_logs(
        self,
        event_name: str,
        from_block: int,
        to_block: int,
        chunk_size: int,
        argument_filters: dict[str, Any] | None = None,
    ) -> list[Any]:
        """
        Get event logs over a block range in chunks to stay under RPC range limits.

        Failed chunks are logged and skipped; if every chunk fails the last
        error is raised.

        Returns:
            Logs ordered oldest first
        """
        logs: list[Any] = []
        chunks = 0
        failures = 0
        last_error: Exception | None = None

        current_start = from_block
        while current_start <= to_block:
            current_end = min(to_block, current_start + chunk_size - 1)
            chunks += 1
            try:
                chunk_logs = await self.get_event_logs(
                    event_name, current_start, current_end, argument_filters
                )
                logger.debug(
                    f"[{event_name} scan] Chunk {current_start}-{current_end}: "
                    f"{len(chunk_logs)} logs"
                )
                logs.extend(chunk_logs)
            except (NetworkError, Web3Exception, ValueError) as chunk_error:
                failures += 1
                last_error = chunk_error
                logger.warning(
                    f"[{event_name} scan] Chunk {current_start}-{current_end} "
                    f"failed: {chunk_error}"
                )
            current_start = current_end + 1

        if chunks and failures == chunks and last_error is not None:
            if isinstance(last_error, NetworkError):
                raise last_error
            raise NetworkError(reason=str(last_error)) from last_error

        logs.sort(key=lambda log: (log["blockNumber"], log.get("logIndex", 0)))
        return logs

    async def validate_contract(self) -> None:
        """
        Fail fast when the configured ABI does not match the deployed contract.

        Checks that code exists at the address and that one known read
        method decodes with the configured ABI.

        Raises:
            ContractMismatchError: On mismatch
            NetworkError: If the node is unreachable
        """
        try:
            code = await with_timeout(
                self.web3.eth.get_code(self.contract_address),
                timeout=self.call_timeout,
                operation_name="get_code",
            )
        except NETWORK_EXCEPTIONS as e:
            raise NetworkError(reason=str(e)) from e

        if not code or len(code) == 0:
            raise ContractMismatchError(
                f"No contract code at {self.contract_address}"
            )

        try:
            supply = await self.call(self.profile.supply_method)
        except (BadFunctionCallOutput, ContractLogicError) as e:
            raise ContractMismatchError(
                f"Contract at {self.contract_address} does not answer "
                f"{self.profile.supply_method}() with the '{self.profile.name}' ABI: {e}"
            ) from e

        logger.success(
            f"Contract {self.contract_address} validated "
            f"(profile={self.profile.name}, totalSupply={supply})"
        )

    async def network_info(self) -> dict[str, Any]:
        """Chain ID, latest block and the bound contract."""
        try:
            chain_id = await with_timeout(
                self.web3.eth.chain_id,
                timeout=self.call_timeout,
                operation_name="chain_id",
            )
        except NETWORK_EXCEPTIONS as e:
            raise NetworkError(reason=str(e)) from e

        return {
            "chainId": int(chain_id),
            "blockNumber": await self.block_number(),
            "contractAddress": self.contract_address,
            "contractProfile": self.profile.name,
            "signerConfigured": self.has_signer,
        }

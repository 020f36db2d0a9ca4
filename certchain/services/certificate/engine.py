"""
Certificate Engine.

Turns issuance and revocation requests into confirmed transactions and
answers single-certificate reads against chain state.

Mutation order is fixed:
    validation -> signer -> authorization -> gas -> submit -> decode
so malformed or unauthorized requests never spend gas.
"""

from typing import TYPE_CHECKING, Any

from loguru import logger
from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from certchain.config.constants import (
    AMOY_EXPLORER_URL,
    DEFAULT_ISSUER_LIST_LIMIT,
    ISSUER_LOOKBACK_BLOCKS,
    LOG_CHUNK_SIZE,
    MINT_MAX_ATTEMPTS,
)
from certchain.services.blockchain.abi import output_field_names
from certchain.services.blockchain.errors import is_not_found_reason, revert_reason
from certchain.utils.exceptions import (
    AlreadyRevoked,
    AuthorizationError,
    CertificateNotFound,
    CertificateServiceError,
    ContractCallFailed,
    NetworkError,
    NoSignerConfigured,
)
from certchain.utils.security import mask_address
from certchain.utils.validation import (
    addresses_equal,
    normalize_address,
    parse_token_id,
    validate_certificate_fields,
)

from .models import (
    CertificateNotification,
    CertificateRecord,
    ReceiptData,
    TransactionOutcome,
)

if TYPE_CHECKING:
    from certchain.services.blockchain import (
        ChainClient,
        EventDecoder,
        GasPolicy,
        TransactionStatusChecker,
        TransactionSubmitter,
    )
    from certchain.services.notification.dispatcher import NotificationDispatcher
    from certchain.services.verification_link import VerificationLinkBuilder

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class CertificateEngine:
    """
    Certificate issuance, revocation and reads.

    Features:
    - Mint with per-request authorization check (never cached)
    - Revoke with issuer check and already-revoked short-circuit
    - Read / verify / issuer listing
    - Resubmission only when a previous attempt is known to be lost
    """

    def __init__(
        self,
        client: "ChainClient",
        gas_policy: "GasPolicy",
        submitter: "TransactionSubmitter",
        decoder: "EventDecoder",
        status_checker: "TransactionStatusChecker",
        *,
        notifier: "NotificationDispatcher | None" = None,
        link_builder: "VerificationLinkBuilder | None" = None,
        max_attempts: int = MINT_MAX_ATTEMPTS,
        lookback_blocks: int = ISSUER_LOOKBACK_BLOCKS,
        log_chunk_size: int = LOG_CHUNK_SIZE,
        explorer_url: str = AMOY_EXPLORER_URL,
    ):
        """
        Initialize certificate engine.

        Args:
            client: Chain client bound to the certificate contract
            gas_policy: Gas limit / price policy
            submitter: Transaction submitter
            decoder: Event decoder for the bound contract
            status_checker: Status checker used before any resubmission
            notifier: Outbound notification queue (optional)
            link_builder: Verification link / QR builder (optional)
            max_attempts: Mutation attempts after network failures
            lookback_blocks: Block window for issuer listing
            log_chunk_size: Blocks per log query
            explorer_url: Block explorer base URL
        """
        self.client = client
        self.profile = client.profile
        self.gas_policy = gas_policy
        self.submitter = submitter
        self.decoder = decoder
        self.status_checker = status_checker
        self.notifier = notifier
        self.link_builder = link_builder
        self.max_attempts = max(1, max_attempts)
        self.lookback_blocks = lookback_blocks
        self.log_chunk_size = log_chunk_size
        self.explorer_url = explorer_url.rstrip("/")
        self._record_fields = output_field_names(self.profile.abi, self.profile.get_method)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def mint(
        self,
        recipient_address: str,
        recipient_name: str,
        course_name: str,
        institution_name: str,
        metadata_uri: str = "",
        *,
        issuer_address: str | None = None,
        timeout: float | None = None,
        recipient_contact: str | None = None,
        issuer_contact: str | None = None,
    ) -> TransactionOutcome:
        """
        Issue a certificate.

        Args:
            recipient_address: Recipient wallet
            recipient_name: Recipient display name
            course_name: Course / qualification
            institution_name: Issuing institution
            metadata_uri: Optional metadata URI
            issuer_address: Address whose authorization is checked
                (defaults to the signer)
            timeout: Bound for the confirmation wait
            recipient_contact: Contact handle passed to notifications
            issuer_contact: Contact handle passed to notifications

        Returns:
            TransactionOutcome with the chain-assigned token ID

        Raises:
            InvalidAddress: Malformed recipient or issuer address
            ValidationError: Missing or oversized text field
            NoSignerConfigured: Read-only deployment
            AuthorizationError: Issuer not authorized (no gas spent)
            GasEstimationFailed: Call would revert (nothing sent)
            InsufficientFunds: Signer cannot pay for gas
            ContractCallFailed: Transaction reverted
            NetworkError: RPC failure or confirmation timeout
            MintEventNotFound: Confirmed receipt carries no issuance event
        """
        recipient = normalize_address(recipient_address, "recipient address")
        recipient_name, course_name, institution_name, metadata_uri = (
            validate_certificate_fields(
                recipient_name, course_name, institution_name, metadata_uri
            )
        )
        issuer = (
            normalize_address(issuer_address, "issuer address")
            if issuer_address
            else None
        )

        if not self.client.has_signer:
            raise NoSignerConfigured()
        issuer = issuer or self.client.signer_address

        if not await self._check_authorized(issuer):
            logger.warning(f"Mint rejected: issuer {mask_address(issuer)} not authorized")
            raise AuthorizationError(
                "Issuer address is not authorized to issue certificates"
            )

        logger.info(
            f"Minting certificate for {mask_address(recipient)} "
            f"(issuer {mask_address(issuer)})"
        )
        args = self.profile.mint_args(
            recipient, recipient_name, course_name, institution_name, metadata_uri
        )
        receipt = await self._execute(self.profile.mint_method, *args, timeout=timeout)
        token_ids = self.decoder.issued_token_ids(receipt.logs, receipt.transaction_hash)

        outcome = self._outcome(receipt, token_ids)
        logger.success(
            f"Certificate {outcome.token_id} minted for {mask_address(recipient)} "
            f"in tx {receipt.transaction_hash}"
        )

        if self.link_builder is not None:
            outcome.verification_link = self.link_builder.build(
                outcome.token_id, self.client.contract_address
            )

        await self._notify(
            outcome,
            receipt,
            recipient_name=recipient_name,
            course_name=course_name,
            institution_name=institution_name,
            issuer=issuer,
            recipient_contact=recipient_contact,
            issuer_contact=issuer_contact,
        )
        return outcome

    async def revoke(
        self,
        token_id: int | str,
        *,
        requester_address: str | None = None,
        timeout: float | None = None,
    ) -> TransactionOutcome:
        """
        Revoke a certificate (Valid -> Revoked, terminal).

        Args:
            token_id: Token to revoke
            requester_address: When given, must equal the certificate's issuer
            timeout: Bound for the confirmation wait

        Returns:
            TransactionOutcome of the revocation

        Raises:
            ValidationError: Malformed token ID or requester address
            NoSignerConfigured: Read-only deployment
            CertificateNotFound: No such token
            AlreadyRevoked: Token already revoked (no gas spent)
            AuthorizationError: Requester is not the issuer
            EventNotFoundError: Confirmed receipt carries no revocation event
        """
        token_id = parse_token_id(token_id)
        requester = (
            normalize_address(requester_address, "requester address")
            if requester_address
            else None
        )
        if not self.client.has_signer:
            raise NoSignerConfigured()

        record = await self.get(token_id)
        if record.is_revoked:
            raise AlreadyRevoked(token_id)
        if requester is not None and not addresses_equal(record.issuer, requester):
            logger.warning(
                f"Revoke of {token_id} rejected: {mask_address(requester)} "
                f"is not the issuer"
            )
            raise AuthorizationError("Only the issuing address can revoke this certificate")

        logger.info(f"Revoking certificate {token_id}")
        receipt = await self._execute(self.profile.revoke_method, token_id, timeout=timeout)
        revoked = self.decoder.revoked_token_ids(receipt.logs, receipt.transaction_hash)

        outcome = self._outcome(receipt, revoked)
        logger.success(f"Certificate {token_id} revoked in tx {receipt.transaction_hash}")
        return outcome

    async def _execute(
        self,
        method: str,
        *args: Any,
        timeout: float | None = None,
    ) -> ReceiptData:
        """
        Estimate, submit and confirm one mutation.

        A NetworkError may be retried, but only after the previous
        transaction is confirmed unknown to the node.
        """
        previous_tx: str | None = None

        for attempt in range(1, self.max_attempts + 1):
            if previous_tx is not None:
                adopted = await self._reconcile(previous_tx)
                if adopted is not None:
                    return adopted
                logger.warning(
                    f"Transaction {previous_tx} unknown to the node - "
                    f"resubmitting {method} (attempt {attempt}/{self.max_attempts})"
                )

            function = self.client.function(method, *args)
            gas_limit = await self.gas_policy.gas_limit(function, self.client.signer_address)
            gas_price = await self.gas_policy.gas_price()

            try:
                return await self.submitter.submit(
                    method,
                    *args,
                    gas_limit=gas_limit,
                    gas_price=gas_price,
                    timeout=timeout,
                )
            except NetworkError as e:
                if attempt >= self.max_attempts:
                    raise
                logger.warning(
                    f"{method} attempt {attempt}/{self.max_attempts} failed: "
                    f"{e.reason or e.message}"
                )
                previous_tx = e.tx_hash

        # Loop always returns or raises
        raise NetworkError(reason=f"{method} exhausted {self.max_attempts} attempts")

    async def _reconcile(self, tx_hash: str) -> ReceiptData | None:
        """
        Resolve the fate of an earlier attempt.

        Returns:
            ReceiptData if it was mined successfully, None if unknown

        Raises:
            NetworkError: If it is still pending
            ContractCallFailed: If it was mined and reverted
        """
        status = await self.status_checker.check(tx_hash)
        if status is None:
            return None
        if status["status"] == "pending":
            raise NetworkError(
                "Previous transaction still pending - check status later",
                tx_hash=tx_hash,
                pending=True,
            )
        logger.info(f"Adopting earlier transaction {tx_hash} ({status['status']})")
        return await self.submitter.to_receipt_data(tx_hash, status["receipt"])

    def _outcome(self, receipt: ReceiptData, token_ids: list[int]) -> TransactionOutcome:
        return TransactionOutcome(
            transaction_hash=receipt.transaction_hash,
            block_number=receipt.block_number,
            gas_used=receipt.gas_used,
            token_ids=token_ids,
            explorer_url=f"{self.explorer_url}/tx/{receipt.transaction_hash}",
        )

    async def _notify(self, outcome: TransactionOutcome, receipt: ReceiptData, **fields: Any) -> None:
        """Hand the mint to the notification queue; failures never fail the mint."""
        if self.notifier is None:
            return
        try:
            issue_date = await self.client.get_block_timestamp(receipt.block_number)
            self.notifier.submit(
                CertificateNotification(
                    token_id=outcome.token_id,
                    issue_date=issue_date,
                    transaction_hash=receipt.transaction_hash,
                    **fields,
                )
            )
        except Exception as e:
            logger.warning(
                f"Notification for certificate {outcome.token_id} not queued: {e}"
            )

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    async def _check_authorized(self, address: str) -> bool:
        """Authorized issuer or contract owner; read fresh every time."""
        if await self.client.call(self.profile.authorized_method, address):
            return True
        owner = await self.client.call(self.profile.owner_method)
        return addresses_equal(owner, address)

    async def is_authorized_issuer(self, address: str) -> bool:
        """
        Check whether an address may issue certificates.

        Any failure (malformed address, RPC error, undecodable result)
        collapses to False.
        """
        try:
            return await self._check_authorized(normalize_address(address, "issuer address"))
        except (CertificateServiceError, ContractLogicError, BadFunctionCallOutput) as e:
            logger.warning(f"Authorization check for {mask_address(str(address))} failed: {e}")
            return False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _read_token(self, method: str, token_id: int) -> Any:
        """Token-scoped read with 'no such token' reverts mapped."""
        try:
            return await self.client.call(method, token_id)
        except ContractLogicError as e:
            reason = revert_reason(e, self.client.error_selectors)
            if is_not_found_reason(reason):
                raise CertificateNotFound(token_id, reason=reason) from e
            raise ContractCallFailed(reason) from e
        except BadFunctionCallOutput as e:
            raise CertificateNotFound(token_id, reason=str(e)) from e

    async def get(self, token_id: int | str) -> CertificateRecord:
        """
        Read one certificate.

        Raises:
            ValidationError: Malformed token ID
            CertificateNotFound: No such token
            ContractCallFailed: Other revert
            NetworkError: RPC failure
        """
        token_id = parse_token_id(token_id)
        raw = await self._read_token(self.profile.get_method, token_id)
        fields = dict(zip(self._record_fields, raw))

        # Some deployments return an empty struct instead of reverting
        if not int(fields.get("issueDate", 0)) and (
            not fields.get("issuer") or addresses_equal(fields.get("issuer"), ZERO_ADDRESS)
        ):
            raise CertificateNotFound(token_id, reason="empty certificate struct")

        owner = None
        if not fields.get("recipient"):
            owner = await self._read_token(self.profile.owner_of_method, token_id)
        return CertificateRecord.from_chain(token_id, fields, owner=owner)

    async def verify(self, token_id: int | str) -> bool:
        """
        Check authenticity. Never raises: any failure means False.
        """
        try:
            token_id = parse_token_id(token_id)
            return bool(await self.client.call(self.profile.verify_method, token_id))
        except Exception as e:
            logger.debug(f"Verification of token {token_id} returned False: {e}")
            return False

    async def list_by_issuer(
        self,
        issuer_address: str,
        limit: int = DEFAULT_ISSUER_LIST_LIMIT,
    ) -> list[CertificateRecord]:
        """
        Certificates issued by an address within the recent block window.

        Args:
            issuer_address: Issuer to filter by (indexed event topic)
            limit: Maximum number of most recent certificates

        Returns:
            Records oldest first; tokens that fail to load are dropped
        """
        issuer = normalize_address(issuer_address, "issuer address")
        latest = await self.client.block_number()
        from_block = max(0, latest - self.lookback_blocks + 1)

        logs = await self.client.scan_event_logs(
            self.profile.issued_event,
            from_block,
            latest,
            self.log_chunk_size,
            argument_filters={self.profile.issuer_topic_arg: issuer},
        )

        token_ids: list[int] = []
        for log in logs:
            token_id = int(log["args"]["tokenId"])
            if token_id not in token_ids:
                token_ids.append(token_id)
        if limit > 0:
            token_ids = token_ids[-limit:]

        logger.info(
            f"Found {len(token_ids)} certificates for issuer {mask_address(issuer)} "
            f"in blocks {from_block}-{latest}"
        )

        records = []
        for token_id in token_ids:
            try:
                records.append(await self.get(token_id))
            except CertificateServiceError as e:
                logger.warning(f"Skipping certificate {token_id}: {e.message}")
        return records

    async def total_supply(self) -> int:
        """Number of certificates minted so far."""
        return int(await self.client.call(self.profile.supply_method))

    async def owner_of(self, token_id: int | str) -> str:
        """Current holder of a token."""
        token_id = parse_token_id(token_id)
        return await self._read_token(self.profile.owner_of_method, token_id)

    async def network_info(self) -> dict[str, Any]:
        """Chain and contract information."""
        info = await self.client.network_info()
        info["explorerUrl"] = self.explorer_url
        return info

    async def stats(self) -> dict[str, Any]:
        """
        Contract-wide figures.

        Returns:
            Dict with totalCertificates, contractOwner and contractAddress
        """
        total = await self.total_supply()
        owner = await self.client.call(self.profile.owner_method)
        return {
            "totalCertificates": total,
            "contractOwner": owner,
            "contractAddress": self.client.contract_address,
        }

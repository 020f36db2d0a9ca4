"""
Verification Query Surface.

Read-only questions over certificates: is this one authentic, who issued
it, which certificates belong to an issuer or recipient.

The by-issuer and by-recipient queries walk token IDs 1..totalSupply, one
read per token. That is O(supply) per query; an external indexer is the
way to scale past it.
"""

import asyncio
from typing import TYPE_CHECKING

from loguru import logger

from certchain.config.constants import DEFAULT_BATCH_CONCURRENCY
from certchain.utils.exceptions import (
    CertificateNotFound,
    CertificateServiceError,
    ValidationError,
)
from certchain.utils.security import mask_address
from certchain.utils.validation import addresses_equal, normalize_address, parse_token_id

from .models import CertificateRecord, VerificationResult

if TYPE_CHECKING:
    from .engine import CertificateEngine


class VerificationQuerySurface:
    """Authenticity and ownership queries built on the certificate engine."""

    def __init__(
        self,
        engine: "CertificateEngine",
        concurrency: int = DEFAULT_BATCH_CONCURRENCY,
    ):
        self.engine = engine
        self.concurrency = max(1, concurrency)

    async def verify_token(self, token_id: int | str) -> VerificationResult:
        """
        Full verification answer for one token. Never raises.

        Args:
            token_id: Token ID from the caller

        Returns:
            VerificationResult; failures carry an error code
        """
        try:
            parsed = parse_token_id(token_id)
        except ValidationError as e:
            return VerificationResult(
                token_id=token_id, exists=False, is_valid=False, error=e.code, message=e.message
            )

        try:
            record = await self.engine.get(parsed)
        except CertificateServiceError as e:
            if not isinstance(e, CertificateNotFound):
                logger.warning(f"Verification of token {parsed} failed: {e.code}")
            return VerificationResult(
                token_id=parsed, exists=False, is_valid=False, error=e.code, message=e.message
            )

        is_valid = record.is_valid and await self.engine.verify(parsed)
        return VerificationResult(
            token_id=parsed,
            exists=True,
            is_valid=is_valid,
            record=record,
        )

    async def issuer_of(self, token_id: int | str) -> str | None:
        """
        Issuer address of a token, or None if it cannot be read.

        Malformed IDs and read failures collapse to None like a missing token.
        """
        try:
            record = await self.engine.get(token_id)
        except CertificateNotFound:
            return None
        except CertificateServiceError as e:
            logger.warning(f"Issuer lookup for token {token_id} failed: {e.code}")
            return None
        return record.issuer

    async def certificates_by_issuer(self, issuer_address: str) -> list[CertificateRecord]:
        """All certificates issued by an address (full scan)."""
        issuer = normalize_address(issuer_address, "issuer address")
        records = await self._scan_all()
        matched = [r for r in records if addresses_equal(r.issuer, issuer)]
        logger.info(f"Issuer {mask_address(issuer)}: {len(matched)} certificates")
        return matched

    async def certificates_by_recipient(self, recipient_address: str) -> list[CertificateRecord]:
        """All certificates held by an address (full scan)."""
        recipient = normalize_address(recipient_address, "recipient address")
        records = await self._scan_all()
        matched = [r for r in records if addresses_equal(r.recipient, recipient)]
        logger.info(f"Recipient {mask_address(recipient)}: {len(matched)} certificates")
        return matched

    async def _scan_all(self) -> list[CertificateRecord]:
        """Load every token 1..totalSupply, skipping the ones that fail."""
        supply = await self.engine.total_supply()
        semaphore = asyncio.Semaphore(self.concurrency)

        async def load(token_id: int) -> CertificateRecord | None:
            async with semaphore:
                try:
                    return await self.engine.get(token_id)
                except CertificateServiceError as e:
                    logger.debug(f"Skipping token {token_id} during scan: {e.code}")
                    return None

        results = await asyncio.gather(*(load(t) for t in range(1, supply + 1)))
        return [r for r in results if r is not None]

"""
Batch Coordinator.

Fans verification out with bounded parallelism and runs mints one after
another (they share one signer). Every item yields its own result; a
failing item never aborts the batch.
"""

import asyncio
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from loguru import logger

from certchain.config.constants import DEFAULT_BATCH_CONCURRENCY, MAX_BATCH_SIZE
from certchain.utils.exceptions import BatchSizeError, CertificateServiceError

from .models import BatchItemResult, BatchReport, MintRequest
from .query import VerificationQuerySurface

if TYPE_CHECKING:
    from .engine import CertificateEngine


def _error_dict(exc: Exception) -> dict[str, Any]:
    if isinstance(exc, CertificateServiceError):
        return {"code": exc.code, "message": exc.message}
    return {"code": "INTERNAL_ERROR", "message": "Unexpected error"}


class BatchCoordinator:
    """Batch verification and issuance over the certificate engine."""

    def __init__(
        self,
        engine: "CertificateEngine",
        concurrency: int = DEFAULT_BATCH_CONCURRENCY,
        max_batch_size: int = MAX_BATCH_SIZE,
        query: VerificationQuerySurface | None = None,
    ):
        self.engine = engine
        self.concurrency = max(1, concurrency)
        self.max_batch_size = max_batch_size
        self.query = query or VerificationQuerySurface(engine, concurrency=self.concurrency)

    def _check_size(self, items: Sequence[Any]) -> None:
        if not items:
            raise BatchSizeError("Batch must contain at least one item")
        if len(items) > self.max_batch_size:
            raise BatchSizeError(
                f"Batch size {len(items)} exceeds maximum of {self.max_batch_size}"
            )

    async def verify_many(self, token_ids: Sequence[int | str]) -> BatchReport:
        """
        Verify up to MAX_BATCH_SIZE tokens.

        Args:
            token_ids: Token IDs in caller order

        Returns:
            BatchReport whose items are aligned with the input order;
            missing, malformed or unreadable tokens are failed items

        Raises:
            BatchSizeError: Empty or oversized batch (before any chain call)
        """
        self._check_size(token_ids)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def verify_one(index: int, token_id: int | str) -> BatchItemResult:
            async with semaphore:
                result = await self.query.verify_token(token_id)
            if not result.exists:
                return BatchItemResult(
                    index=index,
                    key=token_id,
                    success=False,
                    error={"code": result.error, "message": result.message},
                )
            return BatchItemResult(index=index, key=token_id, success=True, result=result)

        items = await asyncio.gather(
            *(verify_one(i, token_id) for i, token_id in enumerate(token_ids))
        )
        report = BatchReport(items=list(items), kind="verify")
        logger.info(
            f"Batch verify: {report.total_requested} requested, "
            f"{report.valid_count} valid, {report.invalid_count} invalid"
        )
        return report

    async def mint_many(
        self,
        requests: Sequence[MintRequest],
        *,
        issuer_address: str | None = None,
        timeout: float | None = None,
    ) -> BatchReport:
        """
        Issue up to MAX_BATCH_SIZE certificates sequentially.

        Args:
            requests: Certificates to issue
            issuer_address: Issuer whose authorization each mint checks
            timeout: Per-mint confirmation bound

        Returns:
            BatchReport aligned with the input order

        Raises:
            BatchSizeError: Empty or oversized batch (before any chain call)
        """
        self._check_size(requests)
        items: list[BatchItemResult] = []

        for index, request in enumerate(requests):
            try:
                outcome = await self.engine.mint(
                    request.recipient_address,
                    request.recipient_name,
                    request.course_name,
                    request.institution_name,
                    request.metadata_uri,
                    issuer_address=issuer_address,
                    timeout=timeout,
                    recipient_contact=request.recipient_contact,
                )
                items.append(
                    BatchItemResult(
                        index=index,
                        key=request.recipient_address,
                        success=True,
                        result=outcome,
                    )
                )
            except Exception as e:
                if not isinstance(e, CertificateServiceError):
                    logger.exception(f"Unexpected error minting batch item {index}: {e}")
                else:
                    logger.warning(f"Batch mint item {index} failed: {e.code} {e.message}")
                items.append(
                    BatchItemResult(
                        index=index,
                        key=request.recipient_address,
                        success=False,
                        error=_error_dict(e),
                    )
                )

        report = BatchReport(items=items, kind="mint")
        logger.info(
            f"Batch mint: {report.total_requested} requested, "
            f"{report.success_count} succeeded, {report.failure_count} failed"
        )
        return report

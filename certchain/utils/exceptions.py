"""
Exception handling utilities.

Defines the domain error taxonomy for certificate operations. Every error
carries a stable code, the HTTP status the routing layer surfaces it with,
and whether the caller may retry.
"""

from typing import Any


class CertificateServiceError(Exception):
    """Base class for all domain errors."""

    code = "CERTIFICATE_SERVICE_ERROR"
    http_status = 500
    retryable = False

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason

    def to_dict(self, include_details: bool = False) -> dict[str, Any]:
        """
        Serialize for API responses.

        Args:
            include_details: Expose the raw revert reason (development only)

        Returns:
            Dict with code, message and optional details
        """
        data: dict[str, Any] = {"code": self.code, "message": self.message}
        if include_details and self.reason:
            data["details"] = self.reason
        return data


class ValidationError(CertificateServiceError):
    """Malformed caller input, rejected before any network call."""

    code = "VALIDATION_ERROR"
    http_status = 400


class InvalidAddress(ValidationError):
    """Address failed the EVM format check."""

    code = "INVALID_ADDRESS"

    def __init__(self, address: Any, field: str = "address") -> None:
        shown = address if isinstance(address, str) else repr(address)
        super().__init__(f"Invalid {field}: {shown[:64]}")
        self.address = address
        self.field = field


class BatchSizeError(ValidationError):
    """Batch is empty or larger than the allowed maximum."""

    code = "BATCH_SIZE_EXCEEDED"


class AuthorizationError(CertificateServiceError):
    """Caller or issuer lacks permission for the requested mutation."""

    code = "AUTHORIZATION_ERROR"
    http_status = 403


class CertificateNotFound(CertificateServiceError):
    """Chain reports no such token."""

    code = "CERTIFICATE_NOT_FOUND"
    http_status = 404

    def __init__(self, token_id: Any, *, reason: str | None = None) -> None:
        super().__init__("Certificate not found", reason=reason)
        self.token_id = token_id


class AlreadyRevoked(CertificateServiceError):
    """Certificate is already in its terminal revoked state."""

    code = "ALREADY_REVOKED"
    http_status = 409

    def __init__(self, token_id: Any) -> None:
        super().__init__(f"Certificate {token_id} is already revoked")
        self.token_id = token_id


class GasEstimationFailed(CertificateServiceError):
    """The call would revert; nothing was sent."""

    code = "GAS_ESTIMATION_FAILED"
    http_status = 400

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(
            "Failed to estimate gas. Please check your parameters.",
            reason=reason,
        )


class InsufficientFunds(CertificateServiceError):
    """Signer balance is too low to pay for gas."""

    code = "INSUFFICIENT_FUNDS"
    http_status = 400

    def __init__(self, reason: str | None = None) -> None:
        super().__init__("Insufficient funds for transaction gas", reason=reason)


class ContractCallFailed(CertificateServiceError):
    """Transaction reverted after submission."""

    code = "CONTRACT_CALL_FAILED"
    http_status = 503
    retryable = True

    # Revert reasons that point at the caller rather than the network
    CALLER_ERROR_MARKERS = (
        "not authorized",
        "unauthorized",
        "already revoked",
        "invalid",
        "not found",
        "nonexistent",
    )

    def __init__(
        self,
        reason: str | None = None,
        *,
        tx_hash: str | None = None,
    ) -> None:
        super().__init__("Contract call failed", reason=reason)
        self.tx_hash = tx_hash
        lowered = (reason or "").lower()
        if any(marker in lowered for marker in self.CALLER_ERROR_MARKERS):
            self.http_status = 400
            self.retryable = False


class NetworkError(CertificateServiceError):
    """RPC unreachable or timed out."""

    code = "NETWORK_ERROR"
    http_status = 503
    retryable = True

    def __init__(
        self,
        message: str = "Blockchain network error. Please try again later.",
        *,
        reason: str | None = None,
        tx_hash: str | None = None,
        pending: bool = False,
    ) -> None:
        super().__init__(message, reason=reason)
        self.tx_hash = tx_hash
        # True when the transaction was broadcast and may still confirm
        self.pending = pending


class EventNotFoundError(CertificateServiceError):
    """Confirmed transaction carries no matching contract event."""

    code = "EVENT_NOT_FOUND"
    http_status = 500

    def __init__(self, event_name: str, tx_hash: str | None = None) -> None:
        super().__init__(
            f"{event_name} event not found in transaction receipt"
        )
        self.event_name = event_name
        self.tx_hash = tx_hash


class MintEventNotFound(EventNotFoundError):
    """Mint confirmed but no issuance event could be decoded."""

    code = "MINT_EVENT_NOT_FOUND"


class NoSignerConfigured(CertificateServiceError):
    """Write requested on a read-only deployment."""

    code = "NO_SIGNER_CONFIGURED"
    http_status = 503

    def __init__(self) -> None:
        super().__init__("No signing key configured for this deployment")


class ContractMismatchError(CertificateServiceError):
    """Configured ABI does not match the deployed contract."""

    code = "CONTRACT_MISMATCH"
    http_status = 500


def is_retryable(exc: Exception) -> bool:
    """
    Check if exception may be retried by the caller.

    Args:
        exc: Exception to check

    Returns:
        True if the error is transient
    """
    return isinstance(exc, CertificateServiceError) and exc.retryable

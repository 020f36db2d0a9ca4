"""
Certificate data model.

Plain dataclasses exchanged between the engine, the batch coordinator, the
query surface and the HTTP layer. API serialization uses the camelCase
field names clients already consume.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from web3 import Web3


def _checksum(address: Any) -> str:
    if not address:
        return ""
    return Web3.to_checksum_address(address)


@dataclass(frozen=True)
class CertificateRecord:
    """On-chain certificate as returned by getCertificate."""

    token_id: int
    issuer: str
    recipient: str
    recipient_name: str
    course_name: str
    institution_name: str
    issue_date: int
    metadata_uri: str = ""
    is_valid: bool = True

    @property
    def is_revoked(self) -> bool:
        return not self.is_valid

    @classmethod
    def from_chain(
        cls,
        token_id: int,
        fields: dict[str, Any],
        owner: str | None = None,
    ) -> "CertificateRecord":
        """
        Build a record from the named struct fields of getCertificate.

        Args:
            token_id: Token ID the struct was read for
            fields: Struct field name -> value
            owner: ownerOf(token_id), used when the struct has no recipient

        Returns:
            CertificateRecord
        """
        if "isValid" in fields:
            is_valid = bool(fields["isValid"])
        else:
            is_valid = not bool(fields.get("isRevoked", False))

        return cls(
            token_id=int(token_id),
            issuer=_checksum(fields.get("issuer")),
            recipient=_checksum(fields.get("recipient") or owner),
            recipient_name=fields.get("recipientName", ""),
            course_name=fields.get("courseName", ""),
            institution_name=fields.get("institutionName", ""),
            issue_date=int(fields.get("issueDate", 0)),
            metadata_uri=fields.get("metadataURI", "") or "",
            is_valid=is_valid,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "tokenId": str(self.token_id),
            "issuer": self.issuer,
            "recipient": self.recipient,
            "recipientName": self.recipient_name,
            "courseName": self.course_name,
            "institutionName": self.institution_name,
            "issueDate": self.issue_date,
            "metadataURI": self.metadata_uri,
            "isValid": self.is_valid,
            "isRevoked": self.is_revoked,
        }


@dataclass
class ReceiptData:
    """Mined and confirmed transaction receipt."""

    transaction_hash: str
    block_number: int
    gas_used: int
    logs: list[Any] = field(default_factory=list)


@dataclass
class VerificationLink:
    """Public verification URL plus its QR code."""

    url: str
    qr_code_data_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"verificationUrl": self.url, "qrCode": self.qr_code_data_url}


@dataclass
class TransactionOutcome:
    """Result of a confirmed certificate mutation."""

    transaction_hash: str
    block_number: int
    gas_used: int
    token_ids: list[int] = field(default_factory=list)
    verification_link: VerificationLink | None = None
    explorer_url: str | None = None

    @property
    def token_id(self) -> int | None:
        """First token ID decoded from the receipt."""
        return self.token_ids[0] if self.token_ids else None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "tokenId": str(self.token_id) if self.token_id is not None else None,
            "tokenIds": [str(t) for t in self.token_ids],
            "transactionHash": self.transaction_hash,
            "blockNumber": self.block_number,
            "gasUsed": str(self.gas_used),
        }
        if self.explorer_url:
            data["explorerUrl"] = self.explorer_url
        if self.verification_link:
            data.update(self.verification_link.to_dict())
        return data


@dataclass
class VerificationResult:
    """Authenticity answer for one token, recomputed on every call."""

    token_id: int | str
    exists: bool
    is_valid: bool
    record: CertificateRecord | None = None
    error: str | None = None
    message: str | None = None
    verified_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "tokenId": str(self.token_id),
            "exists": self.exists,
            "isValid": self.is_valid,
            "verifiedAt": self.verified_at.isoformat(),
        }
        if self.record is not None:
            data["certificate"] = self.record.to_dict()
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class BatchItemResult:
    """Outcome of one batch item; failures never abort the batch."""

    index: int
    key: Any
    success: bool
    result: Any = None
    error: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "index": self.index,
            "key": str(self.key),
            "success": self.success,
        }
        if self.success:
            result = self.result
            data["result"] = result.to_dict() if hasattr(result, "to_dict") else result
        else:
            data["error"] = self.error
        return data


def _is_valid(result: Any) -> bool:
    if isinstance(result, VerificationResult):
        return result.is_valid
    return result is True


@dataclass
class BatchReport:
    """Index-aligned batch results plus summary counts."""

    items: list[BatchItemResult]
    kind: str = "verify"

    @property
    def total_requested(self) -> int:
        return len(self.items)

    @property
    def success_count(self) -> int:
        return sum(1 for item in self.items if item.success)

    @property
    def failure_count(self) -> int:
        return self.total_requested - self.success_count

    @property
    def valid_count(self) -> int:
        return sum(1 for item in self.items if item.success and _is_valid(item.result))

    @property
    def invalid_count(self) -> int:
        return self.total_requested - self.valid_count

    def to_dict(self) -> dict[str, Any]:
        summary: dict[str, Any] = {
            "totalRequested": self.total_requested,
            "successCount": self.success_count,
            "failureCount": self.failure_count,
        }
        if self.kind == "verify":
            summary["validCount"] = self.valid_count
            summary["invalidCount"] = self.invalid_count
        return {
            "results": [item.to_dict() for item in self.items],
            "summary": summary,
        }


@dataclass
class MintRequest:
    """One certificate to issue."""

    recipient_address: str
    recipient_name: str
    course_name: str
    institution_name: str
    metadata_uri: str = ""
    recipient_contact: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MintRequest":
        """Build from an API payload (camelCase keys)."""
        return cls(
            recipient_address=data.get("recipientAddress"),
            recipient_name=data.get("recipientName"),
            course_name=data.get("courseName"),
            institution_name=data.get("institutionName"),
            metadata_uri=data.get("metadataURI") or "",
            recipient_contact=data.get("recipientEmail"),
        )


@dataclass
class CertificateNotification:
    """Payload handed to the notification collaborator after a mint."""

    token_id: int
    recipient_name: str
    course_name: str
    institution_name: str
    issuer: str
    issue_date: int
    transaction_hash: str
    recipient_contact: str | None = None
    issuer_contact: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "tokenId": str(self.token_id),
            "recipientName": self.recipient_name,
            "courseName": self.course_name,
            "institutionName": self.institution_name,
            "issuer": self.issuer,
            "issueDate": self.issue_date,
            "transactionHash": self.transaction_hash,
            "recipientContact": self.recipient_contact,
            "issuerContact": self.issuer_contact,
        }

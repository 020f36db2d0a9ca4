"""Unit tests for the data model and verification links."""

import base64
from unittest.mock import patch

from certchain.services.certificate.models import (
    BatchItemResult,
    BatchReport,
    CertificateRecord,
    TransactionOutcome,
    VerificationResult,
)
from certchain.services.verification_link import VerificationLinkBuilder
from tests.fakes import CONTRACT_ADDRESS, ISSUER_ADDRESS, RECIPIENT_ADDRESS, TX_HASH


class TestCertificateRecord:
    """Tests for CertificateRecord."""

    def test_from_full_struct(self):
        record = CertificateRecord.from_chain(
            3,
            {
                "issuer": ISSUER_ADDRESS.lower(),
                "recipient": RECIPIENT_ADDRESS.lower(),
                "recipientName": "Ada Lovelace",
                "courseName": "Analytical Engines",
                "institutionName": "Royal Society",
                "issueDate": 1_700_000_000,
                "metadataURI": "ipfs://ada",
                "isValid": True,
            },
        )
        assert record.issuer == ISSUER_ADDRESS
        assert record.recipient == RECIPIENT_ADDRESS
        assert not record.is_revoked

    def test_recipient_fallback_and_is_revoked(self):
        record = CertificateRecord.from_chain(
            3,
            {
                "recipientName": "Ada",
                "courseName": "Math",
                "institutionName": "Uni",
                "issueDate": 1,
                "isRevoked": True,
                "issuer": ISSUER_ADDRESS,
                "metadataURI": "",
            },
            owner=RECIPIENT_ADDRESS,
        )
        assert record.recipient == RECIPIENT_ADDRESS
        assert not record.is_valid

    def test_to_dict_token_id_string(self):
        record = CertificateRecord(2**200, ISSUER_ADDRESS, RECIPIENT_ADDRESS, "A", "B", "C", 1)
        data = record.to_dict()
        assert data["tokenId"] == str(2**200)
        assert data["isValid"] is True
        assert data["isRevoked"] is False


class TestResults:
    """Tests for result serialization."""

    def test_outcome_to_dict(self):
        outcome = TransactionOutcome(TX_HASH, 10, 21_000, token_ids=[5], explorer_url="https://x/tx/1")
        data = outcome.to_dict()
        assert data["tokenId"] == "5"
        assert data["transactionHash"] == TX_HASH
        assert data["explorerUrl"] == "https://x/tx/1"

    def test_verification_result_error_code(self):
        data = VerificationResult(token_id=9, exists=False, is_valid=False, error="CERTIFICATE_NOT_FOUND").to_dict()
        assert data["error"] == "CERTIFICATE_NOT_FOUND"
        assert "certificate" not in data

    def test_batch_report_counts(self):
        report = BatchReport(
            items=[
                BatchItemResult(0, 1, True, VerificationResult(token_id=1, exists=True, is_valid=True)),
                BatchItemResult(1, 2, True, VerificationResult(token_id=2, exists=True, is_valid=False)),
                BatchItemResult(2, "x", False, error={"code": "VALIDATION_ERROR", "message": "bad"}),
            ]
        )
        assert report.to_dict()["summary"] == {
            "totalRequested": 3,
            "successCount": 2,
            "failureCount": 1,
            "validCount": 1,
            "invalidCount": 2,
        }


class TestVerificationLinkBuilder:
    """Tests for verification URL and QR code."""

    def test_url(self):
        builder = VerificationLinkBuilder("https://certs.example.org/")
        assert builder.verification_url(7, CONTRACT_ADDRESS) == (
            f"https://certs.example.org/verify?tokenId=7&contract={CONTRACT_ADDRESS}"
        )

    def test_qr_code_is_png_data_url(self):
        link = VerificationLinkBuilder("https://certs.example.org").build(7, CONTRACT_ADDRESS)
        assert link.url.endswith("tokenId=7&contract=" + CONTRACT_ADDRESS)
        prefix = "data:image/png;base64,"
        assert link.qr_code_data_url.startswith(prefix)
        assert base64.b64decode(link.qr_code_data_url[len(prefix):])[:8] == b"\x89PNG\r\n\x1a\n"

    def test_failure_returns_none(self):
        builder = VerificationLinkBuilder("https://certs.example.org")
        with patch.object(builder, "qr_code", side_effect=RuntimeError("no PIL")):
            assert builder.build(7, CONTRACT_ADDRESS) is None

    def test_no_token(self):
        assert VerificationLinkBuilder("https://x").build(None, CONTRACT_ADDRESS) is None

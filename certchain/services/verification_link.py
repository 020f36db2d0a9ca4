"""
Verification link builder.

Builds the public verification URL of a certificate and a QR code that
encodes it.
"""

import base64
import io
from urllib.parse import urlencode

import qrcode
from loguru import logger
from qrcode.image.pil import PilImage

from certchain.services.certificate.models import VerificationLink


class VerificationLinkBuilder:
    """Verification URL + PNG QR code (data URL) for a certificate."""

    def __init__(self, frontend_url: str, box_size: int = 10, border: int = 2):
        """
        Initialize link builder.

        Args:
            frontend_url: Base URL of the verification frontend
            box_size: Size of each QR box in pixels
            border: QR border size in boxes
        """
        self.frontend_url = frontend_url.rstrip("/")
        self.box_size = box_size
        self.border = border

    def verification_url(self, token_id: int, contract_address: str) -> str:
        query = urlencode({"tokenId": token_id, "contract": contract_address})
        return f"{self.frontend_url}/verify?{query}"

    def qr_code(self, data: str) -> str:
        """PNG QR code of data as a base64 data URL."""
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=self.box_size,
            border=self.border,
        )
        qr.add_data(data)
        qr.make(fit=True)

        img: PilImage = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
        return f"data:image/png;base64,{encoded}"

    def build(self, token_id: int | None, contract_address: str) -> VerificationLink | None:
        """
        Build the verification link for a certificate.

        Returns:
            VerificationLink, or None if generation fails
        """
        if token_id is None:
            return None
        try:
            url = self.verification_url(token_id, contract_address)
            return VerificationLink(url=url, qr_code_data_url=self.qr_code(url))
        except Exception as e:
            logger.error(f"Failed to generate verification link for {token_id}: {e}")
            return None

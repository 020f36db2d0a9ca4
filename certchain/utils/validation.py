"""Input validation utilities."""

from typing import Any

from loguru import logger
from web3 import Web3

from certchain.config.constants import (
    MAX_COURSE_NAME_LENGTH,
    MAX_INSTITUTION_NAME_LENGTH,
    MAX_METADATA_URI_LENGTH,
    MAX_RECIPIENT_NAME_LENGTH,
)
from certchain.utils.exceptions import InvalidAddress, ValidationError


def validate_evm_address(address: Any) -> tuple[bool, str | None]:
    """
    Validate an EVM address without touching the network.

    Mixed-case input must carry a correct EIP-55 checksum; all-lowercase
    and all-uppercase input is accepted as-is.

    Args:
        address: Address to validate

    Returns:
        Tuple of (is_valid, error_message)

    Examples:
        >>> validate_evm_address("0x1234567890123456789012345678901234567890")
        (True, None)
        >>> validate_evm_address("invalid")
        (False, 'Address must start with 0x')
    """
    if not address or not isinstance(address, str):
        return False, "Address is empty"

    address = address.strip()

    if not address.startswith("0x"):
        return False, "Address must start with 0x"

    if len(address) != 42:
        return False, "Address must be 42 characters"

    try:
        int(address[2:], 16)
    except ValueError:
        return False, "Invalid address format"

    body = address[2:]
    is_mixed_case = body != body.lower() and body != body.upper()
    if is_mixed_case and not Web3.is_checksum_address(address):
        logger.debug(f"Checksum validation failed for {address}")
        return False, "Invalid address checksum"

    return True, None


def is_valid_address(address: Any) -> bool:
    """Boolean form of validate_evm_address."""
    is_valid, _ = validate_evm_address(address)
    return is_valid


def normalize_address(address: Any, field: str = "address") -> str:
    """
    Validate and convert an address to checksum format.

    Args:
        address: Address to normalize
        field: Field name used in the error message

    Returns:
        Checksummed address

    Raises:
        InvalidAddress: If the address fails the format check
    """
    if not is_valid_address(address):
        raise InvalidAddress(address, field)
    return Web3.to_checksum_address(address.strip())


def addresses_equal(left: str | None, right: str | None) -> bool:
    """Compare two addresses case-insensitively."""
    if not left or not right:
        return False
    return left.strip().lower() == right.strip().lower()


def parse_token_id(value: Any) -> int:
    """
    Parse a token ID from API or caller input.

    Accepts positive integers and strings of digits.

    Args:
        value: Raw token ID

    Returns:
        Token ID as int

    Raises:
        ValidationError: If the value is not a positive integer
    """
    if isinstance(value, bool):
        raise ValidationError("Token ID must be a number")

    if isinstance(value, int):
        token_id = value
    elif isinstance(value, str) and value.strip().isdigit():
        token_id = int(value.strip())
    else:
        raise ValidationError("Token ID must be a number")

    if token_id < 1:
        raise ValidationError("Token ID must be greater than 0")
    # uint256 upper bound
    if token_id >= 2**256:
        raise ValidationError("Token ID out of range")
    return token_id


def _validate_text(value: Any, field: str, max_length: int, required: bool = True) -> str:
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if required and not value:
        raise ValidationError(f"{field} is required")
    if len(value) > max_length:
        raise ValidationError(
            f"{field} must be at most {max_length} characters"
        )
    return value


def validate_certificate_fields(
    recipient_name: Any,
    course_name: Any,
    institution_name: Any,
    metadata_uri: Any = "",
) -> tuple[str, str, str, str]:
    """
    Validate the free-text fields of a certificate.

    Returns:
        Stripped (recipient_name, course_name, institution_name, metadata_uri)

    Raises:
        ValidationError: If a field is missing or too long
    """
    return (
        _validate_text(recipient_name, "recipientName", MAX_RECIPIENT_NAME_LENGTH),
        _validate_text(course_name, "courseName", MAX_COURSE_NAME_LENGTH),
        _validate_text(institution_name, "institutionName", MAX_INSTITUTION_NAME_LENGTH),
        _validate_text(
            metadata_uri, "metadataURI", MAX_METADATA_URI_LENGTH, required=False
        ),
    )

"""
Chain error classification.

Maps exceptions raised by web3 / the JSON-RPC node onto the domain error
taxonomy in certchain.utils.exceptions. Every component that talks to the
node funnels its failures through here so the mapping lives in one place.
"""

from typing import Any

import aiohttp
from eth_utils import keccak
from web3.exceptions import (
    ContractLogicError,
    ProviderConnectionError,
    TimeExhausted,
    Web3Exception,
)

from certchain.utils.exceptions import (
    CertificateServiceError,
    ContractCallFailed,
    InsufficientFunds,
    NetworkError,
)

# Transport-level failures: node unreachable, dropped connection, timeouts
NETWORK_EXCEPTIONS = (
    aiohttp.ClientError,
    ProviderConnectionError,
    TimeExhausted,
    TimeoutError,
    ConnectionError,
    OSError,
)

# Revert reasons that mean the token does not exist
NOT_FOUND_MARKERS = (
    "certificatenotfound",
    "erc721nonexistenttoken",
    "nonexistent token",
    "does not exist",
    "not found",
    "invalid token id",
)

INSUFFICIENT_FUNDS_MARKERS = (
    "insufficient funds",
    "insufficient balance",
)

_REVERT_PREFIXES = (
    "execution reverted: ",
    "execution reverted:",
    "execution reverted",
)


def error_selectors(abi: list[dict[str, Any]]) -> dict[str, str]:
    """
    Build a map of custom-error selector (0x + 8 hex) to error name.

    Args:
        abi: Contract ABI

    Returns:
        Dict selector -> name
    """
    selectors: dict[str, str] = {}
    for entry in abi:
        if entry.get("type") != "error":
            continue
        types = ",".join(i["type"] for i in entry.get("inputs", []))
        signature = f"{entry['name']}({types})"
        selectors["0x" + keccak(text=signature)[:4].hex()] = entry["name"]
    return selectors


def revert_reason(exc: BaseException, selectors: dict[str, str] | None = None) -> str | None:
    """
    Extract a human-readable revert reason from a web3 exception.

    Custom errors are resolved to their ABI name through the selector map;
    string reverts lose their "execution reverted" prefix.

    Args:
        exc: Exception raised by a call, estimate or replay
        selectors: Custom-error selector map for the bound contract

    Returns:
        Revert reason or None if the node supplied none
    """
    data = getattr(exc, "data", None)
    if isinstance(data, str) and selectors and data[:10].lower() in selectors:
        return selectors[data[:10].lower()]

    message = getattr(exc, "message", None) or (str(exc) if str(exc) else None)
    if not message:
        return None

    if selectors:
        for selector, name in selectors.items():
            if selector in message.lower():
                return name

    for prefix in _REVERT_PREFIXES:
        if message.startswith(prefix):
            message = message[len(prefix):].strip()
            break
    return message or None


def is_not_found_reason(reason: str | None) -> bool:
    """Whether a revert reason means the token does not exist."""
    if not reason:
        return False
    lowered = reason.lower()
    return any(marker in lowered for marker in NOT_FOUND_MARKERS)


def is_insufficient_funds(exc: BaseException) -> bool:
    """Whether the node rejected the transaction for lack of balance."""
    text = (getattr(exc, "message", None) or str(exc)).lower()
    return any(marker in text for marker in INSUFFICIENT_FUNDS_MARKERS)


def is_network_failure(exc: BaseException) -> bool:
    """Whether the exception is a transport failure rather than a node answer."""
    return isinstance(exc, NETWORK_EXCEPTIONS)


def classify_send_error(
    exc: BaseException,
    selectors: dict[str, str] | None = None,
    *,
    tx_hash: str | None = None,
) -> CertificateServiceError:
    """
    Map a failure raised while broadcasting or awaiting a transaction.

    Args:
        exc: Original exception
        selectors: Custom-error selector map
        tx_hash: Hash of the signed transaction, if known

    Returns:
        Domain error to raise
    """
    if isinstance(exc, CertificateServiceError):
        return exc
    if is_insufficient_funds(exc):
        return InsufficientFunds(reason=revert_reason(exc))
    if isinstance(exc, ContractLogicError):
        return ContractCallFailed(revert_reason(exc, selectors), tx_hash=tx_hash)
    if is_network_failure(exc):
        return NetworkError(
            reason=str(exc) or exc.__class__.__name__,
            tx_hash=tx_hash,
            pending=tx_hash is not None,
        )
    if isinstance(exc, (Web3Exception, ValueError)):
        # Node answered with a JSON-RPC error (nonce too low, underpriced, ...)
        return ContractCallFailed(revert_reason(exc, selectors), tx_hash=tx_hash)
    return NetworkError(reason=str(exc), tx_hash=tx_hash, pending=tx_hash is not None)

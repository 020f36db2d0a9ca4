"""
Blockchain layer.

Chain client, gas policy, transaction submission and event decoding for the
certificate contract.
"""

from .abi import (
    CERTIFICATE_ABI,
    CERTIFICATE_PROFILE,
    SIMPLE_CERTIFICATE_ABI,
    SIMPLE_CERTIFICATE_PROFILE,
    ContractProfile,
    get_profile,
)
from .chain_client import ChainClient
from .event_decoder import EventDecoder
from .gas_policy import GasPolicy
from .transaction_status import TransactionStatusChecker
from .transaction_submitter import TransactionSubmitter

__all__ = [
    "CERTIFICATE_ABI",
    "CERTIFICATE_PROFILE",
    "SIMPLE_CERTIFICATE_ABI",
    "SIMPLE_CERTIFICATE_PROFILE",
    "ChainClient",
    "ContractProfile",
    "EventDecoder",
    "GasPolicy",
    "TransactionStatusChecker",
    "TransactionSubmitter",
    "get_profile",
]

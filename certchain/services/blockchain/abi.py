"""
Contract ABI profiles.

This module declares the certificate contract binding once:
- CERTIFICATE_ABI - the richer "Certificate" contract (metadata URI, CertificateMinted)
- SIMPLE_CERTIFICATE_ABI - the "SimpleCertificate" contract (CertificateIssued)
- ContractProfile - names of the methods and events each family exposes

A deployment binds exactly one profile; the two event signatures differ and
must never be mixed.
"""

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from certchain.utils.exceptions import ContractMismatchError

_CERTIFICATE_STRUCT = [
    {"name": "issuer", "type": "address"},
    {"name": "recipient", "type": "address"},
    {"name": "recipientName", "type": "string"},
    {"name": "courseName", "type": "string"},
    {"name": "institutionName", "type": "string"},
    {"name": "issueDate", "type": "uint256"},
    {"name": "metadataURI", "type": "string"},
    {"name": "isValid", "type": "bool"},
]

_SIMPLE_CERTIFICATE_STRUCT = [
    {"name": "recipientName", "type": "string"},
    {"name": "courseName", "type": "string"},
    {"name": "institutionName", "type": "string"},
    {"name": "issueDate", "type": "uint256"},
    {"name": "isRevoked", "type": "bool"},
    {"name": "issuer", "type": "address"},
    {"name": "metadataURI", "type": "string"},
]

# Read/write functions shared by both families
_COMMON_ABI = [
    {
        "inputs": [{"name": "", "type": "address"}],
        "name": "authorizedIssuers",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "owner",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "name": "ownerOf",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "totalSupply",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "name": "revokeCertificate",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "anonymous": False,
        "inputs": [{"indexed": True, "name": "tokenId", "type": "uint256"}],
        "name": "CertificateRevoked",
        "type": "event",
    },
    {"inputs": [], "name": "CertificateNotFound", "type": "error"},
    {
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "name": "ERC721NonexistentToken",
        "type": "error",
    },
]

CERTIFICATE_ABI: list[dict[str, Any]] = _COMMON_ABI + [
    {
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "name": "getCertificate",
        "outputs": [
            {
                "components": _CERTIFICATE_STRUCT,
                "name": "",
                "type": "tuple",
            }
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "name": "verifyCertificate",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "recipient", "type": "address"},
            {"name": "recipientName", "type": "string"},
            {"name": "courseName", "type": "string"},
            {"name": "institutionName", "type": "string"},
            {"name": "metadataURI", "type": "string"},
        ],
        "name": "mintCertificate",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "tokenId", "type": "uint256"},
            {"indexed": True, "name": "issuer", "type": "address"},
            {"indexed": True, "name": "recipient", "type": "address"},
        ],
        "name": "CertificateMinted",
        "type": "event",
    },
]

SIMPLE_CERTIFICATE_ABI: list[dict[str, Any]] = _COMMON_ABI + [
    {
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "name": "getCertificate",
        "outputs": [
            {
                "components": _SIMPLE_CERTIFICATE_STRUCT,
                "name": "",
                "type": "tuple",
            }
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "name": "isValidCertificate",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "recipient", "type": "address"},
            {"name": "recipientName", "type": "string"},
            {"name": "courseName", "type": "string"},
            {"name": "institutionName", "type": "string"},
        ],
        "name": "issueCertificate",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "tokenId", "type": "uint256"},
            {"indexed": True, "name": "recipient", "type": "address"},
            {"indexed": True, "name": "issuer", "type": "address"},
            {"indexed": False, "name": "recipientName", "type": "string"},
            {"indexed": False, "name": "courseName", "type": "string"},
            {"indexed": False, "name": "institutionName", "type": "string"},
            {"indexed": False, "name": "issueDate", "type": "uint256"},
        ],
        "name": "CertificateIssued",
        "type": "event",
    },
]


@dataclass(frozen=True)
class ContractProfile:
    """Method and event names of one certificate contract family."""

    name: str
    abi: list[dict[str, Any]]
    get_method: str
    verify_method: str
    mint_method: str
    mint_takes_metadata: bool
    issued_event: str
    revoke_method: str = "revokeCertificate"
    revoked_event: str = "CertificateRevoked"
    authorized_method: str = "authorizedIssuers"
    owner_method: str = "owner"
    owner_of_method: str = "ownerOf"
    supply_method: str = "totalSupply"
    issuer_topic_arg: str = "issuer"

    def mint_args(
        self,
        recipient: str,
        recipient_name: str,
        course_name: str,
        institution_name: str,
        metadata_uri: str,
    ) -> tuple[Any, ...]:
        """Positional arguments for the profile's mint method."""
        args: tuple[Any, ...] = (recipient, recipient_name, course_name, institution_name)
        if self.mint_takes_metadata:
            args += (metadata_uri or "",)
        return args

    def with_abi(self, abi: list[dict[str, Any]]) -> "ContractProfile":
        """
        Return a copy bound to an externally supplied ABI.

        Raises:
            ContractMismatchError: If the ABI lacks a method or event the profile names
        """
        profile = replace(self, abi=abi)
        profile.ensure_complete()
        return profile

    def ensure_complete(self) -> None:
        """Check that every name the profile uses is present in its ABI."""
        functions = {e.get("name") for e in self.abi if e.get("type") == "function"}
        events = {e.get("name") for e in self.abi if e.get("type") == "event"}
        required_functions = {
            self.get_method,
            self.verify_method,
            self.mint_method,
            self.revoke_method,
            self.authorized_method,
            self.owner_method,
            self.owner_of_method,
            self.supply_method,
        }
        missing = sorted(required_functions - functions) + sorted(
            {self.issued_event, self.revoked_event} - events
        )
        if missing:
            raise ContractMismatchError(
                f"ABI for profile '{self.name}' is missing: {', '.join(missing)}"
            )


CERTIFICATE_PROFILE = ContractProfile(
    name="certificate",
    abi=CERTIFICATE_ABI,
    get_method="getCertificate",
    verify_method="verifyCertificate",
    mint_method="mintCertificate",
    mint_takes_metadata=True,
    issued_event="CertificateMinted",
)

SIMPLE_CERTIFICATE_PROFILE = ContractProfile(
    name="simple",
    abi=SIMPLE_CERTIFICATE_ABI,
    get_method="getCertificate",
    verify_method="isValidCertificate",
    mint_method="issueCertificate",
    mint_takes_metadata=False,
    issued_event="CertificateIssued",
)

PROFILES = {
    CERTIFICATE_PROFILE.name: CERTIFICATE_PROFILE,
    SIMPLE_CERTIFICATE_PROFILE.name: SIMPLE_CERTIFICATE_PROFILE,
}


def get_profile(name: str, abi_path: str | None = None) -> ContractProfile:
    """
    Resolve a contract profile, optionally overriding its ABI from a file.

    Args:
        name: Profile name ("certificate" or "simple")
        abi_path: Optional path to an ABI JSON file

    Returns:
        ContractProfile

    Raises:
        ContractMismatchError: If the profile is unknown or the ABI is incomplete
    """
    try:
        profile = PROFILES[name]
    except KeyError as e:
        raise ContractMismatchError(f"Unknown contract profile: {name}") from e

    if abi_path:
        profile = profile.with_abi(load_abi(abi_path))
    return profile


def load_abi(abi_path: str) -> list[dict[str, Any]]:
    """
    Load an ABI. Accepts either:
        - a file containing the ABI array
        - a full Hardhat artifact JSON
    """
    p = Path(abi_path)
    if not p.exists():
        raise ContractMismatchError(f"ABI file not found at {abi_path}")
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ContractMismatchError(f"ABI file at {abi_path} is not valid JSON") from e

    # Hardhat artifact keeps the ABI under "abi"
    if isinstance(data, dict) and "abi" in data:
        data = data["abi"]
    if isinstance(data, list):
        return data
    raise ContractMismatchError(
        f"ABI at {abi_path} did not look like an ABI array or a Hardhat artifact with 'abi' key"
    )


def find_abi_entry(abi: list[dict[str, Any]], name: str, entry_type: str) -> dict[str, Any]:
    """Find a function/event/error entry by name."""
    for entry in abi:
        if entry.get("type") == entry_type and entry.get("name") == name:
            return entry
    raise ContractMismatchError(f"{entry_type} '{name}' not present in ABI")


def output_field_names(abi: list[dict[str, Any]], method: str) -> list[str]:
    """
    Names of the fields a view function returns.

    For a single tuple output these are the struct component names.
    """
    outputs = find_abi_entry(abi, method, "function").get("outputs", [])
    if len(outputs) == 1 and outputs[0].get("type") == "tuple":
        return [c["name"] for c in outputs[0].get("components", [])]
    return [o.get("name", "") for o in outputs]

"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from pathlib import Path

# Minimal environment for Settings; must be set before certchain.config is imported
os.environ.setdefault("CONTRACT_ADDRESS", "0x5fbdb2315678afecb367f032d93f642f64180aa3")
os.environ.setdefault("RPC_URL", "http://127.0.0.1:8545")
os.environ.setdefault("CHAIN_ID", "80002")
os.environ.setdefault(
    "PRIVATE_KEY", "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcab784d7bf4f2ff80"
)
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("FRONTEND_URL", "https://certs.example.org")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest

from tests.fakes import (
    CONTRACT_ADDRESS,
    ISSUER_ADDRESS,
    RECIPIENT_ADDRESS,
    SIGNER_ADDRESS,
)


@pytest.fixture
def contract_address():
    """Checksummed address of the certificate contract used in tests."""
    return CONTRACT_ADDRESS


@pytest.fixture
def signer_address():
    """Address of the test signing key."""
    return SIGNER_ADDRESS


@pytest.fixture
def issuer_address():
    """An authorized issuer distinct from the signer."""
    return ISSUER_ADDRESS


@pytest.fixture
def recipient_address():
    """Certificate recipient."""
    return RECIPIENT_ADDRESS

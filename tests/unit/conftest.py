"""
Shared fixtures for unit tests.

This module provides common fixtures used across multiple test modules:
- In-memory certificate contract (FakeChain) and a chain client mock over it
- Gas policy / submitter / status checker mocks
- CertificateEngine wired from the above
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from certchain.services.blockchain.event_decoder import EventDecoder
from certchain.services.certificate.engine import CertificateEngine
from tests.fakes import FakeChain, mock_chain_client


@pytest.fixture
def fake_chain():
    """
    In-memory certificate contract.

    Returns:
        FakeChain: Contract state answering reads and applying mutations
    """
    return FakeChain()


@pytest.fixture
def chain_client(fake_chain):
    """
    ChainClient mock backed by fake_chain.

    Args:
        fake_chain: In-memory contract

    Returns:
        MagicMock: Client with async call/scan methods
    """
    return mock_chain_client(fake_chain)


@pytest.fixture
def gas_policy():
    """Gas policy mock returning a fixed limit."""
    policy = MagicMock()
    policy.gas_limit = AsyncMock(return_value=240_000)
    policy.gas_price = AsyncMock(return_value=None)
    return policy


@pytest.fixture
def submitter(fake_chain):
    """Submitter mock applying mutations to fake_chain."""
    submitter = MagicMock()
    submitter.submit = AsyncMock(side_effect=fake_chain.submit)
    submitter.to_receipt_data = AsyncMock()
    return submitter


@pytest.fixture
def status_checker():
    """Status checker mock; transactions unknown by default."""
    checker = MagicMock()
    checker.check = AsyncMock(return_value=None)
    return checker


@pytest.fixture
def notifier():
    """Notification dispatcher mock."""
    notifier = MagicMock()
    notifier.submit = MagicMock(return_value=True)
    return notifier


@pytest.fixture
def engine(chain_client, gas_policy, submitter, status_checker, notifier, fake_chain):
    """
    CertificateEngine over the fake contract.

    Returns:
        CertificateEngine: Engine with a real EventDecoder
    """
    return CertificateEngine(
        chain_client,
        gas_policy,
        submitter,
        EventDecoder.for_profile(fake_chain.profile, fake_chain.contract_address),
        status_checker,
        notifier=notifier,
        max_attempts=2,
        lookback_blocks=10_000,
        log_chunk_size=2_000,
        explorer_url="https://amoy.polygonscan.com",
    )

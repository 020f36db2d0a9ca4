"""
Initialization - Services Module.

Constructs the chain client, engine and collaborators from settings.
Everything is built explicitly and passed down; nothing is a module-level
singleton.
"""

from dataclasses import dataclass
from typing import Any

from loguru import logger

from certchain.services.blockchain import (
    ChainClient,
    EventDecoder,
    GasPolicy,
    TransactionStatusChecker,
    TransactionSubmitter,
)
from certchain.services.certificate.batch import BatchCoordinator
from certchain.services.certificate.engine import CertificateEngine
from certchain.services.certificate.query import VerificationQuerySurface
from certchain.services.notification.dispatcher import (
    NotificationDispatcher,
    WebhookSender,
)
from certchain.services.verification_link import VerificationLinkBuilder


@dataclass
class Services:
    """Wired service graph."""

    client: ChainClient
    engine: CertificateEngine
    batch: BatchCoordinator
    query: VerificationQuerySurface
    notifier: NotificationDispatcher
    expose_error_details: bool = False


def build_services(settings: Any, client: ChainClient | None = None) -> Services:
    """
    Build the service graph.

    Args:
        settings: certchain.config.settings.Settings
        client: Pre-built chain client (tests inject one)

    Returns:
        Services
    """
    client = client or ChainClient.from_settings(settings)

    gas_policy = GasPolicy(
        gas_price_wei=settings.gas_price_wei,
        error_selectors=client.error_selectors,
    )
    submitter = TransactionSubmitter(
        client,
        confirmations=settings.confirmation_blocks,
        timeout=settings.transaction_timeout,
        poll_interval=settings.receipt_poll_interval,
    )
    decoder = EventDecoder.for_profile(client.profile, client.contract_address)

    sender = (
        WebhookSender(settings.notification_webhook_url)
        if settings.notification_webhook_url
        else None
    )
    notifier = NotificationDispatcher(
        sender=sender,
        max_retries=settings.notification_max_retries,
    )

    engine = CertificateEngine(
        client,
        gas_policy,
        submitter,
        decoder,
        TransactionStatusChecker(client),
        notifier=notifier,
        link_builder=VerificationLinkBuilder(settings.frontend_url),
        max_attempts=settings.mint_max_attempts,
        lookback_blocks=settings.issuer_lookback_blocks,
        log_chunk_size=settings.log_chunk_size,
        explorer_url=settings.explorer_url,
    )

    logger.info(
        f"Services initialized (profile={client.profile.name}, "
        f"confirmations={settings.confirmation_blocks}, "
        f"signer={'yes' if client.has_signer else 'no'})"
    )
    query = VerificationQuerySurface(engine, concurrency=settings.batch_concurrency)
    return Services(
        client=client,
        engine=engine,
        batch=BatchCoordinator(engine, concurrency=settings.batch_concurrency, query=query),
        query=query,
        notifier=notifier,
        expose_error_details=settings.is_development or settings.debug,
    )

"""
certchain entry point.

Loads settings, configures logging, wires the services, validates the
contract binding and serves the HTTP API until interrupted.
"""

import asyncio
import sys

from aiohttp import web
from loguru import logger

from certchain.config.settings import settings
from certchain.initialization.logging import setup_logging
from certchain.initialization.services import build_services
from certchain.utils.exceptions import ContractMismatchError, NetworkError
from certchain.web.api import create_app


async def main() -> None:
    """Run the service."""
    setup_logging(settings.log_level, settings.log_file)

    services = build_services(settings)

    try:
        await services.client.validate_contract()
    except ContractMismatchError as e:
        logger.critical(f"Contract binding invalid, refusing to start: {e.message}")
        sys.exit(1)
    except NetworkError as e:
        logger.critical(f"RPC node unreachable at startup: {e.reason or e.message}")
        sys.exit(1)

    app = create_app(services)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, settings.api_host, settings.api_port)
    await site.start()

    logger.success(
        f"certchain API listening on {settings.api_host}:{settings.api_port} "
        f"(chain {settings.chain_id}, contract {services.client.contract_address})"
    )

    try:
        await asyncio.Event().wait()
    finally:
        logger.info("Shutting down certchain...")
        await runner.cleanup()


def run() -> None:
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("certchain stopped")


if __name__ == "__main__":
    run()

"""
RPC Wrapper with Timeout.

Provides centralized timeout handling for blockchain RPC calls.
"""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from loguru import logger

from certchain.config.constants import BLOCKCHAIN_TIMEOUT
from certchain.utils.exceptions import NetworkError

T = TypeVar("T")


async def with_timeout(
    coro: Awaitable[T],
    timeout: float | None = BLOCKCHAIN_TIMEOUT,
    operation_name: str = "RPC call",
) -> T:
    """
    Execute async coroutine with timeout.

    Args:
        coro: Coroutine to execute
        timeout: Timeout in seconds (None waits indefinitely)
        operation_name: Operation name for logging

    Returns:
        Result of the coroutine

    Raises:
        NetworkError: If operation times out
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except TimeoutError as e:
        error_msg = f"{operation_name} timed out after {timeout}s"
        logger.error(error_msg)
        raise NetworkError(reason=error_msg) from e

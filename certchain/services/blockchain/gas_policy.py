"""
Gas Policy.

Computes the gas limit and price for certificate mutations.
"""

from decimal import ROUND_CEILING, Decimal
from typing import Any

from loguru import logger
from web3.exceptions import ContractLogicError, Web3Exception

from certchain.config.constants import BLOCKCHAIN_TIMEOUT, GAS_LIMIT_MULTIPLIER
from certchain.utils.exceptions import (
    GasEstimationFailed,
    InsufficientFunds,
    NetworkError,
)

from .errors import NETWORK_EXCEPTIONS, is_insufficient_funds, revert_reason
from .rpc_wrapper import with_timeout


class GasPolicy:
    """
    Gas limit and price policy.

    Features:
    - Live estimate from the node plus a fixed safety margin
    - Optional fixed legacy gas price, otherwise network-determined fees
    """

    def __init__(
        self,
        gas_price_wei: int | None = None,
        multiplier: Decimal = GAS_LIMIT_MULTIPLIER,
        error_selectors: dict[str, str] | None = None,
        timeout: float = BLOCKCHAIN_TIMEOUT,
    ):
        """
        Initialize gas policy.

        Args:
            gas_price_wei: Fixed gas price in wei (None lets the network decide)
            multiplier: Margin applied on top of the node's estimate
            error_selectors: Custom-error selector map for revert decoding
            timeout: Timeout for the estimate call
        """
        self.gas_price_wei = gas_price_wei
        self.multiplier = multiplier
        self.error_selectors = error_selectors or {}
        self.timeout = timeout

    def apply_margin(self, estimate: int) -> int:
        """
        Apply the safety margin to a gas estimate.

        Uses exact decimal arithmetic and rounds up, so the result is always
        ceil(estimate * multiplier).
        """
        limit = (Decimal(int(estimate)) * self.multiplier).to_integral_value(ROUND_CEILING)
        return int(limit)

    async def gas_limit(self, function: Any, sender: str) -> int:
        """
        Estimate gas for a bound contract function and add the margin.

        Args:
            function: Bound contract function (ChainClient.function)
            sender: Address the transaction will be sent from

        Returns:
            Gas limit with margin

        Raises:
            GasEstimationFailed: If the call would revert
            InsufficientFunds: If the sender cannot pay for gas
            NetworkError: On transport failure or timeout
        """
        try:
            estimate = await with_timeout(
                function.estimate_gas({"from": sender}),
                timeout=self.timeout,
                operation_name="estimate_gas",
            )
        except NetworkError:
            raise
        except ContractLogicError as e:
            reason = revert_reason(e, self.error_selectors)
            logger.warning(f"Gas estimation reverted: {reason}")
            raise GasEstimationFailed(reason) from e
        except NETWORK_EXCEPTIONS as e:
            logger.error(f"Network error during gas estimation: {e}")
            raise NetworkError(reason=str(e) or e.__class__.__name__) from e
        except (Web3Exception, ValueError) as e:
            if is_insufficient_funds(e):
                raise InsufficientFunds(reason=revert_reason(e)) from e
            reason = revert_reason(e, self.error_selectors)
            logger.warning(f"Gas estimation failed: {reason}")
            raise GasEstimationFailed(reason) from e

        limit = self.apply_margin(estimate)
        logger.debug(f"Gas estimate {estimate} -> limit {limit}")
        return limit

    async def gas_price(self) -> int | None:
        """Fixed gas price in wei, or None for network-determined fees."""
        return self.gas_price_wei

"""
Fee Estimator - queries the node's suggested gas price.
"""

import math

import structlog

from txengine.config import EngineConfig
from txengine.node.interface import NodeInterface

logger = structlog.get_logger(__name__)


class FeeEstimator:
    """
    Single-shot gas price lookup.

    No retry and no caching: every call is one eth_gasPrice request, and a
    failure propagates as NetworkError.
    """

    def __init__(self, node: NodeInterface, config: EngineConfig):
        self.node = node
        self.multiplier = config.gas_price_multiplier

    async def suggested_fee(self) -> int:
        """Get the fee per gas unit to use, in wei."""
        suggested = await self.node.get_gas_price()

        if self.multiplier == 1.0:
            fee = suggested
        else:
            fee = math.ceil(suggested * self.multiplier)

        logger.debug("gas_price_suggested", suggested=suggested, fee=fee)
        return fee

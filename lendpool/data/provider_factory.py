"""Factory for creating the appropriate PriceOracle."""

from __future__ import annotations

import logging
import os

from lendpool.data.interfaces import PriceOracle
from lendpool.data.static_params import StaticPriceOracle

logger = logging.getLogger(__name__)


def create_oracle(
    use_onchain: bool = False,
    rpc_url: str | None = None,
    cache_ttl: float = 60.0,
) -> PriceOracle:
    """Create a price oracle, selecting static or on-chain.

    Parameters
    ----------
    use_onchain : bool
        If True, build an ``OnChainPriceOracle`` over Chainlink feeds.
    rpc_url : str | None
        Ethereum JSON-RPC URL.  Falls back to the ``ETH_RPC_URL``
        environment variable when not supplied.
    cache_ttl : float
        TTL in seconds for the on-chain cache (default 60).

    Returns
    -------
    PriceOracle
        ``OnChainPriceOracle`` backed by static prices when requested and an
        RPC URL is known, otherwise ``StaticPriceOracle``.
    """
    if not use_onchain:
        return StaticPriceOracle()

    resolved_url = rpc_url or os.environ.get("ETH_RPC_URL")
    if not resolved_url:
        logger.warning("On-chain prices requested but no RPC URL provided; using static prices")
        return StaticPriceOracle()

    from lendpool.data.onchain_oracle import OnChainPriceOracle

    return OnChainPriceOracle(rpc_url=resolved_url, cache_ttl=cache_ttl, fallback=StaticPriceOracle())

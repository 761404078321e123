"""Live on-chain integration tests, require ETH_RPC_URL."""

from __future__ import annotations

import os

import pytest

pytestmark = pytest.mark.onchain

RPC_URL = os.environ.get("ETH_RPC_URL", "")

if not RPC_URL:
    pytest.skip("ETH_RPC_URL not set", allow_module_level=True)

from lendpool.data.constants import USDC, WETH  # noqa: E402
from lendpool.data.interfaces import PriceData  # noqa: E402
from lendpool.data.onchain_oracle import OnChainPriceOracle  # noqa: E402
from lendpool.data.provider_factory import create_oracle  # noqa: E402


@pytest.fixture(scope="module")
def oracle() -> OnChainPriceOracle:
    return OnChainPriceOracle(rpc_url=RPC_URL, cache_ttl=300.0)


class TestConnection:
    def test_is_connected(self, oracle: OnChainPriceOracle):
        assert oracle.is_connected() is True


class TestPrices:
    def test_weth_price(self, oracle: OnChainPriceOracle):
        data = oracle.lastprice(WETH)
        assert isinstance(data, PriceData)
        # between $100 and $100k at 7 decimals
        assert 100 * 10**7 < data.price < 100_000 * 10**7
        assert data.timestamp > 1_600_000_000

    def test_usdc_near_peg(self, oracle: OnChainPriceOracle):
        data = oracle.lastprice(USDC)
        assert 9_500_000 < data.price < 10_500_000

    def test_factory_builds_onchain(self):
        assert isinstance(create_oracle(use_onchain=True, rpc_url=RPC_URL), OnChainPriceOracle)

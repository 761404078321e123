"""Static price oracle serving a representative price snapshot."""

from lendpool.data.constants import BSTOP_TOKEN, USDC, WETH, XLM
from lendpool.data.interfaces import PriceData, PriceOracle

PRICE_DECIMALS = 7

# --- Hardcoded USD prices (7 decimals), a representative snapshot ---

_PRICES: dict[str, int] = {
    XLM: 1_100_000,  # 0.11
    USDC: 10_000_000,  # 1.00
    WETH: 25_000_000_000,  # 2500.00
    BSTOP_TOKEN: 5_000_000,  # 0.50
}


class StaticPriceOracle(PriceOracle):
    """Oracle serving fixed prices, settable for tests and simulations.

    Every price carries the timestamp it was set at, ``timestamp`` for the
    defaults.
    """

    def __init__(self, prices: dict[str, int] | None = None, timestamp: int = 0) -> None:
        source = _PRICES if prices is None else prices
        self._prices: dict[str, PriceData] = {
            asset: PriceData(price=price, timestamp=timestamp) for asset, price in source.items()
        }

    def set_price(self, asset: str, price: int, timestamp: int) -> None:
        self._prices[asset] = PriceData(price=price, timestamp=timestamp)

    def price(self, asset: str, timestamp: int) -> PriceData | None:
        data = self._prices.get(asset)
        if data is None or data.timestamp != timestamp:
            return None
        return data

    def lastprice(self, asset: str) -> PriceData | None:
        return self._prices.get(asset)

    def decimals(self) -> int:
        return PRICE_DECIMALS

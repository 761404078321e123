"""Price oracle reading Chainlink USD feeds via web3.py."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from web3 import Web3

from lendpool.data.contracts import AGGREGATOR_V3_ABI, CHAINLINK_USD_FEEDS
from lendpool.data.interfaces import PriceData, PriceOracle
from lendpool.data.static_params import PRICE_DECIMALS

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# TTL cache
# ---------------------------------------------------------------------------

class _TTLCache:
    """Dict cache whose entries expire *ttl* seconds after being set."""

    def __init__(self, ttl: float) -> None:
        self._ttl = ttl
        self._store: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        ts, value = entry
        if time.monotonic() - ts > self._ttl:
            del self._store[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._store[key] = (time.monotonic(), value)

    def clear(self) -> None:
        self._store.clear()


def _rescale(answer: int, from_decimals: int, to_decimals: int = PRICE_DECIMALS) -> int:
    """Rescale an integer feed answer between decimal precisions, rounding down."""
    if from_decimals >= to_decimals:
        return answer // 10 ** (from_decimals - to_decimals)
    return answer * 10 ** (to_decimals - from_decimals)


# ---------------------------------------------------------------------------
# OnChainPriceOracle
# ---------------------------------------------------------------------------

class OnChainPriceOracle(PriceOracle):
    """Chainlink-backed oracle reporting USD prices at 7 decimals.

    Parameters
    ----------
    rpc_url : str | None
        Ethereum JSON-RPC endpoint URL. Ignored when *w3* is given.
    cache_ttl : float
        Seconds before a cached round expires (default 60).
    fallback : PriceOracle | None
        Oracle consulted when a feed is unknown or its RPC call fails.
    feeds : dict[str, str] | None
        Asset to aggregator address map. Defaults to ``CHAINLINK_USD_FEEDS``.
    w3 : Web3 | None
        Pre-built client, mainly for tests.
    """

    def __init__(
        self,
        rpc_url: str | None = None,
        cache_ttl: float = 60.0,
        fallback: PriceOracle | None = None,
        feeds: dict[str, str] | None = None,
        w3: Any | None = None,
    ) -> None:
        if w3 is None:
            if rpc_url is None:
                raise ValueError("rpc_url is required when no web3 client is supplied")
            w3 = Web3(Web3.HTTPProvider(rpc_url))
        self._w3 = w3
        self._cache = _TTLCache(cache_ttl)
        self._fallback = fallback
        self._feeds = CHAINLINK_USD_FEEDS if feeds is None else feeds
        # Lazily built aggregator contracts
        self._contracts: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _feed(self, asset: str) -> Any:
        if asset in self._contracts:
            return self._contracts[asset]
        raw = self._feeds.get(asset)
        if raw is None:
            raise ValueError(f"No price feed for asset: {asset}")
        contract = self._w3.eth.contract(address=self._w3.to_checksum_address(raw), abi=AGGREGATOR_V3_ABI)
        self._contracts[asset] = contract
        return contract

    def _fetch_latest(self, asset: str) -> PriceData:
        feed = self._feed(asset)
        feed_decimals = self._call_with_fallback(
            f"decimals:{asset}", lambda: feed.functions.decimals().call(), None
        )
        _, answer, _, updated_at, _ = feed.functions.latestRoundData().call()
        if answer <= 0:
            raise ValueError(f"Non-positive answer {answer} from {asset} feed")
        return PriceData(price=_rescale(answer, feed_decimals), timestamp=updated_at)

    def _call_with_fallback(
        self,
        cache_key: str,
        fetcher: Callable[[], Any],
        fallback_method: Callable[..., Any] | None,
        *fallback_args: Any,
    ) -> Any:
        """Cache → RPC → fallback pipeline."""
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            value = fetcher()
            self._cache.set(cache_key, value)
            return value
        except Exception:
            logger.warning("RPC call failed for key=%s, using fallback", cache_key, exc_info=True)

        if fallback_method is not None:
            return fallback_method(*fallback_args)

        raise RuntimeError(f"RPC call failed and no fallback available for {cache_key}")

    # ------------------------------------------------------------------
    # PriceOracle interface
    # ------------------------------------------------------------------

    def lastprice(self, asset: str) -> PriceData | None:
        fb = self._fallback.lastprice if self._fallback else None
        try:
            return self._call_with_fallback(f"lastprice:{asset}", lambda: self._fetch_latest(asset), fb, asset)
        except RuntimeError:
            logger.warning("No price available for %s", asset)
            return None

    def price(self, asset: str, timestamp: int) -> PriceData | None:
        # Only the latest round is read; older rounds come from the fallback
        latest = self.lastprice(asset)
        if latest is not None and latest.timestamp == timestamp:
            return latest
        if self._fallback is not None:
            return self._fallback.price(asset, timestamp)
        return None

    def decimals(self) -> int:
        return PRICE_DECIMALS

    # ------------------------------------------------------------------
    # Utility
    # ------------------------------------------------------------------

    def refresh(self) -> None:
        """Clear the cache so the next read fetches fresh rounds."""
        self._cache.clear()

    def is_connected(self) -> bool:
        try:
            return self._w3.is_connected()
        except Exception:
            return False

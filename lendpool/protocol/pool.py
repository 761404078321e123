"""Pool state for a single invocation: config, reserve cache and price cache."""

from __future__ import annotations

import logging

from lendpool.protocol.env import Env
from lendpool.protocol.errors import (
    InternalError,
    InvalidPoolStatusError,
    MaxPositionsExceededError,
    StalePriceError,
)
from lendpool.protocol.positions import Positions
from lendpool.protocol.reserve import Reserve
from lendpool.protocol.status import PoolStatus
from lendpool.protocol.storage import PoolConfig, RequestType
from lendpool.settings import DEFAULT_SETTINGS, PoolSettings

logger = logging.getLogger(__name__)

# Request types gated by pool status, see ``Pool.require_action_allowed``
_ON_ICE_BLOCKED = (RequestType.BORROW, RequestType.DELETE_LIQUIDATION_AUCTION)
_FROZEN_BLOCKED = (RequestType.SUPPLY, RequestType.SUPPLY_COLLATERAL)


class Pool:
    """Working copy of the pool used while handling one call.

    Reserves are loaded (and accrued) at most once per call and kept in a
    cache, so every action in a batch sees the effects of the ones before
    it. Only reserves flagged for storage are written back.
    """

    def __init__(self, config: PoolConfig, settings: PoolSettings = DEFAULT_SETTINGS) -> None:
        self.config = config
        self.settings = settings
        self.reserves: dict[str, Reserve] = {}
        self._reserves_to_store: list[str] = []
        self._price_decimals: int | None = None
        self._prices: dict[str, int] = {}

    @classmethod
    def load(cls, env: Env, settings: PoolSettings = DEFAULT_SETTINGS) -> Pool:
        return cls(env.storage.get_pool_config(), settings)

    # ------------------------------------------------------------------
    # Reserves
    # ------------------------------------------------------------------

    def load_reserve(self, env: Env, asset: str, store: bool = False) -> Reserve:
        """Get the reserve for *asset*, accrued to the current timestamp.

        Args:
            env: Host environment.
            asset: Reserve asset address.
            store: Flag the reserve to be written back by
                ``store_cached_reserves``.
        """
        if store and asset not in self._reserves_to_store:
            self._reserves_to_store.append(asset)
        cached = self.reserves.get(asset)
        if cached is not None:
            return cached
        return Reserve.load(
            env,
            self.config,
            asset,
            self.settings.min_ir_mod,
            self.settings.max_ir_mod,
        )

    def cache_reserve(self, reserve: Reserve, store: bool = False) -> None:
        self.reserves[reserve.asset] = reserve
        if store and reserve.asset not in self._reserves_to_store:
            self._reserves_to_store.append(reserve.asset)

    def store_cached_reserves(self, env: Env) -> None:
        for asset in self._reserves_to_store:
            reserve = self.reserves.get(asset)
            if reserve is None:
                raise InternalError(f"reserve {asset} flagged for storage but never cached")
            reserve.store(env)
        logger.debug("Stored %d reserves", len(self._reserves_to_store))

    # ------------------------------------------------------------------
    # Policy checks
    # ------------------------------------------------------------------

    def require_action_allowed(self, action_type: int) -> None:
        """Reject request types the current pool status does not permit.

        On-ice blocks new borrows and auction cancellation, frozen also
        blocks supply. Setup counts as frozen.
        """
        status = self.config.status
        if (status > PoolStatus.ACTIVE and action_type in _ON_ICE_BLOCKED) or (
            status > PoolStatus.ON_ICE and action_type in _FROZEN_BLOCKED
        ):
            raise InvalidPoolStatusError(f"request type {action_type} not allowed in status {status}")

    def require_under_max(self, positions: Positions, previous_num: int) -> None:
        new_num = positions.effective_count()
        if new_num > previous_num and new_num > self.config.max_positions:
            raise MaxPositionsExceededError(
                f"{new_num} positions exceeds max {self.config.max_positions}"
            )

    # ------------------------------------------------------------------
    # Prices
    # ------------------------------------------------------------------

    def load_price_decimals(self, env: Env) -> int:
        if self._price_decimals is None:
            self._price_decimals = env.oracle(self.config.oracle).decimals()
        return self._price_decimals

    def load_price(self, env: Env, asset: str) -> int:
        """Latest oracle price for *asset*, cached for the call.

        Raises:
            StalePriceError: If the oracle has no price or it is older than
                ``settings.max_price_age``.
        """
        cached = self._prices.get(asset)
        if cached is not None:
            return cached
        price_data = env.oracle(self.config.oracle).lastprice(asset)
        if price_data is None:
            raise StalePriceError(f"no price for {asset}")
        if price_data.timestamp + self.settings.max_price_age < env.ledger.timestamp:
            raise StalePriceError(
                f"price for {asset} from {price_data.timestamp} is stale at {env.ledger.timestamp}"
            )
        self._prices[asset] = price_data.price
        return price_data.price

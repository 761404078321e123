"""Public entry points of a lending pool.

Each state-changing method runs inside ``Env.invocation()``: it either
completes or leaves storage and the event log exactly as it found them.
"""

from __future__ import annotations

import logging

from lendpool.protocol import auction, bad_debt, config, emissions, status
from lendpool.protocol.actions import Request
from lendpool.protocol.emissions import ReserveEmissionMetadata
from lendpool.protocol.env import Env
from lendpool.protocol.errors import BadRequestError, NoAuctionExistsError
from lendpool.protocol.pool import Pool
from lendpool.protocol.positions import Positions
from lendpool.protocol.reserve import Reserve
from lendpool.protocol.storage import (
    AuctionData,
    AuctionType,
    PoolConfig,
    QueuedReserveSet,
    ReserveConfig,
    ReserveEmissionsConfig,
    ReserveEmissionsData,
    UserEmissionData,
)
from lendpool.protocol.submit import RequestDispatcher
from lendpool.settings import DEFAULT_SETTINGS, PoolSettings

logger = logging.getLogger(__name__)


class LendingPool:
    """A pool bound to its host environment.

    Args:
        env: Host environment; ``env.contract`` is the pool's address.
        settings: Protocol tunables. Defaults to ``DEFAULT_SETTINGS``.
    """

    def __init__(self, env: Env, settings: PoolSettings | None = None) -> None:
        self.env = env
        self.settings = settings or DEFAULT_SETTINGS

    def _require_admin(self) -> str:
        admin = self.env.storage.get_admin()
        self.env.require_auth(admin)
        return admin

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def initialize(
        self,
        admin: str,
        name: str,
        oracle: str,
        bstop_rate: int,
        max_positions: int,
        backstop: str,
    ) -> None:
        with self.env.invocation("initialize"):
            config.execute_initialize(self.env, admin, name, oracle, bstop_rate, max_positions, backstop)

    def set_admin(self, new_admin: str) -> None:
        """Hand the admin role over; both admins must authorize."""
        with self.env.invocation("set_admin"):
            admin = self._require_admin()
            self.env.require_auth(new_admin)
            self.env.storage.set_admin(new_admin)
            self.env.publish(("set_admin", admin), new_admin)

    def update_pool(self, bstop_rate: int, max_positions: int) -> None:
        with self.env.invocation("update_pool"):
            admin = self._require_admin()
            config.execute_update_pool(self.env, bstop_rate, max_positions)
            self.env.publish(("update_pool", admin), (bstop_rate, max_positions))

    def initialize_reserve(self, asset: str, reserve_config: ReserveConfig) -> int | None:
        """Add a reserve for *asset*.

        The config is queued and applied at once while no timelock applies.

        Returns:
            The new reserve index, or None if the change waits for ``set_reserve``.

        Raises:
            BadRequestError: If *asset* already has a reserve.
        """
        with self.env.invocation("initialize_reserve"):
            admin = self._require_admin()
            if self.env.storage.has_res(asset):
                raise BadRequestError(f"reserve {asset} already exists")
            return self._queue_and_apply(admin, asset, reserve_config)

    def update_reserve(self, asset: str, reserve_config: ReserveConfig) -> int | None:
        """Change the config of *asset*'s reserve, queued like ``initialize_reserve``.

        Raises:
            ReserveNotFoundError: If *asset* has no reserve.
        """
        with self.env.invocation("update_reserve"):
            admin = self._require_admin()
            self.env.storage.get_res_index(asset)
            return self._queue_and_apply(admin, asset, reserve_config)

    def _queue_and_apply(self, admin: str, asset: str, reserve_config: ReserveConfig) -> int | None:
        queued = config.execute_queue_set_reserve(self.env, asset, reserve_config)
        self.env.publish(("queue_set_reserve", admin), (asset, reserve_config))
        if queued.unlock_time > self.env.ledger.timestamp:
            return None
        index = config.execute_set_reserve(self.env, asset, self.settings)
        self.env.publish(("set_reserve",), (asset, index))
        return index

    def queue_set_reserve(self, asset: str, reserve_config: ReserveConfig) -> QueuedReserveSet:
        """Queue a new or changed reserve; outside setup it unlocks in a week."""
        with self.env.invocation("queue_set_reserve"):
            admin = self._require_admin()
            queued = config.execute_queue_set_reserve(self.env, asset, reserve_config)
            self.env.publish(("queue_set_reserve", admin), (asset, reserve_config))
            return queued

    def cancel_set_reserve(self, asset: str) -> None:
        with self.env.invocation("cancel_set_reserve"):
            admin = self._require_admin()
            config.execute_cancel_queued_set_reserve(self.env, asset)
            self.env.publish(("cancel_set_reserve", admin), asset)

    def set_reserve(self, asset: str) -> int:
        """Apply an unlocked queued reserve change. Anyone may call."""
        with self.env.invocation("set_reserve"):
            index = config.execute_set_reserve(self.env, asset, self.settings)
            self.env.publish(("set_reserve",), (asset, index))
            return index

    def update_status(self) -> int:
        """Derive the pool status from the backstop. Anyone may call."""
        with self.env.invocation("update_status"):
            new_status = status.execute_update_pool_status(self.env)
            self.env.publish(("set_status",), new_status)
            return new_status

    def set_status(self, pool_status: int) -> None:
        with self.env.invocation("set_status"):
            admin = self._require_admin()
            status.execute_set_pool_status(self.env, pool_status)
            self.env.publish(("set_status", admin), pool_status)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_config(self) -> PoolConfig:
        return self.env.storage.get_pool_config()

    def get_positions(self, user: str) -> Positions:
        return self.env.storage.get_positions(user) or Positions()

    def get_reserve(self, asset: str) -> Reserve:
        """The reserve for *asset*, accrued to now but not stored."""
        return Pool.load(self.env, self.settings).load_reserve(self.env, asset)

    def get_auction(self, user: str, auction_type: int) -> AuctionData | None:
        return self.env.storage.get_auction(AuctionType(auction_type), user)

    def get_queued_reserve(self, asset: str) -> QueuedReserveSet | None:
        return self.env.storage.get_queued_reserve_set(asset)

    def get_reserve_emissions(
        self, asset: str, token_type: int
    ) -> tuple[ReserveEmissionsConfig, ReserveEmissionsData] | None:
        """Emission cycle and index of a reserve token, if it has ever emitted."""
        token_id = emissions.res_token_id(self.env.storage.get_res_index(asset), token_type)
        emis_config = self.env.storage.get_res_emis_config(token_id)
        if emis_config is None:
            return None
        return emis_config, self.env.storage.get_res_emis_data(token_id)

    def get_user_emissions(self, user: str, reserve_token_id: int) -> UserEmissionData | None:
        return self.env.storage.get_user_emissions(user, reserve_token_id)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def submit(
        self,
        from_: str,
        requests: list[Request],
        spender: str | None = None,
        to: str | None = None,
    ) -> Positions:
        """Apply a batch of requests for *from_* atomically.

        Args:
            from_: Address whose positions change.
            requests: Requests, applied in order.
            spender: Address paying tokens in. Defaults to *from_*.
            to: Address receiving tokens out. Defaults to *from_*.

        Returns:
            The positions of *from_* after the batch.
        """
        spender = spender or from_
        to = to or from_
        with self.env.invocation("submit"):
            self.env.require_auth(spender)
            if from_ != spender:
                self.env.require_auth(from_)
            return RequestDispatcher(self.env, self.settings).submit(from_, spender, to, requests)

    # ------------------------------------------------------------------
    # Emissions
    # ------------------------------------------------------------------

    def gulp_emissions(self) -> int:
        """Pull released emissions from the backstop into new reserve cycles."""
        with self.env.invocation("gulp_emissions"):
            amount = emissions.gulp_emissions(self.env)
            self.env.publish(("gulp_emissions",), amount)
            return amount

    def set_emissions_config(self, metadata: list[ReserveEmissionMetadata]) -> None:
        with self.env.invocation("set_emissions_config"):
            admin = self._require_admin()
            emissions.set_pool_emissions(self.env, metadata)
            self.env.publish(("set_emissions_config", admin), metadata)

    def claim(self, from_: str, reserve_token_ids: list[int], to: str | None = None) -> int:
        """Pay *from_*'s accrued emissions on the given reserve tokens to *to*.

        Returns:
            The amount claimed.
        """
        to = to or from_
        with self.env.invocation("claim"):
            self.env.require_auth(from_)
            amount = emissions.execute_claim(self.env, from_, reserve_token_ids, to)
            self.env.publish(("claim", from_), (reserve_token_ids, amount))
            return amount

    # ------------------------------------------------------------------
    # Auctions
    # ------------------------------------------------------------------

    def bad_debt(self, user: str) -> None:
        """Move the liabilities of a user without collateral to the backstop."""
        with self.env.invocation("bad_debt"):
            bad_debt.transfer_bad_debt_to_backstop(self.env, user, self.settings)

    def new_liquidation_auction(self, user: str, percent_liquidated: int | None = None) -> AuctionData:
        with self.env.invocation("new_liquidation_auction"):
            auction_data = auction.create_liquidation(self.env, user, percent_liquidated, self.settings)
            self.env.publish(("new_liquidation_auction", user), auction_data)
            return auction_data

    def new_bad_debt_auction(self, user: str | None = None) -> AuctionData:
        """Auction the backstop's bad debt, first taking on *user*'s if given."""
        with self.env.invocation("new_bad_debt_auction"):
            if user is not None:
                bad_debt.transfer_bad_debt_to_backstop(self.env, user, self.settings)
            auction_data = auction.create(self.env, AuctionType.BAD_DEBT, settings=self.settings)
            self.env.publish(("new_auction", int(AuctionType.BAD_DEBT)), auction_data)
            return auction_data

    def new_interest_auction(self, assets: list[str]) -> AuctionData:
        with self.env.invocation("new_interest_auction"):
            auction_data = auction.create(self.env, AuctionType.INTEREST, assets, self.settings)
            self.env.publish(("new_auction", int(AuctionType.INTEREST)), auction_data)
            return auction_data

    def delete_liquidation_auction(self, user: str) -> None:
        """Remove a liquidation auction.

        A live auction needs the admin's authorization; an expired one can be
        removed by anyone.
        """
        with self.env.invocation("delete_liquidation_auction"):
            existing = self.env.storage.get_auction(AuctionType.USER_LIQUIDATION, user)
            if existing is None:
                raise NoAuctionExistsError(f"no liquidation auction for {user}")
            if not auction.is_expired(self.env, existing, self.settings.auction_duration):
                self._require_admin()
            auction.delete_liquidation(self.env, user)
            self.env.publish(("delete_liquidation_auction", user), None)

"""User share balances and the operations that move them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from lendpool.protocol import emissions
from lendpool.protocol.env import Env
from lendpool.protocol.errors import BalanceError
from lendpool.protocol.fixed_point import checked_add
from lendpool.protocol.reserve import Reserve

if TYPE_CHECKING:
    from lendpool.protocol.pool import Pool


@dataclass
class Positions:
    """A user's share balances keyed by reserve index.

    Zero balances are never stored.
    """

    liabilities: dict[int, int] = field(default_factory=dict)  # dTokens
    collateral: dict[int, int] = field(default_factory=dict)  # bTokens backing liabilities
    supply: dict[int, int] = field(default_factory=dict)  # bTokens not used as collateral

    def effective_count(self) -> int:
        """Positions that count toward the pool's ``max_positions``."""
        return len(self.liabilities) + len(self.collateral)

    def is_empty(self) -> bool:
        return not (self.liabilities or self.collateral or self.supply)


def _add(balances: dict[int, int], index: int, amount: int) -> None:
    new_balance = checked_add(balances.get(index, 0), amount)
    if new_balance != 0:
        balances[index] = new_balance


def _remove(balances: dict[int, int], index: int, amount: int, what: str) -> None:
    new_balance = balances.get(index, 0) - amount
    if new_balance < 0:
        raise BalanceError(f"{what} balance at reserve {index} would go negative")
    if new_balance == 0:
        balances.pop(index, None)
    else:
        balances[index] = new_balance


class User:
    """A position holder: an address plus its ``Positions``.

    Every mutation updates the reserve's share supply alongside the user's
    balance, so the sum of user balances always equals the reserve totals.
    A user loaded from an ``Env`` also accrues its emissions on the reserve
    token before the balance moves.
    """

    def __init__(self, address: str, positions: Positions | None = None, env: Env | None = None) -> None:
        self.address = address
        self.positions = positions if positions is not None else Positions()
        self.env = env

    @classmethod
    def load(cls, env: Env, address: str) -> User:
        return cls(address, env.storage.get_positions(address) or Positions(), env)

    def store(self, env: Env) -> None:
        env.storage.set_positions(self.address, self.positions)

    def _update_d_emissions(self, reserve: Reserve) -> None:
        if self.env is not None:
            emissions.update_emissions(
                self.env,
                emissions.res_token_id(reserve.index, emissions.D_TOKEN),
                reserve.d_supply,
                reserve.scalar,
                self.address,
                self.get_liabilities(reserve.index),
            )

    def _update_b_emissions(self, reserve: Reserve) -> None:
        if self.env is not None:
            emissions.update_emissions(
                self.env,
                emissions.res_token_id(reserve.index, emissions.B_TOKEN),
                reserve.b_supply,
                reserve.scalar,
                self.address,
                self.get_total_supply(reserve.index),
            )

    # ---- liabilities ----

    def get_liabilities(self, reserve_index: int) -> int:
        return self.positions.liabilities.get(reserve_index, 0)

    def add_liabilities(self, reserve: Reserve, amount: int) -> None:
        self._update_d_emissions(reserve)
        _add(self.positions.liabilities, reserve.index, amount)
        reserve.d_supply = checked_add(reserve.d_supply, amount)

    def remove_liabilities(self, reserve: Reserve, amount: int) -> None:
        self._update_d_emissions(reserve)
        _remove(self.positions.liabilities, reserve.index, amount, "liability")
        reserve.d_supply -= amount

    # ---- collateral ----

    def get_collateral(self, reserve_index: int) -> int:
        return self.positions.collateral.get(reserve_index, 0)

    def add_collateral(self, reserve: Reserve, amount: int) -> None:
        self._update_b_emissions(reserve)
        _add(self.positions.collateral, reserve.index, amount)
        reserve.b_supply = checked_add(reserve.b_supply, amount)

    def remove_collateral(self, reserve: Reserve, amount: int) -> None:
        self._update_b_emissions(reserve)
        _remove(self.positions.collateral, reserve.index, amount, "collateral")
        reserve.b_supply -= amount

    # ---- supply ----

    def get_supply(self, reserve_index: int) -> int:
        return self.positions.supply.get(reserve_index, 0)

    def add_supply(self, reserve: Reserve, amount: int) -> None:
        self._update_b_emissions(reserve)
        _add(self.positions.supply, reserve.index, amount)
        reserve.b_supply = checked_add(reserve.b_supply, amount)

    def remove_supply(self, reserve: Reserve, amount: int) -> None:
        self._update_b_emissions(reserve)
        _remove(self.positions.supply, reserve.index, amount, "supply")
        reserve.b_supply -= amount

    def get_total_supply(self, reserve_index: int) -> int:
        return self.get_collateral(reserve_index) + self.get_supply(reserve_index)

    # ---- bulk moves (auction settlement) ----

    def rm_positions(
        self,
        env: Env,
        pool: Pool,
        collateral_amounts: dict[str, int],
        liability_amounts: dict[str, int],
    ) -> None:
        """Remove collateral and liability shares keyed by asset."""
        for asset, amount in collateral_amounts.items():
            reserve = pool.load_reserve(env, asset)
            self.remove_collateral(reserve, amount)
            pool.cache_reserve(reserve, store=True)
        for asset, amount in liability_amounts.items():
            reserve = pool.load_reserve(env, asset)
            self.remove_liabilities(reserve, amount)
            pool.cache_reserve(reserve, store=True)

    def add_positions(
        self,
        env: Env,
        pool: Pool,
        collateral_amounts: dict[str, int],
        liability_amounts: dict[str, int],
    ) -> None:
        """Add collateral and liability shares keyed by asset."""
        for asset, amount in collateral_amounts.items():
            reserve = pool.load_reserve(env, asset)
            self.add_collateral(reserve, amount)
            pool.cache_reserve(reserve, store=True)
        for asset, amount in liability_amounts.items():
            reserve = pool.load_reserve(env, asset)
            self.add_liabilities(reserve, amount)
            pool.cache_reserve(reserve, store=True)

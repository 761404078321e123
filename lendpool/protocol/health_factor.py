"""Position valuation against oracle prices and the health factor policy."""

from __future__ import annotations

from dataclasses import dataclass

from lendpool.data.constants import SCALAR_7
from lendpool.protocol.env import Env
from lendpool.protocol.errors import InvalidHealthFactorError
from lendpool.protocol.fixed_point import checked, checked_add, div_ceil, mul_ceil, mul_floor
from lendpool.protocol.pool import Pool
from lendpool.protocol.positions import Positions


@dataclass(frozen=True)
class PositionData:
    """A position's value in the oracle base asset.

    ``*_base`` values are weighted by the reserve factors, ``*_raw`` are not.
    All are scaled by ``scalar`` (10**oracle decimals).
    """

    collateral_base: int
    collateral_raw: int
    liability_base: int
    liability_raw: int
    scalar: int

    @classmethod
    def calculate_from_positions(cls, env: Env, pool: Pool, positions: Positions) -> PositionData:
        """Value every non-empty reserve position of *positions*.

        Collateral rounds down and liabilities round up.

        Raises:
            StalePriceError: If any needed price is missing or stale.
            ArithmeticOverflowError: If a total leaves the i128 range.
        """
        oracle_scalar = 10 ** pool.load_price_decimals(env)
        reserve_list = env.storage.get_res_list()

        collateral_base = collateral_raw = liability_base = liability_raw = 0
        for index, asset in enumerate(reserve_list):
            b_tokens = positions.collateral.get(index, 0)
            d_tokens = positions.liabilities.get(index, 0)
            if b_tokens == 0 and d_tokens == 0:
                continue
            reserve = pool.load_reserve(env, asset)
            asset_to_base = pool.load_price(env, asset)

            if b_tokens > 0:
                effective = reserve.to_effective_asset_from_b_token(b_tokens)
                raw = reserve.to_asset_from_b_token(b_tokens)
                collateral_base = checked_add(collateral_base, mul_floor(asset_to_base, effective, reserve.scalar))
                collateral_raw = checked_add(collateral_raw, mul_floor(asset_to_base, raw, reserve.scalar))
            if d_tokens > 0:
                effective = reserve.to_effective_asset_from_d_token(d_tokens)
                raw = reserve.to_asset_from_d_token(d_tokens)
                liability_base = checked_add(liability_base, mul_ceil(asset_to_base, effective, reserve.scalar))
                liability_raw = checked_add(liability_raw, mul_ceil(asset_to_base, raw, reserve.scalar))
            pool.cache_reserve(reserve)

        return cls(
            collateral_base=collateral_base,
            collateral_raw=collateral_raw,
            liability_base=liability_base,
            liability_raw=liability_raw,
            scalar=oracle_scalar,
        )

    def as_health_factor(self) -> int:
        """Effective collateral over effective liabilities (7 decimals).

        Raises:
            InvalidHealthFactorError: If there are no liabilities.
        """
        if self.liability_base == 0:
            raise InvalidHealthFactorError("health factor undefined without liabilities")
        return div_ceil(self.collateral_base, self.liability_base, SCALAR_7)

    def is_healthy(self, margin: int) -> bool:
        """True if ``collateral_base * (1 - margin) > liability_base``.

        Args:
            margin: Required buffer (7 decimals), 500_000 for 5%.
        """
        if self.liability_base == 0:
            return True
        return checked(self.collateral_base * (SCALAR_7 - margin)) > checked(self.liability_base * SCALAR_7)

    def require_healthy(self, margin: int) -> None:
        if not self.is_healthy(margin):
            raise InvalidHealthFactorError(
                f"collateral {self.collateral_base} does not cover liabilities "
                f"{self.liability_base} with margin {margin}"
            )

    def is_liquidatable(self) -> bool:
        """True once effective liabilities exceed effective collateral."""
        return self.liability_base > self.collateral_base

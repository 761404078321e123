"""Per-asset reserve accounting and share conversions."""

from __future__ import annotations

from dataclasses import dataclass

from lendpool.data.constants import MAX_IR_MOD, MIN_IR_MOD, SCALAR_7, SCALAR_9
from lendpool.protocol.env import Env
from lendpool.protocol.errors import InvalidUtilRateError
from lendpool.protocol.fixed_point import checked_add, div_ceil, div_floor, mul_ceil, mul_floor
from lendpool.protocol.interest_rate import calc_accrual
from lendpool.protocol.storage import PoolConfig, ReserveConfig, ReserveData


@dataclass
class Reserve:
    """A reserve's configuration and accounting state, accrued to a timestamp.

    Share balances (b_supply, d_supply) are in the reserve's decimals; the
    b_rate and d_rate convert shares to underlying with 9 decimals.
    """

    asset: str
    config: ReserveConfig
    b_rate: int
    d_rate: int
    ir_mod: int
    b_supply: int
    d_supply: int
    backstop_credit: int
    last_time: int

    @property
    def index(self) -> int:
        return self.config.index

    @property
    def scalar(self) -> int:
        return 10**self.config.decimals

    @classmethod
    def load(
        cls,
        env: Env,
        pool_config: PoolConfig,
        asset: str,
        min_ir_mod: int = MIN_IR_MOD,
        max_ir_mod: int = MAX_IR_MOD,
    ) -> Reserve:
        """Load a reserve from storage and accrue it to the ledger timestamp.

        Not cached; go through ``Pool.load_reserve`` inside a batch.

        Raises:
            ReserveNotFoundError: If *asset* has no reserve.
        """
        index = env.storage.get_res_index(asset)
        config = env.storage.get_res_config(index)
        data = env.storage.get_res_data(index)
        reserve = cls(
            asset=asset,
            config=config,
            b_rate=data.b_rate,
            d_rate=data.d_rate,
            ir_mod=data.ir_mod,
            b_supply=data.b_supply,
            d_supply=data.d_supply,
            backstop_credit=data.backstop_credit,
            last_time=data.last_time,
        )
        reserve.accrue(env.ledger.timestamp, pool_config.bstop_rate, min_ir_mod, max_ir_mod)
        return reserve

    def accrue(
        self,
        now: int,
        bstop_rate: int,
        min_ir_mod: int = MIN_IR_MOD,
        max_ir_mod: int = MAX_IR_MOD,
    ) -> None:
        """Apply interest accrued since ``last_time``.

        Liabilities grow by the curve's accrual factor (rounded up). The
        interest is split: ``bstop_rate`` of it is credited to the backstop
        and the rest raises the supply rate (rounded down).
        """
        if now <= self.last_time:
            return
        if self.b_supply == 0:
            self.last_time = now
            return

        pre_liabilities = self.total_liabilities()
        loan_accrual, new_ir_mod = calc_accrual(
            self.config,
            self.utilization(),
            self.ir_mod,
            now - self.last_time,
            min_ir_mod,
            max_ir_mod,
        )
        self.ir_mod = new_ir_mod
        self.d_rate = mul_ceil(loan_accrual, self.d_rate, SCALAR_9)

        accrued = self.total_liabilities() - pre_liabilities
        if accrued > 0:
            new_backstop_credit = 0
            if bstop_rate > 0:
                new_backstop_credit = mul_floor(accrued, bstop_rate, SCALAR_7)
                self.backstop_credit = checked_add(self.backstop_credit, new_backstop_credit)
            self.b_rate = checked_add(
                self.b_rate, div_floor(accrued - new_backstop_credit, self.b_supply, SCALAR_9)
            )
        self.last_time = now

    def data(self) -> ReserveData:
        return ReserveData(
            b_rate=self.b_rate,
            d_rate=self.d_rate,
            ir_mod=self.ir_mod,
            b_supply=self.b_supply,
            d_supply=self.d_supply,
            backstop_credit=self.backstop_credit,
            last_time=self.last_time,
        )

    def store(self, env: Env) -> None:
        """Write the reserve data back to storage."""
        env.storage.set_res_data(self.index, self.data())

    def utilization(self) -> int:
        """Current utilization (7 decimals); 0 for an empty reserve."""
        total_supply = self.total_supply()
        if total_supply == 0:
            return 0
        return div_floor(self.total_liabilities(), total_supply, SCALAR_7)

    def require_utilization_below_max(self) -> None:
        if self.utilization() > self.config.max_util:
            raise InvalidUtilRateError(
                f"utilization {self.utilization()} above max {self.config.max_util} for {self.asset}"
            )

    def total_liabilities(self) -> int:
        """Total liabilities in underlying."""
        return self.to_asset_from_d_token(self.d_supply)

    def total_supply(self) -> int:
        """Total supply in underlying."""
        return self.to_asset_from_b_token(self.b_supply)

    # ------------------------------------------------------------------
    # Conversions
    # ------------------------------------------------------------------

    def to_asset_from_d_token(self, d_tokens: int) -> int:
        return mul_ceil(d_tokens, self.d_rate, SCALAR_9)

    def to_asset_from_b_token(self, b_tokens: int) -> int:
        return mul_floor(b_tokens, self.b_rate, SCALAR_9)

    def to_effective_asset_from_d_token(self, d_tokens: int) -> int:
        """Liability value scaled up by the inverse liability factor."""
        assets = self.to_asset_from_d_token(d_tokens)
        return div_ceil(assets, self.config.l_factor, SCALAR_7)

    def to_effective_asset_from_b_token(self, b_tokens: int) -> int:
        """Collateral value scaled down by the collateral factor."""
        assets = self.to_asset_from_b_token(b_tokens)
        return mul_floor(assets, self.config.c_factor, SCALAR_7)

    def to_d_token_up(self, amount: int) -> int:
        return div_ceil(amount, self.d_rate, SCALAR_9)

    def to_d_token_down(self, amount: int) -> int:
        return div_floor(amount, self.d_rate, SCALAR_9)

    def to_b_token_up(self, amount: int) -> int:
        return div_ceil(amount, self.b_rate, SCALAR_9)

    def to_b_token_down(self, amount: int) -> int:
        return div_floor(amount, self.b_rate, SCALAR_9)

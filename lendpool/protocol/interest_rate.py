"""Three-segment utilization rate curve with a reactive modifier.

Rates and utilization are 7-decimal fixed point, the modifier is 9-decimal.
All rate arithmetic rounds up: interest is owed by borrowers.
"""

import numpy as np
import pandas as pd

from lendpool.data.constants import (
    MAX_IR_MOD,
    MIN_IR_MOD,
    SCALAR_7,
    SCALAR_9,
    SECONDS_PER_YEAR,
)
from lendpool.protocol.fixed_point import div_ceil, mul_ceil, mul_floor
from lendpool.protocol.storage import ReserveConfig


def current_rate(config: ReserveConfig, cur_util: int, ir_mod: int) -> int:
    """Annual borrow rate for a utilization (both 7 decimals).

    Below the target the curve rises from ``r_base`` to ``r_base + r_one``,
    up to ``max_util`` it rises by another ``r_two``; both segments are
    scaled by the modifier. Past ``max_util`` the ``r_three`` slope is added
    unscaled on top of the modifier-scaled intersection.
    """
    cur_util = min(max(cur_util, 0), SCALAR_7)
    if cur_util <= config.util:
        util_scalar = div_ceil(cur_util, config.util, SCALAR_7)
        base_rate = mul_ceil(util_scalar, config.r_one, SCALAR_7) + config.r_base
        return mul_ceil(base_rate, ir_mod, SCALAR_9)
    if cur_util <= config.max_util:
        util_scalar = div_ceil(cur_util - config.util, config.max_util - config.util, SCALAR_7)
        base_rate = mul_ceil(util_scalar, config.r_two, SCALAR_7) + config.r_one + config.r_base
        return mul_ceil(base_rate, ir_mod, SCALAR_9)

    util_scalar = div_ceil(cur_util - config.max_util, SCALAR_7 - config.max_util, SCALAR_7)
    extra_rate = mul_ceil(util_scalar, config.r_three, SCALAR_7)
    intersection = mul_ceil(ir_mod, config.r_two + config.r_one + config.r_base, SCALAR_9)
    return extra_rate + intersection


def calc_accrual(
    config: ReserveConfig,
    cur_util: int,
    ir_mod: int,
    elapsed: int,
    min_ir_mod: int = MIN_IR_MOD,
    max_ir_mod: int = MAX_IR_MOD,
) -> tuple[int, int]:
    """Compute the liability accrual factor and the next modifier.

    Args:
        config: Reserve configuration.
        cur_util: Utilization (7 decimals).
        ir_mod: Current interest rate modifier (9 decimals).
        elapsed: Seconds since the last accrual.
        min_ir_mod: Lower clamp for the modifier.
        max_ir_mod: Upper clamp for the modifier.

    Returns:
        ``(accrual, new_ir_mod)`` where ``accrual`` is the 9-decimal factor
        to multiply the liability rate by.
    """
    cur_ir = current_rate(config, cur_util, ir_mod)

    delta_time_scaled = elapsed * SCALAR_9
    util_dif_scaled = (cur_util - config.util) * 100
    if util_dif_scaled >= 0:
        util_error = mul_floor(delta_time_scaled, util_dif_scaled, SCALAR_9)
        rate_dif = mul_floor(util_error, config.reactivity, SCALAR_9)
        new_ir_mod = min(ir_mod + rate_dif, max_ir_mod)
    else:
        util_error = mul_ceil(delta_time_scaled, util_dif_scaled, SCALAR_9)
        rate_dif = mul_ceil(util_error, config.reactivity, SCALAR_9)
        new_ir_mod = max(ir_mod + rate_dif, min_ir_mod)

    time_weight = delta_time_scaled // SECONDS_PER_YEAR
    accrual = SCALAR_9 + mul_ceil(time_weight, cur_ir * 100, SCALAR_9)
    return accrual, new_ir_mod


class InterestRateModel:
    """Read-only view of a reserve's rate curve."""

    def __init__(self, config: ReserveConfig, ir_mod: int = SCALAR_9, bstop_rate: int = 0) -> None:
        self.config = config
        self.ir_mod = ir_mod
        self.bstop_rate = bstop_rate

    def borrow_rate(self, utilization: int) -> int:
        """Annual borrow rate (7 decimals) at *utilization* (7 decimals)."""
        return current_rate(self.config, utilization, self.ir_mod)

    def supply_rate(self, utilization: int) -> int:
        """Annual supply rate (7 decimals).

        R_supply = R_borrow * U * (1 - bstop_rate), rounded down.
        """
        utilization = min(max(utilization, 0), SCALAR_7)
        borrow_rate = self.borrow_rate(utilization)
        gross = mul_floor(borrow_rate, utilization, SCALAR_7)
        return mul_floor(gross, SCALAR_7 - self.bstop_rate, SCALAR_7)

    def rate_curve(self, n_points: int = 200) -> pd.DataFrame:
        """Generate the full rate curve for plotting.

        Returns:
            DataFrame with float columns: utilization, borrow_rate, supply_rate
        """
        grid = np.linspace(0, SCALAR_7, n_points).round().astype(np.int64)
        borrow_rates = [self.borrow_rate(int(u)) / SCALAR_7 for u in grid]
        supply_rates = [self.supply_rate(int(u)) / SCALAR_7 for u in grid]

        return pd.DataFrame(
            {
                "utilization": grid / SCALAR_7,
                "borrow_rate": borrow_rates,
                "supply_rate": supply_rates,
            }
        )

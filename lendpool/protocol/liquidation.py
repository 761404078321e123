"""User liquidation auctions: sizing a liquidation and settling fills."""

from __future__ import annotations

import logging

from lendpool.data.constants import LIQ_MAX_HF, LIQ_MIN_HF, SCALAR_7
from lendpool.protocol.bad_debt import move_bad_debt_to_backstop
from lendpool.protocol.env import Env
from lendpool.protocol.errors import (
    BadRequestError,
    InvalidLiqTooLargeError,
    InvalidLiqTooSmallError,
    InvalidLiquidationError,
)
from lendpool.protocol.fixed_point import div_ceil, div_floor, mul_ceil, mul_floor
from lendpool.protocol.health_factor import PositionData
from lendpool.protocol.pool import Pool
from lendpool.protocol.positions import User
from lendpool.protocol.storage import AuctionData
from lendpool.settings import DEFAULT_SETTINGS, PoolSettings

logger = logging.getLogger(__name__)

_PERCENT = 100_000  # 1% in 7 decimals


def estimate_incentive(position_data: PositionData) -> int:
    """Liquidation bonus estimate (7 decimals), ``1 + (1 - avg_cf / avg_lf) / 2``.

    ``avg_cf`` is the value-weighted collateral factor and ``avg_lf`` the
    value-weighted inverse liability factor, so riskier positions pay a
    larger bonus.
    """
    avg_cf = div_floor(position_data.collateral_base, position_data.collateral_raw, SCALAR_7)
    avg_lf = div_floor(position_data.liability_base, position_data.liability_raw, SCALAR_7)
    return SCALAR_7 + div_ceil(SCALAR_7 - div_ceil(avg_cf, avg_lf, SCALAR_7), 2 * SCALAR_7, SCALAR_7)


def solve_percent_liquidated(position_data: PositionData, incentive: int, target_hf: int) -> int:
    """Smallest whole percentage of liabilities that restores *target_hf*.

    Liquidating a share ``p`` of every liability removes the same share of
    effective liabilities and ``p * L_raw * incentive / C_raw`` of every
    collateral balance. Solving ``C_eff' = target_hf * L_eff'`` for ``p``:

        p = (T * L_eff - C_eff) / (T * L_eff - avg_cf * L_raw * incentive)

    Returns 100 when the collateral cannot restore the target.
    """
    target_liabilities = mul_floor(position_data.liability_base, target_hf, SCALAR_7)
    numerator = target_liabilities - position_data.collateral_base
    avg_cf = div_floor(position_data.collateral_base, position_data.collateral_raw, SCALAR_7)
    seized_value = mul_ceil(
        mul_ceil(position_data.liability_raw, incentive, SCALAR_7), avg_cf, SCALAR_7
    )
    denominator = target_liabilities - seized_value
    if denominator <= 0 or numerator >= denominator:
        return 100
    percent = -((-numerator * 100) // denominator)
    return min(max(percent, 1), 100)


def create_user_liq_auction_data(
    env: Env,
    user: str,
    percent_liquidated: int | None = None,
    settings: PoolSettings = DEFAULT_SETTINGS,
) -> AuctionData:
    """Quote a liquidation of *user*.

    Args:
        env: Host environment.
        user: Address being liquidated.
        percent_liquidated: Whole percentage (1-100) of the user's
            liabilities to auction. When None the percentage is solved so
            the position lands at ``settings.liquidation_target_hf``.
        settings: Pool settings.

    Returns:
        The auction, starting at the next block. Not stored.

    Raises:
        InvalidLiquidationError: If the user is not liquidatable, holds no
            collateral, or the percentage is out of range.
        InvalidLiqTooLargeError: If the liquidation would overshoot.
        InvalidLiqTooSmallError: If it would not restore the user's health.
    """
    if percent_liquidated is not None and not 0 < percent_liquidated <= 100:
        raise InvalidLiquidationError(f"percent_liquidated {percent_liquidated} out of range")

    pool = Pool.load(env, settings)
    user_state = User.load(env, user)
    reserve_list = env.storage.get_res_list()
    position_data = PositionData.calculate_from_positions(env, pool, user_state.positions)

    if not position_data.is_liquidatable():
        raise InvalidLiquidationError(f"{user} is not liquidatable")
    if position_data.collateral_raw == 0:
        raise InvalidLiquidationError(f"{user} holds no collateral, use bad_debt")

    incentive = estimate_incentive(position_data)
    solved = percent_liquidated is None
    if solved:
        percent_liquidated = solve_percent_liquidated(
            position_data, incentive, settings.liquidation_target_hf
        )
    percent_scaled = percent_liquidated * _PERCENT

    est_withdrawn_collateral = mul_floor(
        mul_floor(position_data.liability_raw, percent_scaled, SCALAR_7), incentive, SCALAR_7
    )
    est_withdrawn_pct = min(
        div_ceil(est_withdrawn_collateral, position_data.collateral_raw, SCALAR_7), SCALAR_7
    )

    lot = {
        reserve_list[index]: mul_ceil(balance, est_withdrawn_pct, SCALAR_7)
        for index, balance in user_state.positions.collateral.items()
    }
    bid = {
        reserve_list[index]: mul_ceil(balance, percent_scaled, SCALAR_7)
        for index, balance in user_state.positions.liabilities.items()
    }
    # rounding up can overshoot a balance by one share
    lot = {
        asset: min(amount, user_state.get_collateral(env.storage.get_res_index(asset)))
        for asset, amount in lot.items()
    }
    bid = {
        asset: min(amount, user_state.get_liabilities(env.storage.get_res_index(asset)))
        for asset, amount in bid.items()
    }

    if percent_liquidated == 100:
        if not solved and est_withdrawn_collateral < position_data.collateral_raw:
            raise InvalidLiqTooLargeError("collateral covers a partial liquidation")
    elif not solved:
        user_state.rm_positions(env, pool, lot, bid)
        new_data = PositionData.calculate_from_positions(env, pool, user_state.positions)
        if new_data.liability_base > 0:
            new_hf = new_data.as_health_factor()
            if new_hf > LIQ_MAX_HF:
                raise InvalidLiqTooLargeError(f"post-liquidation health factor {new_hf} too high")
            if new_hf < LIQ_MIN_HF:
                raise InvalidLiqTooSmallError(f"post-liquidation health factor {new_hf} too low")

    logger.info("Quoted liquidation of %s: %d%% of liabilities", user, percent_liquidated)
    return AuctionData(bid=bid, lot=lot, block=env.ledger.sequence + 1)


def fill_user_liq_auction(
    env: Env,
    pool: Pool,
    auction_data: AuctionData,
    user: str,
    filler_state: User,
) -> bool:
    """Move the scaled auction's positions from *user* to the filler.

    If the user is left with liabilities and no collateral, those
    liabilities move to the backstop at once.

    Returns:
        True if the user has no collateral left, so the auction is spent.
    """
    if filler_state.address in (user, env.storage.get_backstop()):
        raise BadRequestError(f"{filler_state.address} cannot fill the liquidation of {user}")
    user_state = User.load(env, user)
    user_state.rm_positions(env, pool, auction_data.lot, auction_data.bid)
    filler_state.add_positions(env, pool, auction_data.lot, auction_data.bid)

    exhausted = not user_state.positions.collateral
    if exhausted and user_state.positions.liabilities:
        move_bad_debt_to_backstop(env, pool, user_state)
    user_state.store(env)
    return exhausted

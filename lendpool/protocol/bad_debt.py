"""Bad debt: moving uncollateralized liabilities to the backstop and auctioning them."""

from __future__ import annotations

import logging

from lendpool.data.constants import AUCTION_LOT_PREMIUM, BACKSTOP_BURN_THRESHOLD, SCALAR_7
from lendpool.data.interfaces import PoolBackstopData
from lendpool.protocol.env import Env
from lendpool.protocol.errors import BadRequestError
from lendpool.protocol.fixed_point import checked_add, div_floor, mul_floor
from lendpool.protocol.pool import Pool
from lendpool.protocol.positions import User
from lendpool.protocol.status import calc_pool_backstop_threshold
from lendpool.protocol.storage import AuctionData
from lendpool.settings import DEFAULT_SETTINGS, PoolSettings

logger = logging.getLogger(__name__)


def move_bad_debt_to_backstop(env: Env, pool: Pool, user_state: User) -> None:
    """Move every liability of *user_state* onto the backstop's position.

    The caller stores *user_state* and the pool's reserves.
    """
    reserve_list = env.storage.get_res_list()
    backstop_state = User.load(env, env.storage.get_backstop())
    for index, balance in list(user_state.positions.liabilities.items()):
        asset = reserve_list[index]
        reserve = pool.load_reserve(env, asset)
        user_state.remove_liabilities(reserve, balance)
        backstop_state.add_liabilities(reserve, balance)
        pool.cache_reserve(reserve, store=True)
        env.publish(("bad_debt", user_state.address), (asset, balance))
        logger.info("Moved %d %s liability shares of %s to the backstop", balance, asset, user_state.address)
    backstop_state.store(env)


def transfer_bad_debt_to_backstop(env: Env, user: str, settings: PoolSettings = DEFAULT_SETTINGS) -> None:
    """Hand the debt of a user with liabilities and no collateral to the backstop.

    Raises:
        BadRequestError: If *user* is the backstop or does not hold bad debt.
    """
    if user == env.storage.get_backstop():
        raise BadRequestError("the backstop cannot transfer bad debt to itself")
    user_state = User.load(env, user)
    if user_state.positions.collateral or not user_state.positions.liabilities:
        raise BadRequestError(f"{user} does not hold bad debt")

    pool = Pool.load(env, settings)
    move_bad_debt_to_backstop(env, pool, user_state)
    pool.store_cached_reserves(env)
    user_state.store(env)


def burn_backstop_bad_debt(env: Env, pool: Pool, backstop_state: User) -> None:
    """Write off the backstop's liabilities, a shared loss for suppliers."""
    reserve_list = env.storage.get_res_list()
    rm_liabilities = {}
    for index, balance in backstop_state.positions.liabilities.items():
        asset = reserve_list[index]
        rm_liabilities[asset] = balance
        env.publish(("bad_debt", backstop_state.address), (asset, balance))
    backstop_state.rm_positions(env, pool, {}, rm_liabilities)
    logger.warning("Burned backstop bad debt: %s", rm_liabilities)


def backstop_token_to_base(env: Env, pool: Pool) -> tuple[str, int]:
    """Backstop token address and its oracle price."""
    backstop_token = env.backstop(env.storage.get_backstop()).backstop_token()
    return backstop_token, pool.load_price(env, backstop_token)


def create_bad_debt_auction_data(env: Env, settings: PoolSettings = DEFAULT_SETTINGS) -> AuctionData:
    """Auction the backstop's liabilities for backstop tokens.

    The lot is backstop tokens worth 1.4x the debt, capped at everything the
    backstop holds for this pool.

    Raises:
        BadRequestError: If the backstop holds no liabilities.
    """
    backstop = env.storage.get_backstop()
    pool = Pool.load(env, settings)
    backstop_state = User.load(env, backstop)
    reserve_list = env.storage.get_res_list()

    bid: dict[str, int] = {}
    debt_value = 0
    for index, balance in backstop_state.positions.liabilities.items():
        asset = reserve_list[index]
        reserve = pool.load_reserve(env, asset)
        asset_to_base = pool.load_price(env, asset)
        debt_value = checked_add(
            debt_value, mul_floor(asset_to_base, reserve.to_asset_from_d_token(balance), reserve.scalar)
        )
        bid[asset] = balance
    if not bid or debt_value == 0:
        raise BadRequestError("the backstop holds no bad debt")

    backstop_token, token_to_base = backstop_token_to_base(env, pool)
    pool_backstop_data = env.backstop(backstop).pool_data(env.contract)
    lot_amount = div_floor(mul_floor(debt_value, AUCTION_LOT_PREMIUM, SCALAR_7), token_to_base, SCALAR_7)
    lot_amount = min(lot_amount, pool_backstop_data.tokens)
    return AuctionData(bid=bid, lot={backstop_token: lot_amount}, block=env.ledger.sequence + 1)


def _after_draw(data: PoolBackstopData, amount: int) -> PoolBackstopData:
    if data.tokens <= 0:
        return data
    remaining = max(data.tokens - amount, 0)
    return PoolBackstopData(
        tokens=remaining,
        blnd=data.blnd * remaining // data.tokens,
        usdc=data.usdc * remaining // data.tokens,
        q4w_pct=data.q4w_pct,
    )


def fill_bad_debt_auction(env: Env, pool: Pool, auction_data: AuctionData, filler_state: User) -> bool:
    """Move the scaled auction's liabilities from the backstop to the filler.

    The backstop tokens are drawn after the pool state is stored; if the
    backstop is left under ~5% of its threshold by the draw, any bad debt
    it still holds is burned.

    Returns:
        True if the backstop holds no liabilities afterwards, so the
        auction is spent.
    """
    backstop = env.storage.get_backstop()
    if filler_state.address == backstop:
        raise BadRequestError("the backstop cannot fill its own auction")
    backstop_state = User.load(env, backstop)
    backstop_state.rm_positions(env, pool, {}, auction_data.bid)
    filler_state.add_positions(env, pool, {}, auction_data.bid)

    backstop_client = env.backstop(backstop)
    lot_amount = auction_data.lot.get(backstop_client.backstop_token(), 0)
    if backstop_state.positions.liabilities:
        data = _after_draw(backstop_client.pool_data(env.contract), lot_amount)
        if calc_pool_backstop_threshold(data) < BACKSTOP_BURN_THRESHOLD:
            burn_backstop_bad_debt(env, pool, backstop_state)
    backstop_state.store(env)
    return not backstop_state.positions.liabilities

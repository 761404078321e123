"""Interest auctions: selling accrued backstop credit for backstop tokens."""

from __future__ import annotations

from lendpool.data.constants import AUCTION_LOT_PREMIUM, SCALAR_7
from lendpool.protocol.bad_debt import backstop_token_to_base
from lendpool.protocol.env import Env
from lendpool.protocol.errors import BadRequestError, InterestTooSmallError
from lendpool.protocol.fixed_point import checked_add, checked_sub, div_floor, mul_floor
from lendpool.protocol.pool import Pool
from lendpool.protocol.storage import AuctionData
from lendpool.settings import DEFAULT_SETTINGS, PoolSettings


def create_interest_auction_data(
    env: Env, assets: list[str], settings: PoolSettings = DEFAULT_SETTINGS
) -> AuctionData:
    """Auction the backstop credit of *assets*.

    The bid is backstop tokens worth 1.4x the credit. Reserves are accrued
    but not stored; the fill stores them.

    Raises:
        InterestTooSmallError: If the credit is worth no more than
            ``settings.min_interest_auction_value`` units of the oracle base.
        BadRequestError: If no listed reserve has credit.
    """
    pool = Pool.load(env, settings)
    oracle_scalar = 10 ** pool.load_price_decimals(env)

    lot: dict[str, int] = {}
    interest_value = 0
    for asset in assets:
        reserve = pool.load_reserve(env, asset)
        if reserve.backstop_credit > 0:
            asset_to_base = pool.load_price(env, asset)
            interest_value = checked_add(
                interest_value, mul_floor(asset_to_base, reserve.backstop_credit, reserve.scalar)
            )
            lot[asset] = reserve.backstop_credit

    if interest_value <= settings.min_interest_auction_value * oracle_scalar:
        raise InterestTooSmallError(f"interest worth {interest_value} is too small to auction")
    if not lot:
        raise BadRequestError("no backstop credit to auction")

    backstop_token, token_to_base = backstop_token_to_base(env, pool)
    bid_amount = div_floor(mul_floor(interest_value, AUCTION_LOT_PREMIUM, SCALAR_7), token_to_base, SCALAR_7)
    return AuctionData(bid={backstop_token: bid_amount}, lot=lot, block=env.ledger.sequence + 1)


def fill_interest_auction(env: Env, pool: Pool, auction_data: AuctionData, filler: str) -> None:
    """Debit the scaled lot from the reserves' backstop credit.

    The caller pays the bid through the backstop and sends the lot.
    """
    if filler == env.storage.get_backstop():
        raise BadRequestError("the backstop cannot fill its own interest auction")
    for asset, amount in auction_data.lot.items():
        reserve = pool.load_reserve(env, asset, store=True)
        reserve.backstop_credit = checked_sub(reserve.backstop_credit, amount)
        pool.cache_reserve(reserve)

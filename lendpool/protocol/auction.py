"""Dutch auction lifecycle: creation, block-based decay, scaling and fills.

Every auction runs in two 200-block phases from its start block. In the
first the lot offered to the filler grows from 0% to 100% while the bid
stays at 100%; in the second the lot stays at 100% while the bid the
filler takes on shrinks toward 0%. The filler's rate therefore never gets
worse as blocks pass. Past ``auction_duration`` the auction is expired and
can only be replaced.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from lendpool.data.constants import AUCTION_PHASE_BLOCKS, AUCTION_STEP, SCALAR_7
from lendpool.protocol.bad_debt import create_bad_debt_auction_data, fill_bad_debt_auction
from lendpool.protocol.env import Env
from lendpool.protocol.errors import (
    AuctionExpiredError,
    AuctionInProgressError,
    BadRequestError,
    NoAuctionExistsError,
)
from lendpool.protocol.fixed_point import mul_ceil, mul_floor
from lendpool.protocol.interest_auction import create_interest_auction_data, fill_interest_auction
from lendpool.protocol.liquidation import create_user_liq_auction_data, fill_user_liq_auction
from lendpool.protocol.pool import Pool
from lendpool.protocol.positions import User
from lendpool.protocol.storage import AuctionData, AuctionType
from lendpool.settings import DEFAULT_SETTINGS, PoolSettings

logger = logging.getLogger(__name__)

_PERCENT = 100_000  # 1% in 7 decimals


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------


def auction_modifiers(block_dif: int, auction_duration: int = 2 * AUCTION_PHASE_BLOCKS) -> tuple[int, int]:
    """Lot and bid modifiers (7 decimals) *block_dif* blocks after the start.

    Raises:
        BadRequestError: If the auction has not started yet.
        AuctionExpiredError: If *block_dif* is past ``auction_duration``.
    """
    if block_dif < 0:
        raise BadRequestError(f"auction starts in {-block_dif} blocks")
    if block_dif > auction_duration:
        raise AuctionExpiredError(f"auction expired {block_dif - auction_duration} blocks ago")
    if block_dif > AUCTION_PHASE_BLOCKS:
        bid_modifier = max(SCALAR_7 - (block_dif - AUCTION_PHASE_BLOCKS) * AUCTION_STEP, 0)
        return SCALAR_7, bid_modifier
    return block_dif * AUCTION_STEP, SCALAR_7


def price_schedule(auction_duration: int = 2 * AUCTION_PHASE_BLOCKS) -> pd.DataFrame:
    """Tabulate the decay over an auction's life.

    Returns:
        DataFrame with columns: block, lot_modifier, bid_modifier
        (modifiers as floats)
    """
    blocks = np.arange(auction_duration + 1)
    modifiers = [auction_modifiers(int(b), auction_duration) for b in blocks]
    return pd.DataFrame(
        {
            "block": blocks,
            "lot_modifier": [lot / SCALAR_7 for lot, _ in modifiers],
            "bid_modifier": [bid / SCALAR_7 for _, bid in modifiers],
        }
    )


def is_expired(env: Env, auction_data: AuctionData, auction_duration: int) -> bool:
    return env.ledger.sequence - auction_data.block > auction_duration


def scale_auction(
    auction_data: AuctionData,
    percent_filled: int,
    sequence: int,
    auction_duration: int = 2 * AUCTION_PHASE_BLOCKS,
) -> tuple[AuctionData, AuctionData | None]:
    """Split an auction into the part being filled and the remainder.

    The filled part is the percentage of each side, with the bid rounded up
    and the lot rounded down, then decayed by the block modifiers.

    Args:
        auction_data: Stored auction.
        percent_filled: Whole percentage being filled (1-100).
        sequence: Current ledger sequence.
        auction_duration: Blocks until expiry.

    Returns:
        ``(to_fill, remaining)``; ``remaining`` is None once both sides are empty.
    """
    lot_modifier, bid_modifier = auction_modifiers(sequence - auction_data.block, auction_duration)
    percent_scaled = percent_filled * _PERCENT

    to_fill_bid: dict[str, int] = {}
    remaining_bid: dict[str, int] = {}
    for asset, amount in auction_data.bid.items():
        base = mul_ceil(amount, percent_scaled, SCALAR_7)
        if amount - base > 0:
            remaining_bid[asset] = amount - base
        scaled = mul_ceil(base, bid_modifier, SCALAR_7)
        if scaled > 0:
            to_fill_bid[asset] = scaled

    to_fill_lot: dict[str, int] = {}
    remaining_lot: dict[str, int] = {}
    for asset, amount in auction_data.lot.items():
        base = mul_floor(amount, percent_scaled, SCALAR_7)
        if amount - base > 0:
            remaining_lot[asset] = amount - base
        scaled = mul_floor(base, lot_modifier, SCALAR_7)
        if scaled > 0:
            to_fill_lot[asset] = scaled

    to_fill = AuctionData(bid=to_fill_bid, lot=to_fill_lot, block=auction_data.block)
    if not remaining_bid and not remaining_lot:
        return to_fill, None
    return to_fill, AuctionData(bid=remaining_bid, lot=remaining_lot, block=auction_data.block)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def _require_no_live_auction(env: Env, auction_type: AuctionType, user: str, settings: PoolSettings) -> None:
    existing = env.storage.get_auction(auction_type, user)
    if existing is None:
        return
    if not is_expired(env, existing, settings.auction_duration):
        raise AuctionInProgressError(f"{auction_type.name} auction for {user} in progress")
    logger.info("Replacing expired %s auction for %s", auction_type.name, user)


def create(
    env: Env,
    auction_type: AuctionType,
    assets: list[str] | None = None,
    settings: PoolSettings = DEFAULT_SETTINGS,
) -> AuctionData:
    """Create and store a backstop-owned (bad debt or interest) auction."""
    backstop = env.storage.get_backstop()
    _require_no_live_auction(env, auction_type, backstop, settings)
    if auction_type == AuctionType.BAD_DEBT:
        auction_data = create_bad_debt_auction_data(env, settings)
    elif auction_type == AuctionType.INTEREST:
        auction_data = create_interest_auction_data(env, assets or [], settings)
    else:
        raise BadRequestError("user liquidations are created with create_liquidation")
    env.storage.set_auction(auction_type, backstop, auction_data)
    logger.info("Created %s auction starting at block %d", auction_type.name, auction_data.block)
    return auction_data


def create_liquidation(
    env: Env,
    user: str,
    percent_liquidated: int | None = None,
    settings: PoolSettings = DEFAULT_SETTINGS,
) -> AuctionData:
    """Create and store a user liquidation auction."""
    if user == env.storage.get_backstop():
        raise BadRequestError("the backstop cannot be liquidated")
    _require_no_live_auction(env, AuctionType.USER_LIQUIDATION, user, settings)
    auction_data = create_user_liq_auction_data(env, user, percent_liquidated, settings)
    env.storage.set_auction(AuctionType.USER_LIQUIDATION, user, auction_data)
    logger.info("Created liquidation auction for %s starting at block %d", user, auction_data.block)
    return auction_data


def delete_liquidation(env: Env, user: str) -> None:
    """Remove *user*'s liquidation auction. Health is the caller's concern.

    Raises:
        NoAuctionExistsError: If there is none.
    """
    if not env.storage.has_auction(AuctionType.USER_LIQUIDATION, user):
        raise NoAuctionExistsError(f"no liquidation auction for {user}")
    env.storage.del_auction(AuctionType.USER_LIQUIDATION, user)
    logger.info("Deleted liquidation auction for %s", user)


def fill(
    env: Env,
    pool: Pool,
    auction_type: AuctionType,
    user: str,
    filler_state: User,
    percent_filled: int,
    settings: PoolSettings = DEFAULT_SETTINGS,
) -> AuctionData:
    """Fill *percent_filled* of an auction for *filler_state*.

    Position moves happen here; the token side (backstop draws and
    donations, underlying sent for interest) is left to the caller, which
    performs it after the pool state is stored.

    Returns:
        The decayed portion that was filled.

    Raises:
        NoAuctionExistsError: If there is no such auction.
        BadRequestError: If *percent_filled* is outside 1-100.
        AuctionExpiredError: If the auction is past its duration.
    """
    auction_data = env.storage.get_auction(auction_type, user)
    if auction_data is None:
        raise NoAuctionExistsError(f"no {auction_type.name} auction for {user}")
    if not 0 < percent_filled <= 100:
        raise BadRequestError(f"percent_filled {percent_filled} out of range")

    to_fill, remaining = scale_auction(
        auction_data, percent_filled, env.ledger.sequence, settings.auction_duration
    )
    if auction_type == AuctionType.USER_LIQUIDATION:
        if fill_user_liq_auction(env, pool, to_fill, user, filler_state):
            remaining = None
    elif auction_type == AuctionType.BAD_DEBT:
        if fill_bad_debt_auction(env, pool, to_fill, filler_state):
            remaining = None
    else:
        fill_interest_auction(env, pool, to_fill, filler_state.address)

    if remaining is None:
        env.storage.del_auction(auction_type, user)
    else:
        env.storage.set_auction(auction_type, user, remaining)
    logger.info(
        "%s filled %d%% of %s auction for %s at block %d",
        filler_state.address,
        percent_filled,
        auction_type.name,
        user,
        env.ledger.sequence,
    )
    return to_fill

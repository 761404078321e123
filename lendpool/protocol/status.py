"""Pool status derived from the health of the pool's backstop."""

from __future__ import annotations

import logging
from dataclasses import replace
from enum import IntEnum

from lendpool.data.constants import BACKSTOP_PRODUCT_CONSTANT, SCALAR_7
from lendpool.data.interfaces import PoolBackstopData
from lendpool.protocol.env import Env
from lendpool.protocol.errors import BadRequestError, InvalidPoolStatusError

logger = logging.getLogger(__name__)


class PoolStatus(IntEnum):
    ADMIN_ACTIVE = 0
    ACTIVE = 1
    ADMIN_ON_ICE = 2
    ON_ICE = 3
    ADMIN_FROZEN = 4
    FROZEN = 5
    SETUP = 6


def calc_pool_backstop_threshold(data: PoolBackstopData) -> int:
    """Backstop size relative to the required threshold, to the 5th power.

    ``(blnd^4 * usdc) / 200k^5`` over whole token units, in 7 decimals:
    1_0000000 is 100%, 0_0000100 is ~10% and 0_0000003 is ~5%.
    """
    bal_blnd = data.blnd // SCALAR_7
    bal_usdc = data.usdc // SCALAR_7
    return bal_blnd**4 * bal_usdc * SCALAR_7 // BACKSTOP_PRODUCT_CONSTANT


def next_status(status: int, data: PoolBackstopData) -> int:
    """Status ``update_status`` moves to from *status* given *data*.

    Admin statuses only ever escalate to frozen or on-ice, they are never
    lifted automatically.
    """
    met_threshold = calc_pool_backstop_threshold(data) >= SCALAR_7
    if status in (PoolStatus.ADMIN_FROZEN, PoolStatus.SETUP):
        raise InvalidPoolStatusError(f"status {status} can only be changed by the admin")
    if status == PoolStatus.ADMIN_ON_ICE:
        if data.q4w_pct >= 7_500_000:
            return PoolStatus.FROZEN
        return status
    if status == PoolStatus.ADMIN_ACTIVE:
        if data.q4w_pct >= 7_500_000:
            return PoolStatus.FROZEN
        if data.q4w_pct >= 5_000_000 or not met_threshold:
            return PoolStatus.ON_ICE
        return status
    if data.q4w_pct >= 6_000_000:
        return PoolStatus.FROZEN
    if data.q4w_pct >= 3_000_000 or not met_threshold:
        return PoolStatus.ON_ICE
    return PoolStatus.ACTIVE


def execute_update_pool_status(env: Env) -> int:
    """Recompute the pool status from the backstop and store it."""
    pool_config = env.storage.get_pool_config()
    backstop = env.backstop(env.storage.get_backstop())
    data = backstop.pool_data(env.contract)
    status = int(next_status(pool_config.status, data))
    if status != pool_config.status:
        logger.info("Pool status %d -> %d (q4w %d)", pool_config.status, status, data.q4w_pct)
    env.storage.set_pool_config(replace(pool_config, status=status))
    return status


def execute_set_pool_status(env: Env, status: int) -> None:
    """Admin status override.

    Raises:
        InvalidPoolStatusError: If the backstop does not support *status*.
        BadRequestError: If *status* is not an admin status.
    """
    pool_config = env.storage.get_pool_config()
    if status == PoolStatus.ADMIN_ACTIVE:
        data = env.backstop(env.storage.get_backstop()).pool_data(env.contract)
        if calc_pool_backstop_threshold(data) < SCALAR_7 or data.q4w_pct >= 5_000_000:
            raise InvalidPoolStatusError("backstop cannot support an active pool")
    elif status == PoolStatus.ADMIN_ON_ICE:
        data = env.backstop(env.storage.get_backstop()).pool_data(env.contract)
        if data.q4w_pct >= 7_500_000:
            raise InvalidPoolStatusError("backstop cannot support an on-ice pool")
    elif status != PoolStatus.ADMIN_FROZEN:
        raise BadRequestError(f"{status} is not an admin status")
    logger.info("Pool status set to %d by admin", status)
    env.storage.set_pool_config(replace(pool_config, status=int(status)))

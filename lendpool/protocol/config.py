"""Pool initialization and admin configuration of the pool and its reserves.

Reserve configurations go through a queue: ``execute_queue_set_reserve``
records the change and ``execute_set_reserve`` applies it once unlocked.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from lendpool.data.constants import SCALAR_7, SCALAR_9, SECONDS_PER_WEEK
from lendpool.protocol.env import Env
from lendpool.protocol.errors import (
    AlreadyInitializedError,
    BadRequestError,
    InitNotUnlockedError,
    InvalidPoolInitArgsError,
    InvalidReserveMetadataError,
)
from lendpool.protocol.pool import Pool
from lendpool.protocol.status import PoolStatus
from lendpool.protocol.storage import PoolConfig, QueuedReserveSet, ReserveConfig, ReserveData
from lendpool.settings import DEFAULT_SETTINGS, PoolSettings

logger = logging.getLogger(__name__)

MAX_UTIL_TARGET = 9_500_000  # 0.95
MAX_REACTIVITY = 100_000  # 0.0001 in 9 decimals

# Changing any of these resets the interest rate modifier
_RATE_FIELDS = ("r_base", "r_one", "r_two", "r_three", "util")


def execute_initialize(
    env: Env,
    admin: str,
    name: str,
    oracle: str,
    bstop_rate: int,
    max_positions: int,
    backstop: str,
) -> None:
    """Set the pool's identity and configuration. The pool starts in setup.

    Raises:
        AlreadyInitializedError: On a second call.
        InvalidPoolInitArgsError: If ``bstop_rate`` is not in [0, 1) or
            ``max_positions`` is below 2.
    """
    if env.storage.is_init():
        raise AlreadyInitializedError("pool already initialized")
    if not 0 <= bstop_rate < SCALAR_7:
        raise InvalidPoolInitArgsError(f"bstop_rate {bstop_rate} not in [0, 1)")
    if max_positions < 2:
        raise InvalidPoolInitArgsError(f"max_positions {max_positions} below 2")

    env.storage.set_admin(admin)
    env.storage.set_name(name)
    env.storage.set_backstop(backstop)
    env.storage.set_pool_config(
        PoolConfig(
            oracle=oracle,
            bstop_rate=bstop_rate,
            status=int(PoolStatus.SETUP),
            max_positions=max_positions,
        )
    )
    env.storage.set_is_init()
    logger.info("Initialized pool %s (admin %s, backstop %s)", name, admin, backstop)


def execute_update_pool(env: Env, bstop_rate: int, max_positions: int) -> None:
    if not 0 <= bstop_rate < SCALAR_7:
        raise BadRequestError(f"bstop_rate {bstop_rate} not in [0, 1)")
    if max_positions < 2:
        raise BadRequestError(f"max_positions {max_positions} below 2")
    pool_config = env.storage.get_pool_config()
    env.storage.set_pool_config(replace(pool_config, bstop_rate=bstop_rate, max_positions=max_positions))


def require_valid_reserve_metadata(config: ReserveConfig) -> None:
    """Raise ``InvalidReserveMetadataError`` unless *config* is well formed."""
    problems = []
    if not 0 <= config.decimals <= 18:
        problems.append("decimals")
    if not 0 <= config.c_factor <= SCALAR_7:
        problems.append("c_factor")
    if not 0 < config.l_factor <= SCALAR_7:
        problems.append("l_factor")
    if not 0 < config.util <= MAX_UTIL_TARGET:
        problems.append("util")
    if config.max_util > SCALAR_7 or config.max_util <= config.util:
        problems.append("max_util")
    if not 0 <= config.r_base < SCALAR_7:
        problems.append("r_base")
    if config.r_one < 0 or config.r_one > config.r_two or config.r_two > config.r_three:
        problems.append("rate slopes")
    if not 0 <= config.reactivity <= MAX_REACTIVITY:
        problems.append("reactivity")
    if problems:
        raise InvalidReserveMetadataError("invalid " + ", ".join(problems))


def initialize_reserve(env: Env, asset: str, config: ReserveConfig) -> int:
    """Add a reserve for *asset* and return its index.

    Raises:
        BadRequestError: If *asset* already has a reserve.
        InvalidReserveMetadataError: If *config* is invalid.
    """
    if env.storage.has_res(asset):
        raise BadRequestError(f"reserve {asset} already exists")
    require_valid_reserve_metadata(config)

    index = env.storage.push_res_list(asset)
    env.storage.set_res_data(
        index,
        ReserveData(
            b_rate=SCALAR_9,
            d_rate=SCALAR_9,
            ir_mod=SCALAR_9,
            b_supply=0,
            d_supply=0,
            backstop_credit=0,
            last_time=env.ledger.timestamp,
        ),
    )
    env.storage.set_res_config(index, replace(config, index=index))
    logger.info("Initialized reserve %s at index %d", asset, index)
    return index


def update_reserve(
    env: Env, asset: str, config: ReserveConfig, settings: PoolSettings = DEFAULT_SETTINGS
) -> None:
    """Replace the configuration of an existing reserve.

    The reserve is accrued under its old configuration first. The index
    and decimals never change.

    Raises:
        ReserveNotFoundError: If *asset* has no reserve.
        InvalidReserveMetadataError: If *config* is invalid or changes decimals.
    """
    require_valid_reserve_metadata(config)
    pool = Pool.load(env, settings)
    reserve = pool.load_reserve(env, asset)
    old_config = reserve.config
    if old_config.decimals != config.decimals:
        raise InvalidReserveMetadataError("reserve decimals cannot change")
    if any(getattr(old_config, name) != getattr(config, name) for name in _RATE_FIELDS):
        reserve.ir_mod = SCALAR_9
    reserve.store(env)
    env.storage.set_res_config(reserve.index, replace(config, index=reserve.index))
    logger.info("Updated reserve %s at index %d", asset, reserve.index)


def execute_queue_set_reserve(env: Env, asset: str, config: ReserveConfig) -> QueuedReserveSet:
    """Queue a new or changed reserve configuration for *asset*.

    Outside setup the change unlocks a week later.

    Raises:
        BadRequestError: If a change is already queued for *asset*.
        InvalidReserveMetadataError: If *config* is invalid.
    """
    if env.storage.get_queued_reserve_set(asset) is not None:
        raise BadRequestError(f"reserve {asset} already has a queued change")
    require_valid_reserve_metadata(config)
    unlock_time = env.ledger.timestamp
    if env.storage.get_pool_config().status != PoolStatus.SETUP:
        unlock_time += SECONDS_PER_WEEK
    queued = QueuedReserveSet(new_config=config, unlock_time=unlock_time)
    env.storage.set_queued_reserve_set(asset, queued)
    logger.info("Queued reserve %s, unlocks at %d", asset, unlock_time)
    return queued


def execute_cancel_queued_set_reserve(env: Env, asset: str) -> None:
    if env.storage.get_queued_reserve_set(asset) is None:
        raise BadRequestError(f"no queued change for reserve {asset}")
    env.storage.del_queued_reserve_set(asset)


def execute_set_reserve(env: Env, asset: str, settings: PoolSettings = DEFAULT_SETTINGS) -> int:
    """Apply the queued configuration for *asset* and return the reserve index.

    Raises:
        BadRequestError: If nothing is queued for *asset*.
        InitNotUnlockedError: If the queued change is still locked.
        InvalidReserveMetadataError: If the change would alter decimals.
    """
    queued = env.storage.get_queued_reserve_set(asset)
    if queued is None:
        raise BadRequestError(f"no queued change for reserve {asset}")
    if queued.unlock_time > env.ledger.timestamp:
        raise InitNotUnlockedError(f"reserve {asset} unlocks at {queued.unlock_time}")
    env.storage.del_queued_reserve_set(asset)
    if env.storage.has_res(asset):
        update_reserve(env, asset, queued.new_config, settings)
        return env.storage.get_res_index(asset)
    return initialize_reserve(env, asset, queued.new_config)

"""Reserve emissions: weekly cycles funded by the backstop, accrued per share.

Every reserve has two emission tokens, addressed by a reserve token id:
``index * 2`` for its dTokens and ``index * 2 + 1`` for its bTokens. Each
token carries an emission index, the tokens emitted per share so far, and
each user's record remembers the index it last accrued at. A user's
emissions must be brought up to date before their share balance in that
token changes, which ``User`` does on every mutation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from lendpool.data.constants import SCALAR_7, SECONDS_PER_WEEK
from lendpool.protocol.env import Env
from lendpool.protocol.errors import BadRequestError
from lendpool.protocol.fixed_point import checked_add, div_floor, mul_floor
from lendpool.protocol.storage import ReserveEmissionsConfig, ReserveEmissionsData, UserEmissionData

logger = logging.getLogger(__name__)

D_TOKEN = 0
B_TOKEN = 1


@dataclass(frozen=True)
class ReserveEmissionMetadata:
    """Share of every gulp sent to one reserve token."""

    res_index: int
    res_type: int  # D_TOKEN or B_TOKEN
    share: int  # 7 decimals


def res_token_id(res_index: int, res_type: int) -> int:
    return res_index * 2 + res_type


def set_pool_emissions(env: Env, metadata: list[ReserveEmissionMetadata]) -> None:
    """Replace the pool's emission shares. Applied from the next gulp.

    Raises:
        BadRequestError: If a reserve is unknown, a token type is not 0 or 1,
            or the shares sum to more than one.
    """
    res_list = env.storage.get_res_list()
    pool_emissions: dict[int, int] = {}
    total_share = 0
    for entry in metadata:
        if entry.res_type not in (D_TOKEN, B_TOKEN) or not 0 <= entry.res_index < len(res_list):
            raise BadRequestError(f"no reserve token {entry.res_index}/{entry.res_type}")
        if entry.share < 0:
            raise BadRequestError(f"negative emission share {entry.share}")
        pool_emissions[res_token_id(entry.res_index, entry.res_type)] = entry.share
        total_share += entry.share
    if total_share > SCALAR_7:
        raise BadRequestError(f"emission shares sum to {total_share}, above 1")
    env.storage.set_pool_emissions(pool_emissions)


def gulp_emissions(env: Env) -> int:
    """Take newly released emissions from the backstop and start a new cycle.

    Returns:
        The number of tokens distributed.
    """
    backstop = env.backstop(env.storage.get_backstop())
    new_emissions = backstop.gulp_pool_emissions(env.contract)
    do_gulp_emissions(env, new_emissions)
    return new_emissions


def do_gulp_emissions(env: Env, new_emissions: int) -> None:
    # less than one whole token leaves too much to rounding
    if new_emissions < SCALAR_7:
        raise BadRequestError(f"gulp of {new_emissions} is below one token")
    for token_id, share in env.storage.get_pool_emissions().items():
        _start_cycle(env, token_id, mul_floor(share, new_emissions, SCALAR_7))


def _start_cycle(env: Env, token_id: int, new_tokens: int) -> None:
    now = env.ledger.timestamp
    tokens_left = new_tokens
    emis_config = env.storage.get_res_emis_config(token_id)
    if emis_config is not None:
        supply, scalar = _supply_and_scalar(env, token_id)
        emis_data = _update_emission_data_with_config(env, token_id, supply, scalar, emis_config)
        if emis_data.last_time != now:
            env.storage.set_res_emis_data(token_id, ReserveEmissionsData(emis_data.index, now))
        # tokens the old cycle never emitted roll into the new one
        if emis_config.expiration > now:
            tokens_left += emis_config.eps * (emis_config.expiration - now)
    else:
        env.storage.set_res_emis_data(token_id, ReserveEmissionsData(index=0, last_time=now))

    expiration = now + SECONDS_PER_WEEK
    eps = tokens_left // SECONDS_PER_WEEK
    env.storage.set_res_emis_config(token_id, ReserveEmissionsConfig(expiration=expiration, eps=eps))
    env.publish(("reserve_emission_update",), (token_id, eps, expiration))
    logger.debug("Reserve token %d emits %d per second until %d", token_id, eps, expiration)


def _supply_and_scalar(env: Env, token_id: int) -> tuple[int, int]:
    res_index = token_id // 2
    res_data = env.storage.get_res_data(res_index)
    scalar = 10 ** env.storage.get_res_config(res_index).decimals
    supply = res_data.d_supply if token_id % 2 == D_TOKEN else res_data.b_supply
    return supply, scalar


def update_emissions(
    env: Env,
    token_id: int,
    supply: int,
    supply_scalar: int,
    user: str,
    balance: int,
    claim: bool = False,
) -> int:
    """Accrue *user*'s emissions on one reserve token.

    Must run before any change to the token's supply or the user's balance.

    Args:
        token_id: Reserve token id.
        supply: Total shares of the token before the change.
        supply_scalar: ``10 ** decimals`` of the reserve.
        user: The account.
        balance: The account's shares before the change.
        claim: Zero the accrued amount and return it.

    Returns:
        The amount claimed, zero unless *claim*.
    """
    emis_data = update_emission_data(env, token_id, supply, supply_scalar)
    if emis_data is None:
        return 0
    return _update_user_emissions(env, emis_data, token_id, supply_scalar, user, balance, claim)


def update_emission_data(
    env: Env, token_id: int, supply: int, supply_scalar: int
) -> ReserveEmissionsData | None:
    """Bring the token's emission index up to now. None if it has never emitted."""
    emis_config = env.storage.get_res_emis_config(token_id)
    if emis_config is None:
        return None
    return _update_emission_data_with_config(env, token_id, supply, supply_scalar, emis_config)


def _update_emission_data_with_config(
    env: Env,
    token_id: int,
    supply: int,
    supply_scalar: int,
    emis_config: ReserveEmissionsConfig,
) -> ReserveEmissionsData:
    # written alongside the config
    emis_data = env.storage.get_res_emis_data(token_id)
    now = env.ledger.timestamp
    if (
        emis_data.last_time >= emis_config.expiration
        or emis_data.last_time == now
        or emis_config.eps == 0
        or supply == 0
    ):
        return emis_data

    until = min(now, emis_config.expiration)
    additional = div_floor((until - emis_data.last_time) * emis_config.eps, supply, supply_scalar)
    new_data = ReserveEmissionsData(index=checked_add(emis_data.index, additional), last_time=until)
    env.storage.set_res_emis_data(token_id, new_data)
    return new_data


def _update_user_emissions(
    env: Env,
    emis_data: ReserveEmissionsData,
    token_id: int,
    supply_scalar: int,
    user: str,
    balance: int,
    claim: bool,
) -> int:
    user_data = env.storage.get_user_emissions(user, token_id)
    if user_data is None:
        # shares held before emissions began earn the whole index
        accrued = mul_floor(balance, emis_data.index, supply_scalar) if balance else 0
    elif user_data.index != emis_data.index or claim:
        accrued = user_data.accrued
        if balance:
            accrued = checked_add(accrued, mul_floor(balance, emis_data.index - user_data.index, supply_scalar))
    else:
        return 0

    if claim:
        env.storage.set_user_emissions(user, token_id, UserEmissionData(index=emis_data.index, accrued=0))
        return accrued
    env.storage.set_user_emissions(user, token_id, UserEmissionData(index=emis_data.index, accrued=accrued))
    return 0


def execute_claim(env: Env, from_: str, reserve_token_ids: list[int], to: str) -> int:
    """Claim *from_*'s accrued emissions on the given tokens and pay them to *to*.

    Returns:
        The amount paid.

    Raises:
        BadRequestError: If a reserve token id names no reserve.
    """
    positions = env.storage.get_positions(from_)
    res_list = env.storage.get_res_list()
    to_claim = 0
    for token_id in reserve_token_ids:
        res_index = token_id // 2
        if token_id < 0 or res_index >= len(res_list):
            raise BadRequestError(f"no reserve token {token_id}")
        supply, scalar = _supply_and_scalar(env, token_id)
        balance = 0
        if positions is not None:
            if token_id % 2 == D_TOKEN:
                balance = positions.liabilities.get(res_index, 0)
            else:
                balance = positions.collateral.get(res_index, 0) + positions.supply.get(res_index, 0)
        to_claim = checked_add(to_claim, update_emissions(env, token_id, supply, scalar, from_, balance, claim=True))

    if to_claim > 0:
        env.backstop(env.storage.get_backstop()).claim(env.contract, to_claim, to)
        logger.info("Claimed %d emissions for %s", to_claim, from_)
    return to_claim

"""Request types and the translation of a request batch into pool actions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from lendpool.protocol import auction
from lendpool.protocol.env import Env
from lendpool.protocol.errors import (
    BadRequestError,
    InvalidReserveMetadataError,
    NegativeAmountError,
)
from lendpool.protocol.fixed_point import checked_add
from lendpool.protocol.pool import Pool
from lendpool.protocol.positions import User
from lendpool.protocol.storage import AuctionType, RequestType
from lendpool.settings import DEFAULT_SETTINGS, PoolSettings

logger = logging.getLogger(__name__)


_RESERVE_REQUESTS = {
    RequestType.SUPPLY,
    RequestType.WITHDRAW,
    RequestType.SUPPLY_COLLATERAL,
    RequestType.WITHDRAW_COLLATERAL,
    RequestType.BORROW,
    RequestType.REPAY,
}
_REQUIRES_ENABLED = {RequestType.SUPPLY, RequestType.SUPPLY_COLLATERAL, RequestType.BORROW}
_FILL_TYPES = {
    RequestType.FILL_USER_LIQUIDATION_AUCTION: AuctionType.USER_LIQUIDATION,
    RequestType.FILL_BAD_DEBT_AUCTION: AuctionType.BAD_DEBT,
    RequestType.FILL_INTEREST_AUCTION: AuctionType.INTEREST,
}


@dataclass(frozen=True)
class Request:
    """One action in a batch.

    ``address`` is the reserve asset for reserve actions and the auction's
    user (or the backstop) for fills. For fills ``amount`` is the whole
    percentage to fill.
    """

    request_type: int
    address: str
    amount: int


@dataclass
class Actions:
    """Token movements owed once the batch's state is stored."""

    spender_transfer: dict[str, int] = field(default_factory=dict)  # asset -> spender pays pool
    pool_transfer: dict[str, int] = field(default_factory=dict)  # asset -> pool pays `to`
    backstop_draw: int = 0  # backstop tokens drawn to `to`
    backstop_donate: int = 0  # backstop tokens the spender donates

    def add_for_spender_transfer(self, asset: str, amount: int) -> None:
        self.spender_transfer[asset] = checked_add(self.spender_transfer.get(asset, 0), amount)

    def add_for_pool_transfer(self, asset: str, amount: int) -> None:
        self.pool_transfer[asset] = checked_add(self.pool_transfer.get(asset, 0), amount)


def parse_request_type(value: int) -> RequestType:
    try:
        return RequestType(value)
    except ValueError:
        raise BadRequestError(f"unknown request type {value}") from None


def validate_requests(env: Env, pool: Pool, requests: list[Request]) -> list[RequestType]:
    """Check every request before any is applied.

    Raises:
        BadRequestError: On an unknown request type.
        NegativeAmountError: On a negative amount.
        InvalidPoolStatusError: If the pool status forbids a request.
        ReserveNotFoundError: If a reserve request names an unknown asset.
        InvalidReserveMetadataError: If it targets a disabled reserve.
    """
    request_types = []
    for request in requests:
        request_type = parse_request_type(request.request_type)
        if request.amount < 0:
            raise NegativeAmountError(f"negative amount {request.amount} in {request_type.name}")
        pool.require_action_allowed(request_type)
        if request_type in _RESERVE_REQUESTS:
            index = env.storage.get_res_index(request.address)
            if request_type in _REQUIRES_ENABLED and not env.storage.get_res_config(index).enabled:
                raise InvalidReserveMetadataError(f"reserve {request.address} is disabled")
        request_types.append(request_type)
    return request_types


def build_actions_from_request(
    env: Env,
    pool: Pool,
    from_: str,
    requests: list[Request],
    settings: PoolSettings = DEFAULT_SETTINGS,
) -> tuple[Actions, User, bool]:
    """Validate *requests*, then apply them with ``apply_requests``."""
    request_types = validate_requests(env, pool, requests)
    return apply_requests(env, pool, from_, requests, request_types, settings)


def apply_requests(
    env: Env,
    pool: Pool,
    from_: str,
    requests: list[Request],
    request_types: list[RequestType],
    settings: PoolSettings = DEFAULT_SETTINGS,
) -> tuple[Actions, User, bool]:
    """Apply validated *requests* in order to the cached pool and *from_*'s position.

    Each request sees the effects of the ones before it.

    Returns:
        ``(actions, user, check_health)``: the transfers owed, the user's
        resulting state and whether a health check is required.
    """
    actions = Actions()
    from_state = User.load(env, from_)
    prev_positions_count = from_state.positions.effective_count()
    check_health = False
    for request, request_type in zip(requests, request_types):
        if request_type == RequestType.SUPPLY:
            reserve = pool.load_reserve(env, request.address, store=True)
            b_tokens_minted = reserve.to_b_token_down(request.amount)
            from_state.add_supply(reserve, b_tokens_minted)
            actions.add_for_spender_transfer(reserve.asset, request.amount)
            pool.cache_reserve(reserve)
            env.publish(("supply", request.address, from_), (request.amount, b_tokens_minted))

        elif request_type == RequestType.WITHDRAW:
            reserve = pool.load_reserve(env, request.address, store=True)
            cur_b_tokens = from_state.get_supply(reserve.index)
            to_burn = reserve.to_b_token_up(request.amount)
            tokens_out = request.amount
            if to_burn > cur_b_tokens:
                to_burn = cur_b_tokens
                tokens_out = reserve.to_asset_from_b_token(cur_b_tokens)
            from_state.remove_supply(reserve, to_burn)
            actions.add_for_pool_transfer(reserve.asset, tokens_out)
            pool.cache_reserve(reserve)
            env.publish(("withdraw", request.address, from_), (tokens_out, to_burn))

        elif request_type == RequestType.SUPPLY_COLLATERAL:
            reserve = pool.load_reserve(env, request.address, store=True)
            b_tokens_minted = reserve.to_b_token_down(request.amount)
            from_state.add_collateral(reserve, b_tokens_minted)
            actions.add_for_spender_transfer(reserve.asset, request.amount)
            pool.cache_reserve(reserve)
            env.publish(("supply_collateral", request.address, from_), (request.amount, b_tokens_minted))

        elif request_type == RequestType.WITHDRAW_COLLATERAL:
            reserve = pool.load_reserve(env, request.address, store=True)
            cur_b_tokens = from_state.get_collateral(reserve.index)
            to_burn = reserve.to_b_token_up(request.amount)
            tokens_out = request.amount
            if to_burn > cur_b_tokens:
                to_burn = cur_b_tokens
                tokens_out = reserve.to_asset_from_b_token(cur_b_tokens)
            from_state.remove_collateral(reserve, to_burn)
            actions.add_for_pool_transfer(reserve.asset, tokens_out)
            check_health = True
            pool.cache_reserve(reserve)
            env.publish(("withdraw_collateral", request.address, from_), (tokens_out, to_burn))

        elif request_type == RequestType.BORROW:
            reserve = pool.load_reserve(env, request.address, store=True)
            d_tokens_minted = reserve.to_d_token_up(request.amount)
            from_state.add_liabilities(reserve, d_tokens_minted)
            reserve.require_utilization_below_max()
            actions.add_for_pool_transfer(reserve.asset, request.amount)
            check_health = True
            pool.cache_reserve(reserve)
            env.publish(("borrow", request.address, from_), (request.amount, d_tokens_minted))

        elif request_type == RequestType.REPAY:
            reserve = pool.load_reserve(env, request.address, store=True)
            cur_d_tokens = from_state.get_liabilities(reserve.index)
            d_tokens_burnt = reserve.to_d_token_down(request.amount)
            actions.add_for_spender_transfer(reserve.asset, request.amount)
            if d_tokens_burnt > cur_d_tokens:
                refund = request.amount - reserve.to_asset_from_d_token(cur_d_tokens)
                if refund < 0:
                    raise NegativeAmountError(f"negative refund {refund}")
                from_state.remove_liabilities(reserve, cur_d_tokens)
                actions.add_for_pool_transfer(reserve.asset, refund)
                env.publish(("repay", request.address, from_), (request.amount - refund, cur_d_tokens))
            else:
                from_state.remove_liabilities(reserve, d_tokens_burnt)
                env.publish(("repay", request.address, from_), (request.amount, d_tokens_burnt))
            pool.cache_reserve(reserve)

        elif request_type in _FILL_TYPES:
            auction_type = _FILL_TYPES[request_type]
            filled = auction.fill(
                env, pool, auction_type, request.address, from_state, request.amount, settings
            )
            if auction_type == AuctionType.BAD_DEBT:
                actions.backstop_draw += sum(filled.lot.values())
                check_health = True
            elif auction_type == AuctionType.INTEREST:
                actions.backstop_donate += sum(filled.bid.values())
                for asset, amount in filled.lot.items():
                    actions.add_for_pool_transfer(asset, amount)
            else:
                check_health = True
            env.publish(("fill_auction", request.address, int(auction_type)), (from_, request.amount))

        elif request_type == RequestType.DELETE_LIQUIDATION_AUCTION:
            auction.delete_liquidation(env, from_)
            check_health = True
            env.publish(("delete_liquidation_auction", from_), None)

    pool.require_under_max(from_state.positions, prev_positions_count)
    return actions, from_state, check_health

"""Tests for pool status transitions and admin configuration."""

from dataclasses import replace

import pytest
from helpers import (
    ADMIN,
    ASSET_A,
    ASSET_B,
    BACKSTOP,
    ORACLE,
    POOL,
    RESERVE_CONFIG,
    START_TIME,
    UNIT,
    PoolHarness,
    build_pool,
)

from lendpool.data.constants import SCALAR_9, SECONDS_PER_WEEK
from lendpool.data.interfaces import PoolBackstopData
from lendpool.protocol.actions import Request, RequestType
from lendpool.protocol.contract import LendingPool
from lendpool.protocol.env import Env
from lendpool.protocol.errors import (
    AlreadyInitializedError,
    BadRequestError,
    InitNotUnlockedError,
    InvalidPoolInitArgsError,
    InvalidPoolStatusError,
    InvalidReserveMetadataError,
    NotAuthorizedError,
    ReserveNotFoundError,
)
from lendpool.protocol.status import PoolStatus, calc_pool_backstop_threshold, next_status

FULL = PoolBackstopData(tokens=50_000 * UNIT, blnd=200_000 * UNIT, usdc=200_000 * UNIT, q4w_pct=0)


def with_q4w(q4w_pct: int, data: PoolBackstopData = FULL) -> PoolBackstopData:
    return replace(data, q4w_pct=q4w_pct)


class TestThreshold:
    def test_exactly_met(self) -> None:
        assert calc_pool_backstop_threshold(FULL) == 10_000_000

    def test_half_blnd(self) -> None:
        data = replace(FULL, blnd=100_000 * UNIT)
        # (1/2)^4 of the product
        assert calc_pool_backstop_threshold(data) == 625_000

    def test_empty(self) -> None:
        assert calc_pool_backstop_threshold(replace(FULL, blnd=0, usdc=0)) == 0


class TestNextStatus:
    @pytest.mark.parametrize(
        "q4w_pct,expected",
        [(0, PoolStatus.ACTIVE), (3_000_000, PoolStatus.ON_ICE), (6_000_000, PoolStatus.FROZEN)],
    )
    def test_from_active(self, q4w_pct: int, expected: PoolStatus) -> None:
        assert next_status(PoolStatus.ACTIVE, with_q4w(q4w_pct)) == expected

    def test_on_ice_recovers(self) -> None:
        assert next_status(PoolStatus.ON_ICE, FULL) == PoolStatus.ACTIVE

    def test_unmet_threshold_goes_on_ice(self) -> None:
        data = replace(FULL, blnd=100_000 * UNIT)
        assert next_status(PoolStatus.ACTIVE, data) == PoolStatus.ON_ICE

    @pytest.mark.parametrize(
        "q4w_pct,expected",
        [
            (4_000_000, PoolStatus.ADMIN_ACTIVE),
            (5_000_000, PoolStatus.ON_ICE),
            (7_500_000, PoolStatus.FROZEN),
        ],
    )
    def test_from_admin_active(self, q4w_pct: int, expected: PoolStatus) -> None:
        assert next_status(PoolStatus.ADMIN_ACTIVE, with_q4w(q4w_pct)) == expected

    def test_admin_on_ice_only_escalates(self) -> None:
        assert next_status(PoolStatus.ADMIN_ON_ICE, FULL) == PoolStatus.ADMIN_ON_ICE
        assert next_status(PoolStatus.ADMIN_ON_ICE, with_q4w(7_500_000)) == PoolStatus.FROZEN

    @pytest.mark.parametrize("status", [PoolStatus.ADMIN_FROZEN, PoolStatus.SETUP])
    def test_admin_only_statuses(self, status: PoolStatus) -> None:
        with pytest.raises(InvalidPoolStatusError):
            next_status(status, FULL)


class TestPoolStatusEntryPoints:
    def test_update_status(self, harness: PoolHarness) -> None:
        assert harness.pool.update_status() == PoolStatus.ADMIN_ACTIVE
        harness.backstop.set_q4w_pct(POOL, 8_000_000)
        assert harness.pool.update_status() == PoolStatus.FROZEN
        assert harness.pool.get_config().status == PoolStatus.FROZEN
        assert harness.env.events[-1].topics == ("set_status",)

    def test_update_status_in_setup(self) -> None:
        harness = build_pool(status=PoolStatus.SETUP)
        with pytest.raises(InvalidPoolStatusError):
            harness.pool.update_status()

    def test_set_active_needs_backstop(self, harness: PoolHarness) -> None:
        harness.backstop.set_q4w_pct(POOL, 5_000_000)
        with pytest.raises(InvalidPoolStatusError):
            harness.pool.set_status(PoolStatus.ADMIN_ACTIVE)

    def test_set_on_ice_needs_backstop(self, harness: PoolHarness) -> None:
        harness.backstop.set_q4w_pct(POOL, 7_500_000)
        with pytest.raises(InvalidPoolStatusError):
            harness.pool.set_status(PoolStatus.ADMIN_ON_ICE)

    def test_freeze_always_allowed(self, harness: PoolHarness) -> None:
        harness.backstop.set_q4w_pct(POOL, 10_000_000)
        harness.pool.set_status(PoolStatus.ADMIN_FROZEN)
        assert harness.pool.get_config().status == PoolStatus.ADMIN_FROZEN

    def test_non_admin_status(self, harness: PoolHarness) -> None:
        with pytest.raises(BadRequestError):
            harness.pool.set_status(PoolStatus.ACTIVE)


class TestInitialize:
    def test_starts_in_setup(self) -> None:
        harness = build_pool(status=PoolStatus.SETUP)
        config = harness.pool.get_config()
        assert config.status == PoolStatus.SETUP
        assert config.oracle == ORACLE
        assert config.max_positions == 4
        assert harness.env.storage.get_backstop() == BACKSTOP

    def test_initialize_once(self, harness: PoolHarness) -> None:
        with pytest.raises(AlreadyInitializedError):
            harness.pool.initialize(ADMIN, "again", ORACLE, 0, 4, BACKSTOP)

    @pytest.mark.parametrize("bstop_rate,max_positions", [(10_000_000, 4), (-1, 4), (0, 1)])
    def test_invalid_args(self, bstop_rate: int, max_positions: int) -> None:
        pool = LendingPool(Env(POOL))
        with pytest.raises(InvalidPoolInitArgsError):
            pool.initialize(ADMIN, "bad", ORACLE, bstop_rate, max_positions, BACKSTOP)
        assert not pool.env.storage.is_init()


class TestReserveAdmin:
    def test_indices_assigned_in_order(self, harness: PoolHarness) -> None:
        assert harness.pool.get_reserve(ASSET_A).index == 0
        assert harness.pool.get_reserve(ASSET_B).index == 1

    def test_duplicate_reserve(self, harness: PoolHarness) -> None:
        with pytest.raises(BadRequestError):
            harness.pool.initialize_reserve(ASSET_A, RESERVE_CONFIG)

    def test_update_unknown_reserve(self, harness: PoolHarness) -> None:
        with pytest.raises(ReserveNotFoundError):
            harness.pool.update_reserve("token_z", RESERVE_CONFIG)
        assert harness.pool.get_queued_reserve("token_z") is None

    def test_initialize_applies_in_setup(self) -> None:
        harness = build_pool(status=PoolStatus.SETUP)
        assert harness.pool.initialize_reserve("token_c", RESERVE_CONFIG) == 2
        assert harness.pool.get_queued_reserve("token_c") is None

    def test_initialize_outside_setup_waits(self, harness: PoolHarness) -> None:
        assert harness.pool.initialize_reserve("token_c", RESERVE_CONFIG) is None
        assert not harness.env.storage.has_res("token_c")
        harness.advance(seconds=SECONDS_PER_WEEK)
        assert harness.pool.set_reserve("token_c") == 2

    def test_update_outside_setup_waits(self, harness: PoolHarness) -> None:
        assert harness.pool.update_reserve(ASSET_B, replace(RESERVE_CONFIG, c_factor=5_000_000)) is None
        assert harness.env.storage.get_res_config(1).c_factor == RESERVE_CONFIG.c_factor
        harness.advance(seconds=SECONDS_PER_WEEK)
        harness.pool.set_reserve(ASSET_B)
        assert harness.env.storage.get_res_config(1).c_factor == 5_000_000

    def test_queue_twice(self, harness: PoolHarness) -> None:
        harness.pool.queue_set_reserve("token_c", RESERVE_CONFIG)
        with pytest.raises(BadRequestError):
            harness.pool.queue_set_reserve("token_c", RESERVE_CONFIG)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"util": 9_600_000},
            {"max_util": 4_000_000},
            {"c_factor": 10_000_001},
            {"l_factor": 0},
            {"decimals": 19},
            {"r_one": 6_000_000},
            {"reactivity": 100_001},
        ],
    )
    def test_invalid_metadata(self, harness: PoolHarness, overrides: dict) -> None:
        with pytest.raises(InvalidReserveMetadataError):
            harness.pool.queue_set_reserve("token_c", replace(RESERVE_CONFIG, **overrides))
        assert harness.pool.get_queued_reserve("token_c") is None

    def test_timelock(self, harness: PoolHarness) -> None:
        queued = harness.pool.queue_set_reserve("token_c", RESERVE_CONFIG)
        assert queued.unlock_time == START_TIME + SECONDS_PER_WEEK
        with pytest.raises(InitNotUnlockedError):
            harness.pool.set_reserve("token_c")
        harness.advance(seconds=SECONDS_PER_WEEK - 1)
        with pytest.raises(InitNotUnlockedError):
            harness.pool.set_reserve("token_c")
        harness.advance(seconds=1)
        assert harness.pool.set_reserve("token_c") == 2
        assert harness.pool.get_queued_reserve("token_c") is None
        assert harness.env.storage.get_res_list() == [ASSET_A, ASSET_B, "token_c"]

    def test_setup_has_no_timelock(self) -> None:
        harness = build_pool(status=PoolStatus.SETUP)
        queued = harness.pool.queue_set_reserve("token_c", RESERVE_CONFIG)
        assert queued.unlock_time == START_TIME
        assert harness.pool.set_reserve("token_c") == 2

    def test_set_without_queue(self, harness: PoolHarness) -> None:
        with pytest.raises(BadRequestError):
            harness.pool.set_reserve("token_c")

    def test_cancel(self, harness: PoolHarness) -> None:
        harness.pool.queue_set_reserve("token_c", RESERVE_CONFIG)
        harness.pool.cancel_set_reserve("token_c")
        assert harness.pool.get_queued_reserve("token_c") is None
        harness.advance(seconds=SECONDS_PER_WEEK)
        with pytest.raises(BadRequestError):
            harness.pool.set_reserve("token_c")

    def test_cancel_without_queue(self, harness: PoolHarness) -> None:
        with pytest.raises(BadRequestError):
            harness.pool.cancel_set_reserve("token_c")

    def test_queue_and_cancel_need_admin(self) -> None:
        harness = build_pool(mock_auths=False)
        with pytest.raises(NotAuthorizedError):
            harness.pool.queue_set_reserve("token_c", RESERVE_CONFIG)
        with harness.env.authorize(ADMIN):
            harness.pool.queue_set_reserve("token_c", RESERVE_CONFIG)
        with pytest.raises(NotAuthorizedError):
            harness.pool.cancel_set_reserve("token_c")

    def test_set_needs_no_auth(self) -> None:
        harness = build_pool(mock_auths=False)
        with harness.env.authorize(ADMIN):
            harness.pool.queue_set_reserve("token_c", RESERVE_CONFIG)
        harness.advance(seconds=SECONDS_PER_WEEK)
        assert harness.pool.set_reserve("token_c") == 2

    def test_update_keeps_index(self, harness: PoolHarness) -> None:
        assert harness.set_reserve(ASSET_B, replace(RESERVE_CONFIG, c_factor=5_000_000)) == 1
        config = harness.env.storage.get_res_config(1)
        assert config.index == 1
        assert config.c_factor == 5_000_000

    def test_update_cannot_change_decimals(self, harness: PoolHarness) -> None:
        harness.pool.queue_set_reserve(ASSET_B, replace(RESERVE_CONFIG, decimals=9))
        harness.advance(seconds=SECONDS_PER_WEEK)
        with pytest.raises(InvalidReserveMetadataError):
            harness.pool.set_reserve(ASSET_B)
        # the failed call leaves the change queued
        assert harness.pool.get_queued_reserve(ASSET_B) is not None
        assert harness.env.storage.get_res_config(1).decimals == 7

    def test_rate_change_resets_modifier(self, funded: PoolHarness) -> None:
        funded.pool.submit(
            "alice",
            [
                Request(RequestType.SUPPLY_COLLATERAL, ASSET_A, 1_000 * UNIT),
                Request(RequestType.BORROW, ASSET_B, 100 * UNIT),
            ],
        )
        funded.advance(seconds=7 * 86_400)
        # accrual under the old configuration happens first
        funded.set_reserve(ASSET_B, RESERVE_CONFIG)
        assert funded.env.storage.get_res_data(1).ir_mod < SCALAR_9

        funded.set_reserve(ASSET_B, replace(RESERVE_CONFIG, r_one=400_000))
        data = funded.env.storage.get_res_data(1)
        assert data.ir_mod == SCALAR_9
        assert data.last_time == funded.env.ledger.timestamp


class TestAdmin:
    def test_set_admin_needs_both(self) -> None:
        harness = build_pool(mock_auths=False)
        with harness.env.authorize(ADMIN):
            with pytest.raises(NotAuthorizedError):
                harness.pool.set_admin("new_admin")
        with harness.env.authorize(ADMIN, "new_admin"):
            harness.pool.set_admin("new_admin")
        assert harness.env.storage.get_admin() == "new_admin"
        assert harness.env.events[-1].topics == ("set_admin", ADMIN)

    def test_update_pool(self, harness: PoolHarness) -> None:
        harness.pool.update_pool(1_000_000, 6)
        config = harness.pool.get_config()
        assert config.bstop_rate == 1_000_000
        assert config.max_positions == 6

    def test_update_pool_rejects_bad_values(self, harness: PoolHarness) -> None:
        with pytest.raises(BadRequestError):
            harness.pool.update_pool(10_000_000, 6)

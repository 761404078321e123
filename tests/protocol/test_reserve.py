"""Tests for reserve accrual and share conversions."""

from dataclasses import replace

import pytest

from lendpool.data.constants import SCALAR_9, SECONDS_PER_YEAR
from lendpool.protocol.env import Env
from lendpool.protocol.errors import InvalidUtilRateError, ReserveNotFoundError
from lendpool.protocol.reserve import Reserve
from lendpool.protocol.storage import PoolConfig, ReserveConfig, ReserveData

CONFIG = ReserveConfig(
    decimals=7,
    c_factor=7_500_000,
    l_factor=7_500_000,
    util=5_000_000,
    max_util=9_500_000,
    r_one=500_000,
    r_two=5_000_000,
    r_three=15_000_000,
    reactivity=20,
)
BSTOP_RATE = 2_000_000


def make_reserve(**overrides: int) -> Reserve:
    fields = dict(
        b_rate=SCALAR_9,
        d_rate=SCALAR_9,
        ir_mod=SCALAR_9,
        b_supply=1_000 * 10**7,
        d_supply=500 * 10**7,
        backstop_credit=0,
        last_time=0,
    )
    fields.update(overrides)
    return Reserve(asset="token_a", config=CONFIG, **fields)


class TestAccrual:
    def test_one_year_at_target(self) -> None:
        reserve = make_reserve()
        reserve.accrue(SECONDS_PER_YEAR, BSTOP_RATE)
        # 5% on 500 borrowed: 25 accrued, 20% of it to the backstop
        assert reserve.d_rate == 1_050_000_000
        assert reserve.total_liabilities() == 525 * 10**7
        assert reserve.backstop_credit == 5 * 10**7
        assert reserve.b_rate == 1_020_000_000
        assert reserve.last_time == SECONDS_PER_YEAR

    def test_interest_conserved(self) -> None:
        reserve = make_reserve(d_supply=700 * 10**7)
        pre_liabilities = reserve.total_liabilities()
        pre_supply = reserve.total_supply()
        reserve.accrue(86_400 * 30, BSTOP_RATE)
        accrued = reserve.total_liabilities() - pre_liabilities
        distributed = reserve.total_supply() - pre_supply + reserve.backstop_credit
        # suppliers round down, never receive more than borrowers pay
        assert distributed <= accrued
        assert accrued - distributed <= reserve.b_supply // 10**7 + 1

    def test_accrue_is_idempotent(self) -> None:
        reserve = make_reserve()
        reserve.accrue(86_400, BSTOP_RATE)
        snapshot = reserve.data()
        reserve.accrue(86_400, BSTOP_RATE)
        assert reserve.data() == snapshot

    def test_time_never_runs_backwards(self) -> None:
        reserve = make_reserve(last_time=1_000)
        reserve.accrue(500, BSTOP_RATE)
        assert reserve.last_time == 1_000
        assert reserve.d_rate == SCALAR_9

    def test_empty_reserve_only_moves_clock(self) -> None:
        reserve = make_reserve(b_supply=0, d_supply=0)
        reserve.accrue(SECONDS_PER_YEAR, BSTOP_RATE)
        assert reserve.last_time == SECONDS_PER_YEAR
        assert reserve.d_rate == SCALAR_9
        assert reserve.b_rate == SCALAR_9
        assert reserve.ir_mod == SCALAR_9

    @pytest.mark.parametrize("bstop_rate", [0, BSTOP_RATE])
    @pytest.mark.parametrize("borrowed", [100, 500, 900, 950, 990])
    def test_rates_monotonic(self, bstop_rate: int, borrowed: int) -> None:
        reserve = make_reserve(d_supply=borrowed * 10**7)
        prev_b, prev_d = reserve.b_rate, reserve.d_rate
        for now in range(3_600, 30 * 86_400, 86_400):
            reserve.accrue(now, bstop_rate)
            assert reserve.b_rate >= prev_b
            assert reserve.d_rate >= prev_d
            # suppliers earn a smaller relative return than borrowers pay
            assert (reserve.b_rate - prev_b) * prev_d <= (reserve.d_rate - prev_d) * prev_b
            prev_b, prev_d = reserve.b_rate, reserve.d_rate

    def test_no_backstop_take(self) -> None:
        reserve = make_reserve()
        reserve.accrue(SECONDS_PER_YEAR, 0)
        assert reserve.backstop_credit == 0
        assert reserve.b_rate == 1_025_000_000


class TestConversions:
    @pytest.fixture
    def reserve(self) -> Reserve:
        return make_reserve(b_rate=1_100_000_001, d_rate=1_333_333_333)

    def test_liability_rounds_up(self, reserve: Reserve) -> None:
        assert reserve.to_asset_from_d_token(3) == 4

    def test_supply_rounds_down(self, reserve: Reserve) -> None:
        assert reserve.to_asset_from_b_token(3) == 3

    def test_round_trips_favour_the_pool(self, reserve: Reserve) -> None:
        for amount in (1, 7, 999, 123_456_789, 10**15):
            assert reserve.to_asset_from_b_token(reserve.to_b_token_down(amount)) <= amount
            assert reserve.to_asset_from_d_token(reserve.to_d_token_up(amount)) >= amount
            assert reserve.to_b_token_up(amount) >= reserve.to_b_token_down(amount)
            assert reserve.to_d_token_up(amount) >= reserve.to_d_token_down(amount)

    def test_effective_values(self) -> None:
        reserve = make_reserve()
        assert reserve.to_effective_asset_from_b_token(1_000 * 10**7) == 750 * 10**7
        # 500 / 0.75 rounded up
        assert reserve.to_effective_asset_from_d_token(500 * 10**7) == 6_666_666_667


class TestUtilization:
    def test_utilization(self) -> None:
        assert make_reserve().utilization() == 5_000_000

    def test_empty_utilization(self) -> None:
        assert make_reserve(b_supply=0, d_supply=0).utilization() == 0

    def test_above_max(self) -> None:
        reserve = make_reserve(d_supply=960 * 10**7)
        with pytest.raises(InvalidUtilRateError):
            reserve.require_utilization_below_max()

    def test_at_max(self) -> None:
        make_reserve(d_supply=950 * 10**7).require_utilization_below_max()


class TestLoadStore:
    @pytest.fixture
    def env(self) -> Env:
        env = Env("pool", timestamp=SECONDS_PER_YEAR)
        env.storage.push_res_list("token_a")
        env.storage.set_res_config(0, replace(CONFIG, index=0))
        env.storage.set_res_data(
            0,
            ReserveData(
                b_rate=SCALAR_9,
                d_rate=SCALAR_9,
                ir_mod=SCALAR_9,
                b_supply=1_000 * 10**7,
                d_supply=500 * 10**7,
                backstop_credit=0,
                last_time=0,
            ),
        )
        return env

    def test_load_accrues(self, env: Env) -> None:
        pool_config = PoolConfig(oracle="oracle", bstop_rate=BSTOP_RATE, status=0, max_positions=4)
        reserve = Reserve.load(env, pool_config, "token_a")
        assert reserve.d_rate == 1_050_000_000
        # loading alone does not persist
        assert env.storage.get_res_data(0).d_rate == SCALAR_9
        reserve.store(env)
        assert env.storage.get_res_data(0) == reserve.data()

    def test_load_unknown_asset(self, env: Env) -> None:
        pool_config = PoolConfig(oracle="oracle", bstop_rate=0, status=0, max_positions=4)
        with pytest.raises(ReserveNotFoundError):
            Reserve.load(env, pool_config, "token_z")

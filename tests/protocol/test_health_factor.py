"""Tests for positions, position valuation and the health factor policy."""

import pytest
from helpers import ASSET_A, ASSET_B, UNIT, PoolHarness

from lendpool.protocol.errors import ArithmeticOverflowError, BalanceError, InvalidHealthFactorError, StalePriceError
from lendpool.protocol.health_factor import PositionData
from lendpool.protocol.pool import Pool
from lendpool.protocol.positions import Positions, User

MARGIN = 500_000  # 5%


def position_data(collateral_base: int, liability_base: int) -> PositionData:
    return PositionData(
        collateral_base=collateral_base,
        collateral_raw=collateral_base,
        liability_base=liability_base,
        liability_raw=liability_base,
        scalar=10**7,
    )


class TestHealthPolicy:
    def test_exact_boundary_is_rejected(self) -> None:
        # collateral * 0.95 == liabilities
        data = position_data(10_000_000, 9_500_000)
        assert not data.is_healthy(MARGIN)
        with pytest.raises(InvalidHealthFactorError):
            data.require_healthy(MARGIN)

    def test_just_inside_boundary_passes(self) -> None:
        data = position_data(10_000_000, 9_499_999)
        assert data.is_healthy(MARGIN)
        data.require_healthy(MARGIN)

    def test_no_liabilities_is_healthy(self) -> None:
        assert position_data(0, 0).is_healthy(MARGIN)

    def test_health_factor_value(self) -> None:
        assert position_data(15_000_000, 10_000_000).as_health_factor() == 15_000_000

    def test_health_factor_undefined_without_debt(self) -> None:
        with pytest.raises(InvalidHealthFactorError):
            position_data(10_000_000, 0).as_health_factor()

    def test_liquidatable_below_one(self) -> None:
        assert position_data(9_999_999, 10_000_000).is_liquidatable()
        assert not position_data(10_000_000, 10_000_000).is_liquidatable()

    def test_margin_product_overflow(self) -> None:
        with pytest.raises(ArithmeticOverflowError):
            position_data(2**126, 1).is_healthy(MARGIN)


class TestPositions:
    def test_zero_balances_not_stored(self, harness: PoolHarness) -> None:
        pool = Pool.load(harness.env)
        reserve = pool.load_reserve(harness.env, ASSET_A)
        user = User("alice")
        user.add_collateral(reserve, 0)
        assert user.positions.is_empty()
        user.add_collateral(reserve, 10)
        user.remove_collateral(reserve, 10)
        assert reserve.index not in user.positions.collateral

    def test_remove_more_than_held(self, harness: PoolHarness) -> None:
        pool = Pool.load(harness.env)
        reserve = pool.load_reserve(harness.env, ASSET_A)
        user = User("alice")
        user.add_supply(reserve, 5)
        with pytest.raises(BalanceError):
            user.remove_supply(reserve, 6)

    def test_reserve_supply_tracks_users(self, harness: PoolHarness) -> None:
        pool = Pool.load(harness.env)
        reserve = pool.load_reserve(harness.env, ASSET_B)
        alice, bob = User("alice"), User("bob")
        alice.add_collateral(reserve, 300)
        bob.add_supply(reserve, 200)
        alice.add_liabilities(reserve, 100)
        assert reserve.b_supply == 500
        assert reserve.d_supply == 100
        assert alice.get_total_supply(reserve.index) == 300

    def test_effective_count(self) -> None:
        positions = Positions(liabilities={1: 5}, collateral={0: 5, 1: 3}, supply={2: 9})
        assert positions.effective_count() == 3


class TestCalculateFromPositions:
    def test_scenario_values(self, harness: PoolHarness) -> None:
        # 1000 A collateral and 500 B borrowed, both priced at 1.0
        positions = Positions(liabilities={1: 500 * UNIT}, collateral={0: 1_000 * UNIT})
        data = PositionData.calculate_from_positions(harness.env, Pool.load(harness.env), positions)
        assert data.collateral_raw == 1_000 * UNIT
        assert data.collateral_base == 750 * UNIT
        assert data.liability_raw == 500 * UNIT
        assert data.liability_base == 6_666_666_667
        assert data.is_healthy(MARGIN)

    def test_larger_borrow_is_unhealthy(self, harness: PoolHarness) -> None:
        positions = Positions(liabilities={1: 600 * UNIT}, collateral={0: 1_000 * UNIT})
        data = PositionData.calculate_from_positions(harness.env, Pool.load(harness.env), positions)
        assert data.liability_base == 800 * UNIT
        assert not data.is_healthy(MARGIN)

    def test_price_applied(self, harness: PoolHarness) -> None:
        harness.set_price(ASSET_A, 20_000_000)
        positions = Positions(collateral={0: 100 * UNIT})
        data = PositionData.calculate_from_positions(harness.env, Pool.load(harness.env), positions)
        assert data.collateral_raw == 200 * UNIT

    def test_stale_price(self, harness: PoolHarness) -> None:
        harness.env.advance(seconds=harness.pool.settings.max_price_age + 1)
        positions = Positions(collateral={0: 100 * UNIT})
        with pytest.raises(StalePriceError):
            PositionData.calculate_from_positions(harness.env, Pool.load(harness.env), positions)

    def test_price_at_staleness_limit_is_accepted(self, harness: PoolHarness) -> None:
        harness.env.advance(seconds=harness.pool.settings.max_price_age)
        positions = Positions(collateral={0: 100 * UNIT})
        PositionData.calculate_from_positions(harness.env, Pool.load(harness.env), positions)

    def test_missing_price(self, harness: PoolHarness) -> None:
        del harness.oracle._prices[ASSET_B]
        positions = Positions(liabilities={1: UNIT}, collateral={0: 100 * UNIT})
        with pytest.raises(StalePriceError):
            PositionData.calculate_from_positions(harness.env, Pool.load(harness.env), positions)

    def test_total_collateral_overflow(self, harness: PoolHarness) -> None:
        # each reserve's value fits in an i128, their sum does not
        positions = Positions(collateral={0: 10**38, 1: 10**38})
        with pytest.raises(ArithmeticOverflowError):
            PositionData.calculate_from_positions(harness.env, Pool.load(harness.env), positions)

    def test_total_liability_overflow(self, harness: PoolHarness) -> None:
        positions = Positions(liabilities={0: 10**38, 1: 10**38})
        with pytest.raises(ArithmeticOverflowError):
            PositionData.calculate_from_positions(harness.env, Pool.load(harness.env), positions)

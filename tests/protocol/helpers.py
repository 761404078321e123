"""Pool harness shared by the protocol tests: in-memory tokens, backstop and oracle."""

from __future__ import annotations

from dataclasses import dataclass

from lendpool.data.memory import InMemoryBackstop, InMemoryToken
from lendpool.data.static_params import StaticPriceOracle
from lendpool.protocol.contract import LendingPool
from lendpool.protocol.env import Env
from lendpool.protocol.status import PoolStatus
from lendpool.protocol.storage import ReserveConfig
from lendpool.settings import DEFAULT_SETTINGS, PoolSettings

POOL = "pool"
ADMIN = "admin"
ORACLE = "oracle"
BACKSTOP = "backstop"
ASSET_A = "token_a"
ASSET_B = "token_b"
LP_TOKEN = "blnd_usdc_lp"
BLND = "blnd"

START_TIME = 1_700_000_000
START_BLOCK = 100

UNIT = 10**7  # one whole token at 7 decimals

RESERVE_CONFIG = ReserveConfig(
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


@dataclass
class PoolHarness:
    env: Env
    pool: LendingPool
    oracle: StaticPriceOracle
    token_a: InMemoryToken
    token_b: InMemoryToken
    lp_token: InMemoryToken
    backstop: InMemoryBackstop
    blnd: InMemoryToken

    def token(self, asset: str) -> InMemoryToken:
        return {ASSET_A: self.token_a, ASSET_B: self.token_b, LP_TOKEN: self.lp_token}[asset]

    def fund(self, user: str, asset: str, amount: int) -> None:
        self.token(asset).mint(user, amount)

    def set_price(self, asset: str, price: int) -> None:
        self.oracle.set_price(asset, price, self.env.ledger.timestamp)

    def refresh_prices(self) -> None:
        """Re-stamp every price at the current ledger time."""
        for asset in (ASSET_A, ASSET_B, LP_TOKEN):
            self.set_price(asset, self.oracle.lastprice(asset).price)

    def advance(self, seconds: int = 0, blocks: int = 0) -> None:
        self.env.advance(seconds=seconds, blocks=blocks)
        self.refresh_prices()

    def set_reserve(self, asset: str, config: ReserveConfig) -> int:
        """Queue *config* for *asset* and apply it once the timelock has passed."""
        queued = self.pool.queue_set_reserve(asset, config)
        if queued.unlock_time > self.env.ledger.timestamp:
            self.advance(seconds=queued.unlock_time - self.env.ledger.timestamp)
        return self.pool.set_reserve(asset)


def build_pool(
    settings: PoolSettings = DEFAULT_SETTINGS,
    status: int = PoolStatus.ADMIN_ACTIVE,
    mock_auths: bool = True,
) -> PoolHarness:
    env = Env(POOL, timestamp=START_TIME, sequence=START_BLOCK)
    oracle = StaticPriceOracle(
        prices={ASSET_A: 10_000_000, ASSET_B: 10_000_000, LP_TOKEN: 5_000_000},
        timestamp=START_TIME,
    )
    token_a = InMemoryToken(ASSET_A)
    token_b = InMemoryToken(ASSET_B)
    lp_token = InMemoryToken(LP_TOKEN)
    blnd = InMemoryToken(BLND)
    backstop = InMemoryBackstop(BACKSTOP, lp_token, blnd)
    for address, client in (
        (ORACLE, oracle),
        (ASSET_A, token_a),
        (ASSET_B, token_b),
        (LP_TOKEN, lp_token),
        (BACKSTOP, backstop),
        (BLND, blnd),
    ):
        env.register(address, client)

    # 200k BLND and 200k USDC underlying: exactly the backstop threshold
    lp_token.mint("depositor", 50_000 * UNIT)
    backstop.deposit("depositor", POOL, 50_000 * UNIT, blnd=200_000 * UNIT, usdc=200_000 * UNIT)

    pool = LendingPool(env, settings)
    with env.authorize(ADMIN):
        pool.initialize(ADMIN, "test pool", ORACLE, 2_000_000, 4, BACKSTOP)
        pool.initialize_reserve(ASSET_A, RESERVE_CONFIG)
        pool.initialize_reserve(ASSET_B, RESERVE_CONFIG)
        if status != PoolStatus.SETUP:
            pool.set_status(status)
    if mock_auths:
        env.mock_all_auths()
    return PoolHarness(env, pool, oracle, token_a, token_b, lp_token, backstop, blnd)


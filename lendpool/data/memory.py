"""In-process token and backstop clients.

Both keep their state in plain dicts and expose ``snapshot``/``restore`` so
``Env.invocation()`` can roll them back together with pool storage.
"""

from __future__ import annotations

import copy
import logging
from typing import Callable

from lendpool.data.interfaces import BackstopClient, PoolBackstopData, TokenClient
from lendpool.protocol.errors import BalanceError, NegativeAmountError

logger = logging.getLogger(__name__)


class InMemoryToken(TokenClient):
    """Fungible token with dict balances.

    Args:
        address: The token's own address.
        on_transfer: Optional hook called as ``on_transfer(from_, to, amount)``
            after every transfer. Lets tests model tokens that call back
            into the pool.
    """

    def __init__(self, address: str, on_transfer: Callable[[str, str, int], None] | None = None) -> None:
        self.address = address
        self.balances: dict[str, int] = {}
        self.on_transfer = on_transfer

    def mint(self, to: str, amount: int) -> None:
        if amount < 0:
            raise NegativeAmountError(f"cannot mint {amount}")
        self.balances[to] = self.balances.get(to, 0) + amount

    def balance(self, id_: str) -> int:
        return self.balances.get(id_, 0)

    def transfer(self, from_: str, to: str, amount: int) -> None:
        if amount < 0:
            raise NegativeAmountError(f"cannot transfer {amount}")
        held = self.balances.get(from_, 0)
        if held < amount:
            raise BalanceError(f"{from_} holds {held} {self.address}, needs {amount}")
        self.balances[from_] = held - amount
        self.balances[to] = self.balances.get(to, 0) + amount
        if self.on_transfer is not None:
            self.on_transfer(from_, to, amount)

    def snapshot(self) -> dict[str, int]:
        return dict(self.balances)

    def restore(self, snapshot: dict[str, int]) -> None:
        self.balances = dict(snapshot)


class InMemoryBackstop(BackstopClient):
    """Backstop holding per-pool deposits of a single LP token.

    Deposits track the BLND and USDC underlying them; draws and donations
    scale both in proportion to the change in tokens. Emissions are
    allotted with ``add_emissions``, released to the pool by
    ``gulp_pool_emissions`` and paid out of the backstop's emission token
    balance by ``claim``.

    Args:
        address: The backstop's own address; holds the deposited tokens.
        token: The backstop LP token client.
        emission_token: Token emissions are paid in. Required for emissions.
    """

    def __init__(self, address: str, token: InMemoryToken, emission_token: InMemoryToken | None = None) -> None:
        self.address = address
        self.token = token
        self.emission_token = emission_token
        self.pools: dict[str, PoolBackstopData] = {}
        self.pending: dict[str, int] = {}
        self.emissions: dict[str, int] = {}

    def deposit(self, from_: str, pool: str, amount: int, blnd: int, usdc: int) -> None:
        """Deposit *amount* LP tokens backed by *blnd* and *usdc* for *pool*."""
        self.token.transfer(from_, self.address, amount)
        data = self.pool_data(pool)
        self.pools[pool] = PoolBackstopData(
            tokens=data.tokens + amount,
            blnd=data.blnd + blnd,
            usdc=data.usdc + usdc,
            q4w_pct=data.q4w_pct,
        )

    def set_q4w_pct(self, pool: str, q4w_pct: int) -> None:
        data = self.pool_data(pool)
        self.pools[pool] = PoolBackstopData(data.tokens, data.blnd, data.usdc, q4w_pct)

    def backstop_token(self) -> str:
        return self.token.address

    def pool_data(self, pool: str) -> PoolBackstopData:
        return self.pools.get(pool, PoolBackstopData(tokens=0, blnd=0, usdc=0, q4w_pct=0))

    def draw(self, pool: str, amount: int, to: str) -> None:
        data = self.pool_data(pool)
        if amount < 0:
            raise NegativeAmountError(f"cannot draw {amount}")
        if amount > data.tokens:
            raise BalanceError(f"pool {pool} has {data.tokens} backstop tokens, draw of {amount}")
        self.pools[pool] = self._rescale(data, data.tokens - amount)
        self.token.transfer(self.address, to, amount)
        logger.info("Drew %d backstop tokens from %s to %s", amount, pool, to)

    def donate(self, from_: str, pool: str, amount: int) -> None:
        if amount < 0:
            raise NegativeAmountError(f"cannot donate {amount}")
        self.token.transfer(from_, self.address, amount)
        data = self.pool_data(pool)
        self.pools[pool] = self._rescale(data, data.tokens + amount)

    def add_emissions(self, pool: str, amount: int) -> None:
        """Allot *amount* newly minted emission tokens to *pool*."""
        if self.emission_token is None:
            raise BalanceError("backstop has no emission token")
        if amount < 0:
            raise NegativeAmountError(f"cannot allot {amount}")
        self.emission_token.mint(self.address, amount)
        self.pending[pool] = self.pending.get(pool, 0) + amount

    def gulp_pool_emissions(self, pool: str) -> int:
        amount = self.pending.pop(pool, 0)
        self.emissions[pool] = self.emissions.get(pool, 0) + amount
        return amount

    def claim(self, pool: str, amount: int, to: str) -> None:
        if amount < 0:
            raise NegativeAmountError(f"cannot claim {amount}")
        released = self.emissions.get(pool, 0)
        if amount > released or self.emission_token is None:
            raise BalanceError(f"pool {pool} has {released} emissions released, claim of {amount}")
        self.emissions[pool] = released - amount
        self.emission_token.transfer(self.address, to, amount)
        logger.info("Paid %d emissions of %s to %s", amount, pool, to)

    @staticmethod
    def _rescale(data: PoolBackstopData, tokens: int) -> PoolBackstopData:
        if data.tokens == 0:
            return PoolBackstopData(tokens, data.blnd, data.usdc, data.q4w_pct)
        return PoolBackstopData(
            tokens=tokens,
            blnd=data.blnd * tokens // data.tokens,
            usdc=data.usdc * tokens // data.tokens,
            q4w_pct=data.q4w_pct,
        )

    def snapshot(self) -> tuple[dict[str, PoolBackstopData], dict[str, int], dict[str, int]]:
        return copy.copy(self.pools), dict(self.pending), dict(self.emissions)

    def restore(self, snapshot: tuple[dict[str, PoolBackstopData], dict[str, int], dict[str, int]]) -> None:
        pools, pending, emissions = snapshot
        self.pools = dict(pools)
        self.pending = dict(pending)
        self.emissions = dict(emissions)

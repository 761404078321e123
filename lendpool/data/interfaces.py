"""Abstract collaborator interfaces consumed by the pool.

The pool never calls another contract directly. Oracles, tokens and the
backstop are reached through these interfaces, registered on the ``Env``
by address, so every outbound call is an explicit, mockable boundary.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class PriceData:
    """A single oracle observation."""

    price: int  # asset price in the oracle's base, scaled by 10**decimals()
    timestamp: int  # seconds


@dataclass(frozen=True)
class PoolBackstopData:
    """Backstop deposits held for a pool."""

    tokens: int  # backstop LP tokens deposited for the pool (7 decimals)
    blnd: int  # BLND underlying the deposited tokens
    usdc: int  # USDC underlying the deposited tokens
    q4w_pct: int  # share of deposits queued for withdrawal (7 decimals)


class PriceOracle(ABC):
    """Price feed interface."""

    @abstractmethod
    def price(self, asset: str, timestamp: int) -> PriceData | None:
        """Get the price of *asset* at *timestamp*, if recorded."""

    @abstractmethod
    def lastprice(self, asset: str) -> PriceData | None:
        """Get the most recent price of *asset*, if any."""

    @abstractmethod
    def decimals(self) -> int:
        """Number of decimals prices are scaled by."""


class TokenClient(ABC):
    """Fungible token interface for underlying reserve assets."""

    @abstractmethod
    def balance(self, id_: str) -> int:
        """Get the balance held by *id_*."""

    @abstractmethod
    def transfer(self, from_: str, to: str, amount: int) -> None:
        """Move *amount* from *from_* to *to*; raise if it cannot."""


class BackstopClient(ABC):
    """Backstop module interface."""

    @abstractmethod
    def backstop_token(self) -> str:
        """Address of the token the backstop holds deposits in."""

    @abstractmethod
    def pool_data(self, pool: str) -> PoolBackstopData:
        """Deposit summary for *pool*."""

    @abstractmethod
    def draw(self, pool: str, amount: int, to: str) -> None:
        """Send *amount* of *pool*'s backstop tokens to *to*."""

    @abstractmethod
    def donate(self, from_: str, pool: str, amount: int) -> None:
        """Add *amount* backstop tokens from *from_* to *pool*'s deposits."""

    @abstractmethod
    def gulp_pool_emissions(self, pool: str) -> int:
        """Release emissions newly allotted to *pool* and return the amount."""

    @abstractmethod
    def claim(self, pool: str, amount: int, to: str) -> None:
        """Pay *amount* of *pool*'s released emissions to *to*."""

"""Persistent pool state: storage types, tagged keys and the key-value store.

Components never touch a global. They receive a ``Storage`` (through the
``Env``) wrapping an injected ``KeyValueStore``. Keys are ``DataKey``
variants with a total mapping to string addresses, and values are copied
on the way in and out so nothing outside the store can mutate persisted
state in place.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any

from lendpool.protocol.errors import InternalError, ReserveNotFoundError

# ---------------------------------------------------------------------------
# Storage types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PoolConfig:
    """Pool-wide configuration."""

    oracle: str
    bstop_rate: int  # share of accrued interest credited to the backstop (7 decimals)
    status: int
    max_positions: int


@dataclass(frozen=True)
class ReserveConfig:
    """Admin-set configuration of a reserve."""

    decimals: int
    c_factor: int  # collateral factor (7 decimals)
    l_factor: int  # liability factor (7 decimals)
    util: int  # target utilization (7 decimals)
    max_util: int  # maximum utilization (7 decimals)
    r_one: int  # rate slope below target (7 decimals)
    r_two: int  # rate slope between target and max (7 decimals)
    r_three: int  # rate slope above max (7 decimals)
    reactivity: int  # interest modifier reactivity (9 decimals)
    r_base: int = 0  # base rate (7 decimals)
    index: int = 0
    enabled: bool = True


@dataclass(frozen=True)
class ReserveData:
    """Mutable accounting state of a reserve."""

    b_rate: int  # bToken to underlying rate (9 decimals)
    d_rate: int  # dToken to underlying rate (9 decimals)
    ir_mod: int  # interest rate modifier (9 decimals)
    b_supply: int
    d_supply: int
    backstop_credit: int  # underlying owed to the backstop
    last_time: int


@dataclass(frozen=True)
class QueuedReserveSet:
    """A reserve configuration waiting out its timelock."""

    new_config: ReserveConfig
    unlock_time: int


@dataclass(frozen=True)
class ReserveEmissionsConfig:
    """Current emission cycle of a reserve token."""

    expiration: int
    eps: int  # tokens emitted per second


@dataclass(frozen=True)
class ReserveEmissionsData:
    """Accumulated emissions per share of a reserve token."""

    index: int  # scaled by the reserve's decimals
    last_time: int


@dataclass(frozen=True)
class UserEmissionData:
    index: int
    accrued: int


class AuctionType(IntEnum):
    USER_LIQUIDATION = 0
    BAD_DEBT = 1
    INTEREST = 2


class RequestType(IntEnum):
    SUPPLY = 0
    WITHDRAW = 1
    SUPPLY_COLLATERAL = 2
    WITHDRAW_COLLATERAL = 3
    BORROW = 4
    REPAY = 5
    FILL_USER_LIQUIDATION_AUCTION = 6
    FILL_BAD_DEBT_AUCTION = 7
    FILL_INTEREST_AUCTION = 8
    DELETE_LIQUIDATION_AUCTION = 9


@dataclass(frozen=True)
class AuctionData:
    """An auction's undecayed sides and the block its decay starts from.

    For user liquidations and bad debt the bid holds dToken shares the
    filler takes on, for interest auctions backstop tokens the filler pays.
    The lot holds bTokens, backstop tokens or underlying respectively.
    """

    bid: dict[str, int]
    lot: dict[str, int]
    block: int


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


class KeyTag(str, Enum):
    ADMIN = "Admin"
    NAME = "Name"
    BACKSTOP = "Backstop"
    POOL_CONFIG = "Config"
    IS_INIT = "IsInit"
    RES_LIST = "ResList"
    RES_CONFIG = "ResConfig"
    RES_DATA = "ResData"
    POSITIONS = "Positions"
    AUCTION = "Auction"
    QUEUED_RES = "QueuedRes"
    POOL_EMIS = "PoolEmis"
    EMIS_CONFIG = "EmisConfig"
    EMIS_DATA = "EmisData"
    USER_EMIS = "UserEmis"


_ARITY: dict[KeyTag, int] = {
    KeyTag.ADMIN: 0,
    KeyTag.NAME: 0,
    KeyTag.BACKSTOP: 0,
    KeyTag.POOL_CONFIG: 0,
    KeyTag.IS_INIT: 0,
    KeyTag.RES_LIST: 0,
    KeyTag.RES_CONFIG: 1,  # reserve index
    KeyTag.RES_DATA: 1,  # reserve index
    KeyTag.POSITIONS: 1,  # user
    KeyTag.AUCTION: 2,  # (user, auction type)
    KeyTag.QUEUED_RES: 1,  # asset
    KeyTag.POOL_EMIS: 0,
    KeyTag.EMIS_CONFIG: 1,  # reserve token id
    KeyTag.EMIS_DATA: 1,  # reserve token id
    KeyTag.USER_EMIS: 2,  # (user, reserve token id)
}


@dataclass(frozen=True)
class DataKey:
    """A storage key: a tag plus the subject it is about."""

    tag: KeyTag
    subject: tuple = ()

    def __post_init__(self) -> None:
        if len(self.subject) != _ARITY[self.tag]:
            raise InternalError(f"key {self.tag.value} takes {_ARITY[self.tag]} parts")

    def address(self) -> str:
        """Storage address for this key."""
        if not self.subject:
            return self.tag.value
        return self.tag.value + "/" + "/".join(str(part) for part in self.subject)

    @classmethod
    def res_config(cls, index: int) -> DataKey:
        return cls(KeyTag.RES_CONFIG, (index,))

    @classmethod
    def res_data(cls, index: int) -> DataKey:
        return cls(KeyTag.RES_DATA, (index,))

    @classmethod
    def positions(cls, user: str) -> DataKey:
        return cls(KeyTag.POSITIONS, (user,))

    @classmethod
    def auction(cls, user: str, auction_type: int) -> DataKey:
        return cls(KeyTag.AUCTION, (user, int(auction_type)))

    @classmethod
    def queued_res(cls, asset: str) -> DataKey:
        return cls(KeyTag.QUEUED_RES, (asset,))

    @classmethod
    def emis_config(cls, res_token_id: int) -> DataKey:
        return cls(KeyTag.EMIS_CONFIG, (res_token_id,))

    @classmethod
    def emis_data(cls, res_token_id: int) -> DataKey:
        return cls(KeyTag.EMIS_DATA, (res_token_id,))

    @classmethod
    def user_emis(cls, user: str, res_token_id: int) -> DataKey:
        return cls(KeyTag.USER_EMIS, (user, res_token_id))


# ---------------------------------------------------------------------------
# Backing store
# ---------------------------------------------------------------------------


class KeyValueStore(ABC):
    """Raw key-value backend addressed by ``DataKey.address()``."""

    @abstractmethod
    def get(self, address: str) -> Any | None:
        """Return the value at *address* or None."""

    @abstractmethod
    def set(self, address: str, value: Any) -> None:
        """Write *value* at *address*."""

    @abstractmethod
    def delete(self, address: str) -> None:
        """Remove *address* if present."""

    @abstractmethod
    def snapshot(self) -> Any:
        """Capture the full state for a later ``restore``."""

    @abstractmethod
    def restore(self, snapshot: Any) -> None:
        """Return to a state captured by ``snapshot``."""


class InMemoryStore(KeyValueStore):
    """Dict-backed store."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get(self, address: str) -> Any | None:
        return self._data.get(address)

    def set(self, address: str, value: Any) -> None:
        self._data[address] = value

    def delete(self, address: str) -> None:
        self._data.pop(address, None)

    def snapshot(self) -> dict[str, Any]:
        # values are never mutated in place, a shallow copy is a full snapshot
        return dict(self._data)

    def restore(self, snapshot: dict[str, Any]) -> None:
        self._data = dict(snapshot)

    def __len__(self) -> int:
        return len(self._data)


# ---------------------------------------------------------------------------
# Typed accessors
# ---------------------------------------------------------------------------


class Storage:
    """Typed view over a ``KeyValueStore``."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def _get(self, key: DataKey) -> Any | None:
        return copy.deepcopy(self.store.get(key.address()))

    def _set(self, key: DataKey, value: Any) -> None:
        self.store.set(key.address(), copy.deepcopy(value))

    def _require(self, key: DataKey) -> Any:
        value = self._get(key)
        if value is None:
            raise InternalError(f"missing storage entry {key.address()}")
        return value

    def snapshot(self) -> Any:
        return self.store.snapshot()

    def restore(self, snapshot: Any) -> None:
        self.store.restore(snapshot)

    # ---- pool ----

    def is_init(self) -> bool:
        return bool(self._get(DataKey(KeyTag.IS_INIT)))

    def set_is_init(self) -> None:
        self._set(DataKey(KeyTag.IS_INIT), True)

    def get_admin(self) -> str:
        return self._require(DataKey(KeyTag.ADMIN))

    def set_admin(self, admin: str) -> None:
        self._set(DataKey(KeyTag.ADMIN), admin)

    def get_name(self) -> str:
        return self._require(DataKey(KeyTag.NAME))

    def set_name(self, name: str) -> None:
        self._set(DataKey(KeyTag.NAME), name)

    def get_backstop(self) -> str:
        return self._require(DataKey(KeyTag.BACKSTOP))

    def set_backstop(self, backstop: str) -> None:
        self._set(DataKey(KeyTag.BACKSTOP), backstop)

    def get_pool_config(self) -> PoolConfig:
        return self._require(DataKey(KeyTag.POOL_CONFIG))

    def set_pool_config(self, config: PoolConfig) -> None:
        self._set(DataKey(KeyTag.POOL_CONFIG), config)

    # ---- reserves ----

    def get_res_list(self) -> list[str]:
        return self._get(DataKey(KeyTag.RES_LIST)) or []

    def push_res_list(self, asset: str) -> int:
        """Append *asset* to the reserve list and return its index."""
        res_list = self.get_res_list()
        res_list.append(asset)
        self._set(DataKey(KeyTag.RES_LIST), res_list)
        return len(res_list) - 1

    def has_res(self, asset: str) -> bool:
        return asset in self.get_res_list()

    def get_res_index(self, asset: str) -> int:
        res_list = self.get_res_list()
        if asset not in res_list:
            raise ReserveNotFoundError(f"no reserve for asset {asset}")
        return res_list.index(asset)

    def get_res_asset(self, index: int) -> str:
        res_list = self.get_res_list()
        if index < 0 or index >= len(res_list):
            raise ReserveNotFoundError(f"no reserve at index {index}")
        return res_list[index]

    def get_res_config(self, index: int) -> ReserveConfig:
        return self._require(DataKey.res_config(index))

    def set_res_config(self, index: int, config: ReserveConfig) -> None:
        self._set(DataKey.res_config(index), config)

    def get_res_data(self, index: int) -> ReserveData:
        return self._require(DataKey.res_data(index))

    def set_res_data(self, index: int, data: ReserveData) -> None:
        self._set(DataKey.res_data(index), data)

    def get_queued_reserve_set(self, asset: str) -> QueuedReserveSet | None:
        return self._get(DataKey.queued_res(asset))

    def set_queued_reserve_set(self, asset: str, queued: QueuedReserveSet) -> None:
        self._set(DataKey.queued_res(asset), queued)

    def del_queued_reserve_set(self, asset: str) -> None:
        self.store.delete(DataKey.queued_res(asset).address())

    # ---- emissions ----

    def get_pool_emissions(self) -> dict[int, int]:
        """Share of each gulp per reserve token id (7 decimals)."""
        return self._get(DataKey(KeyTag.POOL_EMIS)) or {}

    def set_pool_emissions(self, emissions: dict[int, int]) -> None:
        self._set(DataKey(KeyTag.POOL_EMIS), emissions)

    def get_res_emis_config(self, res_token_id: int) -> ReserveEmissionsConfig | None:
        return self._get(DataKey.emis_config(res_token_id))

    def set_res_emis_config(self, res_token_id: int, config: ReserveEmissionsConfig) -> None:
        self._set(DataKey.emis_config(res_token_id), config)

    def get_res_emis_data(self, res_token_id: int) -> ReserveEmissionsData | None:
        return self._get(DataKey.emis_data(res_token_id))

    def set_res_emis_data(self, res_token_id: int, data: ReserveEmissionsData) -> None:
        self._set(DataKey.emis_data(res_token_id), data)

    def get_user_emissions(self, user: str, res_token_id: int) -> UserEmissionData | None:
        return self._get(DataKey.user_emis(user, res_token_id))

    def set_user_emissions(self, user: str, res_token_id: int, data: UserEmissionData) -> None:
        self._set(DataKey.user_emis(user, res_token_id), data)

    # ---- users ----

    def get_positions(self, user: str) -> Any | None:
        return self._get(DataKey.positions(user))

    def set_positions(self, user: str, positions: Any) -> None:
        self._set(DataKey.positions(user), positions)

    # ---- auctions ----

    def get_auction(self, auction_type: int, user: str) -> AuctionData | None:
        return self._get(DataKey.auction(user, auction_type))

    def has_auction(self, auction_type: int, user: str) -> bool:
        return self.store.get(DataKey.auction(user, auction_type).address()) is not None

    def set_auction(self, auction_type: int, user: str, auction: AuctionData) -> None:
        self._set(DataKey.auction(user, auction_type), auction)

    def del_auction(self, auction_type: int, user: str) -> None:
        self.store.delete(DataKey.auction(user, auction_type).address())

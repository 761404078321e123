"""Host environment for a pool instance.

``Env`` plays the part of the execution host: it owns the ledger clock,
the injected storage, the event log, the set of addresses that authorized
the current call, and the registry of collaborator clients reachable by
address. Pool entry points run inside ``Env.invocation()``, which rolls
storage and events back on any failure and rejects re-entrant calls.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

from lendpool.data.interfaces import BackstopClient, PriceOracle, TokenClient
from lendpool.protocol.errors import InternalError, NotAuthorizedError, ReentrancyError
from lendpool.protocol.storage import InMemoryStore, KeyValueStore, Storage

logger = logging.getLogger(__name__)


@dataclass
class LedgerInfo:
    """Ledger clock."""

    timestamp: int = 0
    sequence: int = 0


@dataclass(frozen=True)
class Event:
    topics: tuple
    data: Any


class Env:
    """Execution context shared by every pool component.

    Args:
        contract: Address of the pool contract itself.
        store: Backing key-value store. A fresh ``InMemoryStore`` if omitted.
        timestamp: Initial ledger timestamp in seconds.
        sequence: Initial ledger sequence (block) number.
    """

    def __init__(
        self,
        contract: str,
        store: KeyValueStore | None = None,
        timestamp: int = 0,
        sequence: int = 0,
    ) -> None:
        self.contract = contract
        self.ledger = LedgerInfo(timestamp=timestamp, sequence=sequence)
        self.storage = Storage(store if store is not None else InMemoryStore())
        self.events: list[Event] = []
        self._clients: dict[str, Any] = {}
        self._signers: frozenset[str] = frozenset()
        self._all_auths = False
        self._in_call = False

    # ------------------------------------------------------------------
    # Clock
    # ------------------------------------------------------------------

    def advance(self, seconds: int = 0, blocks: int = 0) -> None:
        """Move the ledger clock forward."""
        self.ledger.timestamp += seconds
        self.ledger.sequence += blocks

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def register(self, address: str, client: Any) -> None:
        """Make *client* reachable at *address*."""
        self._clients[address] = client

    def _client(self, address: str, kind: type) -> Any:
        client = self._clients.get(address)
        if not isinstance(client, kind):
            raise InternalError(f"no {kind.__name__} registered at {address}")
        return client

    def oracle(self, address: str) -> PriceOracle:
        return self._client(address, PriceOracle)

    def token(self, address: str) -> TokenClient:
        return self._client(address, TokenClient)

    def backstop(self, address: str) -> BackstopClient:
        return self._client(address, BackstopClient)

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def mock_all_auths(self, enabled: bool = True) -> None:
        """Treat every ``require_auth`` as satisfied while *enabled*."""
        self._all_auths = enabled

    @contextmanager
    def authorize(self, *signers: str) -> Iterator[None]:
        """Run the enclosed calls as if *signers* authorized them."""
        previous = self._signers
        self._signers = frozenset(signers)
        try:
            yield
        finally:
            self._signers = previous

    def require_auth(self, address: str) -> None:
        if self._all_auths or address in self._signers:
            return
        raise NotAuthorizedError(f"{address} did not authorize this call")

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def publish(self, topics: tuple, data: Any = None) -> None:
        self.events.append(Event(topics=topics, data=data))

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    @contextmanager
    def invocation(self, name: str) -> Iterator[None]:
        """Run a pool entry point atomically.

        Raises:
            ReentrancyError: If another entry point is already executing.
        """
        if self._in_call:
            raise ReentrancyError(f"re-entrant call to {name}")
        self._in_call = True
        snapshot = self.storage.snapshot()
        # in-process collaborators that keep their own state roll back with the pool
        client_snapshots = {
            address: client.snapshot()
            for address, client in self._clients.items()
            if hasattr(client, "snapshot")
        }
        event_count = len(self.events)
        try:
            yield
        except Exception:
            self.storage.restore(snapshot)
            for address, client_snapshot in client_snapshots.items():
                self._clients[address].restore(client_snapshot)
            del self.events[event_count:]
            logger.debug("Invocation %s failed; state rolled back", name, exc_info=True)
            raise
        finally:
            self._in_call = False

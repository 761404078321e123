"""Atomic execution of a user's request batch."""

from __future__ import annotations

import logging
from enum import Enum

from lendpool.protocol.actions import Actions, Request, apply_requests, validate_requests
from lendpool.protocol.env import Env
from lendpool.protocol.health_factor import PositionData
from lendpool.protocol.pool import Pool
from lendpool.protocol.positions import Positions, User
from lendpool.settings import DEFAULT_SETTINGS, PoolSettings

logger = logging.getLogger(__name__)


class SubmitState(Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    APPLYING = "applying"
    POST_CHECK = "post_check"
    COMMITTED = "committed"
    REJECTED = "rejected"


class RequestDispatcher:
    """Runs one batch through validate, apply, post-check and commit.

    The dispatcher does not roll anything back itself: it is run inside
    ``Env.invocation()``, which restores storage and events when any stage
    raises. ``state`` records how far the batch got.
    """

    def __init__(self, env: Env, settings: PoolSettings = DEFAULT_SETTINGS) -> None:
        self.env = env
        self.settings = settings
        self.state = SubmitState.IDLE

    def submit(self, from_: str, spender: str, to: str, requests: list[Request]) -> Positions:
        """Execute *requests* for *from_*.

        Args:
            from_: Address whose positions change.
            spender: Address paying tokens into the pool.
            to: Address receiving tokens from the pool.
            requests: Requests, applied strictly in order.

        Returns:
            The positions of *from_* after the batch.
        """
        try:
            return self._submit(from_, spender, to, requests)
        except Exception:
            logger.info("Batch for %s rejected during %s", from_, self.state.value)
            self.state = SubmitState.REJECTED
            raise

    def _submit(self, from_: str, spender: str, to: str, requests: list[Request]) -> Positions:
        env = self.env
        pool = Pool.load(env, self.settings)

        self.state = SubmitState.VALIDATING
        request_types = validate_requests(env, pool, requests)

        self.state = SubmitState.APPLYING
        actions, from_state, check_health = apply_requests(
            env, pool, from_, requests, request_types, self.settings
        )

        self.state = SubmitState.POST_CHECK
        if check_health:
            PositionData.calculate_from_positions(env, pool, from_state.positions).require_healthy(
                self.settings.health_margin
            )

        self._commit(pool, from_state, actions, spender, to)
        self.state = SubmitState.COMMITTED
        logger.debug("Committed %d requests for %s", len(requests), from_)
        return from_state.positions

    def _commit(self, pool: Pool, from_state: User, actions: Actions, spender: str, to: str) -> None:
        env = self.env
        pool.store_cached_reserves(env)
        from_state.store(env)

        # all state is stored before any outbound call
        for asset, amount in actions.spender_transfer.items():
            env.token(asset).transfer(spender, env.contract, amount)
        backstop = env.storage.get_backstop()
        if actions.backstop_donate > 0:
            env.backstop(backstop).donate(spender, env.contract, actions.backstop_donate)
        for asset, amount in actions.pool_transfer.items():
            env.token(asset).transfer(env.contract, to, amount)
        if actions.backstop_draw > 0:
            env.backstop(backstop).draw(env.contract, actions.backstop_draw, to)

"""Pool fixtures for the protocol tests."""

from __future__ import annotations

from typing import Callable

import pytest
from helpers import ASSET_A, ASSET_B, UNIT, PoolHarness, build_pool

from lendpool.protocol.actions import Request, RequestType


@pytest.fixture
def make_pool() -> Callable[..., PoolHarness]:
    return build_pool


@pytest.fixture
def harness() -> PoolHarness:
    return build_pool()


@pytest.fixture
def funded(harness: PoolHarness) -> PoolHarness:
    """Pool with 10k B supplied by a lender and 1k A held by alice."""
    harness.fund("lender", ASSET_B, 10_000 * UNIT)
    harness.fund("alice", ASSET_A, 1_000 * UNIT)
    harness.pool.submit("lender", [Request(RequestType.SUPPLY, ASSET_B, 10_000 * UNIT)])
    return harness

"""Protocol tunables with environment overrides."""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass

from lendpool.data.constants import (
    AUCTION_PHASE_BLOCKS,
    MAX_IR_MOD,
    MIN_IR_MOD,
    SECONDS_PER_DAY,
)

logger = logging.getLogger(__name__)

ENV_PREFIX = "LENDPOOL_"


@dataclass(frozen=True)
class PoolSettings:
    """Constants the pool engine is parameterized by.

    Attributes:
        max_price_age: Seconds after which an oracle price is stale.
        health_margin: Required collateral buffer over liabilities for
            actions that reduce health (7 decimals, 500_000 = 5%).
        auction_duration: Blocks after the auction start at which it
            expires and can no longer be filled.
        min_ir_mod: Lower clamp of the interest rate modifier (9 decimals).
        max_ir_mod: Upper clamp of the interest rate modifier (9 decimals).
        liquidation_target_hf: Health factor an automatically sized user
            liquidation aims to restore (7 decimals).
        min_interest_auction_value: Minimum interest value, in whole units
            of the oracle base asset, for an interest auction.
    """

    max_price_age: int = SECONDS_PER_DAY
    health_margin: int = 500_000
    auction_duration: int = 2 * AUCTION_PHASE_BLOCKS
    min_ir_mod: int = MIN_IR_MOD
    max_ir_mod: int = MAX_IR_MOD
    liquidation_target_hf: int = 11_000_000
    min_interest_auction_value: int = 200


DEFAULT_SETTINGS = PoolSettings()


def load_settings(environ: dict[str, str] | None = None) -> PoolSettings:
    """Build settings from ``LENDPOOL_*`` environment variables.

    Parameters
    ----------
    environ : dict[str, str] | None
        Mapping to read from. Defaults to ``os.environ``.

    Returns
    -------
    PoolSettings
        Defaults overlaid with any integer overrides found, e.g.
        ``LENDPOOL_MAX_PRICE_AGE=3600``.
    """
    source = os.environ if environ is None else environ
    overrides: dict[str, int] = {}
    for field in dataclasses.fields(PoolSettings):
        raw = source.get(ENV_PREFIX + field.name.upper())
        if raw is None:
            continue
        try:
            overrides[field.name] = int(raw)
        except ValueError:
            logger.warning("Ignoring non-integer %s%s=%r", ENV_PREFIX, field.name.upper(), raw)
    settings = dataclasses.replace(DEFAULT_SETTINGS, **overrides)
    if settings.min_ir_mod > settings.max_ir_mod:
        raise ValueError("min_ir_mod must not exceed max_ir_mod")
    return settings

"""Price feed addresses and the minimal ABI for on-chain oracle reads."""

from lendpool.data.constants import USDC, WETH

# ---------------------------------------------------------------------------
# Chainlink USD feeds (Ethereum mainnet)
# ---------------------------------------------------------------------------
CHAINLINK_USD_FEEDS: dict[str, str] = {
    WETH: "0x5f4eC3Df9cbd43714FE2740f5E3616155c5b8419",
    USDC: "0x8fFfFfd4AfB6115b954Bd326cbe7B4BA576818f6",
}

# ---------------------------------------------------------------------------
# Minimal AggregatorV3 ABI: only the view functions we call
# ---------------------------------------------------------------------------
AGGREGATOR_V3_ABI = [
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "latestRoundData",
        "outputs": [
            {"name": "roundId", "type": "uint80"},
            {"name": "answer", "type": "int256"},
            {"name": "startedAt", "type": "uint256"},
            {"name": "updatedAt", "type": "uint256"},
            {"name": "answeredInRound", "type": "uint80"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
]

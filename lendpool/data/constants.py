"""Asset identifiers and protocol constants."""

# Asset symbols used by the static data sources
XLM = "XLM"
USDC = "USDC"
WETH = "WETH"
BSTOP_TOKEN = "BLND-USDC-LP"

# Fixed-point scales
SCALAR_7 = 10**7  # factors, utilization, percentages
SCALAR_9 = 10**9  # exchange rates, interest rate modifier

# i128 bounds; fixed-point results outside are an overflow
I128_MAX = 2**127 - 1
I128_MIN = -(2**127)

SECONDS_PER_YEAR = 31_536_000
SECONDS_PER_DAY = 86_400
SECONDS_PER_WEEK = 604_800

# Interest rate modifier band (9 decimals)
MIN_IR_MOD = 100_000_000  # 0.1
MAX_IR_MOD = 10_000_000_000  # 10.0

# Auction pricing
AUCTION_PHASE_BLOCKS = 200
AUCTION_STEP = 50_000  # 0.5% per block (7 decimals)
AUCTION_LOT_PREMIUM = 14_000_000  # 1.4x backstop tokens offered per unit of value

# User liquidation sizing bounds on the post-liquidation health factor
LIQ_MIN_HF = 10_300_000  # 1.03
LIQ_MAX_HF = 11_500_000  # 1.15

# Backstop threshold: bad debt is burned below ~5% of the product constant
BACKSTOP_BURN_THRESHOLD = 3  # 0_0000003 in 7 decimals
BACKSTOP_PRODUCT_CONSTANT = 320_000_000_000_000_000_000_000_000  # 200k^5

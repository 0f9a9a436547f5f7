"""
Risk configuration values are static and MUST NOT be overridden by environment.
This ensures deterministic behavior for a production-grade bot.
"""

MIN_EQUITY_USD = 10.0  # floor for equity and for the max-exposure budget

# Confidence-based sizing bands on the normalized (-1..1) scale
CONFIDENCE_BOOST_THRESHOLD = 0.4
CONFIDENCE_REDUCTION_THRESHOLD = 0.2
CONFIDENCE_REDUCTION_CEILING = 65.0  # absolute confidence, 0-100 scale

LOW_WIN_RATE = 0.4
HIGH_WIN_RATE_MULTIPLIER = 1.15
LOW_WIN_RATE_MULTIPLIER = 0.8

LIMIT_ENTRY_OFFSET = 0.001  # support * 1.001 / resistance * 0.999
LIMIT_PROXIMITY = 0.005     # use a limit only within 0.5% of mark
LIMIT_FILL_GRACE_SECONDS = 3.0

HIGH_CONFIDENCE = 75.0

AUTH_TOKEN_TTL_SECONDS = 7 * 24 * 60 * 60
AUTH_REFRESH_MARGIN_SECONDS = 60
MARKET_CACHE_TTL_SECONDS = 300

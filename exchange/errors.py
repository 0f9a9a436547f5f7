"""
Exchange error taxonomy.
"""

from __future__ import annotations

from typing import Optional

FUNDING_MINIMUM = "0.001 ETH or 5 USDC"
FUNDING_CHAINS = "Ethereum, Arbitrum, or Base mainnet"

# Substrings (lower-case) that mark a regional/service outage rather than a bad order.
OPERATIONAL_MARKERS = ("region", "not available", "-5019")


class ExchangeError(Exception):
    """Base class for failures talking to the exchange."""

    def __init__(self, message: str, method: Optional[str] = None, path: Optional[str] = None) -> None:
        self.method = method
        self.path = path
        if method and path:
            message = f"{method} {path}: {message}"
        super().__init__(message)


class TransportError(ExchangeError):
    """Timeout, connection reset, DNS failure and the like."""


class ExchangeAPIError(ExchangeError):
    """Raised when the exchange answers with a non-2xx status."""

    def __init__(self, status: int, body: str, method: Optional[str] = None, path: Optional[str] = None) -> None:
        self.status = status
        self.body = body
        super().__init__(f"Paradex API error {status}: {body}", method, path)


class MalformedResponseError(ExchangeAPIError):
    """A 2xx answer whose body is not the JSON shape the call expects."""


class AuthenticationError(ExchangeError):
    """The authentication round-trip failed."""


class NotOnboardedError(AuthenticationError):
    """The account key is not registered with the exchange yet."""


class OnboardingError(AuthenticationError):
    """Registration of the account key failed."""


class RegistrationFundingError(ExchangeError):
    """Registration refused because the backing wallet holds too little on-chain balance."""

    def __init__(self, address: str) -> None:
        self.address = address
        self.minimum = FUNDING_MINIMUM
        super().__init__(
            f"Onboarding requires your Ethereum wallet ({address}) to have at least {FUNDING_MINIMUM} "
            f"on {FUNDING_CHAINS}. This is a one-time requirement to prevent spam account creation."
        )


def is_operational_unavailable(message: Optional[str]) -> bool:
    """True when an error text points at a regional or service outage."""
    if not message:
        return False
    text = message.lower()
    return any(marker in text for marker in OPERATIONAL_MARKERS)

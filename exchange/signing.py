"""
Request signing for authentication and onboarding.

The client only needs ``sign(payload) -> signature``; the concrete curve is a
pluggable Signer. HmacSigner covers local/test setups.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any, Dict, Protocol

DOMAIN_NAME = "Paradex"
DOMAIN_VERSION = "1"


class Signer(Protocol):
    account: str
    ethereum_address: str

    @property
    def public_key(self) -> str: ...

    def sign(self, payload: bytes) -> str: ...


def _domain(chain_id: str) -> Dict[str, str]:
    return {"name": DOMAIN_NAME, "chainId": chain_id, "version": DOMAIN_VERSION}


def canonical(data: Dict[str, Any]) -> bytes:
    return json.dumps(data, sort_keys=True, separators=(",", ":")).encode("utf-8")


def auth_payload(method: str, path: str, body: str, timestamp: int, expiration: int, chain_id: str) -> bytes:
    """Signable bytes binding one request to its time window."""
    return canonical(
        {
            "domain": _domain(chain_id),
            "primaryType": "Request",
            "message": {
                "method": method,
                "path": path,
                "body": body,
                "timestamp": timestamp,
                "expiration": expiration,
            },
        }
    )


def onboarding_payload(chain_id: str) -> bytes:
    """Signable bytes proving control of the account key at registration."""
    return canonical({"domain": _domain(chain_id), "primaryType": "Constant", "message": {"action": "Onboarding"}})


class HmacSigner:
    """HMAC-SHA256 signer keyed by the account private key."""

    def __init__(self, private_key: str, account: str, ethereum_address: str = "") -> None:
        if not private_key:
            raise ValueError("private key is required for signing")
        self._key = private_key.encode("utf-8")
        self.account = account
        self.ethereum_address = ethereum_address

    @property
    def public_key(self) -> str:
        return "0x" + hashlib.sha256(self._key).hexdigest()

    def sign(self, payload: bytes) -> str:
        digest = hmac.new(self._key, payload, hashlib.sha256).hexdigest()
        return json.dumps([digest[:32], digest[32:]])

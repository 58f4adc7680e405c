"""
Authorization Validator
Checks a stored user authorization against a proposed trade.

Checks run in a fixed order and stop at the first failure:
1. authorization exists
2. authorization has not expired
3. daily USD limit not exceeded (today's spending + requested)
4. tokenIn / tokenOut are in allowedTokens (when the list is non-empty)

The signature is stored but not verified here.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from infrastructure import clock
from infrastructure.kv_store import KVStore, get_json, put_json
from services.spending_tracker import get_daily_spent

logger = logging.getLogger(__name__)

AUTH_PREFIX = "auth:"


@dataclass
class UserAuthorization:
    signature: str
    expiry: int  # unix ms
    max_daily_usd: float
    allowed_tokens: List[str] = field(default_factory=list)
    created_at: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "UserAuthorization":
        return cls(
            signature=data.get("signature", ""),
            expiry=int(data.get("expiry", 0)),
            max_daily_usd=float(data.get("maxDailyUsd", 0)),
            allowed_tokens=list(data.get("allowedTokens") or []),
            created_at=int(data.get("createdAt", 0)),
        )

    def to_dict(self) -> dict:
        return {
            "signature": self.signature,
            "expiry": self.expiry,
            "maxDailyUsd": self.max_daily_usd,
            "allowedTokens": self.allowed_tokens,
            "createdAt": self.created_at,
        }

    def is_expired(self, now_ms: int = None) -> bool:
        return self.expiry <= (clock.now_ms() if now_ms is None else now_ms)

    def allows_token(self, token: str) -> bool:
        if not self.allowed_tokens:
            return True
        return token.lower() in {t.lower() for t in self.allowed_tokens}


@dataclass
class ValidationResult:
    valid: bool
    error: Optional[str] = None
    authorization: Optional[UserAuthorization] = None

    def to_dict(self) -> dict:
        data = {"valid": self.valid}
        if self.error:
            data["error"] = self.error
        if self.authorization:
            data["authorization"] = self.authorization.to_dict()
        return data


def format_usd_limit(value: float) -> str:
    # 10000.0 -> "10000", 99.5 -> "99.5"
    return str(int(value)) if float(value).is_integer() else str(value)


def auth_key(user_address: str) -> str:
    return f"{AUTH_PREFIX}{user_address.lower()}"


async def load_authorization(store: KVStore, user_address: str) -> Optional[UserAuthorization]:
    data = await get_json(store, auth_key(user_address))
    if not data:
        return None
    return UserAuthorization.from_dict(data)


async def save_authorization(store: KVStore, user_address: str, authorization: UserAuthorization) -> None:
    """Persist an authorization (no TTL; expired records stay readable)"""
    await put_json(store, auth_key(user_address), authorization.to_dict())


async def revoke_authorization(store: KVStore, user_address: str) -> None:
    await store.delete(auth_key(user_address))


async def validate_authorization(
    store: KVStore,
    user_address: str,
    token_in: str,
    token_out: str,
    amount_usd: float
) -> ValidationResult:
    """Validate that a user authorized a trade of amount_usd between two tokens"""
    auth = await load_authorization(store, user_address)
    if auth is None:
        return ValidationResult(valid=False, error="No authorization found for this address")

    if auth.is_expired():
        return ValidationResult(valid=False, error="Authorization has expired", authorization=auth)

    daily_spent = await get_daily_spent(store, user_address)
    if daily_spent + amount_usd > auth.max_daily_usd:
        return ValidationResult(
            valid=False,
            error=(
                f"Daily limit exceeded. Spent: ${daily_spent:.2f}, "
                f"Limit: ${format_usd_limit(auth.max_daily_usd)}, Requested: ${amount_usd:.2f}"
            ),
            authorization=auth,
        )

    for token in (token_in, token_out):
        if not auth.allows_token(token):
            return ValidationResult(
                valid=False,
                error=f"Token {token} is not in the allowed tokens list",
                authorization=auth,
            )

    return ValidationResult(valid=True, authorization=auth)


async def has_valid_authorization(store: KVStore, user_address: str) -> bool:
    """Exists and not expired; no limit or token checks"""
    auth = await load_authorization(store, user_address)
    return auth is not None and not auth.is_expired()

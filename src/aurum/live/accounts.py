"""
Trading accounts: MT4/MT5 logins the bot trades on.

Passwords are stored AES-GCM encrypted (utils/crypto.py) and never returned
by the functions here except through account_credentials().
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from src.aurum.db.store import Store
from src.aurum.errors import ValidationError
from src.aurum.utils.crypto import decrypt_secret, encrypt_secret, load_key

logger = logging.getLogger(__name__)

ACCOUNTS = "trading_accounts"
PLATFORMS = ("MT4", "MT5")


@dataclass(frozen=True)
class AccountCredentials:
    platform: str
    server_name: str
    login_id: str
    password: str


def _public(row: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in row.items() if k != "password_encrypted"}


def upsert_trading_account(
    store: Store,
    user_id: str,
    platform: str,
    server_name: str,
    login_id: str,
    password: str,
    account_id: Optional[str] = None,
    is_active: bool = True,
    key: Optional[bytes] = None,
) -> Dict[str, Any]:
    """
    Create an account, or update `account_id` when it belongs to `user_id`.
    The same platform/server/login may only be registered once.
    Balance and equity columns are left to the account sync.
    """
    if not (user_id and platform and server_name and login_id and password):
        raise ValidationError("user_id, platform, server_name, login_id and password are required")
    platform = platform.upper()
    if platform not in PLATFORMS:
        raise ValidationError(f"Unknown platform {platform!r}; expected one of {PLATFORMS}")

    for row in store.select(ACCOUNTS, {"platform": platform, "server_name": server_name, "login_id": login_id}):
        if row["id"] != account_id:
            raise ValidationError("Trading account with this login ID already exists for this server/platform")

    now = datetime.now(timezone.utc)
    values = {
        "user_id": user_id,
        "platform": platform,
        "server_name": server_name,
        "login_id": login_id,
        "password_encrypted": encrypt_secret(password, key or load_key()),
        "is_active": is_active,
        "updated_at": now,
    }
    if account_id:
        if not store.update(ACCOUNTS, {"id": account_id, "user_id": user_id}, values):
            raise ValidationError(f"Trading account {account_id} not found for user {user_id}")
        stored = store.select_one(ACCOUNTS, {"id": account_id})
        logger.info("Updated trading account %s (%s %s)", account_id, platform, server_name)
    else:
        stored = store.insert(ACCOUNTS, {**values, "created_at": now})[0]
        logger.info("Added trading account %s (%s %s) for user %s", stored["id"], platform, server_name, user_id)
    return _public(stored)


def account_credentials(store: Store, account_id: str, key: Optional[bytes] = None) -> AccountCredentials:
    row = store.select_one(ACCOUNTS, {"id": account_id})
    if row is None or not row.get("password_encrypted"):
        raise ValidationError(f"Trading account {account_id} has no stored credentials")
    return AccountCredentials(
        platform=row["platform"],
        server_name=row["server_name"],
        login_id=row["login_id"],
        password=decrypt_secret(row["password_encrypted"], key or load_key()),
    )

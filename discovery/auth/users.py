from __future__ import annotations

import logging
import os
from typing import Any

import bcrypt

from ..search.models import MAX_PASSWORD_BYTES

logger = logging.getLogger(__name__)

_users: dict[str, dict[str, Any]] = {}


class UserExistsError(ValueError):
    pass


def _hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt()).decode()


def _verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(plain.encode(), hashed.encode())


def register_user(username: str, password: str, role: str = "user") -> dict[str, Any]:
    """Create an account. Usernames are case-insensitive."""
    key = username.strip().lower()
    if key in _users:
        raise UserExistsError(f"username {username!r} is taken")
    _users[key] = {"password_hash": _hash_password(password), "role": role}
    logger.info("Registered %s account %s", role, key)
    return {"username": key, "role": role}


def authenticate(username: str, password: str) -> dict[str, Any] | None:
    """Verify credentials. Returns ``{username, role}`` or ``None``."""
    key = username.strip().lower()
    record = _users.get(key)
    if len(password.encode()) > MAX_PASSWORD_BYTES:
        return None
    if record and _verify_password(password, record["password_hash"]):
        return {"username": key, "role": record["role"]}
    return None


def _seed_users() -> None:
    """Demo accounts, overridable through the environment."""
    register_user("user", os.getenv("DEMO_USER_PASSWORD", "user123"))
    register_user("seller1", os.getenv("DEMO_SELLER_PASSWORD", "seller123"))
    register_user("admin", os.getenv("DEMO_ADMIN_PASSWORD", "admin123"), role="admin")


_seed_users()

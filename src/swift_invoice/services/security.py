"""Password hashing and signed tokens."""
from __future__ import annotations

import json
from typing import Any, Optional
from uuid import uuid4

import pendulum
from cryptography.fernet import Fernet, InvalidToken
from passlib.context import CryptContext

from ..config import get_settings

_pwd_context: Optional[CryptContext] = None
_token_cache: Optional[Fernet] = None


class TokenError(Exception):
    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


def _get_pwd_context() -> CryptContext:
    global _pwd_context
    if _pwd_context is None:
        settings = get_settings()
        _pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=settings.password_hash_rounds,
        )
    return _pwd_context


def hash_password(password: str) -> str:
    return _get_pwd_context().hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return _get_pwd_context().verify(password, hashed)


def _get_signer() -> Fernet:
    global _token_cache
    if _token_cache is None:
        settings = get_settings()
        key_path = settings.secrets_path / "signing.key"
        if not key_path.exists():
            key_path.write_bytes(Fernet.generate_key())
        _token_cache = Fernet(key_path.read_bytes())
    return _token_cache


def generate_token(subject: str, purpose: str, expires_in: int) -> str:
    now = pendulum.now("UTC")
    payload = {
        "sub": subject,
        "purpose": purpose,
        "jti": uuid4().hex,
        "iat": now.timestamp(),
        "exp": now.add(seconds=expires_in).timestamp(),
    }
    data = json.dumps(payload).encode("utf-8")
    return _get_signer().encrypt(data).decode("utf-8")


def decode_token(token: str, purpose: str) -> dict[str, Any]:
    try:
        data = _get_signer().decrypt(token.encode("utf-8"))
    except (InvalidToken, ValueError) as exc:
        raise TokenError("invalid-token") from exc
    payload = json.loads(data)
    if payload.get("purpose") != purpose:
        raise TokenError("invalid-token")
    if payload.get("exp") and payload["exp"] < pendulum.now("UTC").timestamp():
        raise TokenError("expired-token")
    return payload

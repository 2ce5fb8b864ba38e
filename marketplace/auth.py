# marketplace/auth.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Mapping

import jwt
from fastapi import Request
from werkzeug.security import check_password_hash, generate_password_hash

from marketplace.entities import User
from marketplace.errors import Forbidden, Unauthorized

logger = logging.getLogger("adspace_backend")

TOKEN_COOKIE = "token"


def hash_secret(value: str) -> str:
    return generate_password_hash(value)


def check_secret(hashed: str | None, candidate: str | None) -> bool:
    if not hashed or candidate is None:
        return False
    return check_password_hash(hashed, candidate)


class TokenSigner:
    def __init__(self, secret: str, algorithm: str = "HS256", expires_minutes: int = 60) -> None:
        if not secret:
            raise RuntimeError("JWT secret is not configured")
        self.secret = secret
        self.algorithm = algorithm
        self.expires_minutes = expires_minutes

    def sign(self, user_id: str, role: str = "") -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "id": str(user_id),
            "role": role or "",
            "iat": now,
            "exp": now + timedelta(minutes=self.expires_minutes),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> dict:
        try:
            decoded = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.PyJWTError as e:
            logger.info("Token verification error: %s", e)
            raise Unauthorized("Token is not valid")
        if not decoded or not decoded.get("id"):
            raise Unauthorized("Token is not valid")
        return decoded


def extract_token(cookies: Mapping[str, str], headers: Mapping[str, str],
                  query_params: Mapping[str, str] | None = None) -> str | None:
    """cookie first, then `Authorization: Bearer`, then `?token=` (websockets)."""
    token = cookies.get(TOKEN_COOKIE)
    if token:
        return token
    auth_header = headers.get("authorization") or ""
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip() or None
    if query_params is not None:
        return query_params.get("token") or None
    return None


def authenticate_token(token: str | None, signer: TokenSigner, load_user: Callable[[str], User | None]) -> User:
    if not token:
        raise Unauthorized("No token, authorization denied")
    payload = signer.verify(token)
    user = load_user(payload["id"])
    if user is None:
        raise Unauthorized("Token is not valid")
    return user


# -----------------------
# FastAPI dependencies
# -----------------------

def get_current_user(request: Request) -> User:
    state = request.app.state
    token = extract_token(request.cookies, request.headers)
    return authenticate_token(token, state.tokens, state.users.get_user)


def require_role(role: str) -> Callable[[Request], User]:
    def _dependency(request: Request) -> User:
        user = get_current_user(request)
        if user.role != role:
            logger.info("Access denied for user %s with role %r (required %r)", user.id, user.role, role)
            raise Forbidden("Access denied")
        return user

    return _dependency

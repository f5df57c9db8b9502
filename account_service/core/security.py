"""Password hashing and JWT signing/verification."""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError, JWSSignatureError


class TokenError(Exception):
    """Token could not be verified."""


class TokenExpiredError(TokenError):
    pass


class TokenSignatureError(TokenError):
    """Signature does not match (tampered token or wrong key)."""


class TokenMalformedError(TokenError):
    pass


def hash_password(password: str) -> str:
    """Hash password with bcrypt. Bytes truncated to 72 (bcrypt limit)."""
    pwd_bytes = password.encode("utf-8")[:72]
    hashed = bcrypt.hashpw(pwd_bytes, bcrypt.gensalt())
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify password with bcrypt. Plain password truncated to 72 bytes."""
    if not plain_password or not password_hash:
        return False
    plain_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(plain_bytes, password_hash.encode("utf-8"))
    except ValueError:
        # stored value is not a bcrypt hash
        return False


class TokenCodec:
    """Signs and verifies JWTs with one secret and one lifetime."""

    def __init__(self, secret: str, ttl_seconds: int, algorithm: str = "HS256") -> None:
        if not secret:
            raise ValueError("Token secret must not be empty")
        self.secret = secret
        self.ttl = timedelta(seconds=ttl_seconds)
        self.algorithm = algorithm

    def sign(self, claims: dict[str, Any]) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            **claims,
            "iat": now,
            "exp": now + self.ttl,
            # jti keeps two tokens minted in the same second distinct
            "jti": secrets.token_urlsafe(16),
        }
        result = jwt.encode(payload, self.secret, algorithm=self.algorithm)
        return result if isinstance(result, str) else result.decode("utf-8")

    def decode(self, token: str) -> dict[str, Any]:
        """Return the verified payload or raise a TokenError subclass naming the failure kind."""
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except ExpiredSignatureError as e:
            raise TokenExpiredError("jwt expired") from e
        except JWTError as e:
            cause = e.args[0] if e.args else None
            # jose re-raises signature mismatches as a plain JWSError with this message
            if isinstance(cause, JWSSignatureError) or "Signature verification failed" in str(e):
                raise TokenSignatureError("invalid signature") from e
            raise TokenMalformedError("jwt malformed") from e
        if not isinstance(payload.get("sub"), str) or not payload["sub"]:
            raise TokenMalformedError("jwt subject missing")
        return payload

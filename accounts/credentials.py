"""
Credential Service - password hashing and bearer token handling.

Passwords go through Django's hasher framework (bcrypt, cost 10).
Tokens are HS256 JWTs signed with settings.JWT_SECRET and carry only the
identity claims: user id, email, name and role. Never the password hash.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from django.conf import settings
from django.contrib.auth.hashers import BCryptSHA256PasswordHasher, check_password, make_password
from jose import JWTError, jwt

from core.exceptions import InvalidToken

ADMIN_ROLE = 'ADMIN'


class StorefrontBCryptHasher(BCryptSHA256PasswordHasher):
    """bcrypt with a fixed cost factor of 10 rounds."""
    rounds = 10


@dataclass(frozen=True)
class Identity:
    """Decoded token claims for the caller of a request."""
    id: int
    email: str
    name: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    @classmethod
    def from_user(cls, user) -> 'Identity':
        return cls(id=user.id, email=user.email, name=user.name, role=user.role)


def hash_password(password: str) -> str:
    return make_password(password)


def verify_password(password: str, hashed: str) -> bool:
    return check_password(password, hashed)


def issue_token(identity: Identity, expires_in: Optional[timedelta] = None) -> str:
    """Sign a time-limited token for ``identity`` (default lifetime: JWT_EXPIRATION)."""
    issued_at = datetime.now(timezone.utc)
    expires_at = issued_at + (expires_in if expires_in is not None else settings.JWT_EXPIRATION)
    claims = {
        'sub': str(identity.id),
        'email': identity.email,
        'name': identity.name,
        'role': identity.role,
        'iat': issued_at,
        'exp': expires_at,
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> Identity:
    """
    Decode and validate a bearer token.

    Raises:
        InvalidToken: bad signature, expired, malformed or missing claims
    """
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise InvalidToken(f"Invalid token: {e}") from e

    try:
        return Identity(
            id=int(claims['sub']),
            email=claims['email'],
            name=claims['name'],
            role=claims['role'],
        )
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidToken("Invalid token: missing identity claims") from e

"""Password hashing, session tokens and wallet signature checks."""

import base64
import binascii
import hashlib
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

import base58
import bcrypt
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from jose import JWTError, jwt
from loguru import logger

from .config import settings

UNSIGNED_SIGNUP_SIGNATURE = "simplified_signup_no_wallet_required"


def _prehash(password: str) -> bytes:
    # bcrypt only reads 72 bytes; a fixed-length digest keeps long passwords distinct.
    return base64.b64encode(hashlib.sha256(password.encode()).digest())


def hash_password(password: str, rounds: int | None = None) -> str:
    """Hash a password with bcrypt.

    Args:
        password: Plain-text password.
        rounds: bcrypt cost factor. Uses settings if not provided.

    Returns:
        bcrypt hash as a string.
    """
    salt = bcrypt.gensalt(rounds or settings.bcrypt_rounds)
    return bcrypt.hashpw(_prehash(password), salt).decode()


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(_prehash(password), password_hash.encode())
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a session token, as stored in the sessions table."""
    return hashlib.sha256(token.encode()).hexdigest()


def create_jwt(
    user: dict[str, Any],
    *,
    session_id: str | None = None,
    expires_at: datetime | None = None,
    secret: str | None = None,
) -> str:
    """Create a signed session JWT for a user.

    Args:
        user: User row with ``id``, ``username`` and ``solana_address``.
        session_id: Session identifier, stored as the ``jti`` claim.
        expires_at: Expiry instant. Defaults to the configured session lifetime.
        secret: Signing secret. Uses settings if not provided.

    Returns:
        Encoded JWT.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": user["id"],
        "username": user["username"],
        "solana_address": user["solana_address"],
        "jti": session_id or str(uuid.uuid4()),
        "iat": now,
        "exp": expires_at or now + timedelta(seconds=settings.session_ttl_seconds),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
    }
    token: str = jwt.encode(
        payload, secret or settings.jwt_secret, algorithm=settings.jwt_algorithm
    )
    return token


def verify_jwt(token: str, secret: str | None = None) -> dict[str, Any] | None:
    """Verify signature, expiry, issuer and audience of a session JWT.

    Returns:
        Decoded claims, or None when the token does not verify.
    """
    try:
        claims: dict[str, Any] = jwt.decode(
            token,
            secret or settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
        )
    except JWTError as e:
        logger.debug(f"JWT verification failed: {e}")
        return None
    if not claims.get("sub"):
        return None
    return claims


def verify_solana_signature(address: str, message: str, signature: str) -> bool:
    """Verify an Ed25519 signature made by a Solana wallet.

    Args:
        address: Base58-encoded 32-byte public key.
        message: Signed message text (UTF-8).
        signature: Base64-encoded 64-byte signature.

    Returns:
        True when the signature is valid for the message and address.
    """
    try:
        public_key_bytes = base58.b58decode(address)
        signature_bytes = base64.b64decode(signature, validate=True)
        if len(public_key_bytes) != 32 or len(signature_bytes) != 64:
            return False
        Ed25519PublicKey.from_public_bytes(public_key_bytes).verify(
            signature_bytes, message.encode()
        )
        return True
    except (InvalidSignature, ValueError, binascii.Error) as e:
        logger.debug(f"Signature verification failed for {address[:8]}...: {e}")
        return False

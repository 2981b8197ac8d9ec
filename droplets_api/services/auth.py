"""User accounts and login sessions.

The ``sessions`` table is the single source of truth for whether a token is
valid: the JWT must verify and its SHA-256 must match a session row that has
not expired. Deleting the row (logout, password change) revokes the token.
"""

import sqlite3
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

import sqlalchemy as sa
from loguru import logger

from .. import security
from ..exceptions import AuthenticationError, ConflictError, NotFoundError, ValidationError
from ..models import SignupRequest
from ..storage import SQLDatabase
from ..storage.schema import now_iso, sessions, users
from ..types import UserRecord

PUBLIC_USER_COLUMNS = ("id", "username", "solana_address", "created_at", "updated_at")


def public_user(row: Any) -> UserRecord:
    return {name: row[name] for name in PUBLIC_USER_COLUMNS}  # type: ignore[return-value]


class AuthService:
    """Signup, login, session validation and credential changes."""

    def __init__(
        self,
        database: SQLDatabase,
        session_ttl_seconds: int = 7 * 24 * 60 * 60,
        allow_unsigned_signup: bool = True,
        bcrypt_rounds: int | None = None,
    ) -> None:
        self.db = database.database
        self.session_ttl_seconds = session_ttl_seconds
        self.allow_unsigned_signup = allow_unsigned_signup
        self.bcrypt_rounds = bcrypt_rounds

    async def signup(self, request: SignupRequest) -> tuple[UserRecord, str]:
        """Create an account and its first session.

        Raises:
            ValidationError: Wallet signature does not verify.
            ConflictError: Username or wallet address already registered.
        """
        unsigned = request.signature == security.UNSIGNED_SIGNUP_SIGNATURE
        if not (unsigned and self.allow_unsigned_signup):
            if not security.verify_solana_signature(
                request.solana_address, request.signed_message, request.signature
            ):
                raise ValidationError("Invalid signature")

        existing = await self.db.fetch_one(
            sa.select(users.c.id).where(
                sa.or_(
                    users.c.username == request.username,
                    users.c.solana_address == request.solana_address,
                )
            )
        )
        if existing:
            raise ConflictError("User already exists")

        now = now_iso()
        user: UserRecord = {
            "id": str(uuid.uuid4()),
            "username": request.username,
            "solana_address": request.solana_address,
            "created_at": now,
            "updated_at": now,
        }
        password_hash = security.hash_password(request.password, self.bcrypt_rounds)
        try:
            await self.db.execute(users.insert().values(**user, password_hash=password_hash))
        except sqlite3.IntegrityError as e:
            raise ConflictError("User already exists") from e

        logger.info(f"User {request.username} signed up")
        token = await self.create_session(user)
        return user, token

    async def login(self, username: str, password: str) -> tuple[UserRecord, str]:
        """Check credentials and open a new session.

        Raises:
            AuthenticationError: Unknown user or wrong password.
        """
        row = await self.db.fetch_one(users.select().where(users.c.username == username))
        if row is None or not security.verify_password(password, row["password_hash"]):
            raise AuthenticationError("Invalid credentials")

        user = public_user(row)
        token = await self.create_session(user)
        logger.info(f"User {username} logged in")
        return user, token

    async def create_session(self, user: UserRecord) -> str:
        session_id = str(uuid.uuid4())
        now = datetime.now(UTC)
        expires_at = now + timedelta(seconds=self.session_ttl_seconds)
        token = security.create_jwt(user, session_id=session_id, expires_at=expires_at)
        await self.db.execute(
            sessions.insert().values(
                id=session_id,
                user_id=user["id"],
                token_hash=security.hash_token(token),
                expires_at=expires_at.isoformat(),
                created_at=now.isoformat(),
            )
        )
        return token

    async def authenticate(self, token: str) -> UserRecord | None:
        """User owning a valid, unexpired session token, or None."""
        claims = security.verify_jwt(token)
        if claims is None:
            return None

        row = await self.db.fetch_one(
            sa.select(sessions.c.expires_at, *(users.c[name] for name in PUBLIC_USER_COLUMNS))
            .select_from(sessions.join(users, sessions.c.user_id == users.c.id))
            .where(sessions.c.token_hash == security.hash_token(token))
        )
        if row is None:
            return None
        if datetime.fromisoformat(row["expires_at"]) <= datetime.now(UTC):
            return None
        if row["id"] != claims["sub"]:
            logger.warning("Session row does not belong to the token subject")
            return None
        return public_user(row)

    async def logout(self, token: str) -> None:
        await self.db.execute(
            sessions.delete().where(sessions.c.token_hash == security.hash_token(token))
        )

    async def get_user(self, user_id: str) -> UserRecord:
        row = await self.db.fetch_one(users.select().where(users.c.id == user_id))
        if row is None:
            raise NotFoundError("User not found")
        return public_user(row)

    async def verify_wallet(self, user: UserRecord, signed_message: str, signature: str) -> None:
        """Check that the user controls the wallet stored on the account.

        Raises:
            ValidationError: Signature does not verify.
        """
        if not security.verify_solana_signature(user["solana_address"], signed_message, signature):
            raise ValidationError("Invalid signature")

    async def change_password(
        self,
        user: UserRecord,
        current_password: str,
        new_password: str,
        keep_token: str | None = None,
    ) -> int:
        """Replace the password and revoke every other session of the user.

        Returns:
            Number of sessions revoked.
        """
        row = await self.db.fetch_one(
            sa.select(users.c.password_hash).where(users.c.id == user["id"])
        )
        if row is None or not security.verify_password(current_password, row["password_hash"]):
            raise AuthenticationError("Current password is incorrect")

        new_hash = security.hash_password(new_password, self.bcrypt_rounds)
        revoke = sessions.delete().where(sessions.c.user_id == user["id"])
        if keep_token:
            revoke = revoke.where(sessions.c.token_hash != security.hash_token(keep_token))

        async with self.db.transaction():
            await self.db.execute(
                users.update()
                .where(users.c.id == user["id"])
                .values(password_hash=new_hash, updated_at=now_iso())
            )
            revoked = await self.db.fetch_val(
                sa.select(sa.func.count())
                .select_from(sessions)
                .where(revoke.whereclause)  # type: ignore[arg-type]
            )
            await self.db.execute(revoke)

        logger.info(f"Password changed for user {user['username']}; revoked {revoked} sessions")
        return int(revoked or 0)

"""Session authority: issues and validates bearer session tokens.

Tokens are HS256 JWTs carrying the user id, username and a session id.
A token is only honoured while its `user_sessions` row is active and
unexpired, so logging out revokes it immediately.
"""

import logging
import uuid
from datetime import timedelta
from typing import Optional

from jose import jwt, ExpiredSignatureError, JWTError
from sqlalchemy.orm import Session

from gurtpay_ledger.config import Settings
from gurtpay_ledger.domain.exceptions import (
    MissingCredential, MalformedCredential, ExpiredCredential, InvalidCredential,
)
from gurtpay_ledger.domain.models import Principal
from gurtpay_ledger.infrastructure.database.models import User
from gurtpay_ledger.infrastructure.database.repositories import AccountRepository, SessionRepository
from gurtpay_ledger.utils.date_utils import utcnow, as_utc

ALGORITHM = "HS256"

logger = logging.getLogger(__name__)


def parse_bearer(header_value: Optional[str]) -> str:
    """Extract the credential from an `Authorization: Bearer <token>` header"""
    if not header_value:
        raise MissingCredential()
    if not header_value.startswith("Bearer "):
        raise MalformedCredential()
    token = header_value[len("Bearer "):].strip()
    if not token:
        raise MalformedCredential()
    return token


class SessionAuthority:
    """Turns a bearer credential into a Principal"""

    def __init__(self, db: Session, config: Settings):
        self.db = db
        self.secret = config.signing_secret
        self.ttl = timedelta(hours=config.session_ttl_hours)
        self.sessions = SessionRepository(db)
        self.accounts = AccountRepository(db)

    def issue(self, user: User) -> str:
        """Create a session row and its signed token; caller commits"""
        session_id = uuid.uuid4()
        now = utcnow()
        expires_at = now + self.ttl
        claims = {
            "sub": str(user.id),
            "username": user.username,
            "session_id": str(session_id),
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(claims, self.secret, algorithm=ALGORITHM)
        self.sessions.create_session(session_id, user.id, token, now, expires_at)
        return token

    def _decode(self, token: str) -> dict:
        try:
            return jwt.decode(token, self.secret, algorithms=[ALGORITHM])
        except ExpiredSignatureError as e:
            raise ExpiredCredential() from e
        except JWTError as e:
            raise InvalidCredential("Invalid session token") from e

    def validate(self, token: str) -> Principal:
        """
        Resolve a session token to the caller.

        Raises:
            ExpiredCredential: JWT or session row past its expiry
            InvalidCredential: Bad signature, unknown/revoked session, unknown user
        """
        claims = self._decode(token)
        try:
            session_id = uuid.UUID(claims["session_id"])
            user_id = uuid.UUID(claims["sub"])
        except (KeyError, ValueError, TypeError) as e:
            raise InvalidCredential("Invalid session token") from e

        session_row = self.sessions.get_active(session_id, token)
        if session_row is None:
            raise InvalidCredential()

        if as_utc(session_row.expires_at) < utcnow():
            self.sessions.deactivate(session_id)
            self.db.commit()
            raise ExpiredCredential()

        user = self.accounts.get_user(user_id)
        if user is None:
            raise InvalidCredential("User not found")

        return Principal(id=user.id, username=user.username, is_admin=bool(user.is_admin))

    def invalidate(self, token: str) -> None:
        """Revoke the session behind a token; caller commits"""
        claims = self._decode(token)
        try:
            session_id = uuid.UUID(claims["session_id"])
        except (KeyError, ValueError, TypeError) as e:
            raise InvalidCredential("Invalid session token") from e
        self.sessions.deactivate(session_id)

    def sweep_expired(self) -> int:
        """Best-effort deactivation of expired sessions; not needed for correctness"""
        count = self.sessions.deactivate_expired(utcnow())
        self.db.commit()
        if count:
            logger.info("Expired sessions deactivated", extra={"count": count})
        return count

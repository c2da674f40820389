import logging
import secrets

from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from classes.errors import Expired, Forbidden, InvalidCredentials, Revoked, Unauthenticated, Unavailable
from models import db
from models.sessions import UserSession
from models.users import User, password_hash_method
from utils.helpers import format_datetime, utcnow

logger = logging.getLogger(__name__)

# 32 bytes -> 256 bits of entropy
TOKEN_BYTES = 32


class SessionContext:
    """Identity attached to a validated request."""

    def __init__(self, user_id, username, name, role, session_token=None, expires_at=None):
        self.user_id = user_id
        self.username = username
        self.name = name
        self.role = role
        self.session_token = session_token
        self.expires_at = expires_at

    @property
    def is_admin(self):
        return self.role == "admin"

    def to_dict(self):
        return {
            "id": self.user_id,
            "username": self.username,
            "name": self.name,
            "role": self.role,
        }

    def __repr__(self):
        return f"<SessionContext {self.username} ({self.role})>"


class AuthService:
    """Issues, validates and revokes server-side session tokens.

    Session states: active -> expired (detected lazily by ``validate``) or
    active -> revoked (row deleted). A new login always mints a new token.
    """

    def __init__(self, session_lifetime, password_hash_iterations, clock=utcnow):
        self.session_lifetime = session_lifetime
        self.clock = clock
        # Compared against when the username is unknown so both failure paths do the same work
        self._dummy_hash = generate_password_hash(
            secrets.token_hex(16), method=password_hash_method(password_hash_iterations)
        )

    def authenticate(self, username, password):
        """Return a new ``UserSession`` for valid credentials."""
        try:
            user = User.query.filter_by(username=username, is_deleted=False).first()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("User lookup failed during login: %s", e)
            raise Unavailable(str(e))

        if user is None:
            check_password_hash(self._dummy_hash, password)
            logger.info("Login failed for %r", username)
            raise InvalidCredentials()

        if not user.check_password(password):
            logger.info("Login failed for %r", username)
            raise InvalidCredentials()

        now = self.clock()
        user_session = UserSession(
            session_token=secrets.token_urlsafe(TOKEN_BYTES),
            user_id=user.id,
            created_at=now,
            expires_at=now + self.session_lifetime,
            last_accessed_at=now,
        )
        try:
            db.session.add(user_session)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Could not persist session for user %s: %s", user.id, e)
            raise Unavailable(str(e))

        logger.info("User %s logged in, session expires %s", user.username, format_datetime(user_session.expires_at))
        return user_session

    def validate(self, token):
        if not token:
            raise Unauthenticated()

        try:
            user_session = UserSession.query.filter_by(session_token=token).first()
            if user_session is None or user_session.user is None or user_session.user.is_deleted:
                raise Revoked()

            now = self.clock()
            if user_session.is_expired(now):
                raise Expired()

            user = user_session.user
            context = SessionContext(
                user_id=user.id,
                username=user.username,
                name=user.name,
                role=user.role,
                session_token=token,
                expires_at=user_session.expires_at,
            )
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Session lookup failed: %s", e)
            raise Unavailable(str(e))

        self._touch(user_session, now)
        return context

    def _touch(self, user_session, now):
        # Best effort: the request proceeds even if last_accessed_at is not saved
        try:
            user_session.last_accessed_at = now
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.warning("Could not update last_accessed_at for session of user %s: %s", user_session.user_id, e)

    def revoke(self, token):
        """Delete the session for ``token``. Unknown or empty tokens are ignored."""
        if not token:
            return 0
        try:
            deleted = UserSession.query.filter_by(session_token=token).delete()
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Could not revoke session: %s", e)
            raise Unavailable(str(e))
        if deleted:
            logger.info("Session revoked")
        return deleted

    def revoke_all(self, user_id):
        try:
            deleted = UserSession.query.filter_by(user_id=user_id).delete()
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Could not revoke sessions for user %s: %s", user_id, e)
            raise Unavailable(str(e))
        logger.info("Revoked %d session(s) for user %s", deleted, user_id)
        return deleted

    def sweep_expired_sessions(self):
        now = self.clock()
        try:
            deleted = UserSession.query.filter(UserSession.expires_at <= now).delete()
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise Unavailable(str(e))
        logger.info("Cleaned up %d expired sessions", deleted)
        return deleted

    def count_active_sessions(self):
        return UserSession.query.filter(UserSession.expires_at > self.clock()).count()

    @staticmethod
    def require_role(context, role):
        if context.role != role:
            raise Forbidden(f"{role} access required")

    @staticmethod
    def require_self_or_admin(context, target_username):
        if context.role == "admin" or context.username == target_username:
            return
        raise Forbidden()

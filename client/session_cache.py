import logging
import secrets
import threading
import time

from client.api import ApiError, AuthRejected
from client.storage import VolatileStorage
from utils.timers import RepeatingTimer
from utils.tokens import decode_session_record, encode_session_record

logger = logging.getLogger(__name__)

STORAGE_KEY = "session_data"

# User-interaction signals that count as activity
ACTIVITY_SIGNALS = frozenset({"pointer_move", "pointer_down", "key_press", "scroll", "touch_start"})

MAX_INACTIVITY = 30 * 60
MAX_SESSION_DURATION = 7 * 24 * 60 * 60
CHECK_INTERVAL = 60
REFRESH_THRESHOLD = 60 * 60

CREATED = "created"
UPDATED = "updated"
CLEARED = "cleared"


class CachedSession:
    """Client-side snapshot of a logged-in user. Times are epoch seconds."""

    FIELDS = (
        "user_id", "username", "role", "name", "completed_videos", "login_time",
        "last_activity", "remember_me", "session_id", "expires_at", "session_token",
    )

    def __init__(self, user_id, username, role, name, completed_videos, login_time,
                 last_activity, remember_me, session_id, expires_at, session_token=None):
        self.user_id = user_id
        self.username = username
        self.role = role
        self.name = name
        self.completed_videos = list(completed_videos or [])
        self.login_time = login_time
        self.last_activity = last_activity
        self.remember_me = remember_me
        self.session_id = session_id
        self.expires_at = expires_at
        self.session_token = session_token

    def to_dict(self):
        return {field: getattr(self, field) for field in self.FIELDS}

    @classmethod
    def from_dict(cls, data):
        return cls(**{field: data.get(field) for field in cls.FIELDS})

    def __repr__(self):
        return f"<CachedSession {self.username} ({self.role})>"


class SessionCache:
    """Mirror of the server session so the UI can answer instantly.

    Validity is checked locally against two limits: an absolute expiry set at
    creation and an inactivity window reset by activity signals. Listeners are
    called synchronously with ``(event, session)`` on every transition.
    """

    def __init__(self, signing_key, durable_storage=None, volatile_storage=None, api_client=None,
                 clock=time.time, max_inactivity=MAX_INACTIVITY, max_session_duration=MAX_SESSION_DURATION,
                 check_interval=CHECK_INTERVAL, refresh_threshold=REFRESH_THRESHOLD):
        self.signing_key = signing_key
        self.durable_storage = durable_storage if durable_storage is not None else VolatileStorage()
        self.volatile_storage = volatile_storage if volatile_storage is not None else VolatileStorage()
        self.api_client = api_client
        self.clock = clock
        self.max_inactivity = max_inactivity
        self.max_session_duration = max_session_duration
        self.check_interval = check_interval
        self.refresh_threshold = refresh_threshold

        self._session = None
        self._listeners = []
        self._lock = threading.RLock()
        self._timer = None

    @classmethod
    def from_config(cls, config, **kwargs):
        """Build a cache from a Flask-style config mapping.

        Reads ``CLIENT_SESSION_SIGNING_KEY``, ``CLIENT_SESSION_INACTIVITY`` and
        ``SESSION_LIFETIME`` (timedeltas); ``kwargs`` go to the constructor.
        """
        kwargs.setdefault("max_inactivity", config["CLIENT_SESSION_INACTIVITY"].total_seconds())
        kwargs.setdefault("max_session_duration", config["SESSION_LIFETIME"].total_seconds())
        return cls(config["CLIENT_SESSION_SIGNING_KEY"], **kwargs)

    # Lifecycle

    def create_session(self, user, remember_me=True, session_token=None):
        """``user`` holds ``id``, ``username``, ``name``, ``role`` and optionally ``completed_videos``."""
        now = self.clock()
        session = CachedSession(
            user_id=user["id"],
            username=user["username"],
            role=user["role"],
            name=user["name"],
            completed_videos=user.get("completed_videos", []),
            login_time=now,
            last_activity=now,
            remember_me=remember_me,
            session_id=f"session_{secrets.token_urlsafe(16)}",
            expires_at=now + self.max_session_duration,
            session_token=session_token,
        )
        with self._lock:
            self._session = session
            self._store(session)
        self._attach_token(session)
        self._notify(CREATED)
        return session

    def restore(self):
        """Load a stored session. Returns it if still valid, otherwise clears storage."""
        encoded = self.durable_storage.get(STORAGE_KEY) or self.volatile_storage.get(STORAGE_KEY)
        if not encoded:
            return None

        data = decode_session_record(encoded, self.signing_key)
        session = CachedSession.from_dict(data) if data else None
        if session is None or not self._is_session_valid(session):
            logger.info("Discarding stored session")
            self.clear()
            return None

        with self._lock:
            self._session = session
        self._attach_token(session)
        self._notify(CREATED)
        return session

    def clear(self):
        with self._lock:
            self._session = None
            self.durable_storage.remove(STORAGE_KEY)
            self.volatile_storage.remove(STORAGE_KEY)
        self._notify(CLEARED)

    def get_session(self):
        return self._session

    # Validity

    def _is_session_valid(self, session):
        if session.expires_at is None or session.last_activity is None:
            return False
        now = self.clock()
        return now < session.expires_at and now - session.last_activity < self.max_inactivity

    def is_valid(self):
        session = self._session
        return session is not None and self._is_session_valid(session)

    is_logged_in = is_valid

    def time_until_expiry(self):
        session = self._session
        if session is None:
            return 0
        return max(0, session.expires_at - self.clock())

    def time_until_inactivity(self):
        session = self._session
        if session is None:
            return 0
        return max(0, self.max_inactivity - (self.clock() - session.last_activity))

    def check(self):
        """Clear the session if it has expired or gone inactive. Returns validity."""
        if self._session is None:
            return False
        if self.is_valid():
            return True
        logger.info("Cached session expired or inactive, clearing")
        self.clear()
        return False

    # Activity and local updates

    def record_activity(self, signal):
        if signal not in ACTIVITY_SIGNALS:
            return False
        with self._lock:
            session = self._session
            # Activity cannot revive a session that has already lapsed
            if session is None or not self._is_session_valid(session):
                return False
            session.last_activity = self.clock()
            self._store(session)
        return True

    def update_session(self, touch=True, **changes):
        with self._lock:
            session = self._session
            if session is None:
                return None
            for field, value in changes.items():
                if field not in CachedSession.FIELDS:
                    raise AttributeError(f"Unknown session field: {field}")
                setattr(session, field, value)
            if touch:
                session.last_activity = self.clock()
            self._store(session)
        self._notify(UPDATED)
        return session

    def update_completed_videos(self, completed_videos):
        return self.update_session(completed_videos=list(completed_videos))

    def set_video_completed(self, video_id, completed):
        """Optimistic local update ahead of the server round trip."""
        session = self._session
        if session is None:
            return None
        completed_videos = [vid for vid in session.completed_videos if vid != video_id]
        if completed:
            completed_videos.append(video_id)
        return self.update_completed_videos(completed_videos)

    # Server reconciliation

    def refresh(self):
        """Re-validate against the server and refresh name and progress.

        An auth rejection clears the session; any other failure keeps the
        cached snapshot.
        """
        session = self._session
        if session is None or self.api_client is None:
            return False

        try:
            user = self.api_client.current_user()
            completed = self.api_client.completed_video_ids(user["username"])
        except AuthRejected as e:
            logger.info("Server rejected cached session: %s", e)
            self.clear()
            return False
        except ApiError as e:
            logger.warning("Session refresh failed, keeping cached data: %s", e)
            return False

        self.update_session(touch=False, name=user.get("name", session.name), completed_videos=completed)
        return True

    def refresh_if_needed(self):
        if self._session is None:
            return False
        if self.time_until_expiry() < self.refresh_threshold:
            return self.refresh()
        return False

    # Periodic self-check

    def start(self):
        if self._timer is None:
            self._timer = RepeatingTimer(self.check_interval, self._tick, name="session-cache-check").start()
        return self

    def stop(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _tick(self):
        if self.check():
            self.refresh_if_needed()

    # Listeners

    def add_listener(self, listener):
        self._listeners.append(listener)

    def remove_listener(self, listener):
        self._listeners = [l for l in self._listeners if l is not listener]

    def _notify(self, event):
        session = self._session
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.exception("Session listener failed on %s", event)

    # Storage

    def _store(self, session):
        encoded = encode_session_record(session.to_dict(), self.signing_key)
        if session.remember_me:
            self.durable_storage.set(STORAGE_KEY, encoded)
            self.volatile_storage.remove(STORAGE_KEY)
        else:
            self.volatile_storage.set(STORAGE_KEY, encoded)
            self.durable_storage.remove(STORAGE_KEY)

    def _attach_token(self, session):
        if self.api_client is not None and session.session_token:
            self.api_client.session_token = session.session_token

import json
import logging
import queue
import threading
import uuid

from utils.helpers import format_datetime, utcnow
from utils.timers import RepeatingTimer

logger = logging.getLogger(__name__)

_CLOSED = object()


class ChannelClosed(Exception):
    pass


def format_sse(event):
    return f"data: {json.dumps(event)}\n\n"


class QueueChannel:
    """Output channel backing one event-stream response.

    Writers enqueue frames without blocking; the streaming response reads them.
    A full queue means the subscriber stopped draining, which counts as a
    failed write.
    """

    POLL_SECONDS = 1.0

    def __init__(self, maxsize=100):
        self._queue = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()

    @property
    def closed(self):
        return self._closed.is_set()

    def write(self, frame):
        if self.closed:
            raise ChannelClosed("channel is closed")
        try:
            self._queue.put_nowait(frame)
        except queue.Full:
            raise ChannelClosed("subscriber is not draining its channel")

    def read(self, timeout=None):
        """Next frame, or None once the channel is closed or ``timeout`` passes."""
        waited = 0.0
        while not self.closed:
            wait = self.POLL_SECONDS if timeout is None else min(self.POLL_SECONDS, timeout - waited)
            if wait <= 0:
                return None
            try:
                frame = self._queue.get(timeout=wait)
            except queue.Empty:
                waited += wait
                continue
            if frame is _CLOSED:
                return None
            return frame
        return None

    def drain(self):
        frames = []
        while True:
            try:
                frame = self._queue.get_nowait()
            except queue.Empty:
                return frames
            if frame is not _CLOSED:
                frames.append(frame)

    def close(self):
        if self.closed:
            return
        self._closed.set()
        try:
            self._queue.put_nowait(_CLOSED)
        except queue.Full:
            pass


class ConnectionHandle:
    def __init__(self, connection_id, user_id, role, channel, username=None):
        self.id = connection_id
        self.user_id = user_id
        self.role = role
        self.username = username
        self.channel = channel
        self.heartbeat = None

    @property
    def is_admin(self):
        return self.role == "admin"

    def release(self):
        if self.heartbeat is not None:
            self.heartbeat.cancel()
            self.heartbeat = None
        self.channel.close()

    def __repr__(self):
        return f"<ConnectionHandle {self.id} user={self.user_id} ({self.role})>"


class ProgressBroadcaster:
    """Registry of live subscriber channels and fan-out of progress events.

    Delivery is best effort: nothing is persisted or replayed. A channel whose
    write fails is evicted and never written to again. The registry is only
    mutated under ``_lock``; broadcasts snapshot it under the lock and write
    outside it so a slow channel cannot hold up subscribe/unsubscribe.
    """

    def __init__(self, heartbeat_interval=30, queue_size=100, clock=utcnow):
        self.heartbeat_interval = heartbeat_interval
        self.queue_size = queue_size
        self.clock = clock
        self._connections = {}
        self._lock = threading.Lock()

    def subscribe(self, user_id, role, username=None, channel=None):
        handle = ConnectionHandle(
            connection_id=uuid.uuid4().hex,
            user_id=user_id,
            role=role,
            channel=channel if channel is not None else QueueChannel(self.queue_size),
            username=username,
        )
        with self._lock:
            self._connections[handle.id] = handle
        logger.info("SSE client connected: %s (%s)", username or user_id, role)

        connected = self._deliver(handle, {
            "type": "connection",
            "message": "Connected to progress updates",
            "timestamp": self._timestamp(),
        })
        if connected and self.heartbeat_interval:
            handle.heartbeat = RepeatingTimer(
                self.heartbeat_interval,
                lambda: self._send_heartbeat(handle),
                name=f"sse-heartbeat-{handle.id[:8]}",
            ).start()
        return handle

    def unsubscribe(self, handle):
        with self._lock:
            removed = self._connections.pop(handle.id, None)
        handle.release()
        if removed is not None:
            logger.info("SSE client disconnected: %s", handle.username or handle.user_id)
        return removed is not None

    def broadcast(self, event):
        """Deliver ``event`` to the subject's own channels and to every admin channel."""
        subject_id = event.get("user_id")
        with self._lock:
            targets = [
                handle for handle in self._connections.values()
                if handle.user_id == subject_id or handle.is_admin
            ]
        delivered = sum(1 for handle in targets if self._deliver(handle, event))
        logger.info("Broadcasted %s to %d SSE clients", event.get("type", "event"), delivered)
        return delivered

    def broadcast_all(self, event):
        with self._lock:
            targets = list(self._connections.values())
        delivered = sum(1 for handle in targets if self._deliver(handle, event))
        logger.info("Broadcasted %s to %d SSE clients", event.get("type", "event"), delivered)
        return delivered

    def system_message(self, message, message_type="info"):
        return self.broadcast_all({
            "type": "system_message",
            "message_type": message_type,
            "message": message,
            "timestamp": self._timestamp(),
        })

    def connection_count(self):
        with self._lock:
            return len(self._connections)

    def is_registered(self, handle):
        with self._lock:
            return handle.id in self._connections

    def close_all(self):
        with self._lock:
            handles = list(self._connections.values())
            self._connections.clear()
        for handle in handles:
            handle.release()

    def _send_heartbeat(self, handle):
        self._deliver(handle, {"type": "heartbeat", "timestamp": self._timestamp()})

    def _deliver(self, handle, event):
        try:
            handle.channel.write(format_sse(event))
            return True
        except Exception as e:
            logger.warning("SSE write to %s failed, evicting: %s", handle.username or handle.user_id, e)
            self.unsubscribe(handle)
            return False

    def _timestamp(self):
        return format_datetime(self.clock())

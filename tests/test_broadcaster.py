import json
import threading

from classes.broadcaster import ChannelClosed, ProgressBroadcaster, QueueChannel, format_sse


class FailingChannel(QueueChannel):
    """Accepts the first ``allowed`` writes, then fails like a dropped connection."""

    def __init__(self, allowed=1):
        super().__init__()
        self.allowed = allowed
        self.writes = 0

    def write(self, frame):
        self.writes += 1
        if self.writes > self.allowed:
            raise ChannelClosed("connection reset")
        super().write(frame)


def decode(frames):
    return [json.loads(frame[len("data: "):]) for frame in frames]


def make_broadcaster(**kwargs):
    kwargs.setdefault("heartbeat_interval", 0)
    return ProgressBroadcaster(**kwargs)


def test_format_sse_frame():
    assert format_sse({"type": "heartbeat"}) == 'data: {"type": "heartbeat"}\n\n'


def test_subscribe_sends_connection_event():
    broadcaster = make_broadcaster()

    handle = broadcaster.subscribe(1, "student", username="student1")

    events = decode(handle.channel.drain())
    assert [event["type"] for event in events] == ["connection"]
    assert events[0]["message"] == "Connected to progress updates"
    assert broadcaster.is_registered(handle)


def test_broadcast_reaches_subject_and_admins_only():
    broadcaster = make_broadcaster()
    owner_tab = broadcaster.subscribe(1, "student")
    owner_phone = broadcaster.subscribe(1, "student")
    other = broadcaster.subscribe(2, "student")
    admin = broadcaster.subscribe(99, "admin")
    for handle in (owner_tab, owner_phone, other, admin):
        handle.channel.drain()

    delivered = broadcaster.broadcast({"type": "progress_update", "user_id": 1})

    assert delivered == 3
    assert len(owner_tab.channel.drain()) == 1
    assert len(owner_phone.channel.drain()) == 1
    assert len(admin.channel.drain()) == 1
    assert other.channel.drain() == []


def test_failed_write_evicts_only_that_channel():
    broadcaster = make_broadcaster()
    broken = broadcaster.subscribe(1, "student", channel=FailingChannel(allowed=1))
    healthy = broadcaster.subscribe(1, "student")
    healthy.channel.drain()

    delivered = broadcaster.broadcast({"type": "progress_update", "user_id": 1})

    assert delivered == 1
    assert not broadcaster.is_registered(broken)
    assert broken.channel.closed
    assert broadcaster.connection_count() == 1
    assert len(healthy.channel.drain()) == 1

    # Evicted channels are never written again
    broadcaster.broadcast({"type": "progress_update", "user_id": 1})
    assert broken.channel.writes == 2


def test_connection_event_failure_leaves_nothing_registered():
    broadcaster = make_broadcaster()

    handle = broadcaster.subscribe(1, "student", channel=FailingChannel(allowed=0))

    assert not broadcaster.is_registered(handle)
    assert broadcaster.connection_count() == 0


def test_full_queue_counts_as_failed_write():
    broadcaster = make_broadcaster(queue_size=2)
    slow = broadcaster.subscribe(1, "student")

    broadcaster.broadcast({"type": "progress_update", "user_id": 1})
    delivered = broadcaster.broadcast({"type": "progress_update", "user_id": 1})

    assert delivered == 0
    assert not broadcaster.is_registered(slow)


def test_unsubscribe_is_idempotent():
    broadcaster = make_broadcaster()
    handle = broadcaster.subscribe(1, "student")

    assert broadcaster.unsubscribe(handle) is True
    assert broadcaster.unsubscribe(handle) is False
    assert broadcaster.connection_count() == 0
    assert handle.channel.closed


def test_system_message_reaches_everyone():
    broadcaster = make_broadcaster()
    handles = [broadcaster.subscribe(1, "student"), broadcaster.subscribe(2, "admin")]
    for handle in handles:
        handle.channel.drain()

    assert broadcaster.system_message("Maintenance at noon", "warning") == 2

    for handle in handles:
        event = decode(handle.channel.drain())[0]
        assert event["type"] == "system_message"
        assert event["message_type"] == "warning"
        assert event["message"] == "Maintenance at noon"


def test_heartbeat_is_sent_periodically():
    broadcaster = make_broadcaster(heartbeat_interval=0.05)
    handle = broadcaster.subscribe(1, "student")

    try:
        handle.channel.read(timeout=1)  # connection event
        frame = handle.channel.read(timeout=2)
    finally:
        broadcaster.unsubscribe(handle)

    assert decode([frame])[0]["type"] == "heartbeat"
    assert handle.heartbeat is None


def test_close_all_releases_every_channel():
    broadcaster = make_broadcaster()
    handles = [broadcaster.subscribe(user_id, "student") for user_id in range(3)]

    broadcaster.close_all()

    assert broadcaster.connection_count() == 0
    assert all(handle.channel.closed for handle in handles)


def test_read_returns_none_after_close():
    channel = QueueChannel()
    channel.write("data: {}\n\n")
    channel.close()

    assert channel.read(timeout=0.1) is None


def test_read_times_out():
    assert QueueChannel().read(timeout=0.05) is None


def test_concurrent_subscribe_and_broadcast():
    broadcaster = make_broadcaster(queue_size=1000)
    admin = broadcaster.subscribe(0, "admin")
    errors = []

    def churn(user_id):
        try:
            for _ in range(50):
                handle = broadcaster.subscribe(user_id, "student")
                broadcaster.broadcast({"type": "progress_update", "user_id": user_id})
                broadcaster.unsubscribe(handle)
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=churn, args=(user_id,)) for user_id in range(1, 5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert errors == []
    assert broadcaster.connection_count() == 1
    assert broadcaster.is_registered(admin)


def test_failed_heartbeat_evicts_connection():
    broadcaster = make_broadcaster(heartbeat_interval=0.05)
    handle = broadcaster.subscribe(1, "student", channel=FailingChannel(allowed=1))
    timer = handle.heartbeat

    # The first heartbeat write fails and releases the handle
    assert handle.channel._closed.wait(2)
    assert not broadcaster.is_registered(handle)
    assert handle.heartbeat is None
    assert timer.cancelled
    assert handle.channel.writes == 2

import json


def first_frame(response):
    frame = next(iter(response.response))
    return frame.decode("utf-8") if isinstance(frame, bytes) else frame


def test_stream_requires_session(client, seed):
    response = client.get("/api/sse/progress")

    assert response.status_code == 401


def test_stream_registers_and_unregisters_connection(client, login, seed, broadcaster):
    headers = login("student1")

    response = client.get("/api/sse/progress", headers=headers, buffered=False)

    assert response.status_code == 200
    assert response.mimetype == "text/event-stream"
    assert response.headers["Cache-Control"] == "no-cache"
    assert response.headers["X-Accel-Buffering"] == "no"

    frame = first_frame(response)
    assert frame.startswith("data: ")
    assert json.loads(frame[len("data: "):])["type"] == "connection"
    assert broadcaster.connection_count() == 1

    response.close()

    assert broadcaster.connection_count() == 0


def test_stream_delivers_progress_of_subject(client, login, seed, broadcaster):
    stream = client.get("/api/sse/progress", headers=login("admin"), buffered=False)
    first_frame(stream)

    client.post("/api/progress/student1", json={"video_id": seed["basics"][0], "completed": True},
                headers=login("student1"))

    event = json.loads(first_frame(stream)[len("data: "):])
    stream.close()
    assert event["type"] == "progress_update"
    assert event["username"] == "student1"


def test_system_message_is_admin_only(client, login, seed):
    response = client.post("/api/sse/system-message", json={"message": "hi"}, headers=login("student1"))

    assert response.status_code == 403


def test_system_message_delivery_count(client, login, seed, broadcaster):
    handle = broadcaster.subscribe(seed["student1"], "student")
    handle.channel.drain()

    response = client.post("/api/sse/system-message", json={"message": "Server restart", "type": "bogus"},
                           headers=login("admin"))

    assert response.status_code == 200
    assert response.get_json() == {"message": "System message sent", "delivered": 1}
    event = json.loads(handle.channel.drain()[0][len("data: "):])
    assert event["message_type"] == "info"


def test_system_message_requires_text(client, login, seed):
    response = client.post("/api/sse/system-message", json={"message": "  "}, headers=login("admin"))

    assert response.status_code == 400

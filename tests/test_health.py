from unittest.mock import patch

from sqlalchemy.exc import OperationalError


def test_health_reports_statistics(client, login, seed, broadcaster):
    login("student1")
    broadcaster.subscribe(seed["student1"], "student")

    response = client.get("/api/health")

    body = response.get_json()
    assert response.status_code == 200
    assert body["status"] == "healthy"
    assert body["sse_clients"] == 1
    assert body["statistics"] == {
        "total_users": 3,
        "total_videos": 7,
        "total_progress_records": 0,
        "active_sessions": 1,
    }


def test_health_reports_unhealthy_database(client, app):
    with patch("routes.health.db.session.execute", side_effect=OperationalError("SELECT 1", {}, Exception("down"))):
        response = client.get("/api/health")

    assert response.status_code == 503
    body = response.get_json()
    assert body["status"] == "unhealthy"
    assert "details" not in body

"""
Pytest configuration and fixtures shared by all tests.

Every test gets a fresh application bound to an in-memory SQLite database
(TestConfig), seeded with an admin, two students and a small video catalogue.
"""

from datetime import datetime, timedelta

import pytest

from app import create_app
from models import db
from models.users import User
from models.videos import Video

ADMIN_PASSWORD = "admin-pass"
STUDENT_PASSWORD = "student-pass"


class FakeClock:
    """Callable returning a settable naive-UTC ``datetime``."""

    def __init__(self, start=datetime(2026, 1, 5, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
    app.extensions["progress_broadcaster"].close_all()


@pytest.fixture
def client(app):
    # No cookie jar: tests pick the identity per request with bearer headers
    return app.test_client(use_cookies=False)


@pytest.fixture
def clock(app):
    fake = FakeClock()
    app.extensions["auth_service"].clock = fake
    app.extensions["progress_manager"].clock = fake
    app.extensions["progress_broadcaster"].clock = fake
    return fake


@pytest.fixture
def auth_service(app):
    return app.extensions["auth_service"]


@pytest.fixture
def broadcaster(app):
    return app.extensions["progress_broadcaster"]


@pytest.fixture
def seed(app):
    """Users and videos. Folder "Basics" has 5 live videos, "Advanced" has 2 plus one deleted."""
    admin = User(username="admin", name="Admin User", role="admin")
    admin.set_password(ADMIN_PASSWORD)
    student1 = User(username="student1", name="Student One", role="student")
    student1.set_password(STUDENT_PASSWORD)
    student2 = User(username="student2", name="Student Two", role="student")
    student2.set_password(STUDENT_PASSWORD)
    db.session.add_all([admin, student1, student2])

    basics = [Video(title=f"Basics {i}", folder="Basics", position=i) for i in range(1, 6)]
    advanced = [Video(title=f"Advanced {i}", folder="Advanced", position=i) for i in range(1, 3)]
    removed = Video(title="Old lecture", folder="Advanced", position=3, is_deleted=True)
    db.session.add_all(basics + advanced + [removed])
    db.session.commit()

    return {
        "admin": admin.id,
        "student1": student1.id,
        "student2": student2.id,
        "basics": [video.id for video in basics],
        "advanced": [video.id for video in advanced],
        "deleted_video": removed.id,
    }


@pytest.fixture
def login(app, seed):
    """Log in through the API and return bearer headers for that user."""

    def _login(username, password=None):
        if password is None:
            password = ADMIN_PASSWORD if username == "admin" else STUDENT_PASSWORD
        response = app.test_client(use_cookies=False).post(
            "/api/login", json={"username": username, "password": password}
        )
        assert response.status_code == 200, response.get_json()
        return {"Authorization": f"Bearer {response.get_json()['sessionToken']}"}

    return _login

import os

# must be set before the app module creates its engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("APP_SECRET", "test-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402

from app import app as flask_app  # noqa: E402
from models import db, Role, User  # noqa: E402

PASSWORD = "password123"


class ApiClient:
    """Test client for one signed-in browser: own cookie jar, CSRF header attached."""

    def __init__(self, app):
        self.http = app.test_client()
        self._csrf = None

    def _headers(self):
        if self._csrf is None:
            self._csrf = self.http.get("/auth/csrf").get_json()["csrf"]
        return {"X-CSRF": self._csrf}

    def get(self, url, **kw):
        return self.http.get(url, **kw)

    def post(self, url, json=None):
        return self.http.post(url, json=json, headers=self._headers())

    def patch(self, url, json=None):
        return self.http.patch(url, json=json, headers=self._headers())

    def delete(self, url):
        return self.http.delete(url, headers=self._headers())

    def login(self, email, password=PASSWORD):
        resp = self.post("/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return self


@pytest.fixture
def app():
    flask_app.config.update(
        TESTING=True,
        CSRF_ENABLED=True,
        ENFORCE_TIME_LIMIT=True,
        TIME_LIMIT_GRACE_SECONDS=30,
    )
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
    yield flask_app
    with flask_app.app_context():
        db.session.remove()


@pytest.fixture
def anon(app):
    return ApiClient(app)


@pytest.fixture
def login_as(app):
    def _login(role, email, name=None, password=PASSWORD):
        with app.app_context():
            u = User(name=name, email=email, role=role.value)
            u.set_password(password)
            db.session.add(u)
            db.session.commit()
        return ApiClient(app).login(email, password)
    return _login


@pytest.fixture
def teacher(login_as):
    return login_as(Role.TEACHER, "teacher@example.com", "Tina Teacher")


@pytest.fixture
def student(login_as):
    return login_as(Role.STUDENT, "sam@example.com", "Sam")


@pytest.fixture
def other_student(login_as):
    return login_as(Role.STUDENT, "olive@example.com", "Olive")


@pytest.fixture
def admin(login_as):
    return login_as(Role.ADMIN, "admin@example.com", "Ada Admin")


ALGEBRA_QUESTIONS = [
    {"prompt": "Pick A", "options": ["A", "B"], "answer": "A", "explanation": "A is first."},
    {"prompt": "Pick Y", "options": ["X", "Y"], "answer": "Y"},
]


@pytest.fixture
def algebra(teacher, student):
    """Class 'Algebra' with the student enrolled and a two-question quiz Q1."""
    klass = teacher.post("/classes", json={"name": "Algebra"}).get_json()
    resp = student.post("/classes/join", json={"code": klass["code"]})
    assert resp.status_code == 200
    quiz = teacher.post(f"/classes/{klass['id']}/quizzes",
                        json={"title": "Q1", "questions": ALGEBRA_QUESTIONS}).get_json()
    return {"class": klass, "quiz": quiz,
            "quiz_url": f"/classes/{klass['id']}/quizzes/{quiz['id']}"}

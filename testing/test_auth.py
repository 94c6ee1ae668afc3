from models import Role


def test_register_then_login(anon):
    resp = anon.post("/auth/register", json={
        "name": "Nina", "email": "Nina@Example.com", "password": "longenough", "role": "student",
    })
    assert resp.status_code == 201
    assert resp.get_json()["user"]["email"] == "nina@example.com"
    assert resp.get_json()["user"]["role"] == "STUDENT"

    resp = anon.post("/auth/login", json={"email": "nina@example.com", "password": "longenough"})
    assert resp.status_code == 200
    me = anon.get("/auth/me").get_json()["user"]
    assert me["role"] == "STUDENT"


def test_register_rejects_duplicate_email(anon, student):
    resp = anon.post("/auth/register", json={
        "email": "sam@example.com", "password": "longenough", "role": "STUDENT",
    })
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Conflict"


def test_register_rejects_admin_role_and_short_password(anon):
    resp = anon.post("/auth/register", json={"email": "x@example.com", "password": "longenough", "role": "ADMIN"})
    assert resp.status_code == 400
    resp = anon.post("/auth/register", json={"email": "x@example.com", "password": "short", "role": "TEACHER"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "InvalidInput"


def test_wrong_password_is_unauthorized(anon, student):
    resp = anon.post("/auth/login", json={"email": "sam@example.com", "password": "nope-nope"})
    assert resp.status_code == 401
    assert resp.get_json() == {"message": "Invalid credentials", "error": "Unauthorized"}


def test_protected_route_without_session(anon):
    resp = anon.get("/classes")
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Unauthorized"


def test_wrong_role_is_forbidden_not_unauthorized(student):
    resp = student.post("/classes", json={"name": "Mine"})
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "Forbidden"


def test_session_for_deleted_account_is_not_found(app, student):
    from models import db, User
    with app.app_context():
        User.query.filter_by(email="sam@example.com").delete()
        db.session.commit()
    resp = student.get("/auth/me")
    assert resp.status_code == 404


def test_state_change_requires_csrf_header(app, login_as):
    client = login_as(Role.TEACHER, "t2@example.com")
    resp = client.http.post("/classes", json={"name": "No token"})
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "bad csrf"


def test_logout_clears_session(student):
    assert student.post("/auth/logout").status_code == 200
    assert student.get("/auth/me").status_code == 401


def test_role_parse_rejects_non_strings():
    assert Role.parse(" teacher ") is Role.TEACHER
    for bad in (5, ["TEACHER"], None, {"role": "ADMIN"}, "owner"):
        assert Role.parse(bad) is None


def test_register_with_numeric_role_is_invalid_input(anon):
    resp = anon.post("/auth/register", json={"email": "n@example.com", "password": "longenough", "role": 5})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "InvalidInput"


def test_non_ascii_csrf_header_is_rejected(app, login_as):
    client = login_as(Role.TEACHER, "t3@example.com")
    resp = client.http.post("/classes", json={"name": "Bad token"}, headers={"X-CSRF": "é"})
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "bad csrf"


def test_login_session_stores_only_email(student):
    with student.http.session_transaction() as sess:
        assert sess["email"] == "sam@example.com"
        assert "user_role" not in sess

import os, io, secrets, argparse, logging
from datetime import timedelta
from flask import Flask, request, jsonify, send_file, g
from werkzeug.exceptions import HTTPException
import qrcode

from models import db, Role, User
from auth import (authenticate, check_password_policy, create_account, csrf_token,
                  login_user, logout_everyone, require_user, verify_csrf)
from errors import Conflict, Forbidden, InvalidInput, NotFound, error_kind
import classroom
import grading
import quizzes
import reports

log = logging.getLogger("mathmaster")

# --------------------------------------------------------------------
# Config
# --------------------------------------------------------------------
APP_SECRET = os.environ.get("APP_SECRET") or secrets.token_hex(32)
DB_PATH = os.path.abspath(os.environ.get("MATHMASTER_DB", "mathmaster.db"))
DB_URI  = os.environ.get("DATABASE_URL") or f"sqlite:///{DB_PATH}"
ENFORCE_TIME_LIMIT = os.environ.get("ENFORCE_TIME_LIMIT", "1") == "1"
TIME_LIMIT_GRACE_SECONDS = int(os.environ.get("TIME_LIMIT_GRACE_SECONDS", "30"))
CSRF_ENABLED = os.environ.get("CSRF_ENABLED", "1") == "1"
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

SAFE_METHODS = ("GET", "HEAD", "OPTIONS")

def configure_logging(level=LOG_LEVEL):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

def create_app(db_path=DB_URI):
    configure_logging()
    app = Flask(__name__)
    app.config["SECRET_KEY"] = APP_SECRET
    app.config["SQLALCHEMY_DATABASE_URI"] = db_path
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(days=30)
    app.config["SESSION_COOKIE_NAME"] = "mathmaster_session"
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["ENFORCE_TIME_LIMIT"] = ENFORCE_TIME_LIMIT
    app.config["TIME_LIMIT_GRACE_SECONDS"] = TIME_LIMIT_GRACE_SECONDS
    app.config["CSRF_ENABLED"] = CSRF_ENABLED
    db.init_app(app)
    with app.app_context():
        db.create_all()
    return app

app = create_app()

# --------------------------------------------------------------------
# Request plumbing
# --------------------------------------------------------------------
@app.before_request
def _check_csrf():
    if request.method in SAFE_METHODS or not app.config.get("CSRF_ENABLED"):
        return
    if not verify_csrf():
        raise InvalidInput("bad csrf")

@app.errorhandler(HTTPException)
def _http_error(e):
    return jsonify({"message": e.description, "error": error_kind(e)}), e.code

@app.errorhandler(Exception)
def _unexpected_error(e):
    db.session.rollback()
    log.exception("unhandled error on %s %s", request.method, request.path)
    return jsonify({"message": "Internal server error", "error": "Internal"}), 500

def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInput("Request body must be a JSON object")
    return data

# --------------------------------------------------------------------
# Auth
# --------------------------------------------------------------------
@app.route("/auth/csrf")
def auth_csrf():
    return jsonify({"csrf": csrf_token()})

@app.route("/auth/register", methods=["POST"])
def auth_register():
    data = _json_body()
    role = Role.parse(data.get("role"))
    if role not in (Role.STUDENT, Role.TEACHER):
        raise InvalidInput("Invalid role")
    u = create_account(data.get("name"), data.get("email"), data.get("password"), role)
    return jsonify({"user": u.to_dict()}), 201

@app.route("/auth/login", methods=["POST"])
def auth_login():
    data = _json_body()
    u = authenticate(data.get("email"), data.get("password"))
    login_user(u)
    log.info("login: %s", u.email)
    return jsonify({"user": u.to_dict()})

@app.route("/auth/logout", methods=["POST"])
def auth_logout():
    logout_everyone()
    return jsonify({"ok": True})

@app.route("/auth/me")
@require_user()
def auth_me():
    return jsonify({"user": g.user.to_dict()})

# --------------------------------------------------------------------
# Classes
# --------------------------------------------------------------------
@app.route("/classes")
@require_user()
def classes_list():
    return jsonify([classroom.class_summary(k) for k in classroom.classes_for(g.user)])

@app.route("/classes", methods=["POST"])
@require_user(Role.TEACHER)
def classes_create():
    data = _json_body()
    klass = classroom.create_class(g.user, data.get("name"))
    return jsonify(classroom.class_summary(klass)), 201

@app.route("/classes/join", methods=["POST"])
@require_user(Role.STUDENT)
def classes_join():
    data = _json_body()
    klass = classroom.join_class(g.user, data.get("code"))
    return jsonify(classroom.class_summary(klass))

@app.route("/classes/<int:class_id>")
@require_user()
def classes_show(class_id):
    klass = classroom.get_member_class(g.user, class_id)
    return jsonify(reports.class_detail(g.user, klass))

@app.route("/classes/<int:class_id>", methods=["DELETE"])
@require_user(Role.TEACHER)
def classes_delete(class_id):
    classroom.delete_class(g.user, class_id)
    return jsonify({"message": "Class deleted successfully"})

@app.route("/classes/<int:class_id>/students")
@require_user()
def classes_students(class_id):
    klass = classroom.get_member_class(g.user, class_id)
    return jsonify(reports.class_roster(g.user, klass))

@app.route("/classes/<int:class_id>/qr.png")
@require_user(Role.TEACHER)
def classes_qr_png(class_id):
    klass = classroom.get_owned_class(g.user, class_id)
    qr = qrcode.QRCode(
        version=None,  # auto
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=8,
        border=2,
    )
    qr.add_data(klass.code)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    buf.seek(0)
    return send_file(buf, mimetype="image/png",
                     as_attachment=False,
                     download_name=f"{klass.code}.png")

# --------------------------------------------------------------------
# Quizzes
# --------------------------------------------------------------------
@app.route("/classes/<int:class_id>/quizzes")
@require_user()
def quizzes_list(class_id):
    return jsonify(quizzes.list_quizzes(g.user, class_id))

@app.route("/classes/<int:class_id>/quizzes", methods=["POST"])
@require_user(Role.TEACHER)
def quizzes_create(class_id):
    data = _json_body()
    time_limit = data.get("time_limit", data.get("timeLimit"))
    quiz = quizzes.create_quiz(g.user, class_id, data.get("title"),
                               questions=data.get("questions"),
                               time_limit=time_limit,
                               description=data.get("description"))
    return jsonify(quizzes.full_view(quiz)), 201

@app.route("/classes/<int:class_id>/quizzes/<int:quiz_id>")
@require_user()
def quizzes_show(class_id, quiz_id):
    return jsonify(quizzes.get_quiz_view(g.user, class_id, quiz_id))

@app.route("/classes/<int:class_id>/quizzes/<int:quiz_id>", methods=["POST"])
@require_user(Role.STUDENT)
def quizzes_submit(class_id, quiz_id):
    data = _json_body()
    return jsonify(grading.submit(g.user, class_id, quiz_id, data.get("answers")))

@app.route("/classes/<int:class_id>/quizzes/<int:quiz_id>", methods=["PATCH"])
@require_user(Role.TEACHER)
def quizzes_update(class_id, quiz_id):
    data = _json_body()
    quiz = quizzes.update_questions(g.user, class_id, quiz_id, data.get("questions"))
    return jsonify({"message": "Questions updated successfully",
                    "questions": quizzes.full_view(quiz)["questions"]})

@app.route("/classes/<int:class_id>/quizzes/<int:quiz_id>", methods=["DELETE"])
@require_user(Role.TEACHER)
def quizzes_delete(class_id, quiz_id):
    classroom.delete_quiz(g.user, class_id, quiz_id)
    return jsonify({"message": "Quiz deleted successfully"})

@app.route("/quizzes")
@require_user(Role.TEACHER)
def quizzes_overview():
    return jsonify(reports.quiz_overview(g.user))

# --------------------------------------------------------------------
# Aggregate views
# --------------------------------------------------------------------
@app.route("/leaderboard")
@require_user()
def leaderboard():
    timeframe = request.args.get("timeframe") or "all"
    try:
        rows = reports.global_leaderboard(timeframe)
    except ValueError as e:
        raise InvalidInput(str(e))
    return jsonify(rows)

@app.route("/dashboard")
@require_user()
def dashboard():
    return jsonify(reports.dashboard(g.user))

@app.route("/analytics")
@require_user(Role.TEACHER)
def analytics():
    return jsonify(reports.analytics(g.user))

@app.route("/students")
@require_user(Role.TEACHER)
def students_list():
    return jsonify(reports.teacher_students(g.user))

@app.route("/students/<int:student_id>")
@require_user(Role.TEACHER)
def students_show(student_id):
    return jsonify(reports.student_detail(g.user, student_id))

# --------------------------------------------------------------------
# Admin
# --------------------------------------------------------------------
def _get_user(user_id):
    u = db.session.get(User, user_id)
    if u is None:
        raise NotFound("User not found")
    return u

@app.route("/admin/users")
@require_user(Role.ADMIN)
def admin_users():
    users = User.query.order_by(User.created_at.asc()).all()
    return jsonify([u.to_dict() for u in users])

@app.route("/admin/users", methods=["POST"])
@require_user(Role.ADMIN)
def admin_users_create():
    data = _json_body()
    if Role.parse(data.get("role") or Role.TEACHER.value) != Role.TEACHER:
        raise InvalidInput("Administrators can only create teacher accounts")
    if not (data.get("name") or "").strip():
        raise InvalidInput("Name is required")
    u = create_account(data.get("name"), data.get("email"), data.get("password"), Role.TEACHER)
    log.info("admin %s created teacher %s", g.user.email, u.email)
    return jsonify({"user": u.to_dict()}), 201

@app.route("/admin/users/<int:user_id>", methods=["PATCH"])
@require_user(Role.ADMIN)
def admin_users_update(user_id):
    data = _json_body()
    u = _get_user(user_id)
    role = Role.parse(data.get("role"))
    if role is None:
        raise InvalidInput("Invalid role")
    if u.id == g.user.id:
        raise Forbidden("Administrators cannot change their own role")
    if role != Role.TEACHER and u.classes_taught.count():
        raise Conflict("Delete or reassign this teacher's classes first")
    u.role = role.value
    db.session.commit()
    log.info("admin %s set role of %s to %s", g.user.email, u.email, u.role)
    return jsonify({"user": u.to_dict()})

@app.route("/admin/users/<int:user_id>", methods=["DELETE"])
@require_user(Role.ADMIN)
def admin_users_delete(user_id):
    u = _get_user(user_id)
    if u.role == Role.ADMIN:
        raise Forbidden("Cannot delete admin users")
    email = u.email
    classroom.delete_user(u)
    log.info("admin %s deleted user %s", g.user.email, email)
    return jsonify({"message": "User deleted successfully"})

@app.route("/admin/users/<int:user_id>/reset-password", methods=["POST"])
@require_user(Role.ADMIN)
def admin_users_reset_password(user_id):
    data = _json_body()
    u = _get_user(user_id)
    pw = data.get("password")
    if not pw:
        raise InvalidInput("Password is required")
    check_password_policy(pw)
    u.set_password(pw)
    db.session.commit()
    log.info("admin %s reset password of %s", g.user.email, u.email)
    return jsonify({"message": "Password reset successfully"})

# --------------------------------------------------------------------
# Dev entry
# --------------------------------------------------------------------
def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=5000)
    args = parser.parse_args()
    app.run(host=args.host, port=args.port)

if __name__ == "__main__":
    main()

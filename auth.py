import functools, hashlib, hmac, logging, secrets
from flask import current_app, g, request, session

from errors import Conflict, Forbidden, InvalidInput, NotFound, Unauthorized
from models import db, Role, User, utcnow

log = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

# --------------------------------------------------------------------
# CSRF (JSON header)
# --------------------------------------------------------------------
def _csrf_key():
    if "csrf_key" not in session:
        session["csrf_key"] = secrets.token_hex(16)
    return session["csrf_key"]

def csrf_token():
    secret = current_app.config["SECRET_KEY"].encode()
    key = _csrf_key().encode()
    return hmac.new(secret, key, hashlib.sha256).hexdigest()

def verify_csrf(header="X-CSRF"):
    sent = request.headers.get(header, "")
    return hmac.compare_digest(sent.encode(), csrf_token().encode())

# --------------------------------------------------------------------
# Identity
# --------------------------------------------------------------------
def resolve_user(email):
    """Map an authenticated principal's email to its User, or raise NotFound."""
    u = User.query.filter_by(email=(email or "").strip().lower()).first()
    if u is None:
        raise NotFound("User account not found")
    return u

def login_user(user):
    logout_everyone()
    session["email"] = user.email
    session.permanent = True
    user.last_login = utcnow()
    db.session.commit()

def logout_everyone():
    session.pop("email", None)

def require_user(*roles):
    """Resolve the session principal into ``g.user`` and check its role.

    No session -> 401, unknown email -> 404, role not in ``roles`` -> 403.
    With no roles given any authenticated user passes.
    """
    def deco(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            email = session.get("email")
            if not email:
                raise Unauthorized()
            u = resolve_user(email)
            if roles and u.role not in roles:
                raise Forbidden()
            g.user = u
            return fn(*args, **kwargs)
        return wrapper
    return deco

# --------------------------------------------------------------------
# Accounts
# --------------------------------------------------------------------
def check_password_policy(pw):
    if not isinstance(pw, str) or len(pw) < MIN_PASSWORD_LENGTH:
        raise InvalidInput(f"Use at least {MIN_PASSWORD_LENGTH} characters for the password")

def create_account(name, email, password, role):
    email = (email or "").strip().lower() if isinstance(email, str) else ""
    name = name.strip() if isinstance(name, str) else ""
    if not email or "@" not in email:
        raise InvalidInput("A valid email is required")
    if Role.parse(role) is None:
        raise InvalidInput("Invalid role")
    check_password_policy(password)
    if User.query.filter_by(email=email).first() is not None:
        raise Conflict("Email already registered")
    u = User(name=name or None, email=email, role=Role.parse(role).value)
    u.set_password(password)
    db.session.add(u)
    db.session.commit()
    log.info("account created: %s (%s)", u.email, u.role)
    return u

def authenticate(email, password):
    email = (email or "").strip().lower() if isinstance(email, str) else ""
    u = User.query.filter_by(email=email).first() if email else None
    if u is None or not isinstance(password, str) or not u.check_password(password):
        raise Unauthorized("Invalid credentials")
    return u

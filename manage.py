import argparse, json, secrets, string
from app import create_app
from models import db, Role, User

def rand_password(n=12):
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(n))

def seed_users(app, json_path):
    """
    JSON: [{"name":"Prof X","email":"x@school.edu","role":"STUDENT|TEACHER|ADMIN","password":"..."}]
    If password omitted, one is generated and printed.
    """
    with app.app_context():
        with open(json_path, "r") as fh:
            items = json.load(fh)
        out = []
        for it in items:
            name = (it.get("name") or "").strip() or None
            email = it["email"].strip().lower()
            role = Role.parse(it.get("role") or Role.STUDENT.value)
            if role is None:
                raise SystemExit(f"{email}: unknown role {it.get('role')!r}")
            pw = it.get("password") or rand_password()
            u = User.query.filter_by(email=email).first()
            if not u:
                u = User(name=name, email=email, role=role.value)
                u.set_password(pw)
                db.session.add(u)
                action = "created"
            else:
                u.name = name
                u.role = role.value
                u.set_password(pw)
                action = "updated"
            out.append({"email": email, "password": pw, "role": role.value, "action": action})
        db.session.commit()
        print("Seeded/updated:", len(out))
        for r in out:
            print(f"{r['email']} ({r['role']}): {r['password']} ({r['action']})")

def create_admin(app, email, name):
    with app.app_context():
        email = email.strip().lower()
        pw = rand_password()
        u = User.query.filter_by(email=email).first()
        if u is None:
            u = User(name=name, email=email, role=Role.ADMIN.value)
            db.session.add(u)
        else:
            u.role = Role.ADMIN.value
        u.set_password(pw)
        db.session.commit()
        print(f"{email} (ADMIN): {pw}")

if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    sub = parser.add_subparsers(dest="cmd", required=True)
    p_seed = sub.add_parser("seed-users")
    p_seed.add_argument("json_path")
    p_admin = sub.add_parser("create-admin")
    p_admin.add_argument("email")
    p_admin.add_argument("name")
    args = parser.parse_args()

    app = create_app()
    if args.cmd == "seed-users":
        seed_users(app, args.json_path)
    else:
        create_admin(app, args.email, args.name)

# scripts/dev_seed.py
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app import create_app  # noqa: E402
from models import db, Classroom, Quiz, Role, User  # noqa: E402
from classroom import gen_code  # noqa: E402
from quizzes import normalize_questions  # noqa: E402

DEMO_QUESTIONS = [
    {"prompt": "2 + 2 = ?", "options": ["3", "4", "5"], "answer": "4",
     "explanation": "Two plus two is four."},
    {"prompt": "Solve x + 3 = 5", "options": ["x = 1", "x = 2", "x = 8"], "answer": "x = 2"},
    {"prompt": "Which is prime?", "options": ["9", "15", "17"], "answer": "17"},
]

def upsert_user(name, email, role, password):
    u = User.query.filter_by(email=email).one_or_none()
    if u is None:
        u = User(name=name, email=email, role=role.value)
        u.set_password(password)
        db.session.add(u)
        print(f"[seed] created {role.value} user: {email}")
    else:
        print(f"[seed] {role.value} user already exists: {email}")
    return u

def main():
    app = create_app()
    with app.app_context():
        db.create_all()   # safe if tables already exist

        upsert_user("Alice Admin", "admin@example.com", Role.ADMIN, "admin1234")
        teacher = upsert_user("Tom Teacher", "teacher@example.com", Role.TEACHER, "teacher123")
        student = upsert_user("Stu Dent", "student@example.com", Role.STUDENT, "student123")
        db.session.flush()

        klass = Classroom.query.filter_by(teacher_id=teacher.id, name="Algebra").one_or_none()
        if klass is None:
            code = gen_code()
            while Classroom.query.filter_by(code=code).first() is not None:
                code = gen_code()
            klass = Classroom(name="Algebra", code=code, teacher_id=teacher.id)
            db.session.add(klass)
            db.session.flush()
            print(f"[seed] created class Algebra, join code {klass.code}")
        if not klass.has_student(student):
            klass.students.append(student)
        if not klass.quizzes:
            db.session.add(Quiz(title="Warm-up", class_id=klass.id, time_limit=10,
                                questions_json=normalize_questions(DEMO_QUESTIONS)))
            print("[seed] created quiz Warm-up")

        db.session.commit()
        print("[seed] done.")

if __name__ == "__main__":
    main()

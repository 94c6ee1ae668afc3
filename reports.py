"""Dashboard, analytics and roster reports.

Each function gathers attempt records with one query and hands them to the
pure functions in ``stats``.
"""
from classroom import class_summary
from errors import NotFound
from models import db, Classroom, Quiz, Role, Score, User, enrollments, isoformat
from quizzes import quiz_list_item
import stats


def _scores_for_teacher(teacher):
    return (Score.query.join(Quiz, Score.quiz_id == Quiz.id)
            .join(Classroom, Quiz.class_id == Classroom.id)
            .filter(Classroom.teacher_id == teacher.id)
            .all())

def _students_of_teacher(teacher):
    return (User.query.join(enrollments, enrollments.c.student_id == User.id)
            .join(Classroom, enrollments.c.class_id == Classroom.id)
            .filter(Classroom.teacher_id == teacher.id, User.role == Role.STUDENT.value)
            .distinct().order_by(User.name, User.email).all())

def _teacher_classes(teacher):
    return Classroom.query.filter_by(teacher_id=teacher.id).order_by(Classroom.created_at).all()

# --------------------------------------------------------------------
# Classes
# --------------------------------------------------------------------
def class_detail(user, klass):
    attempts = [s for q in klass.quizzes for s in q.scores]
    data = class_summary(klass)
    data["students"] = [{"id": s.id, "name": s.name, "email": s.email} for s in klass.students]
    data["stats"] = stats.class_stats(len(klass.students), len(klass.quizzes), attempts)
    data["recent_activity"] = stats.recent_activity(attempts, limit=5)
    data["quizzes"] = []
    for quiz in klass.quizzes:
        item = quiz_list_item(quiz, user)
        item["stats"] = stats.quiz_stats(quiz.scores)
        data["quizzes"].append(item)
    return data

def class_roster(user, klass):
    is_owner = klass.teacher_id == user.id
    quiz_ids = [q.id for q in klass.quizzes]
    by_user = {}
    if quiz_ids:
        for s in Score.query.filter(Score.quiz_id.in_(quiz_ids)).all():
            by_user.setdefault(s.user_id, []).append(s)
    roster = []
    for student in klass.students:
        mine = by_user.get(student.id, [])
        roster.append({
            "id": student.id,
            "name": student.name,
            "email": student.email if is_owner else None,
            "quiz_scores": [{"quiz_id": s.quiz_id, "score": s.score, "max_score": s.max_score} for s in mine],
            "average_score": stats.rollup(mine)["average_score"],
        })
    return roster

# --------------------------------------------------------------------
# Dashboards
# --------------------------------------------------------------------
def teacher_dashboard(teacher):
    classes = _teacher_classes(teacher)
    attempts = _scores_for_teacher(teacher)
    class_of_student = {}
    for klass in classes:
        for s in klass.students:
            class_of_student.setdefault(s.id, []).append(klass.name)
    performers = stats.top_performers(attempts)
    for row in performers:
        names = class_of_student.get(row["user_id"], [])
        row["class_name"] = names[0] if len(names) == 1 else "Multiple Classes"
    return {
        "role": teacher.role,
        "stats": {
            "total_students": len(_students_of_teacher(teacher)),
            "total_classes": len(classes),
            "total_quizzes": sum(len(k.quizzes) for k in classes),
            "average_score": stats.rollup(attempts)["average_score"],
        },
        "recent_activity": [
            dict(stats.attempt_item(a), class_name=a.quiz.classroom.name)
            for a in stats.newest_first(attempts)[:10]
        ],
        "top_performers": performers,
    }

def student_dashboard(student):
    mine = student.scores.all()
    attempted = {s.quiz_id for s in mine}
    classes = student.classes_joined.all()
    pending = []
    for klass in classes:
        for quiz in klass.quizzes:
            if quiz.id not in attempted and quiz.questions:
                pending.append({
                    "id": quiz.id,
                    "class_id": klass.id,
                    "class_name": klass.name,
                    "title": quiz.title,
                    "question_count": len(quiz.questions),
                    "time_limit": quiz.time_limit,
                })
    return {
        "role": student.role,
        "stats": {
            "total_classes": len(classes),
            "quizzes_completed": len(mine),
            "average_score": stats.rollup(mine)["average_score"],
            "rank": stats.rank_of(student.id, _student_attempts()),
        },
        "recent_activity": [
            dict(stats.attempt_item(a), class_name=a.quiz.classroom.name)
            for a in stats.newest_first(mine)[:10]
        ],
        "upcoming_quizzes": pending[:6],
    }

def admin_dashboard(admin):
    counts = {role.value: User.query.filter_by(role=role.value).count() for role in Role}
    return {
        "role": admin.role,
        "stats": {
            "users_by_role": counts,
            "total_classes": Classroom.query.count(),
            "total_quizzes": Quiz.query.count(),
            "total_attempts": Score.query.count(),
        },
    }

def dashboard(user):
    if user.role == Role.TEACHER:
        return teacher_dashboard(user)
    if user.role == Role.ADMIN:
        return admin_dashboard(user)
    return student_dashboard(user)

def analytics(teacher):
    classes = _teacher_classes(teacher)
    attempts = _scores_for_teacher(teacher)
    totals = stats.rollup(attempts)
    return {
        "total_students": len(_students_of_teacher(teacher)),
        "total_quizzes": sum(len(k.quizzes) for k in classes),
        "total_attempts": totals["attempts"],
        "average_score": totals["average_score"],
        "class_performance": [
            dict(stats.class_stats(len(k.students), len(k.quizzes),
                                   [s for q in k.quizzes for s in q.scores]),
                 class_id=k.id, class_name=k.name)
            for k in classes
        ],
        "recent_scores": stats.recent_activity(attempts, limit=10),
    }

def quiz_overview(teacher):
    quizzes = (Quiz.query.join(Classroom, Quiz.class_id == Classroom.id)
               .filter(Classroom.teacher_id == teacher.id)
               .order_by(Quiz.created_at.desc()).all())
    return [
        {
            "id": q.id,
            "title": q.title,
            "class_id": q.class_id,
            "class_name": q.classroom.name,
            "status": q.status,
            "created_at": isoformat(q.created_at),
            "stats": dict(stats.quiz_stats(q.scores), total_questions=len(q.questions)),
        }
        for q in quizzes
    ]

# --------------------------------------------------------------------
# Students (teacher view)
# --------------------------------------------------------------------
def teacher_students(teacher):
    attempts = _scores_for_teacher(teacher)
    by_user = {}
    for a in attempts:
        by_user.setdefault(a.user_id, []).append(a)
    rows = []
    for student in _students_of_teacher(teacher):
        mine = stats.newest_first(by_user.get(student.id, []))
        rows.append({
            "id": student.id,
            "name": student.name,
            "email": student.email,
            "enrolled_classes": [
                {"id": k.id, "name": k.name}
                for k in student.classes_joined.filter(Classroom.teacher_id == teacher.id).all()
            ],
            "quiz_stats": {
                "total_attempts": len(mine),
                "average_score": stats.rollup(mine)["average_score"],
                "recent_score": stats.attempt_item(mine[0]) if mine else None,
            },
        })
    return rows

def student_detail(teacher, student_id):
    student = db.session.get(User, student_id)
    if student is None or student.role != Role.STUDENT:
        raise NotFound("Student not found")
    classes = student.classes_joined.filter(Classroom.teacher_id == teacher.id).all()
    if not classes:
        raise NotFound("Student not found")
    attempts = stats.newest_first(
        a for a in _scores_for_teacher(teacher) if a.user_id == student.id
    )
    enrolled = []
    for klass in classes:
        quiz_ids = {q.id for q in klass.quizzes}
        in_class = [a for a in attempts if a.quiz_id in quiz_ids]
        enrolled.append({
            "id": klass.id,
            "name": klass.name,
            "average_score": stats.rollup(in_class)["average_score"],
            "completed_quizzes": len(in_class),
            "total_quizzes": len(quiz_ids),
        })
    return {
        "id": student.id,
        "name": student.name or "Unnamed Student",
        "email": student.email,
        "enrolled_classes": enrolled,
        "quiz_attempts": [
            dict(stats.attempt_item(a), id=a.id, class_name=a.quiz.classroom.name)
            for a in attempts
        ],
        "stats": stats.student_summary(attempts),
    }

# --------------------------------------------------------------------
# Leaderboard
# --------------------------------------------------------------------
def _student_attempts(since=None):
    q = Score.query.join(User, Score.user_id == User.id).filter(User.role == Role.STUDENT.value)
    if since is not None:
        q = q.filter(Score.created_at >= since)
    return q.all()

def global_leaderboard(timeframe="all"):
    return stats.rank_students(_student_attempts(stats.window_start(timeframe)))

"""Classes, join codes and enrollment."""
import logging
import secrets
import string

from sqlalchemy.exc import IntegrityError

from errors import AlreadyEnrolled, Conflict, Forbidden, InvalidInput, NotFound
from models import db, Classroom, Quiz, QuizStart, Role, Score, User, enrollments

log = logging.getLogger(__name__)

JOIN_CODE_LENGTH = 6
JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits


def gen_code(n=JOIN_CODE_LENGTH):
    return ''.join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(n))

def normalize_code(code):
    return code.strip().upper() if isinstance(code, str) else ""

def _unused_code():
    code = gen_code()
    while Classroom.query.filter_by(code=code).first() is not None:
        code = gen_code()
    return code

# --------------------------------------------------------------------
# Access
# --------------------------------------------------------------------
def get_class(class_id):
    klass = db.session.get(Classroom, class_id)
    if klass is None:
        raise NotFound("Class not found")
    return klass

def get_owned_class(user, class_id):
    klass = get_class(class_id)
    if klass.teacher_id != user.id:
        raise Forbidden("Only the class teacher can do this")
    return klass

def get_member_class(user, class_id):
    """Class readable by its teacher or an enrolled student."""
    klass = get_class(class_id)
    if klass.teacher_id == user.id or klass.has_student(user):
        return klass
    raise Forbidden("Class not found or access denied")

def get_class_quiz(klass, quiz_id):
    quiz = db.session.get(Quiz, quiz_id)
    if quiz is None or quiz.class_id != klass.id:
        raise NotFound("Quiz not found")
    return quiz

def classes_for(user):
    if user.role == Role.TEACHER:
        return Classroom.query.filter_by(teacher_id=user.id).order_by(Classroom.created_at.desc()).all()
    return user.classes_joined.order_by(Classroom.created_at.desc()).all()

# --------------------------------------------------------------------
# Registry operations
# --------------------------------------------------------------------
def create_class(teacher, name):
    if teacher.role != Role.TEACHER:
        raise Forbidden("Only teachers can create classes")
    name = name.strip() if isinstance(name, str) else ""
    if not name:
        raise InvalidInput("Please provide a valid class name")
    klass = Classroom(name=name, code=_unused_code(), teacher_id=teacher.id)
    db.session.add(klass)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("Join code collision, please try again")
    log.info("class %s created by %s with code %s", klass.id, teacher.email, klass.code)
    return klass

def join_class(student, code):
    if student.role != Role.STUDENT:
        raise Forbidden("Only students can join classes")
    code = normalize_code(code)
    if not code:
        raise InvalidInput("Class code is required")
    klass = Classroom.query.filter_by(code=code).first()
    if klass is None:
        raise NotFound("Class not found")
    if klass.has_student(student):
        raise AlreadyEnrolled()
    klass.students.append(student)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise AlreadyEnrolled()
    log.info("%s joined class %s", student.email, klass.id)
    return klass

def _purge_quizzes(quiz_ids):
    if not quiz_ids:
        return
    # attempts and start stamps go before the quizzes they reference
    Score.query.filter(Score.quiz_id.in_(quiz_ids)).delete(synchronize_session=False)
    QuizStart.query.filter(QuizStart.quiz_id.in_(quiz_ids)).delete(synchronize_session=False)
    Quiz.query.filter(Quiz.id.in_(quiz_ids)).delete(synchronize_session=False)

def delete_quiz(teacher, class_id, quiz_id):
    klass = get_owned_class(teacher, class_id)
    quiz = get_class_quiz(klass, quiz_id)
    _purge_quizzes([quiz.id])
    db.session.commit()
    db.session.expire_all()
    log.info("quiz %s deleted from class %s", quiz_id, klass.id)

def _delete_class_rows(klass):
    _purge_quizzes([q.id for q in klass.quizzes])
    db.session.execute(enrollments.delete().where(enrollments.c.class_id == klass.id))
    Classroom.query.filter_by(id=klass.id).delete(synchronize_session=False)

def delete_class(teacher, class_id):
    klass = get_owned_class(teacher, class_id)
    _delete_class_rows(klass)
    db.session.commit()
    db.session.expire_all()
    log.info("class %s deleted by %s", class_id, teacher.email)

def delete_user(user):
    """Remove a user with everything hanging off it."""
    for klass in user.classes_taught.all():
        _delete_class_rows(klass)
    Score.query.filter_by(user_id=user.id).delete(synchronize_session=False)
    QuizStart.query.filter_by(user_id=user.id).delete(synchronize_session=False)
    db.session.execute(enrollments.delete().where(enrollments.c.student_id == user.id))
    User.query.filter_by(id=user.id).delete(synchronize_session=False)
    db.session.commit()
    db.session.expire_all()

# --------------------------------------------------------------------
# Views
# --------------------------------------------------------------------
def class_summary(klass):
    return {
        "id": klass.id,
        "name": klass.name,
        "code": klass.code,
        "teacher": {"name": klass.teacher.name, "email": klass.teacher.email},
        "counts": {"students": len(klass.students), "quizzes": len(klass.quizzes)},
    }

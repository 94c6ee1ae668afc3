"""Quiz definitions: question validation, creation, editing and role-dependent views."""
import logging

from sqlalchemy.exc import IntegrityError

from classroom import get_class_quiz, get_member_class, get_owned_class
from errors import InvalidInput, QuizLocked
from models import db, Quiz, QuizStart, Role, Score, isoformat, utcnow

log = logging.getLogger(__name__)

MAX_TIME_LIMIT_MINUTES = 24 * 60


def _clean_text(value):
    return value.strip() if isinstance(value, str) else ""

def normalize_questions(payload):
    """Validate a list of question objects and return their stored form.

    Accepts ``prompt`` (or ``question``) and ``answer`` (or ``correct_option``).
    Raises ValueError with a user-facing message on the first bad question.
    """
    if not isinstance(payload, list):
        raise ValueError("Questions must be a list.")
    cleaned = []
    seen = set()
    for idx, raw in enumerate(payload):
        if not isinstance(raw, dict):
            raise ValueError("Question payload must be objects.")
        prompt = _clean_text(raw.get("prompt") or raw.get("question"))
        if not prompt:
            raise ValueError(f"Question {idx+1} needs a prompt.")
        options = raw.get("options")
        if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
            raise ValueError(f"Question {idx+1} needs a list of text options.")
        options = [o.strip() for o in options]
        if len(options) < 2:
            raise ValueError("Each question must have at least 2 options.")
        if any(not o for o in options):
            raise ValueError(f"Question {idx+1} has an empty option.")
        if len(set(options)) != len(options):
            raise ValueError(f"Question {idx+1} has duplicate options.")
        answer = _clean_text(raw.get("answer") or raw.get("correct_option"))
        if answer not in options:
            raise ValueError("The answer must be one of the options.")
        q_id = _clean_text(str(raw.get("id") or "")) or f"q{idx+1}"
        if q_id in seen:
            q_id = f"{q_id}_{idx+1}"
        seen.add(q_id)
        explanation = _clean_text(raw.get("explanation")) or None
        cleaned.append({
            "id": q_id,
            "prompt": prompt,
            "options": options,
            "answer": answer,
            "explanation": explanation,
        })
    return cleaned

def parse_time_limit(raw):
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise ValueError("Time limit must be a whole number of minutes.")
    try:
        minutes = int(raw)
    except (TypeError, ValueError, OverflowError):
        raise ValueError("Time limit must be a whole number of minutes.")
    if minutes <= 0 or (isinstance(raw, float) and raw != minutes):
        raise ValueError("Time limit must be a positive whole number of minutes.")
    if minutes > MAX_TIME_LIMIT_MINUTES:
        raise ValueError(f"Time limit cannot exceed {MAX_TIME_LIMIT_MINUTES} minutes.")
    return minutes

# --------------------------------------------------------------------
# Store operations
# --------------------------------------------------------------------
def create_quiz(teacher, class_id, title, questions=None, time_limit=None, description=None):
    klass = get_owned_class(teacher, class_id)
    title = _clean_text(title)
    if not title:
        raise InvalidInput("Quiz title is required")
    try:
        cleaned = normalize_questions(questions if questions is not None else [])
        minutes = parse_time_limit(time_limit)
    except ValueError as e:
        raise InvalidInput(str(e))
    quiz = Quiz(title=title, description=_clean_text(description) or None,
                class_id=klass.id, questions_json=cleaned, time_limit=minutes)
    db.session.add(quiz)
    db.session.commit()
    log.info("quiz %s created in class %s with %d question(s)", quiz.id, klass.id, len(cleaned))
    return quiz

def update_questions(teacher, class_id, quiz_id, questions):
    klass = get_owned_class(teacher, class_id)
    quiz = get_class_quiz(klass, quiz_id)
    try:
        cleaned = normalize_questions(questions)
    except ValueError as e:
        raise InvalidInput(str(e))
    # single conditional UPDATE so the no-attempts check and the write cannot interleave
    changed = (Quiz.query
               .filter(Quiz.id == quiz.id, ~Quiz.scores.any())
               .update({Quiz.questions_json: cleaned, Quiz.updated_at: utcnow()},
                       synchronize_session=False))
    if not changed:
        db.session.rollback()
        raise QuizLocked()
    db.session.commit()
    log.info("quiz %s questions replaced (%d)", quiz.id, len(cleaned))
    return quiz

def attempt_for(user, quiz):
    return Score.query.filter_by(user_id=user.id, quiz_id=quiz.id).first()

def record_start(user, quiz):
    """Stamp the first time a student opens a quiz; later calls keep the first stamp."""
    start = QuizStart.query.filter_by(user_id=user.id, quiz_id=quiz.id).first()
    if start is not None:
        return start
    start = QuizStart(user_id=user.id, quiz_id=quiz.id, started_at=utcnow())
    db.session.add(start)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        start = QuizStart.query.filter_by(user_id=user.id, quiz_id=quiz.id).first()
    return start

# --------------------------------------------------------------------
# Views
# --------------------------------------------------------------------
def _quiz_base(quiz):
    return {
        "id": quiz.id,
        "class_id": quiz.class_id,
        "title": quiz.title,
        "description": quiz.description,
        "time_limit": quiz.time_limit,
        "status": quiz.status,
        "created_at": isoformat(quiz.created_at),
    }

def full_view(quiz):
    data = _quiz_base(quiz)
    data["questions"] = [dict(q) for q in quiz.questions]
    return data

def redacted_view(quiz, start=None):
    data = _quiz_base(quiz)
    data["questions"] = [
        {"id": q["id"], "prompt": q["prompt"], "options": list(q["options"])}
        for q in quiz.questions
    ]
    data["already_taken"] = False
    data["started_at"] = isoformat(start.started_at) if start else None
    return data

def review_view(quiz, attempt):
    data = _quiz_base(quiz)
    data["questions"] = [dict(q) for q in quiz.questions]
    data.update({
        "already_taken": True,
        "score": attempt.score,
        "max_score": attempt.max_score,
        "selected_answers": attempt.answers,
        "correct_answers": [q["answer"] for q in quiz.questions],
        "explanations": [q.get("explanation") for q in quiz.questions],
        "submitted_at": isoformat(attempt.created_at),
    })
    return data

def get_quiz_view(user, class_id, quiz_id):
    klass = get_member_class(user, class_id)
    quiz = get_class_quiz(klass, quiz_id)
    if klass.teacher_id == user.id:
        return full_view(quiz)
    attempt = attempt_for(user, quiz)
    if attempt is not None:
        return review_view(quiz, attempt)
    start = record_start(user, quiz) if quiz.questions else None
    return redacted_view(quiz, start)

def quiz_list_item(quiz, user):
    """Quiz summary for listings; only the owner gets the questions here."""
    if quiz.classroom.teacher_id == user.id:
        data = full_view(quiz)
    else:
        data = _quiz_base(quiz)
    if user.role == Role.STUDENT:
        data["already_taken"] = attempt_for(user, quiz) is not None
    data["counts"] = {"questions": len(quiz.questions), "attempts": len(quiz.scores)}
    return data

def list_quizzes(user, class_id):
    klass = get_member_class(user, class_id)
    return [quiz_list_item(q, user) for q in klass.quizzes]

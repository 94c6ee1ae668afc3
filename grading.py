"""Quiz submission and grading.

A submission is graded by exact positional comparison against the stored
answer key. Submitted strings are stripped of surrounding whitespace (the key
is stripped when a quiz is saved); comparison is otherwise case-sensitive, and
``None`` marks an unanswered question.

Exactly one Score row may exist per (student, quiz). The early lookup gives a
clean error for the common case; the ``uq_score_user_quiz`` constraint decides
concurrent submissions, and the loser gets the same AlreadyTaken error.
Editing questions is a conditional UPDATE that only applies while no Score
exists, and a submission re-reads ``updated_at`` after inserting its row, so an
attempt is never kept against a key that was replaced mid-grading.
"""
import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from classroom import get_class, get_class_quiz
from errors import AlreadyTaken, Forbidden, InvalidInput
from models import db, Quiz, QuizStart, Role, Score, utcnow

log = logging.getLogger(__name__)


def normalize_answers(payload, question_count):
    if not isinstance(payload, list):
        raise ValueError("Invalid answers format")
    if len(payload) != question_count:
        raise ValueError(f"Expected {question_count} answer(s), got {len(payload)}")
    cleaned = []
    for item in payload:
        if item is None:
            cleaned.append(None)
        elif isinstance(item, str):
            cleaned.append(item.strip())
        else:
            raise ValueError("Answers must be option strings or null")
    return cleaned

def grade_answers(questions, answers):
    """Return the number of positions where the answer equals the question's key."""
    return sum(1 for q, a in zip(questions, answers) if a is not None and a == q["answer"])

def already_attempted(student, quiz):
    return Score.query.filter_by(user_id=student.id, quiz_id=quiz.id).first() is not None

def _key_version(quiz):
    return db.session.query(Quiz.updated_at).filter(Quiz.id == quiz.id).scalar()

def _check_deadline(student, quiz, now):
    if not current_app.config.get("ENFORCE_TIME_LIMIT") or not quiz.time_limit:
        return
    start = QuizStart.query.filter_by(user_id=student.id, quiz_id=quiz.id).first()
    if start is None:
        log.warning("unstarted submission rejected: %s quiz %s", student.email, quiz.id)
        raise InvalidInput("Open the quiz before submitting")
    grace = timedelta(seconds=current_app.config.get("TIME_LIMIT_GRACE_SECONDS", 0))
    deadline = start.started_at + timedelta(minutes=quiz.time_limit) + grace
    if now > deadline:
        log.warning("late submission rejected: %s quiz %s (started %s)",
                    student.email, quiz.id, start.started_at)
        raise InvalidInput("Time limit exceeded")

def submit(student, class_id, quiz_id, answers):
    if student.role != Role.STUDENT:
        raise Forbidden("Only students can submit quizzes")
    klass = get_class(class_id)
    if not klass.has_student(student):
        raise Forbidden("Class not found or access denied")
    quiz = get_class_quiz(klass, quiz_id)
    graded_version = quiz.updated_at
    questions = quiz.questions
    if not questions:
        raise InvalidInput("This quiz has no questions yet")
    if already_attempted(student, quiz):
        raise AlreadyTaken()
    try:
        cleaned = normalize_answers(answers, len(questions))
    except ValueError as e:
        raise InvalidInput(str(e))
    now = utcnow()
    _check_deadline(student, quiz, now)

    earned = grade_answers(questions, cleaned)
    attempt = Score(user_id=student.id, quiz_id=quiz.id, score=earned,
                    max_score=len(questions), answers_json=cleaned, created_at=now)
    db.session.add(attempt)
    try:
        db.session.flush()
        # the key we graded against must still be current once our row is in
        if _key_version(quiz) != graded_version:
            db.session.rollback()
            raise InvalidInput("Quiz was updated, please reload it")
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        log.warning("duplicate submission rejected: %s quiz %s", student.email, quiz.id)
        raise AlreadyTaken()
    log.info("attempt %s recorded: %s quiz %s scored %d/%d",
             attempt.id, student.email, quiz.id, earned, len(questions))
    return {
        "score": attempt.score,
        "max_score": attempt.max_score,
        "correct_answers": [q["answer"] for q in questions],
        "explanations": [q.get("explanation") for q in questions],
        "score_id": attempt.id,
    }

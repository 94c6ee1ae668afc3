import enum
import json
from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.types import TypeDecorator, TEXT
from sqlalchemy import UniqueConstraint, CheckConstraint
from werkzeug.security import generate_password_hash, check_password_hash


db = SQLAlchemy()

def _as_naive_utc(dt):
    """Return dt as naive UTC (or None). Handles aware/naive inputs safely."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt

def utcnow():
    return _as_naive_utc(datetime.now(timezone.utc))

def isoformat(dt):
    return dt.isoformat() if dt else None

class JSONText(TypeDecorator):
    impl = TEXT
    cache_ok = True
    def process_bind_param(self, value, dialect):
        if value is None: return None
        return json.dumps(value, ensure_ascii=False)
    def process_result_value(self, value, dialect):
        if value is None: return None
        return json.loads(value)

class Role(str, enum.Enum):
    STUDENT = "STUDENT"
    TEACHER = "TEACHER"
    ADMIN = "ADMIN"

    @classmethod
    def parse(cls, value):
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None

class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, index=True, nullable=False)
    name = db.Column(db.String(120), nullable=True)
    role = db.Column(db.String(16), nullable=False, default=Role.STUDENT.value)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    last_login  = db.Column(db.DateTime, nullable=True)

    def set_password(self, pw): self.password_hash = generate_password_hash(pw)
    def check_password(self, pw): return check_password_hash(self.password_hash, pw)

    @property
    def display_name(self):
        return self.name or self.email

    def to_dict(self):
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role}

# one row per (class, student); the composite key rejects duplicate joins
enrollments = db.Table(
    "class_students",
    db.Column("class_id", db.Integer, db.ForeignKey("classes.id", ondelete="CASCADE"), primary_key=True),
    db.Column("student_id", db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    db.Column("joined_at", db.DateTime, default=utcnow, nullable=False),
)

class Classroom(db.Model):
    __tablename__ = 'classes'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(12), unique=True, index=True, nullable=False)
    teacher_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete="CASCADE"), index=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    teacher = db.relationship('User', backref=db.backref('classes_taught', lazy="dynamic"))
    students = db.relationship('User', secondary=enrollments,
                               backref=db.backref('classes_joined', lazy="dynamic"),
                               order_by='User.name')

    def has_student(self, user):
        return any(s.id == user.id for s in self.students)

class Quiz(db.Model):
    __tablename__ = 'quizzes'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id', ondelete="CASCADE"), index=True, nullable=False)
    questions_json = db.Column(JSONText, nullable=False, default=list)
    time_limit = db.Column(db.Integer, nullable=True)  # minutes
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    classroom = db.relationship('Classroom', backref=db.backref('quizzes', order_by='Quiz.created_at'))

    @property
    def questions(self):
        return self.questions_json if isinstance(self.questions_json, list) else []

    @property
    def status(self):
        """draft -> active -> attempted; derived, never stored."""
        if not self.questions:
            return "draft"
        if self.scores:
            return "attempted"
        return "active"

class Score(db.Model):
    """One graded attempt. Written once, never updated."""
    __tablename__ = 'scores'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete="CASCADE"), index=True, nullable=False)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quizzes.id', ondelete="CASCADE"), index=True, nullable=False)
    score = db.Column(db.Integer, nullable=False)
    max_score = db.Column(db.Integer, nullable=False)
    answers_json = db.Column(JSONText, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, index=True, nullable=False)

    user = db.relationship('User', backref=db.backref('scores', lazy="dynamic"))
    quiz = db.relationship('Quiz', backref=db.backref('scores', order_by='Score.created_at.desc()'))

    __table_args__ = (
        UniqueConstraint('user_id', 'quiz_id', name='uq_score_user_quiz'),
        CheckConstraint('score >= 0 AND score <= max_score', name='ck_score_range'),
    )

    @property
    def answers(self):
        return self.answers_json if isinstance(self.answers_json, list) else []

class QuizStart(db.Model):
    """Server-side stamp of a student's first look at a quiz."""
    __tablename__ = 'quiz_starts'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete="CASCADE"), index=True, nullable=False)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quizzes.id', ondelete="CASCADE"), index=True, nullable=False)
    started_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'quiz_id', name='uq_quiz_start_user_quiz'),
    )

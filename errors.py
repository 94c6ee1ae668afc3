"""Error taxonomy for the JSON API.

Every class is a werkzeug HTTPException so Flask routes it to the JSON error
handler in app.py; ``kind`` is the machine-readable name sent to clients.
"""
from werkzeug import exceptions


class Unauthorized(exceptions.Unauthorized):
    kind = "Unauthorized"
    description = "Not authenticated"


class Forbidden(exceptions.Forbidden):
    kind = "Forbidden"
    description = "Not authorized"


class NotFound(exceptions.NotFound):
    kind = "NotFound"
    description = "Not found"


class InvalidInput(exceptions.BadRequest):
    kind = "InvalidInput"
    description = "Invalid input"


class Conflict(exceptions.BadRequest):
    # duplicates are reported as 400, like invalid input
    kind = "Conflict"
    description = "Conflict"


class AlreadyEnrolled(Conflict):
    kind = "AlreadyEnrolled"
    description = "You are already enrolled in this class"


class AlreadyTaken(Conflict):
    kind = "AlreadyTaken"
    description = "Quiz already taken"


class QuizLocked(Conflict):
    kind = "QuizLocked"
    description = "Questions cannot be edited after students have attempted the quiz"


def error_kind(exc):
    return getattr(exc, "kind", None) or exc.name.replace(" ", "")

"""Score aggregation.

Everything here works on plain attempt records: any object with ``score``,
``max_score``, ``created_at`` and ``user_id`` (plus ``user`` and ``quiz`` where
names and titles are reported). Nothing touches the database session, and an
empty input always yields the zero state.
"""
import calendar
from collections import OrderedDict
from datetime import timedelta

from models import isoformat, utcnow

TIMEFRAMES = ("all", "month", "week")


def percent(score, max_score):
    """round-half-up(100 * score / max_score), or 0 when max_score is 0."""
    if not max_score:
        return 0
    return (200 * score + max_score) // (2 * max_score)

def rollup(attempts):
    attempts = list(attempts)
    total = sum(a.score for a in attempts)
    total_max = sum(a.max_score for a in attempts)
    return {
        "attempts": len(attempts),
        "total_score": total,
        "total_max_score": total_max,
        "average_score": percent(total, total_max),
    }

def newest_first(attempts):
    return sorted(attempts, key=lambda a: a.created_at, reverse=True)

def attempt_item(a):
    return {
        "student_name": a.user.display_name,
        "quiz_title": a.quiz.title,
        "score": a.score,
        "max_score": a.max_score,
        "created_at": isoformat(a.created_at),
    }

def recent_activity(attempts, limit=10):
    return [attempt_item(a) for a in newest_first(attempts)[:limit]]

def quiz_stats(attempts):
    attempts = newest_first(attempts)
    totals = rollup(attempts)
    latest = attempts[0] if attempts else None
    return {
        "total_attempts": totals["attempts"],
        "average_score": totals["average_score"],
        "recent_attempt": attempt_item(latest) if latest else None,
    }

def class_stats(student_count, quiz_count, attempts):
    totals = rollup(attempts)
    return {
        "total_students": student_count,
        "total_quizzes": quiz_count,
        "total_attempts": totals["attempts"],
        "average_score": totals["average_score"],
    }

def student_summary(attempts):
    attempts = list(attempts)
    singles = [percent(a.score, a.max_score) for a in attempts]
    return {
        "total_attempts": len(attempts),
        "average_score": rollup(attempts)["average_score"],
        "best_score": max(singles) if singles else 0,
        "worst_score": min(singles) if singles else 0,
    }

# --------------------------------------------------------------------
# Rankings
# --------------------------------------------------------------------
def _months_back(dt, months=1):
    year, month = dt.year, dt.month - months
    while month < 1:
        month += 12
        year -= 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)

def window_start(timeframe, now=None):
    """First timestamp included in a leaderboard window; None means no bound."""
    timeframe = (timeframe or "all").strip().lower()
    if timeframe not in TIMEFRAMES:
        raise ValueError(f"Unknown timeframe '{timeframe}', use one of: {', '.join(TIMEFRAMES)}")
    now = now or utcnow()
    if timeframe == "week":
        return now - timedelta(days=7)
    if timeframe == "month":
        return _months_back(now)
    return None

def within(attempts, since):
    if since is None:
        return list(attempts)
    return [a for a in attempts if a.created_at >= since]

def _sort_key(row):
    # average desc, total raw score desc, then name and id for a stable order
    return (-row["average_score"], -row["total_score"], (row["student_name"] or "").lower(), row["user_id"])

def rank_students(attempts, recent_limit=None):
    """Group attempts per student and rank them; students without attempts never appear."""
    per_user = OrderedDict()
    for a in newest_first(attempts):
        per_user.setdefault(a.user_id, []).append(a)
    rows = []
    for user_id, items in per_user.items():
        totals = rollup(items)
        recent = items if recent_limit is None else items[:recent_limit]
        rows.append({
            "user_id": user_id,
            "student_name": items[0].user.display_name,
            "total_score": totals["total_score"],
            "total_max_score": totals["total_max_score"],
            "average_score": totals["average_score"],
            "quizzes_taken": totals["attempts"],
            "recent_scores": [
                {"quiz_title": a.quiz.title, "score": a.score, "max_score": a.max_score,
                 "created_at": isoformat(a.created_at)}
                for a in recent
            ],
        })
    rows.sort(key=_sort_key)
    for position, row in enumerate(rows, start=1):
        row["rank"] = position
    return rows

def leaderboard(attempts, timeframe="all", now=None):
    return rank_students(within(attempts, window_start(timeframe, now)))

def top_performers(attempts, limit=5):
    return [
        {"user_id": r["user_id"], "student_name": r["student_name"], "score": r["average_score"]}
        for r in rank_students(attempts)[:limit]
    ]

def rank_of(user_id, attempts):
    for row in rank_students(attempts):
        if row["user_id"] == user_id:
            return row["rank"]
    return None

import pytest

from conftest import ALGEBRA_QUESTIONS
from models import db, Quiz, Score
from quizzes import normalize_questions, parse_time_limit


@pytest.mark.parametrize("questions, message", [
    ([{"prompt": "One option", "options": ["A"], "answer": "A"}], "at least 2 options"),
    ([{"prompt": "Bad key", "options": ["A", "B"], "answer": "C"}], "one of the options"),
    ([{"prompt": "Twice", "options": ["A", "A"], "answer": "A"}], "duplicate options"),
    ([{"prompt": "", "options": ["A", "B"], "answer": "A"}], "needs a prompt"),
    ("not a list", "must be a list"),
])
def test_normalize_questions_rejects(questions, message):
    with pytest.raises(ValueError, match=message):
        normalize_questions(questions)


def test_normalize_questions_accepts_aliases_and_strips():
    cleaned = normalize_questions([
        {"question": " 2 + 2? ", "options": [" 3", "4 "], "correct_option": "4"},
        {"id": "q1", "prompt": "Same id", "options": ["x", "y"], "answer": "x", "explanation": " why "},
    ])
    assert cleaned[0] == {"id": "q1", "prompt": "2 + 2?", "options": ["3", "4"],
                          "answer": "4", "explanation": None}
    assert cleaned[1]["id"] == "q1_2"
    assert cleaned[1]["explanation"] == "why"


def test_parse_time_limit():
    assert parse_time_limit(None) is None
    assert parse_time_limit("15") == 15
    for bad in (0, -5, "soon", 1.5, True):
        with pytest.raises(ValueError):
            parse_time_limit(bad)


def test_create_quiz_validation_over_http(algebra, teacher):
    url = f"/classes/{algebra['class']['id']}/quizzes"
    assert teacher.post(url, json={"title": "  ", "questions": ALGEBRA_QUESTIONS}).status_code == 400
    resp = teacher.post(url, json={"title": "T", "questions": [{"prompt": "p", "options": ["A"], "answer": "A"}]})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "InvalidInput"
    assert teacher.post(url, json={"title": "T", "timeLimit": "-1"}).status_code == 400


def test_create_quiz_accepts_camel_case_time_limit(algebra, teacher):
    url = f"/classes/{algebra['class']['id']}/quizzes"
    resp = teacher.post(url, json={"title": "Timed", "timeLimit": 10, "questions": ALGEBRA_QUESTIONS})
    assert resp.status_code == 201
    assert resp.get_json()["time_limit"] == 10


def test_student_and_outsider_cannot_create_quiz(algebra, student, login_as):
    from models import Role
    url = f"/classes/{algebra['class']['id']}/quizzes"
    assert student.post(url, json={"title": "Mine"}).status_code == 403
    other = login_as(Role.TEACHER, "other-teacher@example.com")
    assert other.post(url, json={"title": "Mine"}).status_code == 403


def test_student_view_is_redacted(algebra, student):
    data = student.get(algebra["quiz_url"]).get_json()
    assert data["already_taken"] is False
    assert data["started_at"] is not None
    for q in data["questions"]:
        assert set(q) == {"id", "prompt", "options"}


def test_owner_sees_answer_key(algebra, teacher):
    data = teacher.get(algebra["quiz_url"]).get_json()
    assert [q["answer"] for q in data["questions"]] == ["A", "Y"]
    assert data["questions"][0]["explanation"] == "A is first."


def test_non_member_cannot_view(algebra, other_student):
    assert other_student.get(algebra["quiz_url"]).status_code == 403


def test_missing_quiz_is_not_found(algebra, student):
    url = f"/classes/{algebra['class']['id']}/quizzes/9999"
    assert student.get(url).status_code == 404


def test_review_view_after_attempt(algebra, student):
    student.post(algebra["quiz_url"], json={"answers": ["A", "X"]})
    data = student.get(algebra["quiz_url"]).get_json()
    assert data["already_taken"] is True
    assert data["score"] == 1
    assert data["max_score"] == 2
    assert data["selected_answers"] == ["A", "X"]
    assert data["correct_answers"] == ["A", "Y"]
    assert data["explanations"] == ["A is first.", None]


def test_edit_questions_until_first_attempt(algebra, teacher, student):
    new_questions = [{"prompt": "Pick B", "options": ["A", "B"], "answer": "B"}]
    resp = teacher.patch(algebra["quiz_url"], json={"questions": new_questions})
    assert resp.status_code == 200
    assert resp.get_json()["questions"][0]["answer"] == "B"

    assert student.post(algebra["quiz_url"], json={"answers": ["B"]}).get_json()["score"] == 1

    resp = teacher.patch(algebra["quiz_url"], json={"questions": ALGEBRA_QUESTIONS})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "QuizLocked"


def test_delete_quiz_removes_attempts(app, algebra, teacher, student):
    student.post(algebra["quiz_url"], json={"answers": ["A", "Y"]})
    assert student.delete(algebra["quiz_url"]).status_code == 403
    assert teacher.delete(algebra["quiz_url"]).status_code == 200
    with app.app_context():
        assert db.session.get(Quiz, algebra["quiz"]["id"]) is None
        assert Score.query.count() == 0
    assert teacher.get(algebra["quiz_url"]).status_code == 404


def test_list_quizzes_marks_taken_and_status(algebra, teacher, student):
    url = f"/classes/{algebra['class']['id']}/quizzes"
    teacher.post(url, json={"title": "Empty"})

    listed = {q["title"]: q for q in student.get(url).get_json()}
    assert listed["Q1"]["already_taken"] is False
    assert listed["Q1"]["status"] == "active"
    assert listed["Empty"]["status"] == "draft"
    assert "questions" not in listed["Q1"]

    student.post(algebra["quiz_url"], json={"answers": ["A", "Y"]})
    listed = {q["title"]: q for q in student.get(url).get_json()}
    assert listed["Q1"]["already_taken"] is True
    assert listed["Q1"]["status"] == "attempted"
    assert listed["Q1"]["counts"] == {"questions": 2, "attempts": 1}


def test_draft_quiz_has_no_start_stamp(algebra, teacher, student):
    url = f"/classes/{algebra['class']['id']}/quizzes"
    draft = teacher.post(url, json={"title": "Empty"}).get_json()
    data = student.get(f"{url}/{draft['id']}").get_json()
    assert data["questions"] == []
    assert data["started_at"] is None


def test_parse_time_limit_bounds():
    assert parse_time_limit(24 * 60) == 24 * 60
    for bad in (24 * 60 + 1, 10**30, float("inf"), float("nan")):
        with pytest.raises(ValueError):
            parse_time_limit(bad)


def test_huge_time_limit_is_invalid_input(algebra, teacher):
    url = f"/classes/{algebra['class']['id']}/quizzes"
    resp = teacher.post(url, json={"title": "Forever", "time_limit": 10**30, "questions": ALGEBRA_QUESTIONS})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "InvalidInput"


def test_edit_is_locked_by_existing_attempt_row(app, algebra, teacher):
    from models import User
    with app.app_context():
        sam = User.query.filter_by(email="sam@example.com").one()
        db.session.add(Score(user_id=sam.id, quiz_id=algebra["quiz"]["id"], score=0, max_score=2,
                             answers_json=[None, None]))
        db.session.commit()
    resp = teacher.patch(algebra["quiz_url"], json={"questions": ALGEBRA_QUESTIONS[:1]})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "QuizLocked"
    with app.app_context():
        assert len(db.session.get(Quiz, algebra["quiz"]["id"]).questions) == 2

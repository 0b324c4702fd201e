import api.session as session
from exam_cbt.services.exam_session import ExamSession


def test_replace_exam_stops_previous_countdown(make_question, make_paper):
    sid = session.create_session()
    ctx = session.get_session(sid)
    first = ExamSession(make_paper([make_question("s1")]), tick_seconds=60)
    first.start()
    ctx.replace_exam(first)
    ctx.saved = True

    ctx.replace_exam(ExamSession(make_paper([make_question("s2")])))

    assert not first.timer_active
    assert ctx.exam.paper.questions[0].id == "s2"
    assert ctx.saved is None
    session.reset(sid)


def test_reset_keeps_user_id_and_drops_exam(make_question, make_paper):
    sid = session.create_session()
    ctx = session.get_session(sid)
    ctx.user_id = "learner-7"
    ctx.bank_text = "1. 题干\nA. 甲\n答案：A"
    ctx.replace_exam(ExamSession(make_paper([make_question("s1")])))

    session.reset(sid)

    fresh = session.get_session(sid)
    assert fresh is not ctx
    assert fresh.user_id == "learner-7"
    assert fresh.exam is None
    assert fresh.bank_text is None


def test_expired_sessions_are_cleaned_up(monkeypatch):
    sid = session.create_session()
    monkeypatch.setattr(session, "SESSION_TTL", -1)
    assert session.cleanup_expired() >= 1
    assert session.get_session(sid) is None

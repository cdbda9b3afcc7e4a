from datetime import timedelta

import pytest

from app.errors import (
    AlreadySubmitted, AttemptLimitExceeded, Forbidden, InvalidState, NotFound, QuizUnavailable,
)
from app.models import Submission, SubmissionStatus
from app.schemas.quiz import QuestionCreate
from app.schemas.submission import ProctoringSummary
from app.services.attempt_service import AttemptService, minutes_between
from app.services.attempt_store import AttemptStore

from tests.conftest import ADMIN, OTHER_STUDENT, OTHER_TEACHER, STUDENT, TEACHER, ReversingRandom


def in_progress_rows(db_session, quiz_id, student_id):
    return db_session.query(Submission).filter_by(
        quiz_id=quiz_id, student_id=student_id, status=SubmissionStatus.IN_PROGRESS
    ).all()


def correct_answers(questions):
    mcq1, mcq2, short, essay = questions
    return [
        {"question_id": mcq1.id, "selected_options": ["A"]},
        {"question_id": mcq2.id, "selected_options": ["Y"]},
        {"question_id": short.id, "text_answer": " Paris "},
        {"question_id": essay.id, "text_answer": "Because."},
    ]


# ----------------------------------------------------------------------
# start_attempt
# ----------------------------------------------------------------------

def test_start_creates_in_progress_attempt(service, capitals_quiz, clock):
    quiz, questions = capitals_quiz

    started = service.start_attempt(quiz.id, STUDENT)

    submission = started.submission
    assert started.resumed is False
    assert submission.status == SubmissionStatus.IN_PROGRESS
    assert submission.attempt_number == 1
    assert submission.time_limit == quiz.duration
    assert submission.tab_switch_count == 0
    assert submission.fullscreen_exits == 0
    assert submission.suspicious_activity == []
    assert minutes_between(submission.started_at, clock()) == 0
    assert [q["id"] for q in submission.questions] == [q.id for q in questions]


def test_start_twice_returns_the_same_attempt(service, capitals_quiz, db_session):
    quiz, _ = capitals_quiz

    first = service.start_attempt(quiz.id, STUDENT)
    second = service.start_attempt(quiz.id, STUDENT)

    assert second.resumed is True
    assert second.submission.id == first.submission.id
    assert len(in_progress_rows(db_session, quiz.id, STUDENT.user_id)) == 1


class RacingStore(AttemptStore):
    """Misses the live attempt once, as a concurrent request would"""

    def __init__(self, db):
        super().__init__(db)
        self.missed = False

    def find_in_progress(self, quiz_id, student_id):
        if not self.missed:
            self.missed = True
            return None
        return super().find_in_progress(quiz_id, student_id)


def test_concurrent_duplicate_start_converges_on_one_attempt(
    service, capitals_quiz, db_session, question_bank, clock
):
    quiz, _ = capitals_quiz
    winner = service.start_attempt(quiz.id, STUDENT)

    racer = AttemptService(db_session, question_bank, store=RacingStore(db_session), clock=clock)
    loser = racer.start_attempt(quiz.id, STUDENT)

    assert loser.resumed is True
    assert loser.submission.id == winner.submission.id
    assert len(in_progress_rows(db_session, quiz.id, STUDENT.user_id)) == 1
    assert db_session.query(Submission).count() == 1


def test_attempt_limit(service, make_quiz, make_question):
    quiz = make_quiz(max_attempts=2)
    make_question(quiz)

    for expected_number in (1, 2):
        started = service.start_attempt(quiz.id, STUDENT)
        assert started.submission.attempt_number == expected_number
        service.submit_attempt(started.submission.id, STUDENT, [])

    with pytest.raises(AttemptLimitExceeded):
        service.start_attempt(quiz.id, STUDENT)


def test_unlimited_attempts_when_max_is_zero(service, make_quiz, make_question):
    quiz = make_quiz(max_attempts=0)
    make_question(quiz)

    for _ in range(4):
        started = service.start_attempt(quiz.id, STUDENT)
        service.submit_attempt(started.submission.id, STUDENT, [])

    assert service.start_attempt(quiz.id, STUDENT).submission.attempt_number == 5


def test_attempt_limit_is_per_student(service, make_quiz, make_question):
    quiz = make_quiz(max_attempts=1)
    make_question(quiz)
    started = service.start_attempt(quiz.id, STUDENT)
    service.submit_attempt(started.submission.id, STUDENT, [])

    assert service.start_attempt(quiz.id, OTHER_STUDENT).submission.attempt_number == 1


@pytest.mark.parametrize("overrides", [
    {"is_published": False},
    {"is_deleted": True},
])
def test_unavailable_quiz_cannot_be_started(service, make_quiz, make_question, overrides):
    quiz = make_quiz(**overrides)
    make_question(quiz)

    with pytest.raises(QuizUnavailable):
        service.start_attempt(quiz.id, STUDENT)


def test_deadline_must_be_in_the_future(service, make_quiz, make_question, clock):
    past = make_quiz(deadline=clock() - timedelta(minutes=1))
    make_question(past)
    future = make_quiz(deadline=clock() + timedelta(days=1))
    make_question(future)

    with pytest.raises(QuizUnavailable):
        service.start_attempt(past.id, STUDENT)
    assert service.start_attempt(future.id, STUDENT).resumed is False


def test_quiz_without_questions_cannot_be_started(service, make_quiz):
    quiz = make_quiz()

    with pytest.raises(QuizUnavailable):
        service.start_attempt(quiz.id, STUDENT)


def test_only_students_start_attempts(service, capitals_quiz):
    quiz, _ = capitals_quiz

    for actor in (TEACHER, ADMIN):
        with pytest.raises(Forbidden):
            service.start_attempt(quiz.id, actor)


def test_start_unknown_quiz(service):
    with pytest.raises(NotFound):
        service.start_attempt("missing", STUDENT)


def test_snapshot_is_redacted(service, capitals_quiz):
    quiz, _ = capitals_quiz

    submission = service.start_attempt(quiz.id, STUDENT).submission

    for question in submission.questions:
        assert "correct_answer" not in question
        for option in question["options"]:
            assert "is_correct" not in option


def test_snapshot_uses_injected_randomness(db_session, question_bank, make_quiz, make_question, clock):
    quiz = make_quiz(shuffle_questions=True)
    questions = [make_question(quiz) for _ in range(3)]
    service = AttemptService(db_session, question_bank, rng=ReversingRandom(), clock=clock)

    submission = service.start_attempt(quiz.id, STUDENT).submission

    assert [q["id"] for q in submission.questions] == [q.id for q in reversed(questions)]


def test_snapshot_ignores_later_question_bank_edits(service, question_bank, capitals_quiz, db_session):
    quiz, _ = capitals_quiz
    submission = service.start_attempt(quiz.id, STUDENT).submission

    added = question_bank.add_question(quiz, TEACHER, QuestionCreate(
        type="short_answer", text="Capital of Spain?", correct_answer="Madrid", points=4.0,
    ))

    db_session.expire_all()
    reloaded = service.get_attempt(submission.id, STUDENT)
    assert added.id not in [q["id"] for q in reloaded.questions]
    assert added.id not in [k["id"] for k in reloaded.answer_key]

    # An answer to the new question is an abstention, not credit
    result = service.submit_attempt(
        submission.id, STUDENT, [{"question_id": added.id, "text_answer": "Madrid"}]
    )
    assert result.submission.marks_obtained == 0.0


def test_grading_uses_answer_key_from_start(service, capitals_quiz, db_session):
    quiz, questions = capitals_quiz
    submission = service.start_attempt(quiz.id, STUDENT).submission

    mcq = questions[0]
    mcq.options = [
        {"id": "A", "text": "Paris", "is_correct": False},
        {"id": "B", "text": "Rome", "is_correct": True},
        {"id": "C", "text": "Madrid", "is_correct": False},
    ]
    db_session.commit()

    result = service.submit_attempt(
        submission.id, STUDENT, [{"question_id": mcq.id, "selected_options": ["A"]}]
    )
    assert result.submission.answers[0]["is_correct"] is True


# ----------------------------------------------------------------------
# record_proctoring_event
# ----------------------------------------------------------------------

def test_proctoring_events_increment_counters(service, capitals_quiz, db_session):
    quiz, _ = capitals_quiz
    submission = service.start_attempt(quiz.id, STUDENT).submission

    service.record_proctoring_event(submission.id, "tab_switch", STUDENT)
    service.record_proctoring_event(submission.id, "tab_switch", STUDENT)
    service.record_proctoring_event(submission.id, "fullscreen_exit", STUDENT)

    reloaded = service.get_attempt(submission.id, STUDENT)
    assert reloaded.tab_switch_count == 2
    assert reloaded.fullscreen_exits == 1


def test_stale_proctoring_event_is_ignored(service, capitals_quiz):
    quiz, _ = capitals_quiz
    submission = service.start_attempt(quiz.id, STUDENT).submission
    service.submit_attempt(submission.id, STUDENT, [])

    service.record_proctoring_event(submission.id, "tab_switch", STUDENT)

    assert service.get_attempt(submission.id, STUDENT).tab_switch_count == 0


def test_proctoring_event_requires_owner(service, capitals_quiz):
    quiz, _ = capitals_quiz
    submission = service.start_attempt(quiz.id, STUDENT).submission

    with pytest.raises(Forbidden):
        service.record_proctoring_event(submission.id, "tab_switch", OTHER_STUDENT)


def test_unknown_proctoring_event(service, capitals_quiz):
    quiz, _ = capitals_quiz
    submission = service.start_attempt(quiz.id, STUDENT).submission

    with pytest.raises(InvalidState):
        service.record_proctoring_event(submission.id, "copy_paste", STUDENT)


# ----------------------------------------------------------------------
# submit_attempt
# ----------------------------------------------------------------------

def test_submit_grades_and_finalizes(service, capitals_quiz, clock):
    quiz, questions = capitals_quiz
    submission = service.start_attempt(quiz.id, STUDENT).submission
    clock.advance(minutes=12, seconds=29)

    result = service.submit_attempt(submission.id, STUDENT, correct_answers(questions))

    graded = result.submission
    assert result.show_results is True
    assert graded.status == SubmissionStatus.SUBMITTED
    assert graded.marks_obtained == 12.0
    assert graded.total_marks == 10.0
    assert graded.percentage == 120.0
    assert graded.passed is True
    assert graded.time_taken == 12
    assert [a["points_awarded"] for a in graded.answers] == [5.0, 5.0, 2.0, 0.0]
    assert graded.submitted_at is not None


def test_time_taken_rounds_half_up(service, capitals_quiz, clock):
    quiz, _ = capitals_quiz
    submission = service.start_attempt(quiz.id, STUDENT).submission
    clock.advance(minutes=12, seconds=30)

    result = service.submit_attempt(submission.id, STUDENT, [])

    assert result.submission.time_taken == 13


def test_submit_with_negative_marking(service, make_quiz, make_question):
    quiz = make_quiz(negative_marking=True, negative_mark_value=2.0, total_marks=10.0, passing_marks=4.0)
    right = make_question(quiz)
    wrong = make_question(quiz)
    submission = service.start_attempt(quiz.id, STUDENT).submission

    result = service.submit_attempt(submission.id, STUDENT, [
        {"question_id": right.id, "selected_options": ["A"]},
        {"question_id": wrong.id, "selected_options": ["B"]},
    ])

    assert result.submission.marks_obtained == 3.0
    assert result.submission.percentage == 30.0
    assert result.submission.passed is False


def test_second_submit_fails_without_mutation(service, capitals_quiz, clock, db_session):
    quiz, questions = capitals_quiz
    submission = service.start_attempt(quiz.id, STUDENT).submission
    first = service.submit_attempt(submission.id, STUDENT, correct_answers(questions)).submission
    before = (first.marks_obtained, list(first.answers), first.submitted_at, first.status)

    clock.advance(minutes=5)
    with pytest.raises(InvalidState) as excinfo:
        service.submit_attempt(submission.id, STUDENT, [], ProctoringSummary(tab_switches=9))

    assert isinstance(excinfo.value, AlreadySubmitted)
    db_session.expire_all()
    after = service.get_attempt(submission.id, STUDENT)
    assert (after.marks_obtained, after.answers, after.submitted_at, after.status) == before
    assert after.tab_switch_count == 0


class StaleReadStore(AttemptStore):
    """Returns the attempt as it looked before a concurrent submit landed"""

    def require(self, submission_id):
        submission = super().require(submission_id)
        if submission.status != SubmissionStatus.IN_PROGRESS:
            self.db.refresh(submission)
            self.db.expunge(submission)
            submission.status = SubmissionStatus.IN_PROGRESS
        return submission


def test_lost_submit_race_writes_nothing(service, capitals_quiz, db_session, question_bank, clock):
    quiz, questions = capitals_quiz
    submission = service.start_attempt(quiz.id, STUDENT).submission
    service.submit_attempt(submission.id, STUDENT, correct_answers(questions))

    stale = AttemptService(db_session, question_bank, store=StaleReadStore(db_session), clock=clock)
    with pytest.raises(AlreadySubmitted):
        stale.submit_attempt(submission.id, STUDENT, [])

    db_session.expire_all()
    assert db_session.get(Submission, submission.id).marks_obtained == 12.0


def test_submit_by_other_student_is_forbidden(service, capitals_quiz):
    quiz, _ = capitals_quiz
    submission = service.start_attempt(quiz.id, STUDENT).submission

    with pytest.raises(Forbidden):
        service.submit_attempt(submission.id, OTHER_STUDENT, [])


def test_submit_unknown_submission(service):
    with pytest.raises(NotFound):
        service.submit_attempt("missing", STUDENT, [])


def test_submit_merges_proctoring_counters(service, make_quiz, make_question):
    quiz = make_quiz(prevent_tab_switch=True, max_tab_switches=2, require_fullscreen=True)
    make_question(quiz)
    submission = service.start_attempt(quiz.id, STUDENT).submission
    for _ in range(3):
        service.record_proctoring_event(submission.id, "tab_switch", STUDENT)

    result = service.submit_attempt(
        submission.id, STUDENT, [], ProctoringSummary(tab_switches=1, fullscreen_exits=2)
    )

    graded = result.submission
    assert graded.tab_switch_count == 3
    assert graded.fullscreen_exits == 2
    assert "Excessive tab switching detected (3 switches)" in graded.suspicious_activity
    assert "Exited fullscreen mode 2 time(s)" in graded.suspicious_activity


def test_submit_records_timeout_note(service, capitals_quiz):
    quiz, _ = capitals_quiz
    submission = service.start_attempt(quiz.id, STUDENT).submission

    result = service.submit_attempt(submission.id, STUDENT, [], ProctoringSummary(timed_out=True))

    assert result.submission.suspicious_activity == ["Quiz timed out"]


def test_hidden_results_flag_is_reported(service, make_quiz, make_question):
    quiz = make_quiz(show_results_after_submit=False)
    make_question(quiz)
    submission = service.start_attempt(quiz.id, STUDENT).submission

    assert service.submit_attempt(submission.id, STUDENT, []).show_results is False


# ----------------------------------------------------------------------
# resume_attempt
# ----------------------------------------------------------------------

def submitted_attempt(service, quiz):
    submission = service.start_attempt(quiz.id, STUDENT).submission
    return service.submit_attempt(submission.id, STUDENT, []).submission


def test_owner_teacher_resumes_submitted_attempt(service, capitals_quiz, clock):
    quiz, _ = capitals_quiz
    submission = submitted_attempt(service, quiz)

    resumed = service.resume_attempt(submission.id, TEACHER, "Power cut during exam")

    assert resumed.status == SubmissionStatus.IN_PROGRESS
    assert resumed.resumed_by == TEACHER.user_id
    assert resumed.resume_reason == "Power cut during exam"
    assert resumed.resumed_at is not None
    assert resumed.suspicious_activity[-1].startswith(f"Resumed by teacher {TEACHER.user_id}")
    assert "Power cut during exam" in resumed.suspicious_activity[-1]


def test_resumed_attempt_can_be_submitted_again(service, capitals_quiz):
    quiz, questions = capitals_quiz
    submission = submitted_attempt(service, quiz)
    service.resume_attempt(submission.id, TEACHER, "Retry")

    result = service.submit_attempt(submission.id, STUDENT, correct_answers(questions))

    assert result.submission.marks_obtained == 12.0
    assert result.submission.status == SubmissionStatus.SUBMITTED


def test_resume_in_progress_attempt_is_allowed(service, capitals_quiz):
    quiz, _ = capitals_quiz
    submission = service.start_attempt(quiz.id, STUDENT).submission

    resumed = service.resume_attempt(submission.id, TEACHER, "Locked out")

    assert resumed.status == SubmissionStatus.IN_PROGRESS
    assert len(resumed.suspicious_activity) == 1


def test_non_owner_teacher_cannot_resume(service, capitals_quiz):
    quiz, _ = capitals_quiz
    submission = submitted_attempt(service, quiz)

    with pytest.raises(Forbidden):
        service.resume_attempt(submission.id, OTHER_TEACHER, "Helping out")

    assert service.get_attempt(submission.id, STUDENT).status == SubmissionStatus.SUBMITTED


def test_student_cannot_resume(service, capitals_quiz):
    quiz, _ = capitals_quiz
    submission = submitted_attempt(service, quiz)

    with pytest.raises(Forbidden):
        service.resume_attempt(submission.id, STUDENT, "Please")


def test_resume_disallowed_by_quiz_policy(service, make_quiz, make_question):
    quiz = make_quiz(allow_teacher_resume=False)
    make_question(quiz)
    submission = submitted_attempt(service, quiz)

    with pytest.raises(InvalidState):
        service.resume_attempt(submission.id, TEACHER, "Please")

    resumed = service.resume_attempt(submission.id, ADMIN, "Override")
    assert resumed.status == SubmissionStatus.IN_PROGRESS
    assert resumed.resumed_by == ADMIN.user_id


def test_resume_extends_time_limit_when_allowed(service, make_quiz, make_question):
    quiz = make_quiz(allow_teacher_extend_time=True, duration=20)
    make_question(quiz)
    submission = submitted_attempt(service, quiz)

    resumed = service.resume_attempt(submission.id, TEACHER, "Accessibility", extend_minutes=10)

    assert resumed.time_limit == 30


def test_resume_extension_requires_permission(service, capitals_quiz):
    quiz, _ = capitals_quiz
    submission = submitted_attempt(service, quiz)

    with pytest.raises(InvalidState):
        service.resume_attempt(submission.id, TEACHER, "More time", extend_minutes=10)


def test_resume_cannot_create_second_live_attempt(service, capitals_quiz, db_session):
    quiz, _ = capitals_quiz
    first = submitted_attempt(service, quiz)
    service.start_attempt(quiz.id, STUDENT)

    with pytest.raises(InvalidState):
        service.resume_attempt(first.id, TEACHER, "Reopen old attempt")

    assert len(in_progress_rows(db_session, quiz.id, STUDENT.user_id)) == 1


def test_resume_unknown_submission(service):
    with pytest.raises(NotFound):
        service.resume_attempt("missing", TEACHER, "x")


def test_resume_clears_previous_results(service, capitals_quiz):
    quiz, questions = capitals_quiz
    submission = service.start_attempt(quiz.id, STUDENT).submission
    service.submit_attempt(submission.id, STUDENT, correct_answers(questions))

    resumed = service.resume_attempt(submission.id, TEACHER, "Wrong paper handed out")

    assert resumed.answers == []
    assert resumed.marks_obtained is None
    assert resumed.percentage is None
    assert resumed.passed is None
    assert resumed.submitted_at is None


def test_time_taken_excludes_the_gap_before_resume(service, capitals_quiz, clock):
    quiz, _ = capitals_quiz
    submission = service.start_attempt(quiz.id, STUDENT).submission
    clock.advance(minutes=10)
    service.submit_attempt(submission.id, STUDENT, [])

    clock.advance(hours=2)
    service.resume_attempt(submission.id, TEACHER, "Power cut")
    clock.advance(minutes=5)
    result = service.submit_attempt(submission.id, STUDENT, [])

    assert result.submission.time_taken == 15


def test_resuming_a_live_attempt_keeps_time_already_worked(service, capitals_quiz, clock):
    quiz, _ = capitals_quiz
    submission = service.start_attempt(quiz.id, STUDENT).submission
    clock.advance(minutes=10)
    service.resume_attempt(submission.id, TEACHER, "Locked out")
    clock.advance(minutes=5)

    result = service.submit_attempt(submission.id, STUDENT, [])

    assert result.submission.time_taken == 15


# ----------------------------------------------------------------------
# student statistics
# ----------------------------------------------------------------------

def test_submit_updates_student_stats(service, capitals_quiz):
    quiz, questions = capitals_quiz
    first = service.start_attempt(quiz.id, STUDENT).submission
    service.submit_attempt(first.id, STUDENT, correct_answers(questions))
    second = service.start_attempt(quiz.id, STUDENT).submission
    service.submit_attempt(second.id, STUDENT, [])

    stats = service.get_student_stats(STUDENT.user_id, STUDENT)

    assert stats.quizzes_completed == 2
    assert stats.total_quiz_score == 12.0
    assert service.stats.average_score(stats) == 6.0


def test_resume_takes_the_attempt_out_of_student_stats(service, capitals_quiz):
    quiz, questions = capitals_quiz
    submission = service.start_attempt(quiz.id, STUDENT).submission
    service.submit_attempt(submission.id, STUDENT, correct_answers(questions))

    service.resume_attempt(submission.id, TEACHER, "Retake")
    stats = service.get_student_stats(STUDENT.user_id, STUDENT)
    assert (stats.quizzes_completed, stats.total_quiz_score) == (0, 0.0)

    service.submit_attempt(submission.id, STUDENT, correct_answers(questions)[:1])
    stats = service.get_student_stats(STUDENT.user_id, STUDENT)
    assert (stats.quizzes_completed, stats.total_quiz_score) == (1, 5.0)


def test_rejected_submit_leaves_student_stats_alone(service, capitals_quiz, db_session):
    quiz, questions = capitals_quiz
    submission = service.start_attempt(quiz.id, STUDENT).submission
    service.submit_attempt(submission.id, STUDENT, correct_answers(questions))

    with pytest.raises(AlreadySubmitted):
        service.submit_attempt(submission.id, STUDENT, correct_answers(questions))

    db_session.expire_all()
    stats = service.get_student_stats(STUDENT.user_id, STUDENT)
    assert (stats.quizzes_completed, stats.total_quiz_score) == (1, 12.0)


def test_student_stats_visibility(service, capitals_quiz):
    assert service.get_student_stats(STUDENT.user_id, STUDENT) is None
    assert service.get_student_stats(STUDENT.user_id, ADMIN) is None
    for actor in (OTHER_STUDENT, TEACHER):
        with pytest.raises(Forbidden):
            service.get_student_stats(STUDENT.user_id, actor)


# ----------------------------------------------------------------------
# reads
# ----------------------------------------------------------------------

def test_get_attempt_visibility(service, capitals_quiz):
    quiz, _ = capitals_quiz
    submission = service.start_attempt(quiz.id, STUDENT).submission

    for actor in (STUDENT, TEACHER, ADMIN):
        assert service.get_attempt(submission.id, actor).id == submission.id
    for actor in (OTHER_STUDENT, OTHER_TEACHER):
        with pytest.raises(Forbidden):
            service.get_attempt(submission.id, actor)


def test_list_results_scoping(service, capitals_quiz):
    quiz, _ = capitals_quiz
    mine = submitted_attempt(service, quiz)
    theirs = service.start_attempt(quiz.id, OTHER_STUDENT).submission
    service.submit_attempt(theirs.id, OTHER_STUDENT, [])
    service.start_attempt(quiz.id, STUDENT)  # in progress, never listed

    assert [s.id for s in service.list_results(quiz.id, STUDENT)] == [mine.id]
    assert {s.id for s in service.list_results(quiz.id, TEACHER)} == {mine.id, theirs.id}
    assert len(service.list_results(quiz.id, ADMIN)) == 2
    with pytest.raises(Forbidden):
        service.list_results(quiz.id, OTHER_TEACHER)

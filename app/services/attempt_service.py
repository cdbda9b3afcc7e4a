"""
Quiz attempt lifecycle: start, proctoring events, resume, submit

Status only moves forward (in_progress -> submitted -> evaluated) except for
an explicit resume by the owning teacher or an admin, which reopens the
attempt and leaves an audit note.
"""
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import case
from sqlalchemy.orm import Session

from app.errors import (
    AlreadySubmitted, AttemptLimitExceeded, Forbidden, InvalidState, QuizUnavailable,
)
from app.models import Quiz, StudentStats, Submission, SubmissionStatus
from app.schemas.actor import Actor
from app.schemas.submission import ProctoringSummary
from app.services import access_policy
from app.services.attempt_store import AttemptStore
from app.services.grading_service import GradingPolicy, GradingService, grading_service
from app.services.question_bank import QuestionBankAccessor
from app.services.student_stats import StudentStatsService

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive timestamps read back from stores without tz support"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def minutes_between(start: datetime, end: datetime) -> int:
    """Wall-clock delta in whole minutes, rounded half up"""
    seconds = (as_utc(end) - as_utc(start)).total_seconds()
    return max(0, int(seconds / 60 + 0.5))


@dataclass
class AttemptStart:
    submission: Submission
    resumed: bool


@dataclass
class AttemptResult:
    submission: Submission
    show_results: bool


class AttemptService:
    """
    Attempt lifecycle controller

    Built per request around an injected session. Randomness (question and
    option shuffling) and the clock are injectable for tests.
    """

    PROCTORING_EVENTS = tuple(AttemptStore.COUNTERS)

    def __init__(
        self,
        db: Session,
        question_bank: QuestionBankAccessor,
        store: Optional[AttemptStore] = None,
        grader: Optional[GradingService] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
        stats: Optional[StudentStatsService] = None
    ):
        self.db = db
        self.question_bank = question_bank
        self.store = store or AttemptStore(db)
        self.grader = grader or grading_service
        self.rng = rng or random.SystemRandom()
        self.clock = clock
        self.stats = stats or StudentStatsService(db)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start_attempt(self, quiz_id: str, actor: Actor) -> AttemptStart:
        """
        Start an attempt, or return the student's live one

        Raises:
            Forbidden: caller is not a student
            NotFound: quiz absent
            QuizUnavailable: unpublished, deleted, past deadline or empty
            AttemptLimitExceeded: max_attempts already used
        """
        if not actor.is_student:
            raise Forbidden("Only students can start quiz attempts")

        quiz = self.question_bank.get_quiz(quiz_id)
        now = self.clock()
        self._ensure_available(quiz, now)

        existing = self.store.find_in_progress(quiz.id, actor.user_id)
        if existing is not None:
            logger.info(f"Resuming in-progress attempt {existing.id} for student {actor.user_id}")
            return AttemptStart(submission=existing, resumed=True)

        attempt_number = self.store.count_for(quiz.id, actor.user_id) + 1
        if quiz.max_attempts > 0 and attempt_number > quiz.max_attempts:
            raise AttemptLimitExceeded(f"Maximum attempts ({quiz.max_attempts}) reached")

        snapshot, answer_key = self.question_bank.snapshot(quiz, self.rng)
        if not snapshot:
            raise QuizUnavailable("Quiz has no questions")

        submission = Submission(
            quiz_id=quiz.id,
            student_id=actor.user_id,
            attempt_number=attempt_number,
            status=SubmissionStatus.IN_PROGRESS,
            questions=snapshot,
            answer_key=answer_key,
            answers=[],
            started_at=now,
            time_limit=quiz.duration,
            tab_switch_count=0,
            fullscreen_exits=0,
            suspicious_activity=[],
        )
        submission, created = self.store.create_in_progress(submission)

        if created:
            logger.info(
                f"Attempt {submission.id} started: quiz={quiz.id} student={actor.user_id} "
                f"attempt={attempt_number}"
            )
        return AttemptStart(submission=submission, resumed=not created)

    def record_proctoring_event(self, submission_id: str, event_kind: str, actor: Actor) -> None:
        """
        Count a tab switch or fullscreen exit

        Events for attempts that are no longer in progress are stale and
        silently dropped.
        """
        if event_kind not in self.PROCTORING_EVENTS:
            raise InvalidState(f"Unknown proctoring event: {event_kind}")

        submission = self.store.require(submission_id)
        if not access_policy.can_submit_as(submission, actor):
            raise Forbidden("You can only report events for your own attempt")

        if not self.store.increment_counter(submission_id, event_kind):
            logger.debug(f"Ignoring stale {event_kind} event for submission {submission_id}")

    def resume_attempt(
        self,
        submission_id: str,
        actor: Actor,
        reason: str,
        extend_minutes: int = 0
    ) -> Submission:
        """
        Reopen an attempt from any status

        Raises:
            NotFound: submission or quiz absent
            Forbidden: caller is neither the owning teacher nor an admin
            InvalidState: quiz disallows resume or time extension, the
                student already has another live attempt, or the record
                changed underneath us
        """
        submission = self.store.require(submission_id)
        quiz = self.question_bank.get_quiz(submission.quiz_id)

        if not access_policy.can_resume(quiz, actor):
            raise Forbidden("You can only resume attempts on your own quizzes")
        if not (quiz.allow_teacher_resume or actor.is_admin):
            raise InvalidState("This quiz does not allow teacher resume")
        if extend_minutes > 0 and not (quiz.allow_teacher_extend_time or actor.is_admin):
            raise InvalidState("This quiz does not allow time extension")

        now = self.clock()
        notes = list(submission.suspicious_activity or [])
        notes.append(
            f"Resumed by {actor.role} {actor.user_id} at {now.isoformat()} "
            f"(was {submission.status}): {reason}"
        )

        # A reopened attempt carries no graded answers or score until it is
        # submitted again
        values: Dict[str, Any] = {
            "status": SubmissionStatus.IN_PROGRESS,
            "resumed_by": actor.user_id,
            "resumed_at": now,
            "resume_reason": reason,
            "suspicious_activity": notes,
            "answers": [],
            "submitted_at": None,
            "total_marks": None,
            "marks_obtained": None,
            "percentage": None,
            "passed": None,
        }
        if extend_minutes > 0:
            values["time_limit"] = submission.time_limit + extend_minutes
        if submission.status == SubmissionStatus.IN_PROGRESS:
            # Bank the time worked so far; the clock restarts at resumed_at
            values["time_taken"] = self._work_minutes(submission, now)

        was_completed = (
            submission.status in SubmissionStatus.COMPLETED and submission.marks_obtained is not None
        )
        previous_marks = submission.marks_obtained
        if was_completed:
            self.stats.ensure(submission.student_id)

        if not self.store.update(submission_id, values, expected_status=submission.status, commit=False):
            self.db.rollback()
            raise InvalidState("Submission changed concurrently; please retry")
        if was_completed:
            self.stats.revoke_completion(submission.student_id, previous_marks)
        self.db.commit()

        logger.info(f"Attempt {submission_id} resumed by {actor.role} {actor.user_id}: {reason}")
        return self.store.require(submission_id)

    def submit_attempt(
        self,
        submission_id: str,
        actor: Actor,
        answers: List[Any],
        proctoring: Optional[ProctoringSummary] = None
    ) -> AttemptResult:
        """
        Grade and finalize an in-progress attempt

        Grading runs against the answer key frozen at start. The write is
        conditional on the row still being in progress, so a double submit
        leaves the first result untouched.

        Raises:
            NotFound: submission or quiz absent
            Forbidden: caller does not own the submission
            AlreadySubmitted: attempt is not in progress
        """
        proctoring = proctoring or ProctoringSummary()

        submission = self.store.require(submission_id)
        if not access_policy.can_submit_as(submission, actor):
            raise Forbidden("You can only submit your own quiz")
        if submission.status != SubmissionStatus.IN_PROGRESS:
            raise AlreadySubmitted("Quiz already submitted")

        quiz = self.question_bank.get_quiz(submission.quiz_id)
        policy = self.grading_policy(quiz)

        outcome = self.grader.grade(submission.answer_key or [], answers, policy)
        score = self.grader.summarize(outcome.marks_obtained, policy)

        now = self.clock()
        time_taken = self._work_minutes(submission, now)

        tab_switches = max(submission.tab_switch_count or 0, proctoring.tab_switches)
        fullscreen_exits = max(submission.fullscreen_exits or 0, proctoring.fullscreen_exits)

        notes = list(submission.suspicious_activity or [])
        notes.extend(self._integrity_notes(quiz, tab_switches, fullscreen_exits, proctoring.timed_out))

        values = {
            "answers": outcome.graded_answers,
            "status": SubmissionStatus.SUBMITTED,
            "submitted_at": now,
            "time_taken": time_taken,
            "total_marks": quiz.total_marks,
            "marks_obtained": score.marks_obtained,
            "percentage": score.percentage,
            "passed": score.passed,
            # Merge with events recorded during the attempt, even ones that
            # land between our read and this write
            "tab_switch_count": self._merged(Submission.tab_switch_count, proctoring.tab_switches),
            "fullscreen_exits": self._merged(Submission.fullscreen_exits, proctoring.fullscreen_exits),
            "suspicious_activity": notes,
        }

        student_id = submission.student_id
        self.stats.ensure(student_id)

        if not self.store.update(
            submission_id, values, expected_status=SubmissionStatus.IN_PROGRESS, commit=False
        ):
            self.db.rollback()
            raise AlreadySubmitted("Quiz already submitted")
        self.stats.record_completion(student_id, score.marks_obtained)
        self.db.commit()

        logger.info(
            f"Attempt {submission_id} submitted: {score.marks_obtained}/{quiz.total_marks} "
            f"({score.percentage}%), passed={score.passed}, time_taken={time_taken}m"
        )

        return AttemptResult(
            submission=self.store.require(submission_id),
            show_results=quiz.show_results_after_submit,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_attempt(self, submission_id: str, actor: Actor) -> Submission:
        submission = self.store.require(submission_id)
        quiz = self.question_bank.get_quiz(submission.quiz_id)
        if not access_policy.can_view_submission(submission, quiz, actor):
            raise Forbidden("You cannot view this submission")
        return submission

    def list_results(self, quiz_id: str, actor: Actor) -> List[Submission]:
        """Completed attempts of a quiz visible to the actor"""
        quiz = self.question_bank.get_quiz(quiz_id)

        if actor.is_student:
            return self.store.list_by(
                quiz_id=quiz.id, student_id=actor.user_id, statuses=SubmissionStatus.COMPLETED
            )
        if access_policy.can_manage_quiz(quiz, actor):
            return self.store.list_by(quiz_id=quiz.id, statuses=SubmissionStatus.COMPLETED)

        raise Forbidden("You can only view results for your own quizzes")

    def get_student_stats(self, student_id: str, actor: Actor) -> Optional[StudentStats]:
        """Completed-attempt totals; students see their own, admins anyone's"""
        if not (actor.is_admin or (actor.is_student and actor.user_id == student_id)):
            raise Forbidden("You cannot view this student's statistics")
        return self.stats.get(student_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def grading_policy(quiz: Quiz) -> GradingPolicy:
        return GradingPolicy(
            negative_marking=quiz.negative_marking,
            negative_mark_value=quiz.negative_mark_value or 0.0,
            total_marks=quiz.total_marks or 0.0,
            passing_marks=quiz.passing_marks or 0.0,
        )

    @staticmethod
    def _work_minutes(submission: Submission, now: datetime) -> int:
        """Minutes worked: banked time plus time since the last resume, or since start"""
        if submission.resumed_at is not None and submission.time_taken is not None:
            return submission.time_taken + minutes_between(submission.resumed_at, now)
        return minutes_between(submission.started_at, now)

    @staticmethod
    def _ensure_available(quiz: Quiz, now: datetime) -> None:
        if quiz.is_deleted:
            raise QuizUnavailable("This quiz has been deleted")
        if not quiz.is_published:
            raise QuizUnavailable("This quiz is not published")
        if quiz.deadline is not None and as_utc(quiz.deadline) <= now:
            raise QuizUnavailable("Quiz deadline has passed")

    @staticmethod
    def _merged(column, reported: int):
        """SQL expression for max(stored counter, reported counter)"""
        return case((column > reported, column), else_=reported)

    @staticmethod
    def _integrity_notes(quiz: Quiz, tab_switches: int, fullscreen_exits: int, timed_out: bool) -> List[str]:
        notes = []
        if quiz.prevent_tab_switch and tab_switches > quiz.max_tab_switches:
            notes.append(f"Excessive tab switching detected ({tab_switches} switches)")
        if quiz.require_fullscreen and fullscreen_exits > 0:
            notes.append(f"Exited fullscreen mode {fullscreen_exits} time(s)")
        if timed_out:
            notes.append("Quiz timed out")
        return notes

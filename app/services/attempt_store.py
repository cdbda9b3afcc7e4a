"""
Persistence for submission records

Guarantees used by the lifecycle, all provided by the relational store:
- get-by-id and filtered listing by (quiz, student, status)
- conditional create: the partial unique index on in-progress rows rejects
  a second live attempt for the same (quiz, student)
- conditional update: ``UPDATE ... WHERE status = :expected`` reports
  whether the row was still in the expected state
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import InvalidState, NotFound
from app.models import Submission, SubmissionStatus

logger = logging.getLogger(__name__)


class AttemptStore:
    """Submission reads and writes over an injected session"""

    COUNTERS = {
        "tab_switch": Submission.tab_switch_count,
        "fullscreen_exit": Submission.fullscreen_exits,
    }

    def __init__(self, db: Session):
        self.db = db

    def get(self, submission_id: str) -> Optional[Submission]:
        return self.db.get(Submission, submission_id)

    def require(self, submission_id: str) -> Submission:
        submission = self.get(submission_id)
        if submission is None:
            raise NotFound("Submission not found")
        return submission

    def find_in_progress(self, quiz_id: str, student_id: str) -> Optional[Submission]:
        stmt = select(Submission).where(
            Submission.quiz_id == quiz_id,
            Submission.student_id == student_id,
            Submission.status == SubmissionStatus.IN_PROGRESS,
        )
        return self.db.scalars(stmt).first()

    def count_for(self, quiz_id: str, student_id: str) -> int:
        stmt = select(func.count(Submission.id)).where(
            Submission.quiz_id == quiz_id,
            Submission.student_id == student_id,
        )
        return self.db.scalar(stmt) or 0

    def list_by(
        self,
        quiz_id: Optional[str] = None,
        student_id: Optional[str] = None,
        statuses: Optional[Iterable[str]] = None
    ) -> List[Submission]:
        """Filtered listing, oldest attempt first"""
        stmt = select(Submission)
        if quiz_id is not None:
            stmt = stmt.where(Submission.quiz_id == quiz_id)
        if student_id is not None:
            stmt = stmt.where(Submission.student_id == student_id)
        if statuses is not None:
            stmt = stmt.where(Submission.status.in_(list(statuses)))
        stmt = stmt.order_by(Submission.started_at, Submission.attempt_number)
        return list(self.db.scalars(stmt))

    def create_in_progress(self, submission: Submission) -> Tuple[Submission, bool]:
        """
        Insert a new in-progress attempt unless one already exists

        Returns:
            Tuple of (submission, created). When a concurrent call won the
            race, its record is returned with ``created=False``.
        """
        self.db.add(submission)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.find_in_progress(submission.quiz_id, submission.student_id)
            if existing is None:
                # Lost the attempt-number race to a start that has already finished
                raise InvalidState("A concurrent attempt was started; please retry")
            logger.info(
                f"Duplicate start for quiz {submission.quiz_id} student {submission.student_id}; "
                f"returning {existing.id}"
            )
            return existing, False

        self.db.refresh(submission)
        return submission, True

    def update(
        self,
        submission_id: str,
        values: Dict[str, Any],
        expected_status: Optional[str] = None,
        commit: bool = True
    ) -> bool:
        """
        Apply ``values`` in one statement

        Args:
            submission_id: Row to update
            values: Column values to write
            expected_status: When set, only a row still in this status is updated
            commit: False leaves the transaction open for the caller

        Returns:
            True if a row was written
        """
        stmt = update(Submission).where(Submission.id == submission_id)
        if expected_status is not None:
            stmt = stmt.where(Submission.status == expected_status)
        stmt = stmt.values(**values).execution_options(synchronize_session=False)

        try:
            result = self.db.execute(stmt)
            if commit:
                self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise InvalidState("Student already has an attempt in progress for this quiz")

        return result.rowcount == 1

    def increment_counter(self, submission_id: str, event_kind: str) -> bool:
        """Atomically bump a proctoring counter on an in-progress attempt"""
        column = self.COUNTERS[event_kind]
        stmt = (
            update(Submission)
            .where(
                Submission.id == submission_id,
                Submission.status == SubmissionStatus.IN_PROGRESS,
            )
            .values({column: column + 1})
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()
        return result.rowcount == 1

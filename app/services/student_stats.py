"""
Per-student attempt statistics

Totals cover completed attempts only: a submit adds the attempt's marks, a
resume of a completed attempt takes them back out. Both adjustments are
written in the caller's transaction, next to the submission update.
"""
import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import StudentStats

logger = logging.getLogger(__name__)


class StudentStatsService:
    """Reads and in-transaction increments of ``student_stats`` rows"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, student_id: str) -> Optional[StudentStats]:
        return self.db.get(StudentStats, student_id)

    def ensure(self, student_id: str) -> None:
        """
        Make sure the student's row exists, in its own transaction

        Must run before the transaction that adjusts the totals, so those
        adjustments are plain UPDATEs that cannot collide on insert.
        """
        if self.get(student_id) is not None:
            return

        self.db.add(StudentStats(student_id=student_id, quizzes_completed=0, total_quiz_score=0.0))
        try:
            self.db.commit()
        except IntegrityError:
            # Created concurrently
            self.db.rollback()

    def record_completion(self, student_id: str, marks: float) -> None:
        """Add one completed attempt; the caller commits"""
        self._adjust(student_id, 1, marks)

    def revoke_completion(self, student_id: str, marks: float) -> None:
        """Take a reopened attempt back out; the caller commits"""
        self._adjust(student_id, -1, -marks)

    def _adjust(self, student_id: str, completed_delta: int, score_delta: float) -> None:
        stmt = (
            update(StudentStats)
            .where(StudentStats.student_id == student_id)
            .values(
                quizzes_completed=StudentStats.quizzes_completed + completed_delta,
                total_quiz_score=StudentStats.total_quiz_score + score_delta,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount != 1:
            logger.warning(f"No stats row for student {student_id}; adjustment skipped")

    @staticmethod
    def average_score(stats: Optional[StudentStats]) -> float:
        if stats is None or not stats.quizzes_completed:
            return 0.0
        return round(stats.total_quiz_score / stats.quizzes_completed, 2)

"""
Per-student statistics API endpoints
"""

from fastapi import APIRouter, Depends
import logging

from app.dependencies import get_attempt_service, get_current_actor
from app.schemas.actor import Actor
from app.schemas.submission import StudentStatsResponse
from app.services.attempt_service import AttemptService
from app.services.student_stats import StudentStatsService


router = APIRouter(prefix="/api/students", tags=["students"])
logger = logging.getLogger(__name__)


@router.get("/{student_id}/stats", response_model=StudentStatsResponse)
def get_student_stats(
    student_id: str,
    actor: Actor = Depends(get_current_actor),
    service: AttemptService = Depends(get_attempt_service),
):
    """
    Totals over a student's completed attempts

    A student with no completed attempt gets zeros.
    """
    stats = service.get_student_stats(student_id, actor)

    return StudentStatsResponse(
        student_id=student_id,
        quizzes_completed=stats.quizzes_completed if stats else 0,
        total_quiz_score=stats.total_quiz_score if stats else 0.0,
        average_score=StudentStatsService.average_score(stats),
    )

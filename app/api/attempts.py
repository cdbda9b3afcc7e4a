"""
Quiz attempt lifecycle API endpoints
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging

from app.database import get_db
from app.dependencies import get_attempt_service, get_current_actor
from app.models import Quiz, Submission
from app.schemas.actor import Actor
from app.schemas.submission import (
    GradedSubmissionResponse,
    ProctoringEventRequest,
    ResumeAttemptRequest,
    StartAttemptRequest,
    StartAttemptResponse,
    SubmissionResponse,
    SubmitAttemptRequest,
)
from app.services.attempt_service import AttemptService


router = APIRouter(prefix="/api/attempts", tags=["attempts"])
logger = logging.getLogger(__name__)


def present_submission(submission: Submission, quiz: Quiz, actor: Actor) -> SubmissionResponse:
    """
    Serialize a submission for the actor

    When the quiz hides results, students never see per-answer correctness
    or the integrity notes, whatever the attempt's status; aggregate scores
    of a completed attempt stay visible.
    """
    response = SubmissionResponse.model_validate(submission)
    if actor.is_student and not quiz.show_results_after_submit:
        response = response.model_copy(update={
            "answers": [
                answer.model_copy(update={"is_correct": None, "points_awarded": None})
                for answer in response.answers
            ],
            "suspicious_activity": [],
        })
    return response


def _storage_failure(db: Session, action: str, exc: SQLAlchemyError):
    logger.error(f"Failed to {action}: {str(exc)}")
    db.rollback()
    raise HTTPException(status_code=500, detail=f"Failed to {action}")


@router.post("/start", response_model=StartAttemptResponse, status_code=201)
def start_attempt(
    request: StartAttemptRequest,
    actor: Actor = Depends(get_current_actor),
    service: AttemptService = Depends(get_attempt_service),
    db: Session = Depends(get_db),
):
    """
    Start a quiz attempt

    - Returns the student's in-progress attempt unchanged if one exists
    - Enforces publication, deadline and max-attempts
    - Freezes a redacted (and optionally shuffled) question snapshot
    """
    try:
        started = service.start_attempt(request.quiz_id, actor)
    except SQLAlchemyError as e:
        _storage_failure(db, "start quiz", e)

    quiz = service.question_bank.get_quiz(request.quiz_id)

    return StartAttemptResponse(
        submission=present_submission(started.submission, quiz, actor),
        resumed=started.resumed,
        proctoring={
            "prevent_tab_switch": quiz.prevent_tab_switch,
            "max_tab_switches": quiz.max_tab_switches,
            "require_fullscreen": quiz.require_fullscreen,
        },
    )


@router.get("/{submission_id}", response_model=SubmissionResponse)
def get_attempt(
    submission_id: str,
    actor: Actor = Depends(get_current_actor),
    service: AttemptService = Depends(get_attempt_service),
):
    """Fetch one attempt (owner student, owning teacher or admin)"""
    submission = service.get_attempt(submission_id, actor)
    quiz = service.question_bank.get_quiz(submission.quiz_id)
    return present_submission(submission, quiz, actor)


@router.post("/{submission_id}/events", status_code=204)
def record_proctoring_event(
    submission_id: str,
    request: ProctoringEventRequest,
    actor: Actor = Depends(get_current_actor),
    service: AttemptService = Depends(get_attempt_service),
    db: Session = Depends(get_db),
):
    """Count a tab switch or fullscreen exit; stale events are ignored"""
    try:
        service.record_proctoring_event(submission_id, request.event, actor)
    except SQLAlchemyError as e:
        _storage_failure(db, "record proctoring event", e)


@router.post("/{submission_id}/resume", response_model=SubmissionResponse)
def resume_attempt(
    submission_id: str,
    request: ResumeAttemptRequest,
    actor: Actor = Depends(get_current_actor),
    service: AttemptService = Depends(get_attempt_service),
    db: Session = Depends(get_db),
):
    """
    Reopen a student's attempt (owning teacher or admin)

    Allowed from any status when the quiz permits teacher resume.
    Optionally extends the time limit.
    """
    try:
        submission = service.resume_attempt(
            submission_id, actor, request.reason, extend_minutes=request.extend_minutes
        )
    except SQLAlchemyError as e:
        _storage_failure(db, "resume quiz", e)

    quiz = service.question_bank.get_quiz(submission.quiz_id)
    return present_submission(submission, quiz, actor)


@router.post("/{submission_id}/submit", response_model=GradedSubmissionResponse)
def submit_attempt(
    submission_id: str,
    request: SubmitAttemptRequest,
    actor: Actor = Depends(get_current_actor),
    service: AttemptService = Depends(get_attempt_service),
    db: Session = Depends(get_db),
):
    """
    Submit and grade an attempt

    Grading strategy:
    - MCQ / True-False: first selected option vs. the correct option
    - Short answer: case-insensitive trimmed match
    - Descriptive: zero until reviewed manually
    - Negative marking on wrong selections when the quiz enables it
    """
    try:
        result = service.submit_attempt(
            submission_id,
            actor,
            [answer.model_dump() for answer in request.answers],
            request.proctoring,
        )
    except SQLAlchemyError as e:
        _storage_failure(db, "submit quiz", e)

    submission = result.submission
    response = GradedSubmissionResponse(
        submission_id=submission.id,
        status=submission.status,
        marks_obtained=submission.marks_obtained,
        total_marks=submission.total_marks,
        percentage=submission.percentage,
        passed=submission.passed,
        time_taken=submission.time_taken,
        show_results=result.show_results,
    )

    if result.show_results:
        detail = SubmissionResponse.model_validate(submission)
        response.answers = detail.answers
        response.suspicious_activity = detail.suspicious_activity

    return response

"""
Quiz authoring, viewing and results API endpoints
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging

from app.api.attempts import present_submission
from app.database import get_db
from app.dependencies import get_attempt_service, get_current_actor, get_question_bank
from app.errors import Forbidden
from app.models import Quiz
from app.schemas.actor import Actor
from app.schemas.quiz import (
    QuestionAuthorView,
    QuestionCreate,
    QuizCreate,
    QuizDetailResponse,
    QuizResponse,
)
from app.schemas.submission import QuizResultsResponse
from app.services.attempt_service import AttemptService
from app.services.question_bank import QuestionBankAccessor, to_author_view


router = APIRouter(prefix="/api/quizzes", tags=["quizzes"])
logger = logging.getLogger(__name__)


@router.post("", response_model=QuizResponse, status_code=201)
def create_quiz(
    request: QuizCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Create a quiz owned by the calling teacher"""
    if actor.is_student:
        raise Forbidden("Only teachers and admins can create quizzes")

    try:
        quiz = Quiz(teacher_id=actor.user_id, **request.model_dump())
        db.add(quiz)
        db.commit()
        db.refresh(quiz)
    except SQLAlchemyError as e:
        logger.error(f"Failed to create quiz: {str(e)}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to create quiz")

    logger.info(f"Quiz created: {quiz.id} by {actor.user_id}")
    return QuizResponse.model_validate(quiz)


@router.get("/{quiz_id}", response_model=QuizDetailResponse)
def get_quiz(
    quiz_id: str,
    actor: Actor = Depends(get_current_actor),
    question_bank: QuestionBankAccessor = Depends(get_question_bank),
):
    """
    View a quiz with its questions

    Answer keys are included only for the owning teacher and admins.
    """
    quiz = question_bank.get_quiz(quiz_id)
    questions, keys_included = question_bank.view_questions(quiz, actor)

    return QuizDetailResponse(
        quiz=QuizResponse.model_validate(quiz),
        questions=questions,
        answer_keys_included=keys_included,
    )


@router.post("/{quiz_id}/questions", response_model=QuestionAuthorView, status_code=201)
def add_question(
    quiz_id: str,
    request: QuestionCreate,
    actor: Actor = Depends(get_current_actor),
    question_bank: QuestionBankAccessor = Depends(get_question_bank),
    db: Session = Depends(get_db),
):
    """Append a question; attempts already started keep their snapshot"""
    quiz = question_bank.get_quiz(quiz_id)
    try:
        question = question_bank.add_question(quiz, actor, request)
    except SQLAlchemyError as e:
        logger.error(f"Failed to add question: {str(e)}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to add question")

    return to_author_view(question)


@router.get("/{quiz_id}/results", response_model=QuizResultsResponse)
def list_results(
    quiz_id: str,
    actor: Actor = Depends(get_current_actor),
    service: AttemptService = Depends(get_attempt_service),
):
    """
    Completed attempts of a quiz

    Students see their own attempts; the owning teacher and admins see all.
    """
    submissions = service.list_results(quiz_id, actor)
    quiz = service.question_bank.get_quiz(quiz_id)

    return QuizResultsResponse(
        quiz_id=quiz_id,
        total=len(submissions),
        submissions=[present_submission(s, quiz, actor) for s in submissions],
    )

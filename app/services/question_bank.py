"""
Read access to a quiz's question bank

Answer keys leave this module only through ``QuestionAuthorView`` (for
privileged actors) or the private answer-key snapshot stored on a
submission. Redaction is a projection into ``QuestionView``; ORM rows are
never modified to hide fields.
"""
import logging
import random
from typing import Any, Dict, List, Tuple, Union

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.errors import Forbidden, NotFound
from app.models import Question, Quiz
from app.schemas.actor import Actor
from app.schemas.quiz import QuestionAuthorView, QuestionCreate, QuestionOptionView, QuestionView
from app.services import access_policy
from app.utils.cache import CacheService

logger = logging.getLogger(__name__)


def to_question_view(question: Question) -> QuestionView:
    """Redacted projection: option ids and text only, no canonical answer"""
    return QuestionView(
        id=question.id,
        type=question.type,
        text=question.text,
        options=[
            QuestionOptionView(id=option["id"], text=option.get("text", ""))
            for option in question.options or []
        ],
        points=question.points,
        order=question.order,
    )


def to_author_view(question: Question) -> QuestionAuthorView:
    return QuestionAuthorView.model_validate(question)


def to_answer_key(question: Question) -> Dict[str, Any]:
    """Grading data for one question, frozen into the submission at start"""
    return {
        "id": question.id,
        "type": question.type,
        "options": [
            {"id": option["id"], "is_correct": bool(option.get("is_correct"))}
            for option in question.options or []
        ],
        "correct_answer": question.correct_answer,
        "points": question.points,
    }


class QuestionBankAccessor:
    """Question reads for one request, backed by the session and cache"""

    def __init__(self, db: Session, cache: CacheService):
        self.db = db
        self.cache = cache

    def get_quiz(self, quiz_id: str) -> Quiz:
        quiz = self.db.get(Quiz, quiz_id)
        if quiz is None:
            raise NotFound("Quiz not found")
        return quiz

    def list_questions(self, quiz_id: str) -> List[Question]:
        """Authoritative, ordered question list (answer keys included)"""
        stmt = select(Question).where(Question.quiz_id == quiz_id).order_by(Question.order)
        return list(self.db.scalars(stmt))

    def view_questions(
        self,
        quiz: Quiz,
        actor: Actor
    ) -> Tuple[List[Union[QuestionView, QuestionAuthorView]], bool]:
        """
        Questions as the actor may see them

        Returns:
            Tuple of (views, answer_keys_included)
        """
        if not access_policy.can_view_quiz(quiz, actor):
            raise Forbidden("You cannot view this quiz")

        if access_policy.can_manage_quiz(quiz, actor):
            return [to_author_view(q) for q in self.list_questions(quiz.id)], True

        key = self.cache.question_view_key(quiz.id)
        cached = self.cache.get(key)
        if cached is not None:
            return [QuestionView(**item) for item in cached], False

        views = [to_question_view(q) for q in self.list_questions(quiz.id)]
        self.cache.set(key, [view.model_dump() for view in views])
        return views, False

    def snapshot(
        self,
        quiz: Quiz,
        rng: random.Random
    ) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        """
        Freeze the current question set for a new attempt

        Always reads the database. Question order is shuffled when the quiz
        asks for it, option order likewise; both use ``rng.shuffle``.

        Returns:
            Tuple of (redacted snapshot, answer key)
        """
        questions = self.list_questions(quiz.id)
        answer_key = [to_answer_key(q) for q in questions]

        views = [to_question_view(q) for q in questions]
        if quiz.shuffle_questions:
            rng.shuffle(views)
        if quiz.shuffle_options:
            for view in views:
                rng.shuffle(view.options)

        return [view.model_dump() for view in views], answer_key

    def add_question(self, quiz: Quiz, actor: Actor, payload: QuestionCreate) -> Question:
        """Append a question at the next display order"""
        if not access_policy.can_manage_quiz(quiz, actor):
            raise Forbidden("You can only add questions to your own quizzes")

        next_order = self.db.scalar(
            select(func.coalesce(func.max(Question.order), 0)).where(Question.quiz_id == quiz.id)
        ) + 1

        question = Question(
            quiz_id=quiz.id,
            type=payload.type,
            text=payload.text,
            options=[option.model_dump() for option in payload.options],
            correct_answer=payload.correct_answer,
            explanation=payload.explanation,
            points=payload.points,
            order=next_order,
        )
        self.db.add(question)
        self.db.commit()
        self.db.refresh(question)

        self.cache.invalidate_quiz(quiz.id)
        logger.info(f"Question {question.id} added to quiz {quiz.id} at order {next_order}")

        return question

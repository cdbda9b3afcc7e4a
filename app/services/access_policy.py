"""
Role and ownership predicates for quizzes and submissions

Admins bypass every visibility and ownership rule.
"""
from app.models.quiz import Quiz
from app.models.submission import Submission
from app.schemas.actor import Actor


def _owns(quiz: Quiz, actor: Actor) -> bool:
    return actor.is_teacher and quiz.teacher_id == actor.user_id


def can_view_quiz(quiz: Quiz, actor: Actor) -> bool:
    if actor.is_admin:
        return True
    if _owns(quiz, actor):
        return not quiz.is_deleted
    return quiz.is_published and not quiz.is_deleted


def can_manage_quiz(quiz: Quiz, actor: Actor) -> bool:
    return actor.is_admin or _owns(quiz, actor)


def can_submit_as(submission: Submission, actor: Actor) -> bool:
    """Only the submission's own student may submit it"""
    return actor.is_student and submission.student_id == actor.user_id


def can_resume(quiz: Quiz, actor: Actor) -> bool:
    """Ownership half of the resume rule; the quiz flag is checked by the caller"""
    return can_manage_quiz(quiz, actor)


def can_view_submission(submission: Submission, quiz: Quiz, actor: Actor) -> bool:
    if actor.is_student:
        return submission.student_id == actor.user_id
    return can_manage_quiz(quiz, actor)

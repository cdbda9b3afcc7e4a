"""
Database models package
"""
from app.models.quiz import Quiz
from app.models.question import Question, QuestionType
from app.models.submission import Submission, SubmissionStatus
from app.models.student_stats import StudentStats

__all__ = ["Quiz", "Question", "QuestionType", "Submission", "SubmissionStatus", "StudentStats"]

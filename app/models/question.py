"""
Question model - the authoritative question bank, answer keys included
"""
from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, func
from app.database import Base, JSONDocument
import uuid


class QuestionType:
    MCQ = "mcq"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"
    DESCRIPTIVE = "descriptive"

    CHOICE = (MCQ, TRUE_FALSE)
    ALL = (MCQ, TRUE_FALSE, SHORT_ANSWER, DESCRIPTIVE)


class Question(Base):
    """
    Questions table - one row per question, ``order`` unique within a quiz
    """
    __tablename__ = "questions"
    __table_args__ = (UniqueConstraint("quiz_id", "order", name="uq_question_quiz_order"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    quiz_id = Column(String(36), ForeignKey("quizzes.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    text = Column(Text, nullable=False)
    options = Column(JSONDocument, nullable=False, default=list)  # [{"id", "text", "is_correct"}]
    correct_answer = Column(Text)  # short_answer only
    explanation = Column(Text)
    points = Column(Float, nullable=False, default=1.0)
    order = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Question(id={self.id}, quiz_id={self.quiz_id}, type={self.type}, order={self.order})>"

"""
Submission model - one student's attempt at a quiz
"""
from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text,
    UniqueConstraint, func, text,
)
from app.database import Base, JSONDocument
import uuid


class SubmissionStatus:
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    EVALUATED = "evaluated"

    COMPLETED = (SUBMITTED, EVALUATED)


class Submission(Base):
    """
    Quiz submissions table - the record under concurrency control

    Two storage constraints back the lifecycle:
    - (quiz_id, student_id, attempt_number) is unique, so creation is keyed
      on the attempt tuple
    - at most one row per (quiz_id, student_id) may be in_progress (partial
      unique index)
    """
    __tablename__ = "quiz_submissions"
    __table_args__ = (
        UniqueConstraint("quiz_id", "student_id", "attempt_number", name="uq_submission_attempt"),
        Index(
            "uq_submission_in_progress",
            "quiz_id",
            "student_id",
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
            sqlite_where=text("status = 'in_progress'"),
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    quiz_id = Column(String(36), ForeignKey("quizzes.id"), nullable=False, index=True)
    student_id = Column(String(128), nullable=False, index=True)
    attempt_number = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=SubmissionStatus.IN_PROGRESS, index=True)

    questions = Column(JSONDocument, nullable=False, default=list)  # redacted snapshot
    answer_key = Column(JSONDocument, nullable=False, default=list)  # never serialized
    answers = Column(JSONDocument, nullable=False, default=list)

    started_at = Column(DateTime(timezone=True), nullable=False)
    submitted_at = Column(DateTime(timezone=True))
    time_limit = Column(Integer, nullable=False)  # minutes
    time_taken = Column(Integer)  # minutes

    # Proctoring
    tab_switch_count = Column(Integer, nullable=False, default=0)
    fullscreen_exits = Column(Integer, nullable=False, default=0)
    suspicious_activity = Column(JSONDocument, nullable=False, default=list)

    # Teacher resume tracking
    resumed_by = Column(String(128))
    resumed_at = Column(DateTime(timezone=True))
    resume_reason = Column(Text)

    # Results, populated at submission
    total_marks = Column(Float)
    marks_obtained = Column(Float)
    percentage = Column(Float)
    passed = Column(Boolean)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return (
            f"<Submission(id={self.id}, quiz_id={self.quiz_id}, student_id={self.student_id}, "
            f"attempt={self.attempt_number}, status={self.status})>"
        )

"""
StudentStats model - running totals over a student's completed attempts
"""
from sqlalchemy import Column, DateTime, Float, Integer, String, func
from app.database import Base


class StudentStats(Base):
    """
    Student stats table - one row per student, kept in step with submit and resume
    """
    __tablename__ = "student_stats"

    student_id = Column(String(128), primary_key=True)
    quizzes_completed = Column(Integer, nullable=False, default=0)
    total_quiz_score = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<StudentStats(student_id={self.student_id}, completed={self.quizzes_completed})>"

"""
Quiz model - the policy record an attempt is taken against
"""
from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text, func
from app.database import Base
import uuid


class Quiz(Base):
    """
    Quizzes table - owned by the creating teacher, referenced by submissions
    """
    __tablename__ = "quizzes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    teacher_id = Column(String(128), nullable=False, index=True)
    course_id = Column(String(128), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)

    duration = Column(Integer, nullable=False, default=30)  # minutes
    total_marks = Column(Float, nullable=False, default=0.0)
    passing_marks = Column(Float, nullable=False, default=0.0)
    negative_marking = Column(Boolean, nullable=False, default=False)
    negative_mark_value = Column(Float, nullable=False, default=0.0)
    max_attempts = Column(Integer, nullable=False, default=0)  # 0 = unlimited
    deadline = Column(DateTime(timezone=True), nullable=True)

    shuffle_questions = Column(Boolean, nullable=False, default=False)
    shuffle_options = Column(Boolean, nullable=False, default=False)
    show_results_after_submit = Column(Boolean, nullable=False, default=True)

    # Proctoring
    prevent_tab_switch = Column(Boolean, nullable=False, default=False)
    max_tab_switches = Column(Integer, nullable=False, default=0)
    require_fullscreen = Column(Boolean, nullable=False, default=False)

    # Teacher permissions
    allow_teacher_resume = Column(Boolean, nullable=False, default=False)
    allow_teacher_extend_time = Column(Boolean, nullable=False, default=False)

    is_published = Column(Boolean, nullable=False, default=False)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Quiz(id={self.id}, teacher_id={self.teacher_id}, published={self.is_published})>"

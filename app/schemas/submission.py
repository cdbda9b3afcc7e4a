"""
Pydantic schemas for attempt lifecycle requests and responses
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional, Literal
from datetime import datetime

from app.schemas.quiz import QuestionView


class StartAttemptRequest(BaseModel):
    quiz_id: str = Field(..., min_length=1)


class AnswerIn(BaseModel):
    """One answer as sent by the student"""
    question_id: str
    selected_options: List[str] = Field(default_factory=list)
    text_answer: Optional[str] = None


class ProctoringSummary(BaseModel):
    """Client-reported counters at submit time"""
    tab_switches: int = Field(0, ge=0)
    fullscreen_exits: int = Field(0, ge=0)
    timed_out: bool = False


class SubmitAttemptRequest(BaseModel):
    answers: List[AnswerIn] = Field(default_factory=list)
    proctoring: ProctoringSummary = Field(default_factory=ProctoringSummary)


class ProctoringEventRequest(BaseModel):
    event: Literal["tab_switch", "fullscreen_exit"]


class ResumeAttemptRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)
    extend_minutes: int = Field(0, ge=0, le=600)


class GradedAnswer(BaseModel):
    question_id: Optional[str] = None
    selected_options: List[str] = Field(default_factory=list)
    text_answer: Optional[str] = None
    is_correct: Optional[bool] = None
    points_awarded: Optional[float] = None


class SubmissionResponse(BaseModel):
    """Attempt record as returned to callers (answer key never included)"""
    id: str
    quiz_id: str
    student_id: str
    attempt_number: int
    status: str
    questions: List[QuestionView]
    answers: List[GradedAnswer] = Field(default_factory=list)
    started_at: datetime
    submitted_at: Optional[datetime] = None
    time_limit: int
    time_taken: Optional[int] = None
    tab_switch_count: int
    fullscreen_exits: int
    suspicious_activity: List[str] = Field(default_factory=list)
    resumed_by: Optional[str] = None
    resumed_at: Optional[datetime] = None
    resume_reason: Optional[str] = None
    total_marks: Optional[float] = None
    marks_obtained: Optional[float] = None
    percentage: Optional[float] = None
    passed: Optional[bool] = None

    class Config:
        from_attributes = True


class StartAttemptResponse(BaseModel):
    submission: SubmissionResponse
    resumed: bool
    proctoring: Dict[str, Any]


class GradedSubmissionResponse(BaseModel):
    """Result of a submit - details are withheld when results are hidden"""
    submission_id: str
    status: str
    marks_obtained: float
    total_marks: float
    percentage: float
    passed: bool
    time_taken: int
    show_results: bool
    answers: Optional[List[GradedAnswer]] = None
    suspicious_activity: Optional[List[str]] = None


class QuizResultsResponse(BaseModel):
    quiz_id: str
    total: int
    submissions: List[SubmissionResponse]


class StudentStatsResponse(BaseModel):
    """Totals over a student's completed attempts"""
    student_id: str
    quizzes_completed: int
    total_quiz_score: float
    average_score: float

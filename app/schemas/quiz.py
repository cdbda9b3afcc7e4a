"""
Pydantic schemas for quiz authoring and question views
"""
from pydantic import BaseModel, Field, model_validator
from typing import List, Optional, Literal, Union
from datetime import datetime


QuestionTypeLiteral = Literal["mcq", "true_false", "short_answer", "descriptive"]


class QuizCreate(BaseModel):
    """Request schema for quiz creation"""
    course_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    duration: int = Field(..., ge=1, description="Duration in minutes")
    total_marks: float = Field(..., ge=0)
    passing_marks: float = Field(..., ge=0)
    negative_marking: bool = False
    negative_mark_value: float = Field(0.0, ge=0)
    max_attempts: int = Field(0, ge=0, description="0 = unlimited")
    deadline: Optional[datetime] = None
    shuffle_questions: bool = False
    shuffle_options: bool = False
    show_results_after_submit: bool = True
    prevent_tab_switch: bool = False
    max_tab_switches: int = Field(0, ge=0)
    require_fullscreen: bool = False
    allow_teacher_resume: bool = False
    allow_teacher_extend_time: bool = False
    is_published: bool = False


class QuizResponse(BaseModel):
    """Quiz policy record"""
    id: str
    teacher_id: str
    course_id: str
    title: str
    description: Optional[str] = None
    duration: int
    total_marks: float
    passing_marks: float
    negative_marking: bool
    negative_mark_value: float
    max_attempts: int
    deadline: Optional[datetime] = None
    shuffle_questions: bool
    shuffle_options: bool
    show_results_after_submit: bool
    prevent_tab_switch: bool
    max_tab_switches: int
    require_fullscreen: bool
    allow_teacher_resume: bool
    allow_teacher_extend_time: bool
    is_published: bool

    class Config:
        from_attributes = True


class QuestionOptionIn(BaseModel):
    id: str = Field(..., min_length=1)
    text: str
    is_correct: bool = False


class QuestionCreate(BaseModel):
    """Request schema for adding a question to a quiz"""
    type: QuestionTypeLiteral
    text: str = Field(..., min_length=1)
    options: List[QuestionOptionIn] = Field(default_factory=list)
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None
    points: float = Field(1.0, ge=0)

    @model_validator(mode="after")
    def check_answer_key(self):
        if self.type in ("mcq", "true_false"):
            if len(self.options) < 2:
                raise ValueError("choice questions need at least two options")
            if sum(1 for option in self.options if option.is_correct) != 1:
                raise ValueError("choice questions need exactly one correct option")
            if len({option.id for option in self.options}) != len(self.options):
                raise ValueError("option ids must be unique")
        elif self.type == "short_answer" and not (self.correct_answer or "").strip():
            raise ValueError("short answer questions need a correct_answer")
        return self


class QuestionOptionView(BaseModel):
    """Option as shown to a student - no correctness flag"""
    id: str
    text: str

    class Config:
        extra = "forbid"


class QuestionView(BaseModel):
    """Redacted question, safe for non-privileged actors"""
    id: str
    type: str
    text: str
    options: List[QuestionOptionView] = Field(default_factory=list)
    points: float
    order: int

    class Config:
        extra = "forbid"


class QuestionAuthorView(BaseModel):
    """Full question including answer key, for the owning teacher and admins"""
    id: str
    type: str
    text: str
    options: List[QuestionOptionIn] = Field(default_factory=list)
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None
    points: float
    order: int

    class Config:
        from_attributes = True


class QuizDetailResponse(BaseModel):
    """Quiz plus the question list appropriate to the caller's role"""
    quiz: QuizResponse
    # Redacted views forbid extra keys; author dicts fall through to QuestionAuthorView
    questions: List[Union[QuestionView, QuestionAuthorView]]
    answer_keys_included: bool

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTH_SECRET", "test-secret")
os.environ.setdefault("CACHE_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "100000")
os.environ.setdefault("RATE_LIMIT_PER_HOUR", "1000000")

import random
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.config import settings
from app.database import Base
from app.models import Question, Quiz
from app.schemas.actor import Actor
from app.services.attempt_service import AttemptService
from app.services.question_bank import QuestionBankAccessor
from app.utils.cache import CacheService


TEACHER = Actor(user_id="teacher-1", role="teacher")
OTHER_TEACHER = Actor(user_id="teacher-2", role="teacher")
STUDENT = Actor(user_id="student-1", role="student")
OTHER_STUDENT = Actor(user_id="student-2", role="student")
ADMIN = Actor(user_id="admin-1", role="admin")


class FakeRedis:
    def __init__(self):
        self.store = {}

    def ping(self):
        return True

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value

    def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)


class FrozenClock:
    def __init__(self, start=None):
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class ReversingRandom(random.Random):
    """Deterministic stand-in for shuffling"""

    def shuffle(self, x):
        x.reverse()


def make_token(actor: Actor, secret: str = None, **extra) -> str:
    payload = {"sub": actor.user_id, "role": actor.role}
    payload.update(extra)
    return jwt.encode(payload, secret or settings.AUTH_SECRET, algorithm="HS256")


def auth_header(actor: Actor) -> dict:
    return {"Authorization": f"Bearer {make_token(actor)}"}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def cache():
    return CacheService(redis_client=None)


@pytest.fixture
def question_bank(db_session, cache):
    return QuestionBankAccessor(db_session, cache)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def service(db_session, question_bank, clock):
    return AttemptService(db_session, question_bank, rng=random.Random(7), clock=clock)


@pytest.fixture
def make_quiz(db_session):
    def _make(**overrides):
        fields = dict(
            teacher_id=TEACHER.user_id,
            course_id="course-1",
            title="Capitals",
            duration=30,
            total_marks=10.0,
            passing_marks=5.0,
            negative_marking=False,
            negative_mark_value=0.0,
            max_attempts=0,
            shuffle_questions=False,
            shuffle_options=False,
            show_results_after_submit=True,
            prevent_tab_switch=False,
            max_tab_switches=0,
            require_fullscreen=False,
            allow_teacher_resume=True,
            allow_teacher_extend_time=False,
            is_published=True,
            is_deleted=False,
        )
        fields.update(overrides)
        quiz = Quiz(**fields)
        db_session.add(quiz)
        db_session.commit()
        db_session.refresh(quiz)
        return quiz

    return _make


@pytest.fixture
def make_question(db_session):
    counter = {"order": 0}

    def _make(quiz, type="mcq", text=None, options=None, correct_answer=None, points=5.0, order=None):
        counter["order"] += 1
        if options is None and type in ("mcq", "true_false"):
            options = [
                {"id": "A", "text": "Paris", "is_correct": True},
                {"id": "B", "text": "Rome", "is_correct": False},
                {"id": "C", "text": "Madrid", "is_correct": False},
            ]
        question = Question(
            quiz_id=quiz.id,
            type=type,
            text=text or f"Question {counter['order']}",
            options=options or [],
            correct_answer=correct_answer,
            points=points,
            order=order if order is not None else counter["order"],
        )
        db_session.add(question)
        db_session.commit()
        db_session.refresh(question)
        return question

    return _make


@pytest.fixture
def capitals_quiz(make_quiz, make_question):
    """Published quiz: two 5-point MCQs, one short answer, one descriptive"""
    quiz = make_quiz()
    mcq1 = make_question(quiz, "mcq")
    mcq2 = make_question(quiz, "mcq", options=[
        {"id": "X", "text": "Berlin", "is_correct": False},
        {"id": "Y", "text": "Bonn", "is_correct": True},
    ])
    short = make_question(quiz, "short_answer", correct_answer="paris", points=2.0)
    essay = make_question(quiz, "descriptive", points=3.0)
    return quiz, [mcq1, mcq2, short, essay]

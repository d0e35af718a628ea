import os

# Configure before any rejap import so settings never pick up a real key or database
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["GEMINI_API_KEY"] = ""
os.environ["OPENROUTER_API_KEY"] = ""
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["SEED_ON_STARTUP"] = "false"

from collections import defaultdict
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rejap import models  # noqa: F401  (registers tables on Base)
from rejap.ai_service import AiTextService, GeneratedQuestion, PerformanceAnalysis
from rejap.db import Base
from rejap.models import Level, Module, Quiz, QuizQuestion, UserModuleProgress
from rejap.seed import seed_curriculum


OPTIONS = ["A", "B", "C", "D"]


def sample_generated(count: int = 5) -> List[GeneratedQuestion]:
    return [
        GeneratedQuestion(f"Generated question {i}", ["犬", "猫", "鳥", "魚"], "犬")
        for i in range(1, count + 1)
    ]


class FakeAi(AiTextService):
    """Scripted stand-in for the Gemini-backed service."""

    def __init__(self, questions: Optional[List[GeneratedQuestion]] = None, generation_error: Optional[Exception] = None):
        self.questions = questions if questions is not None else sample_generated()
        self.generation_error = generation_error
        self.calls: Dict[str, int] = defaultdict(int)
        self.explained: List[str] = []
        self.analysis_inputs: List[tuple] = []
        self.before_return = None

    async def generate_quiz_questions(self, level_title, module_title, allowed_content, count=5):
        self.calls["generate"] += 1
        self.last_vocabulary = list(allowed_content)
        if self.generation_error is not None:
            raise self.generation_error
        if self.before_return is not None:
            self.before_return()
        return list(self.questions)

    async def explain_answer(self, level_title, question, user_answer, correct_answer, allowed_content):
        self.calls["explain"] += 1
        self.explained.append(question)
        return f"Explanation for {question}"

    async def analyze_performance(self, level_title, scores, incorrect_summary):
        self.calls["analyze"] += 1
        self.analysis_inputs.append((level_title, list(scores), incorrect_summary))
        return PerformanceAnalysis(["Vocabulary recall"], ["Particles"])

    async def recommend_next_steps(self, level_title, summary, weak_areas):
        self.calls["recommend"] += 1
        return f"Focus on {', '.join(weak_areas)}"


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def seeded(db):
    seed_curriculum(db)
    return db


@pytest.fixture
def fake_ai():
    return FakeAi()


@pytest.fixture
def module_at(seeded):
    def _module_at(level_order: int, module_order: int) -> Module:
        return seeded.scalars(
            select(Module)
            .join(Level, Level.id == Module.level_id)
            .where(Level.order == level_order, Module.order == module_order)
        ).one()

    return _module_at


@pytest.fixture
def add_questions(seeded):
    """Give a module's quiz five questions; question i has answer key ``keys[i]``."""

    def _add(module: Module, keys=("A", "B", "C", "D", "A")) -> Quiz:
        quiz = seeded.scalars(select(Quiz).where(Quiz.module_id == module.id)).one()
        for order, key in enumerate(keys, start=1):
            seeded.add(
                QuizQuestion(
                    quiz_id=quiz.id,
                    question=f"{module.title} question {order}",
                    options=list(OPTIONS),
                    correct_answer=key,
                    order=order,
                )
            )
        seeded.commit()
        return quiz

    return _add


@pytest.fixture
def set_progress(seeded):
    def _set(user_id: str, module: Module, progress: float, *, completed: bool = False, unlocked: bool = True):
        row = UserModuleProgress(
            user_id=user_id,
            module_id=module.id,
            progress=progress,
            completed=completed,
            unlocked=unlocked,
        )
        seeded.add(row)
        seeded.commit()
        return row

    return _set


@pytest.fixture
def client(seeded, fake_ai):
    from rejap.ai_service import get_ai_service
    from rejap.db import get_db
    from rejap.main import app
    from rejap.routers.auth import User, get_current_user

    def _get_db():
        yield seeded

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_ai_service] = lambda: fake_ai
    app.dependency_overrides[get_current_user] = lambda: User(username="alice")
    yield TestClient(app)
    app.dependency_overrides.clear()

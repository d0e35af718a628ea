import asyncio
import dataclasses
import json

import pytest
from sqlalchemy import delete, func, select

from conftest import FakeAi, sample_generated
from rejap.ai_service import AiTextService
from rejap.errors import NotFound, UpstreamGenerationError
from rejap.models import Quiz, QuizQuestion
from rejap.quiz_assembly import QuizAssembler
from rejap.repository import ContentRepository


def _question_count(db, quiz_id):
    return db.scalar(select(func.count()).select_from(QuizQuestion).where(QuizQuestion.quiz_id == quiz_id))


def _assembler(db, ai, **kwargs):
    return QuizAssembler(ContentRepository(db), ai, **kwargs)


def test_empty_quiz_is_generated_once_and_then_reused(seeded, module_at, fake_ai):
    module = module_at(1, 1)
    first = asyncio.run(_assembler(seeded, fake_ai).get_quiz(module.id))
    second = asyncio.run(_assembler(seeded, fake_ai).get_quiz(module.id))

    assert fake_ai.calls["generate"] == 1
    assert len(first.questions) == 5
    assert [q.id for q in first.questions] == [q.id for q in second.questions]
    assert [q.order for q in first.questions] == [1, 2, 3, 4, 5]
    assert first.level_title == "Beginner"
    assert first.module_title == module.title
    # Prompt vocabulary comes from the module's own content items
    assert fake_ai.last_vocabulary[0] == "いぬ: いぬ (inu) - dog"


def test_presented_questions_never_carry_the_answer_key(seeded, module_at, fake_ai):
    quiz = asyncio.run(_assembler(seeded, fake_ai).get_quiz(module_at(1, 2).id))
    fields = {f.name for f in dataclasses.fields(quiz.questions[0])}
    assert "correct_answer" not in fields
    assert quiz.questions[0].options == ["犬", "猫", "鳥", "魚"]


def test_existing_questions_skip_generation(seeded, module_at, add_questions, fake_ai):
    module = module_at(2, 1)
    add_questions(module)
    quiz = asyncio.run(_assembler(seeded, fake_ai).get_quiz(module.id))
    assert fake_ai.calls["generate"] == 0
    assert quiz.questions[0].question == f"{module.title} question 1"


class ShortAi(AiTextService):
    """Model that only ever answers with four questions."""

    def __init__(self):
        self.prompts = []

    async def _complete(self, prompt, *, temperature=0.7, max_output_tokens=500):
        self.prompts.append(prompt)
        return json.dumps([dataclasses.asdict(q) for q in sample_generated(4)])


def test_short_generation_persists_nothing(seeded, module_at):
    module = module_at(1, 3)
    ai = ShortAi()
    with pytest.raises(UpstreamGenerationError):
        asyncio.run(_assembler(seeded, ai).get_quiz(module.id))
    quiz = ContentRepository(seeded).get_quiz_for_module(module.id)
    assert _question_count(seeded, quiz.id) == 0
    assert len(ai.prompts) == 1

    # The quiz is still empty, so the next fetch tries again
    with pytest.raises(UpstreamGenerationError):
        asyncio.run(_assembler(seeded, ai).get_quiz(module.id))
    assert len(ai.prompts) == 2


def test_generation_error_leaves_quiz_empty(seeded, module_at):
    module = module_at(1, 3)
    ai = FakeAi(generation_error=UpstreamGenerationError("Failed to generate quiz questions"))
    with pytest.raises(UpstreamGenerationError):
        asyncio.run(_assembler(seeded, ai).get_quiz(module.id))
    quiz = ContentRepository(seeded).get_quiz_for_module(module.id)
    assert _question_count(seeded, quiz.id) == 0


def test_concurrent_population_keeps_the_first_writer(seeded, module_at, fake_ai):
    module = module_at(1, 1)
    quiz = ContentRepository(seeded).get_quiz_for_module(module.id)
    quiz_id = quiz.id

    def other_request_wins():
        for order in range(1, 6):
            seeded.add(
                QuizQuestion(
                    quiz_id=quiz_id,
                    question=f"winner {order}",
                    options=["A", "B", "C", "D"],
                    correct_answer="A",
                    order=order,
                )
            )
        seeded.commit()

    fake_ai.before_return = other_request_wins
    result = asyncio.run(_assembler(seeded, fake_ai).get_quiz(module.id))

    assert _question_count(seeded, quiz_id) == 5
    assert [q.question for q in result.questions] == [f"winner {n}" for n in range(1, 6)]


def test_unknown_module_is_not_found(seeded, fake_ai):
    with pytest.raises(NotFound):
        asyncio.run(_assembler(seeded, fake_ai).get_quiz(9999))


def test_missing_quiz_row_is_created_lazily(seeded, module_at, fake_ai):
    module = module_at(2, 2)
    seeded.execute(delete(Quiz).where(Quiz.module_id == module.id))
    seeded.commit()

    quiz = asyncio.run(_assembler(seeded, fake_ai).get_quiz(module.id))
    assert quiz.title == f"{module.title} Quiz"
    assert len(quiz.questions) == 5


def test_missing_quiz_row_without_lazy_creation_is_not_found(seeded, module_at, fake_ai):
    module = module_at(2, 2)
    seeded.execute(delete(Quiz).where(Quiz.module_id == module.id))
    seeded.commit()

    with pytest.raises(NotFound):
        asyncio.run(_assembler(seeded, fake_ai, lazy_create=False).get_quiz(module.id))
    assert fake_ai.calls["generate"] == 0

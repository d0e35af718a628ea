from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from .ai_service import QUIZ_QUESTION_COUNT, AiTextService
from .errors import ConcurrencyConflict, InvariantViolation, NotFound
from .models import Module, Quiz, QuizQuestion
from .repository import ContentRepository


logger = logging.getLogger(__name__)

PLACEHOLDER_DESCRIPTION = "Quiz questions will be generated by AI"


@dataclass
class QuestionView:
    id: int
    question: str
    type: str
    options: List[str]
    order: int


@dataclass
class QuizView:
    id: int
    title: str
    description: Optional[str]
    module_id: int
    module_title: str
    level_id: int
    level_title: str
    level_order: int
    questions: List[QuestionView] = field(default_factory=list)


def _public_questions(questions: List[QuizQuestion]) -> List[QuestionView]:
    # correct_answer never leaves the server
    return [QuestionView(q.id, q.question, q.type, list(q.options), q.order) for q in questions]


class QuizAssembler:
    def __init__(self, content: ContentRepository, ai: AiTextService, *, lazy_create: bool = True) -> None:
        self.content = content
        self.ai = ai
        self.lazy_create = lazy_create

    @property
    def db(self):
        return self.content.db

    async def get_quiz(self, module_id: int) -> QuizView:
        module = self.content.get_module(module_id)
        if module is None:
            raise NotFound("Quiz not found for this module")
        if module.level is None:
            raise InvariantViolation(f"Module {module_id} does not belong to a level")
        quiz = self.content.get_quiz_for_module(module_id)
        if quiz is None:
            if not self.lazy_create:
                raise NotFound("Quiz not found for this module")
            quiz = self._create_placeholder(module)

        questions = self.content.list_questions(quiz.id)
        if not questions:
            questions = await self._populate(quiz, module)

        return QuizView(
            id=quiz.id,
            title=quiz.title,
            description=quiz.description,
            module_id=module.id,
            module_title=module.title,
            level_id=module.level.id,
            level_title=module.level.title,
            level_order=module.level.order,
            questions=_public_questions(questions),
        )

    def _create_placeholder(self, module: Module) -> Quiz:
        module_id, title = module.id, module.title
        try:
            self.db.add(Quiz(module_id=module_id, title=f"{title} Quiz", description=PLACEHOLDER_DESCRIPTION))
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info("Quiz for module %s was created by another request", module_id)
        quiz = self.content.get_quiz_for_module(module_id)
        if quiz is None:
            raise NotFound("Quiz not found for this module")
        return quiz

    async def _populate(self, quiz: Quiz, module: Module) -> List[QuizQuestion]:
        quiz_id, module_id = quiz.id, module.id
        vocabulary = self.content.allowed_vocabulary(module_id)
        # Raises UpstreamGenerationError on a malformed result; nothing is written then
        generated = await self.ai.generate_quiz_questions(module.level.title, module.title, vocabulary, QUIZ_QUESTION_COUNT)
        try:
            self._persist(quiz_id, generated)
        except ConcurrencyConflict as conflict:
            logger.warning("%s; discarding local generation for quiz %s", conflict, quiz_id)
        return self.content.list_questions(quiz_id)

    def _persist(self, quiz_id: int, generated) -> None:
        try:
            for order, item in enumerate(generated, start=1):
                self.db.add(
                    QuizQuestion(
                        quiz_id=quiz_id,
                        question=item.question_text,
                        type="multiple_choice",
                        options=item.options,
                        correct_answer=item.correct_answer,
                        order=order,
                    )
                )
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConcurrencyConflict(f"Questions for quiz {quiz_id} already persisted by another request") from exc

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .ai_service import AiTextService
from .errors import InvariantViolation, NotFound, ValidationError
from .models import AiFeedback, Module, UserAnswer, UserQuizAttempt
from .progression import ProgressionEngine, ProgressionOutcome
from .repository import ContentRepository, ProgressRepository
from .scoring import QuestionResult, ScoreResult, score_answers
from .settings import settings


logger = logging.getLogger(__name__)


@dataclass
class AnswerFeedback:
    question_id: int
    correct: bool
    user_answer: Optional[str]
    correct_answer: str
    feedback: Optional[str]


@dataclass
class SubmissionResult:
    attempt_id: int
    score: ScoreResult
    progression: ProgressionOutcome
    results: List[AnswerFeedback] = field(default_factory=list)
    ai_recommendation: str = ""
    strengths: List[str] = field(default_factory=list)
    weak_areas: List[str] = field(default_factory=list)

    @property
    def next_module(self) -> Optional[Module]:
        return self.progression.next_module


class QuizSubmissionService:
    """Scores a submission, records it, applies progression, then asks for advice.

    All database writes of one submission go out in a single commit. The AI
    calls around them are best-effort and cannot fail the submission.
    """

    def __init__(
        self,
        content: ContentRepository,
        progress: ProgressRepository,
        ai: AiTextService,
        *,
        engine: Optional[ProgressionEngine] = None,
        feedback_concurrency: Optional[int] = None,
    ) -> None:
        self.content = content
        self.progress = progress
        self.ai = ai
        self.engine = engine or ProgressionEngine(content, progress)
        self.feedback_concurrency = feedback_concurrency or settings.ai_feedback_concurrency

    async def submit(
        self,
        user_id: str,
        quiz_id: int,
        module_id: int,
        answers: Sequence[Optional[str]],
    ) -> SubmissionResult:
        quiz = self.content.get_quiz(quiz_id)
        if quiz is None:
            raise NotFound("Quiz not found")
        if quiz.module_id is None:
            raise InvariantViolation(f"Quiz {quiz_id} is not attached to a module")
        if quiz.module_id != module_id:
            raise ValidationError("moduleId does not match the quiz's module")
        structure = self.content.load_level_structure(module_id)
        level_title = structure.level.title
        module_title = structure.modules[structure.position_of(module_id)].title

        questions = self.content.list_questions(quiz.id)
        scored = score_answers(questions, answers)
        vocabulary = self.content.allowed_vocabulary(module_id)
        explanations = await self._explain_incorrect(level_title, scored.incorrect, vocabulary)

        db = self.progress.db
        try:
            attempt = UserQuizAttempt(
                user_id=user_id,
                quiz_id=quiz.id,
                score=scored.score,
                answers=[r.snapshot() for r in scored.per_question],
                completed=True,
            )
            db.add(attempt)
            db.flush()
            results: List[AnswerFeedback] = []
            for item in scored.per_question:
                answer_row = UserAnswer(
                    attempt_id=attempt.id,
                    question_id=item.question_id,
                    user_answer=item.user_answer,
                    is_correct=item.correct,
                )
                db.add(answer_row)
                db.flush()
                feedback_text = explanations.get(item.position)
                if feedback_text is not None:
                    feedback_row = AiFeedback(
                        answer_id=answer_row.id,
                        feedback=feedback_text,
                        explanation=f"The correct answer is: {item.correct_answer}",
                    )
                    db.add(feedback_row)
                    db.flush()
                    answer_row.ai_feedback_id = feedback_row.id
                results.append(
                    AnswerFeedback(item.question_id, item.correct, item.user_answer, item.correct_answer, feedback_text)
                )

            outcome = self.engine.apply_attempt_result(user_id, module_id, scored.passed, scored.score, structure)
            db.commit()
        except Exception:
            db.rollback()
            raise
        attempt_id = attempt.id
        logger.info(
            "Attempt %s by %s on quiz %s: %d/%d passed=%s",
            attempt_id,
            user_id,
            quiz_id,
            scored.correct_count,
            scored.total_questions,
            scored.passed,
        )

        result = SubmissionResult(attempt_id=attempt_id, score=scored, progression=outcome, results=results)
        await self._advise(result, user_id, structure, level_title, module_title)
        return result

    async def _explain_incorrect(
        self,
        level_title: str,
        incorrect: Sequence[QuestionResult],
        vocabulary: List[str],
    ) -> Dict[int, str]:
        semaphore = asyncio.Semaphore(max(1, self.feedback_concurrency))

        async def explain(item: QuestionResult) -> str:
            async with semaphore:
                return await self.ai.explain_answer(
                    level_title, item.question, item.user_answer, item.correct_answer, vocabulary
                )

        texts = await asyncio.gather(*(explain(item) for item in incorrect))
        return {item.position: text for item, text in zip(incorrect, texts)}

    async def _advise(self, result: SubmissionResult, user_id: str, structure, level_title: str, module_title: str) -> None:
        rows = self.progress.module_progress_for(user_id, [m.id for m in structure.modules])
        # Untouched modules are reported at 0, as in the mastery check
        scores: List[Dict[str, Any]] = [
            {"module": m.title, "score": rows[m.id].progress if m.id in rows else 0.0} for m in structure.modules
        ]
        incorrect_summary = "\n".join(r.feedback for r in result.results if not r.correct and r.feedback)
        analysis = await self.ai.analyze_performance(level_title, scores, incorrect_summary)
        result.strengths = analysis.strengths
        result.weak_areas = analysis.weak_areas

        scored = result.score
        summary = (
            f"The student completed the {module_title} quiz with {scored.correct_count}/{scored.total_questions} "
            f"correct ({scored.score:.0%}) and {'passed' if scored.passed else 'did not pass'}."
        )
        if result.progression.level_promoted:
            summary += f" They have now mastered the {level_title} level."
        result.ai_recommendation = await self.ai.recommend_next_steps(level_title, summary, analysis.weak_areas)

"""One-time diagnostic that places a new learner on a starting level.

Unlock policy: the assigned level and every level below it are unlocked,
together with **all** of their modules. Nothing is ever locked again, so a
second run can only widen access. The current-level pointer always follows
the latest placement.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import InvariantViolation, ValidationError
from .models import Level, QuizQuestion
from .repository import ContentRepository, ProgressRepository


logger = logging.getLogger(__name__)

DIAGNOSTIC_QUESTION_COUNT = 10
NOT_SURE_OPTION = "Not sure"
HIGH_PLACEMENT_SCORE = 0.8
MID_PLACEMENT_SCORE = 0.4


@dataclass
class DiagnosticQuestion:
    id: int
    question: str
    options: List[str]
    level_id: int


@dataclass
class DiagnosticAnswer:
    question_id: int
    answer: Optional[str]


@dataclass
class PlacementResult:
    score: float
    correct_count: int
    total_questions: int
    assigned_level: Level
    unlocked_level_ids: List[int] = field(default_factory=list)
    unlocked_module_ids: List[int] = field(default_factory=list)


def level_quotas(level_count: int, total: int = DIAGNOSTIC_QUESTION_COUNT) -> List[int]:
    """Split ``total`` across levels, remainder going to the middle ones (3 levels -> 3/4/3)."""
    if level_count <= 0:
        return []
    base, extra = divmod(total, level_count)
    quotas = [base] * level_count
    center = (level_count - 1) / 2
    for index in sorted(range(level_count), key=lambda i: (abs(i - center), i))[:extra]:
        quotas[index] += 1
    return quotas


def placement_for(score: float, levels: Sequence[Level]) -> Level:
    if not levels:
        raise InvariantViolation("No levels are configured")
    ordered = sorted(levels, key=lambda lvl: lvl.order)
    if score >= HIGH_PLACEMENT_SCORE:
        return ordered[-1]
    if score >= MID_PLACEMENT_SCORE:
        return ordered[(len(ordered) - 1) // 2]
    return ordered[0]


class DiagnosticPlacement:
    def __init__(
        self,
        content: ContentRepository,
        progress: ProgressRepository,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.content = content
        self.progress = progress
        self.rng = rng or random.Random()

    def sample_questions(self) -> List[DiagnosticQuestion]:
        levels = self.content.list_levels()
        pools: List[List[List[QuizQuestion]]] = []
        for level in levels:
            per_quiz = []
            for module in self.content.list_modules(level.id):
                quiz = self.content.get_quiz_for_module(module.id)
                if quiz is not None:
                    questions = self.content.list_questions(quiz.id)
                    if questions:
                        per_quiz.append(questions)
            pools.append(per_quiz)

        chosen: List[Tuple[Level, QuizQuestion]] = []
        seen: set[int] = set()
        for level, per_quiz, quota in zip(levels, pools, level_quotas(len(levels))):
            for question in self._draw(per_quiz, quota, seen):
                chosen.append((level, question))

        # Top up from whatever is left when some level is short
        if len(chosen) < DIAGNOSTIC_QUESTION_COUNT:
            leftovers = [
                (level, q)
                for level, per_quiz in zip(levels, pools)
                for questions in per_quiz
                for q in questions
                if q.id not in seen
            ]
            self.rng.shuffle(leftovers)
            for level, question in leftovers[: DIAGNOSTIC_QUESTION_COUNT - len(chosen)]:
                seen.add(question.id)
                chosen.append((level, question))

        return [
            DiagnosticQuestion(q.id, q.question, [*q.options, NOT_SURE_OPTION], level.id)
            for level, q in chosen[:DIAGNOSTIC_QUESTION_COUNT]
        ]

    def _draw(self, per_quiz: List[List[QuizQuestion]], quota: int, seen: set) -> List[QuizQuestion]:
        # Spread picks over the level's quizzes before taking a second one from any quiz
        quizzes = [list(questions) for questions in per_quiz]
        self.rng.shuffle(quizzes)
        for questions in quizzes:
            self.rng.shuffle(questions)
        picked: List[QuizQuestion] = []
        while len(picked) < quota and any(quizzes):
            for questions in quizzes:
                if len(picked) >= quota:
                    break
                while questions:
                    candidate = questions.pop()
                    if candidate.id not in seen:
                        seen.add(candidate.id)
                        picked.append(candidate)
                        break
        return picked

    def run_diagnostic(self, user_id: str, answers: Sequence[DiagnosticAnswer]) -> PlacementResult:
        submitted: Dict[int, Optional[str]] = {}
        for item in answers:
            # First answer for a question wins; duplicates cannot inflate the score
            submitted.setdefault(item.question_id, item.answer)
        if len(submitted) > DIAGNOSTIC_QUESTION_COUNT:
            raise ValidationError(f"at most {DIAGNOSTIC_QUESTION_COUNT} answers are accepted")

        questions = self.content.get_questions(submitted.keys())
        correct_count = sum(
            1
            for question_id, answer in submitted.items()
            if question_id in questions and answer is not None and answer == questions[question_id].correct_answer
        )
        score = correct_count / DIAGNOSTIC_QUESTION_COUNT

        levels = self.content.list_levels()
        assigned = placement_for(score, levels)
        result = PlacementResult(
            score=score,
            correct_count=correct_count,
            total_questions=DIAGNOSTIC_QUESTION_COUNT,
            assigned_level=assigned,
        )

        account = self.progress.ensure_account(user_id)
        account.current_level_id = assigned.id

        for level in levels:
            if level.order > assigned.order:
                continue
            status, _ = self.progress.get_or_create_level_status(user_id, level.id)
            if not status.unlocked:
                status.unlocked = True
                result.unlocked_level_ids.append(level.id)
            for module in self.content.list_modules(level.id):
                row, _ = self.progress.get_or_create_module_progress(user_id, module.id)
                if not row.unlocked:
                    row.unlocked = True
                    result.unlocked_module_ids.append(module.id)

        self.progress.db.commit()
        logger.info(
            "Diagnostic for %s: %d/%d correct, placed at level %s",
            user_id,
            correct_count,
            DIAGNOSTIC_QUESTION_COUNT,
            assigned.id,
        )
        return result

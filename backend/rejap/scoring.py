from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence


# Shared with the progression engine's final-module check
PASSING_SCORE = 0.8


class ScorableQuestion(Protocol):
    id: int
    question: str
    correct_answer: str


@dataclass
class QuestionResult:
    position: int
    question_id: int
    question: str
    user_answer: Optional[str]
    correct_answer: str
    correct: bool

    def snapshot(self) -> Dict[str, Any]:
        return {
            "questionId": self.question_id,
            "userAnswer": self.user_answer,
            "correctAnswer": self.correct_answer,
            "correct": self.correct,
        }


@dataclass
class ScoreResult:
    score: float
    passed: bool
    correct_count: int
    total_questions: int
    per_question: List[QuestionResult] = field(default_factory=list)

    @property
    def incorrect(self) -> List[QuestionResult]:
        return [r for r in self.per_question if not r.correct]


def score_answers(questions: Sequence[ScorableQuestion], answers: Sequence[Optional[str]]) -> ScoreResult:
    """Judge ``answers[i]`` against ``questions[i]``.

    Matching is positional, never by question id, and uses exact string
    equality. A question with no answer at its position counts as wrong;
    answers past the last question are ignored.
    """
    results: List[QuestionResult] = []
    for index, question in enumerate(questions):
        user_answer = answers[index] if index < len(answers) else None
        results.append(
            QuestionResult(
                position=index,
                question_id=question.id,
                question=question.question,
                user_answer=user_answer,
                correct_answer=question.correct_answer,
                correct=user_answer is not None and user_answer == question.correct_answer,
            )
        )
    total = len(results)
    correct_count = sum(1 for r in results if r.correct)
    score = correct_count / total if total > 0 else 0.0
    return ScoreResult(
        score=score,
        passed=score >= PASSING_SCORE,
        correct_count=correct_count,
        total_questions=total,
        per_question=results,
    )

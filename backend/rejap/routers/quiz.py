from __future__ import annotations

import random
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ..ai_service import AiTextService, get_ai_service
from ..db import get_db
from ..placement import DiagnosticAnswer, DiagnosticPlacement
from ..quiz_assembly import QuizAssembler
from ..repository import ContentRepository, ProgressRepository
from ..settings import settings
from ..submission import QuizSubmissionService
from .auth import User, get_current_user


router = APIRouter(prefix="/quiz", tags=["quiz"])


class SubmittedAnswer(BaseModel):
    answer: Optional[str] = None


class SubmitRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    quiz_id: int = Field(alias="quizId")
    module_id: int = Field(alias="moduleId")
    # Position i answers question i as the quiz presented them
    answers: List[SubmittedAnswer]


class DiagnosticAnswerIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question_id: int = Field(alias="questionId")
    answer: Optional[str] = None


class DiagnosticRequest(BaseModel):
    answers: List[DiagnosticAnswerIn]


def get_rng() -> random.Random:
    return random.Random()


@router.get("")
async def get_quiz(
    module_id: Optional[int] = Query(default=None, alias="moduleId"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    ai: AiTextService = Depends(get_ai_service),
):
    if module_id is None:
        raise HTTPException(status_code=400, detail="moduleId query parameter is required")
    assembler = QuizAssembler(ContentRepository(db), ai, lazy_create=settings.quiz_lazy_create)
    quiz = await assembler.get_quiz(module_id)
    return {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "moduleId": quiz.module_id,
        "module": {
            "id": quiz.module_id,
            "title": quiz.module_title,
            "level": {"id": quiz.level_id, "title": quiz.level_title, "order": quiz.level_order},
        },
        "questions": [
            {"id": q.id, "question": q.question, "type": q.type, "options": q.options, "order": q.order}
            for q in quiz.questions
        ],
    }


@router.post("/submit")
async def submit_quiz(
    req: SubmitRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    ai: AiTextService = Depends(get_ai_service),
):
    service = QuizSubmissionService(ContentRepository(db), ProgressRepository(db), ai)
    result = await service.submit(user.username, req.quiz_id, req.module_id, [a.answer for a in req.answers])
    next_module = result.next_module
    return {
        "attemptId": result.attempt_id,
        "score": result.score.score,
        "passed": result.score.passed,
        "correctCount": result.score.correct_count,
        "totalQuestions": result.score.total_questions,
        "results": [
            {
                "questionId": r.question_id,
                "correct": r.correct,
                "userAnswer": r.user_answer,
                "correctAnswer": r.correct_answer,
                "feedback": r.feedback,
            }
            for r in result.results
        ],
        "nextModuleUnlocked": result.progression.next_module_unlocked,
        "levelPromoted": result.progression.level_promoted,
        "newLevelUnlocked": result.progression.new_level_unlocked,
        "aiRecommendation": result.ai_recommendation,
        "strengths": result.strengths,
        "weakAreas": result.weak_areas,
        "nextModule": {"id": next_module.id, "title": next_module.title} if next_module is not None else None,
    }


@router.get("/diagnostic")
async def diagnostic_questions(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    rng: random.Random = Depends(get_rng),
):
    placement = DiagnosticPlacement(ContentRepository(db), ProgressRepository(db), rng=rng)
    return [{"id": q.id, "question": q.question, "options": q.options} for q in placement.sample_questions()]


@router.post("/diagnostic")
async def submit_diagnostic(
    req: DiagnosticRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    placement = DiagnosticPlacement(ContentRepository(db), ProgressRepository(db))
    result = placement.run_diagnostic(
        user.username,
        [DiagnosticAnswer(question_id=a.question_id, answer=a.answer) for a in req.answers],
    )
    return {
        "score": result.score,
        "correctCount": result.correct_count,
        "totalQuestions": result.total_questions,
        "assignedLevel": result.assigned_level.title,
        "levelId": result.assigned_level.id,
    }

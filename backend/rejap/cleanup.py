from __future__ import annotations
import logging
from typing import Dict
from sqlalchemy import delete
from sqlalchemy.orm import Session

from .models import AiFeedback, UserAnswer, UserQuizAttempt, QuizQuestion, Quiz


logger = logging.getLogger(__name__)


def clear_quiz_data(db: Session) -> Dict[str, int]:
	# Children first: feedback -> answers -> attempts -> questions -> quizzes.
	# Progress and level status rows are kept; re-run the seed to recreate quiz placeholders.
	removed: Dict[str, int] = {}
	for label, model in (
		("ai_feedback", AiFeedback),
		("user_answers", UserAnswer),
		("quiz_attempts", UserQuizAttempt),
		("quiz_questions", QuizQuestion),
		("quizzes", Quiz),
	):
		res = db.execute(delete(model))
		removed[label] = res.rowcount or 0
		logger.info("Deleted %d rows from %s", removed[label], label)
	db.commit()
	return removed

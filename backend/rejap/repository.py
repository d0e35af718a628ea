"""Storage access handed to the quiz, scoring, progression and placement components.

Components never build their own session; routers pass one in through
``get_db`` so tests can run everything against an in-memory database.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import InvariantViolation, NotFound
from .models import (
    ContentItem,
    Level,
    Module,
    Quiz,
    QuizQuestion,
    UserAccount,
    UserLevelStatus,
    UserModuleProgress,
)


@dataclass
class LevelStructure:
    level: Level
    modules: List[Module]  # ordered by Module.order

    def position_of(self, module_id: int) -> int:
        for index, module in enumerate(self.modules):
            if module.id == module_id:
                return index
        raise InvariantViolation(f"Module {module_id} is not part of level {self.level.id}")

    def next_module(self, module_id: int) -> Optional[Module]:
        index = self.position_of(module_id)
        if index + 1 < len(self.modules):
            return self.modules[index + 1]
        return None


class ContentRepository:
    """Read-only view of the Level -> Module -> ContentItem hierarchy."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def list_levels(self) -> List[Level]:
        return list(self.db.scalars(select(Level).order_by(Level.order)))

    def get_level(self, level_id: int) -> Optional[Level]:
        return self.db.get(Level, level_id)

    def get_level_by_order(self, order: int) -> Optional[Level]:
        return self.db.scalars(select(Level).where(Level.order == order)).first()

    def list_modules(self, level_id: int) -> List[Module]:
        return list(self.db.scalars(select(Module).where(Module.level_id == level_id).order_by(Module.order)))

    def get_module(self, module_id: int) -> Optional[Module]:
        return self.db.get(Module, module_id)

    def list_content_items(self, module_id: int) -> List[ContentItem]:
        return list(
            self.db.scalars(select(ContentItem).where(ContentItem.module_id == module_id).order_by(ContentItem.order))
        )

    def allowed_vocabulary(self, module_id: int) -> List[str]:
        return [f"{item.title}: {item.content}" for item in self.list_content_items(module_id)]

    def get_quiz(self, quiz_id: int) -> Optional[Quiz]:
        return self.db.get(Quiz, quiz_id)

    def get_quiz_for_module(self, module_id: int) -> Optional[Quiz]:
        return self.db.scalars(select(Quiz).where(Quiz.module_id == module_id)).first()

    def list_questions(self, quiz_id: int) -> List[QuizQuestion]:
        return list(
            self.db.scalars(select(QuizQuestion).where(QuizQuestion.quiz_id == quiz_id).order_by(QuizQuestion.order))
        )

    def get_questions(self, question_ids: Iterable[int]) -> Dict[int, QuizQuestion]:
        ids = list(set(question_ids))
        if not ids:
            return {}
        rows = self.db.scalars(select(QuizQuestion).where(QuizQuestion.id.in_(ids)))
        return {row.id: row for row in rows}

    def load_level_structure(self, module_id: int) -> LevelStructure:
        module = self.get_module(module_id)
        if module is None:
            raise NotFound("Module not found")
        if module.level_id is None:
            raise InvariantViolation(f"Module {module_id} does not belong to a level")
        level = self.get_level(module.level_id)
        if level is None:
            raise InvariantViolation(f"Module {module_id} references missing level {module.level_id}")
        structure = LevelStructure(level=level, modules=self.list_modules(level.id))
        orders = [m.order for m in structure.modules]
        # The final-module check compares order with the module count
        if orders != list(range(1, len(orders) + 1)):
            raise InvariantViolation(f"Modules of level {level.id} are not numbered 1..n: {orders}")
        structure.position_of(module.id)
        return structure


class ProgressRepository:
    """Per-user unlock and score state."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_account(self, user_id: str) -> Optional[UserAccount]:
        return self.db.get(UserAccount, user_id)

    def ensure_account(self, user_id: str) -> UserAccount:
        account = self.get_account(user_id)
        if account is None:
            account = UserAccount(username=user_id)
            self.db.add(account)
            self.db.flush()
        return account

    def get_module_progress(self, user_id: str, module_id: int) -> Optional[UserModuleProgress]:
        stmt = select(UserModuleProgress).where(
            UserModuleProgress.user_id == user_id,
            UserModuleProgress.module_id == module_id,
        )
        return self.db.scalars(stmt).first()

    def get_or_create_module_progress(self, user_id: str, module_id: int) -> tuple[UserModuleProgress, bool]:
        row = self.get_module_progress(user_id, module_id)
        if row is not None:
            return row, False
        row = UserModuleProgress(user_id=user_id, module_id=module_id, completed=False, progress=0.0, unlocked=False)
        return self._insert_or_reread(row, lambda: self.get_module_progress(user_id, module_id))

    def module_progress_for(self, user_id: str, module_ids: Iterable[int]) -> Dict[int, UserModuleProgress]:
        ids = list(module_ids)
        if not ids:
            return {}
        stmt = select(UserModuleProgress).where(
            UserModuleProgress.user_id == user_id,
            UserModuleProgress.module_id.in_(ids),
        )
        return {row.module_id: row for row in self.db.scalars(stmt)}

    def list_module_progress(self, user_id: str) -> List[UserModuleProgress]:
        stmt = (
            select(UserModuleProgress)
            .join(Module, Module.id == UserModuleProgress.module_id)
            .join(Level, Level.id == Module.level_id)
            .where(UserModuleProgress.user_id == user_id)
            .order_by(Level.order, Module.order)
        )
        return list(self.db.scalars(stmt))

    def get_level_status(self, user_id: str, level_id: int) -> Optional[UserLevelStatus]:
        stmt = select(UserLevelStatus).where(
            UserLevelStatus.user_id == user_id,
            UserLevelStatus.level_id == level_id,
        )
        return self.db.scalars(stmt).first()

    def get_or_create_level_status(self, user_id: str, level_id: int) -> tuple[UserLevelStatus, bool]:
        row = self.get_level_status(user_id, level_id)
        if row is not None:
            return row, False
        row = UserLevelStatus(user_id=user_id, level_id=level_id, unlocked=False, completed=False)
        return self._insert_or_reread(row, lambda: self.get_level_status(user_id, level_id))

    def list_level_status(self, user_id: str) -> List[UserLevelStatus]:
        stmt = (
            select(UserLevelStatus)
            .join(Level, Level.id == UserLevelStatus.level_id)
            .where(UserLevelStatus.user_id == user_id)
            .order_by(Level.order)
        )
        return list(self.db.scalars(stmt))

    def _insert_or_reread(self, row, reread):
        # A duplicate request may insert the same (user, key) row first; only the savepoint is undone
        try:
            with self.db.begin_nested():
                self.db.add(row)
        except IntegrityError:
            existing = reread()
            if existing is None:
                raise
            return existing, False
        return row, True

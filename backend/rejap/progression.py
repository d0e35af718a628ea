"""Unlock, completion and level-mastery rules applied after each quiz submission.

State only moves forward. For a module: locked -> unlocked -> completed.
For a level: locked -> unlocked -> mastered. ``progress`` keeps the best
score ever reached, so a weaker retry never lowers it, and every unlock is
reported exactly once: on the submission that flips it.

Level mastery (the 80/80/60 rule) is evaluated only when the final module of
the level is passed, and then needs the mean of all module scores in the
level to reach ``MASTERY_SCORE`` with no module under ``MIN_MODULE_SCORE``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

from .models import Level, Module, UserAccount, UserLevelStatus, UserModuleProgress
from .repository import ContentRepository, LevelStructure, ProgressRepository


logger = logging.getLogger(__name__)

MASTERY_SCORE = 0.8
MIN_MODULE_SCORE = 0.6


@dataclass
class MasteryEvaluation:
    mastery_score: float
    all_modules_passing: bool
    module_scores: Dict[int, float] = field(default_factory=dict)

    @property
    def promoted(self) -> bool:
        return self.mastery_score >= MASTERY_SCORE and self.all_modules_passing


@dataclass
class ProgressionOutcome:
    module_progress: UserModuleProgress
    next_module: Optional[Module] = None
    next_module_unlocked: Optional[int] = None
    level_promoted: bool = False
    new_level_unlocked: Optional[int] = None
    mastery: Optional[MasteryEvaluation] = None


def evaluate_mastery(module_scores: Dict[int, float]) -> MasteryEvaluation:
    scores = list(module_scores.values())
    mastery_score = sum(scores) / len(scores) if scores else 0.0
    all_passing = bool(scores) and all(s >= MIN_MODULE_SCORE for s in scores)
    return MasteryEvaluation(mastery_score, all_passing, dict(module_scores))


class ProgressionEngine:
    """Writes through the given repositories and flushes; committing is left to the caller."""

    def __init__(
        self,
        content: ContentRepository,
        progress: ProgressRepository,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.content = content
        self.progress = progress
        self._now = clock

    def apply_attempt_result(
        self,
        user_id: str,
        module_id: int,
        passed: bool,
        score: float,
        structure: Optional[LevelStructure] = None,
    ) -> ProgressionOutcome:
        if structure is None:
            structure = self.content.load_level_structure(module_id)
        module = structure.modules[structure.position_of(module_id)]
        now = self._now()

        row, _ = self.progress.get_or_create_module_progress(user_id, module_id)
        row.progress = max(row.progress or 0.0, score)
        row.completed = bool(row.completed or passed)
        # A failed attempt on a locked module must not open it
        if not row.unlocked and self._is_entry_point(user_id, structure, module):
            row.unlocked = True
        if row.completed and row.completed_at is None:
            row.completed_at = now
        outcome = ProgressionOutcome(module_progress=row)

        if row.completed:
            account = self.progress.ensure_account(user_id)
            if account.current_level_id is None:
                account.current_level_id = structure.level.id

        if passed:
            next_module = structure.next_module(module_id)
            if next_module is not None:
                outcome.next_module = next_module
                if self._unlock_module(user_id, next_module.id):
                    outcome.next_module_unlocked = next_module.id

        is_final_module = module.order == len(structure.modules)
        if is_final_module and passed:
            outcome.mastery = self.evaluate_level(user_id, structure)
            logger.info(
                "Level %s mastery for %s: mean=%.2f all_passing=%s",
                structure.level.id,
                user_id,
                outcome.mastery.mastery_score,
                outcome.mastery.all_modules_passing,
            )
            if outcome.mastery.promoted:
                self._promote(user_id, structure.level, outcome, now)

        self.progress.db.flush()
        return outcome

    def evaluate_level(self, user_id: str, structure: LevelStructure) -> MasteryEvaluation:
        # A module the user never touched has no row and counts as 0
        rows = self.progress.module_progress_for(user_id, [m.id for m in structure.modules])
        scores = {m.id: (rows[m.id].progress if m.id in rows else 0.0) for m in structure.modules}
        return evaluate_mastery(scores)

    def _is_entry_point(self, user_id: str, structure: LevelStructure, module: Module) -> bool:
        if module.order != 1:
            return False
        levels = self.content.list_levels()
        if levels and levels[0].id == structure.level.id:
            return True
        status = self.progress.get_level_status(user_id, structure.level.id)
        return status is not None and bool(status.unlocked)

    def _unlock_module(self, user_id: str, module_id: int) -> bool:
        row, _ = self.progress.get_or_create_module_progress(user_id, module_id)
        if row.unlocked:
            return False
        row.unlocked = True
        return True

    def _promote(self, user_id: str, level: Level, outcome: ProgressionOutcome, now: datetime) -> None:
        status, _ = self.progress.get_or_create_level_status(user_id, level.id)
        status.unlocked = True
        if not status.completed:
            status.completed = True
            outcome.level_promoted = True
        if status.completed_at is None:
            status.completed_at = now

        next_level = self.content.get_level_by_order(level.order + 1)
        if next_level is None:
            return
        next_status, _ = self.progress.get_or_create_level_status(user_id, next_level.id)
        if not next_status.unlocked:
            next_status.unlocked = True
            outcome.new_level_unlocked = next_level.id
            logger.info("Unlocked level %s for %s", next_level.id, user_id)

        account = self.progress.ensure_account(user_id)
        current = self.content.get_level(account.current_level_id) if account.current_level_id is not None else None
        if current is None or current.order < next_level.order:
            account.current_level_id = next_level.id


def unlocked_level_ids(levels: Sequence[Level], statuses: Iterable[UserLevelStatus]) -> Set[int]:
    """The first level is open even when the user has no status rows at all."""
    unlocked = {s.level_id for s in statuses if s.unlocked}
    if levels:
        first = min(levels, key=lambda lvl: lvl.order)
        unlocked.add(first.id)
    return unlocked


def unlocked_module_ids(
    modules: Sequence[Module],
    open_levels: Set[int],
    progress_rows: Iterable[UserModuleProgress],
) -> Set[int]:
    unlocked = {row.module_id for row in progress_rows if row.unlocked}
    for module in modules:
        if module.order == 1 and module.level_id in open_levels:
            unlocked.add(module.id)
    return unlocked


def resolve_current_level(
    account: Optional[UserAccount],
    statuses: List[UserLevelStatus],
) -> Optional[Level]:
    """Pointer if set; otherwise the highest explicitly unlocked level; a new user has none."""
    if account is not None and account.current_level is not None:
        return account.current_level
    unlocked = [s.level for s in statuses if s.unlocked and s.level is not None]
    if not unlocked:
        return None
    return max(unlocked, key=lambda lvl: lvl.order)

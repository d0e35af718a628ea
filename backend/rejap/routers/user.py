from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import AuthUser, Module, UserLevelStatus, UserModuleProgress
from ..progression import resolve_current_level, unlocked_level_ids, unlocked_module_ids
from ..repository import ContentRepository, ProgressRepository
from .auth import User, get_current_user
from .learning import level_summary


router = APIRouter(prefix="/user", tags=["user"])


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _level_status(row: UserLevelStatus) -> Dict[str, Any]:
    return {
        "levelId": row.level_id,
        "unlocked": row.unlocked,
        "completed": row.completed,
        "completedAt": _iso(row.completed_at),
        "level": level_summary(row.level),
    }


def _module_progress(row: UserModuleProgress) -> Dict[str, Any]:
    module = row.module
    return {
        "moduleId": row.module_id,
        "progress": row.progress,
        "completed": row.completed,
        "unlocked": row.unlocked,
        "completedAt": _iso(row.completed_at),
        "module": {
            "id": module.id,
            "title": module.title,
            "order": module.order,
            "level": level_summary(module.level),
        },
    }


@router.get("/me")
def me(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    progress = ProgressRepository(db)
    account = progress.get_account(user.username)
    statuses = progress.list_level_status(user.username)
    auth_row = db.get(AuthUser, user.username)
    return {
        "id": user.username,
        "email": auth_row.email if auth_row else None,
        "name": auth_row.name if auth_row else None,
        # A brand-new learner (no status rows, no pointer) has no current level yet
        "currentLevel": level_summary(resolve_current_level(account, statuses)),
        "levelStatus": [_level_status(row) for row in statuses],
    }


@router.get("/progress")
def user_progress(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    content = ContentRepository(db)
    progress = ProgressRepository(db)
    module_rows = progress.list_module_progress(user.username)
    statuses = progress.list_level_status(user.username)
    levels = content.list_levels()
    open_levels = unlocked_level_ids(levels, statuses)
    modules: list[Module] = [m for level in levels for m in content.list_modules(level.id)]
    return {
        "moduleProgress": [_module_progress(row) for row in module_rows],
        "levelStatus": [_level_status(row) for row in statuses],
        "unlockedLevelIds": sorted(open_levels),
        "unlockedModuleIds": sorted(unlocked_module_ids(modules, open_levels, module_rows)),
    }

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import ContentItem, Level, Module
from ..repository import ContentRepository


router = APIRouter(tags=["learning"])


def level_summary(level: Optional[Level]) -> Optional[Dict[str, Any]]:
    if level is None:
        return None
    return {"id": level.id, "title": level.title, "order": level.order}


def module_summary(module: Module) -> Dict[str, Any]:
    return {
        "id": module.id,
        "levelId": module.level_id,
        "title": module.title,
        "description": module.description,
        "order": module.order,
        "level": level_summary(module.level),
    }


def _content_item(item: ContentItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "moduleId": item.module_id,
        "title": item.title,
        "content": item.content,
        "type": item.type,
        "order": item.order,
    }


@router.get("/levels")
def list_levels(db: Session = Depends(get_db)):
    return [
        {"id": lvl.id, "title": lvl.title, "description": lvl.description, "order": lvl.order}
        for lvl in ContentRepository(db).list_levels()
    ]


@router.get("/modules")
def list_modules(level_id: Optional[int] = Query(default=None, alias="levelId"), db: Session = Depends(get_db)):
    if level_id is None:
        raise HTTPException(status_code=400, detail="levelId query parameter is required")
    return [module_summary(m) for m in ContentRepository(db).list_modules(level_id)]


@router.get("/content")
def list_content(module_id: Optional[int] = Query(default=None, alias="moduleId"), db: Session = Depends(get_db)):
    if module_id is None:
        raise HTTPException(status_code=400, detail="moduleId query parameter is required")
    return [_content_item(item) for item in ContentRepository(db).list_content_items(module_id)]

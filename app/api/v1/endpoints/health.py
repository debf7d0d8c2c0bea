from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlmodel import Session
from typing import Any

from app.core.config import settings
from app.db.session import get_db, reading

router = APIRouter()


@router.get("", response_model=dict[str, Any])
def health_check(db: Session = Depends(get_db)) -> Any:
    """
    Health check endpoint.

    Touches the database so an unreachable store reports 503 instead of "ok".
    """
    with reading("Health check"):
        db.exec(text("SELECT 1"))
    return {"status": "ok", "version": settings.VERSION}
